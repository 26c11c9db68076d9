"""
Upstream Feed Fetcher
=====================

Single-attempt retrieval of the raw upstream feed bytes over HTTP.
The body is returned untouched; decoding is left to the rewriter.
"""

import asyncio
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import aiohttp
import certifi

from ..utils.exceptions import ErrorCode, FeedFetchError
from ..utils.logging import get_logger_for_component

DEFAULT_USER_AGENT = "rss-converter/0.3 (+https://github.com/arrs/rss-converter)"
DEFAULT_CONTENT_TYPE = "application/rss+xml; charset=utf-8"


@dataclass
class FetchedFeed:
    """Raw upstream response."""

    url: str
    content: bytes
    content_type: Optional[str] = None
    status: int = 200
    fetch_time: Optional[datetime] = None

    def __post_init__(self):
        if not self.fetch_time:
            self.fetch_time = datetime.now(timezone.utc)

    @property
    def media_type(self) -> str:
        """Content type to serve the converted feed with."""
        return self.content_type or DEFAULT_CONTENT_TYPE


class FeedFetcher:
    """Fetches one feed per call; failures raise ``FeedFetchError`` without retrying."""

    def __init__(
        self,
        timeout: int = 30,
        user_agent: str = DEFAULT_USER_AGENT,
        max_bytes: int = 10 * 1024 * 1024,
    ):
        """Initialize feed fetcher.

        Args:
            timeout: Total request timeout in seconds
            user_agent: User-Agent header sent upstream
            max_bytes: Largest response body accepted
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_bytes = max_bytes
        self.logger = get_logger_for_component("feed_fetcher")

        # SSL context for secure requests
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit_per_host=5,
            enable_cleanup_closed=True,
        )

        timeout = aiohttp.ClientTimeout(total=self.timeout)

        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/rss+xml, application/xml, text/xml, */*",
            "Accept-Encoding": "gzip, deflate",
        }

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=headers
        ) as session:
            yield session

    async def fetch_feed(self, feed_url: str, session: aiohttp.ClientSession) -> FetchedFeed:
        """Fetch the raw bytes of ``feed_url``.

        Args:
            feed_url: URL of the RSS feed
            session: aiohttp session for requests

        Returns:
            FetchedFeed with the untouched response body

        Raises:
            FeedFetchError: On timeouts, transport errors, non-200 responses
                or bodies larger than ``max_bytes``
        """
        start_time = datetime.now(timezone.utc)
        self.logger.debug(f"Fetching feed: {feed_url}")

        try:
            async with session.get(feed_url) as response:
                if response.status != 200:
                    error_code = {
                        401: ErrorCode.FEED_ACCESS_DENIED,
                        403: ErrorCode.FEED_ACCESS_DENIED,
                        404: ErrorCode.FEED_NOT_FOUND,
                    }.get(response.status, ErrorCode.FEED_BAD_STATUS)
                    raise FeedFetchError(
                        f"HTTP {response.status}: {response.reason}",
                        feed_url=feed_url,
                        status=response.status,
                        error_code=error_code,
                    )

                if response.content_length and response.content_length > self.max_bytes:
                    raise self._too_large(feed_url)

                chunks = []
                received = 0
                async for chunk in response.content.iter_chunked(64 * 1024):
                    received += len(chunk)
                    if received > self.max_bytes:
                        raise self._too_large(feed_url)
                    chunks.append(chunk)

                content = b"".join(chunks)
                content_type = response.headers.get(aiohttp.hdrs.CONTENT_TYPE)

        except asyncio.TimeoutError as e:
            raise FeedFetchError(
                f"Request timeout after {self.timeout}s",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except aiohttp.InvalidURL as e:
            raise FeedFetchError(
                f"Invalid feed URL: {e}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_INVALID_URL,
                recoverable=False,
            ) from e
        except aiohttp.ClientError as e:
            raise FeedFetchError(
                f"Fetch error: {e}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
            ) from e

        self.logger.info(
            f"Fetched {len(content)} bytes from {feed_url} "
            f"in {(datetime.now(timezone.utc) - start_time).total_seconds():.2f}s"
        )

        return FetchedFeed(
            url=feed_url,
            content=content,
            content_type=content_type,
            status=200,
            fetch_time=start_time,
        )

    def _too_large(self, feed_url: str) -> FeedFetchError:
        return FeedFetchError(
            f"Feed exceeds {self.max_bytes} bytes",
            feed_url=feed_url,
            error_code=ErrorCode.FEED_TOO_LARGE,
            recoverable=False,
        )
