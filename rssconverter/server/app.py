"""
HTTP Service
============

aiohttp application serving the converted feed and a liveness endpoint.
"""

import uuid
from typing import AsyncIterator, Optional

import aiohttp
from aiohttp import web

from ..config.settings import RSSConverterSettings
from ..conversion.rewriter import FeedRewriter
from ..conversion.rules import TitleConverter
from ..processing.feed_fetcher import FeedFetcher
from ..utils.exceptions import FeedError, get_user_friendly_message
from ..utils.logging import PerformanceLogger, get_logger_for_component

SETTINGS_KEY = web.AppKey("settings", RSSConverterSettings)
REWRITER_KEY = web.AppKey("rewriter", FeedRewriter)
FETCHER_KEY = web.AppKey("fetcher", FeedFetcher)
SESSION_KEY = web.AppKey("session", aiohttp.ClientSession)

REQUEST_ID_HEADER = "X-Request-ID"

logger = get_logger_for_component("server")


async def handle_feed(request: web.Request) -> web.Response:
    """Fetch the upstream feed, convert its titles and return it."""
    app = request.app
    source_url = app[SETTINGS_KEY].rss.source_url
    request_id = uuid.uuid4().hex[:12]
    request_logger = get_logger_for_component(
        "server", feed_url=source_url, request_id=request_id
    )

    try:
        with PerformanceLogger(request_logger, "feed fetch"):
            fetched = await app[FETCHER_KEY].fetch_feed(source_url, app[SESSION_KEY])
        with PerformanceLogger(request_logger, "feed rewrite"):
            body = app[REWRITER_KEY].rewrite(fetched.content)
    except FeedError as e:
        request_logger.error(f"Error converting RSS: {e}", extra=e.to_dict())
        return web.Response(
            status=502,
            text=f"Error: {get_user_friendly_message(e)}",
            content_type="text/plain",
            headers={REQUEST_ID_HEADER: request_id},
        )

    return web.Response(
        body=body,
        headers={
            aiohttp.hdrs.CONTENT_TYPE: fetched.media_type,
            REQUEST_ID_HEADER: request_id,
        },
    )


async def handle_health(request: web.Request) -> web.Response:
    return web.Response(text="OK")


async def _client_session(app: web.Application) -> AsyncIterator[None]:
    async with app[FETCHER_KEY].get_session() as session:
        app[SESSION_KEY] = session
        yield


def create_app(
    settings: RSSConverterSettings,
    converter: Optional[TitleConverter] = None,
    fetcher: Optional[FeedFetcher] = None,
) -> web.Application:
    """Build the web application.

    Args:
        settings: Loaded application settings
        converter: Prebuilt converter; compiled from settings when omitted
        fetcher: Upstream fetcher; built from settings when omitted

    Raises:
        ConfigurationError: If the configured rules do not compile
    """
    if converter is None:
        converter = settings.build_converter()
    converter.freeze()

    if fetcher is None:
        fetcher = FeedFetcher(
            timeout=settings.rss.request_timeout,
            user_agent=settings.rss.user_agent,
            max_bytes=settings.rss.max_feed_bytes,
        )

    app = web.Application()
    app[SETTINGS_KEY] = settings
    app[REWRITER_KEY] = FeedRewriter(
        converter,
        item_tag=settings.conversion.item_tag,
        title_tag=settings.conversion.title_tag,
    )
    app[FETCHER_KEY] = fetcher
    app.cleanup_ctx.append(_client_session)

    app.router.add_get(settings.server.feed_path, handle_feed)
    app.router.add_get(settings.server.health_path, handle_health)
    return app


def run_server(settings: RSSConverterSettings, converter: Optional[TitleConverter] = None) -> None:
    """Serve until interrupted."""
    app = create_app(settings, converter=converter)
    host, port = settings.server.host, settings.server.port

    logger.info(f"RSS converter listening on http://{host}:{port}{settings.server.feed_path}")
    logger.info(f"Health check: http://{host}:{port}{settings.server.health_path}")

    web.run_app(app, host=host, port=port, print=None)
