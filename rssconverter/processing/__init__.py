"""Upstream feed retrieval."""

from .feed_fetcher import FeedFetcher, FetchedFeed

__all__ = ["FeedFetcher", "FetchedFeed"]
