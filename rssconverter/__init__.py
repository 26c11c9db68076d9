"""
RSS Converter - Release Title Normalizer
========================================

Fetches an upstream RSS feed and rewrites each item title with ordered,
pattern-based rules, leaving the rest of the document byte-for-byte intact.

Main Components:
- Configuration: TOML file + environment variables with Pydantic validation
- Conversion: first-match-wins rule engine and format-preserving rewriter
- Processing: single-attempt upstream fetch over aiohttp
- Server: aiohttp web service with a liveness endpoint
"""

__version__ = "0.3.0"
__description__ = "Format-preserving RSS title converter"

from .conversion import FeedRewriter, TitleConverter, TitleRule
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import RSSConverterError

__all__ = [
    "FeedRewriter",
    "TitleConverter",
    "TitleRule",
    "configure_application_logging",
    "get_logger_for_component",
    "RSSConverterError",
]
