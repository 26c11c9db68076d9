"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for RSS converter tests.
"""

import os
import sys
from pathlib import Path

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
os.environ["RSS_CONVERTER_RSS__SOURCE_URL"] = "https://feeds.example.com/conan.xml"
for legacy in ("RSS_SOURCE_URL", "SERVER_HOST", "SERVER_PORT",
               "CONVERSION_DEFAULT_PRIORITY", "LOGGING_LEVEL", "RSS_CONVERTER_CONFIG"):
    os.environ.pop(legacy, None)


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Keep stray config.toml/.env files out of the settings sources."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def conan_title():
    """A release name as published by the subtitle group."""
    return (
        "[银色子弹字幕组][名侦探柯南][第1170集 食人教室的玄机（后篇）]"
        "[WEBRIP][简繁日多语MKV][PGS][1080P]"
    )


@pytest.fixture
def episode_rule():
    """Rule reformatting ``[Group][Show][EpNN]`` titles."""
    from rssconverter.conversion.rules import TitleRule

    return TitleRule(
        name="episode",
        pattern=r"^\[(.+?)\]\[(.+?)\]\[Ep(\d+)\]$",
        replacement=" [$1] $2 - $3 ",
        priority=1,
    )


@pytest.fixture
def episode_converter(episode_rule):
    from rssconverter.conversion.rules import TitleConverter

    return TitleConverter([episode_rule]).freeze()


@pytest.fixture
def rewriter(episode_converter):
    from rssconverter.conversion.rewriter import FeedRewriter

    return FeedRewriter(episode_converter)


@pytest.fixture
def sample_feed() -> bytes:
    """Feed mixing CDATA and plain titles with untouched neighbours."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media='http://search.yahoo.com/mrss/'>
  <channel>
    <title>[Channel][Feed][Ep00]</title>
    <link>https://example.com/</link>
    <!-- upstream comment -->
    <item>
      <title><![CDATA[[Group][Show][Ep01]]]></title>
      <link>https://example.com/1?a=1&amp;b=2</link>
      <description><![CDATA[<p>first</p>]]></description>
      <media:title>[Group][Show][Ep01]</media:title>
      <guid isPermaLink='false'>one</guid>
    </item>
    <item>
      <title>[Group][Show][Ep02]</title>
      <enclosure url="https://example.com/2.torrent" length="1" type="application/x-bittorrent"/>
    </item>
    <item>
      <title>Unrelated &amp; untouched</title>
    </item>
  </channel>
</rss>
""".encode("utf-8")
