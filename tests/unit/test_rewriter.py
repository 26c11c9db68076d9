"""
Feed Rewriter Tests
===================

Tests for title extraction, style-preserving serialization and
byte-level fidelity of everything that is not a converted title.
"""

import xml.etree.ElementTree as ET
from unittest.mock import Mock

import pytest

from rssconverter.conversion.rewriter import FeedRewriter, TextStyle, escape_cdata
from rssconverter.conversion.rules import TitleConverter, TitleRule
from rssconverter.utils.exceptions import ErrorCode, MalformedFeed, MalformedFeedError


def _wrap(items: str, declaration: str = '<?xml version="1.0" encoding="UTF-8"?>\n') -> bytes:
    return f"{declaration}<rss version=\"2.0\"><channel>{items}</channel></rss>".encode("utf-8")


def _converter(pattern, replacement):
    return TitleConverter([TitleRule(name="rule", pattern=pattern, replacement=replacement)])


class TestStylePreservation:
    """Converted titles keep the encoding style they had in the source."""

    def test_cdata_title_stays_cdata(self, rewriter):
        feed = _wrap("<item><title><![CDATA[[Group][Show][Ep01]]]></title></item>")

        result = rewriter.rewrite(feed)

        assert result == _wrap("<item><title><![CDATA[ [Group] Show - 01 ]]></title></item>")

    def test_plain_title_stays_plain(self, rewriter):
        feed = _wrap("<item><title>[Group][Show][Ep02]</title></item>")

        result = rewriter.rewrite(feed)

        assert result == _wrap("<item><title> [Group] Show - 02 </title></item>")
        assert b"CDATA" not in result

    def test_sample_feed_only_item_titles_change(self, rewriter, sample_feed):
        expected = sample_feed.replace(
            b"<title><![CDATA[[Group][Show][Ep01]]]></title>",
            b"<title><![CDATA[ [Group] Show - 01 ]]></title>",
        ).replace(
            b"<title>[Group][Show][Ep02]</title>",
            b"<title> [Group] Show - 02 </title>",
        )

        assert rewriter.rewrite(sample_feed) == expected

    def test_whitespace_around_cdata_is_kept(self, rewriter):
        feed = _wrap("<item><title>\n      <![CDATA[[G][S][Ep04]]]>\n    </title></item>")

        result = rewriter.rewrite(feed)

        assert result == _wrap("<item><title>\n      <![CDATA[ [G] S - 04 ]]>\n    </title></item>")

    def test_mixed_text_and_cdata_becomes_single_cdata(self):
        rewriter = FeedRewriter(_converter(r"Ep(\d+)", "Episode $1"))
        feed = _wrap("<item><title>Pre <![CDATA[[G][S][Ep08]]]></title></item>")

        result = rewriter.rewrite(feed)

        assert result == _wrap("<item><title><![CDATA[Episode 08]]></title></item>")

    def test_title_attributes_are_untouched(self, rewriter):
        feed = _wrap("<item><title type='text' note=\"a>b\">[G][S][Ep05]</title></item>")

        result = rewriter.rewrite(feed)

        assert result == _wrap("<item><title type='text' note=\"a>b\"> [G] S - 05 </title></item>")


class TestEscaping:
    """Converted text is always serialized as well-formed markup."""

    def test_plain_output_is_entity_escaped(self):
        rewriter = FeedRewriter(_converter(r"^(\w+) and (\w+)$", "$1 & $2 <$1>"))
        feed = _wrap("<item><title>Tom and Jerry</title></item>")

        result = rewriter.rewrite(feed)

        assert b"<title>Tom &amp; Jerry &lt;Tom&gt;</title>" in result
        assert ET.fromstring(result).find("channel/item/title").text == "Tom & Jerry <Tom>"

    def test_entities_in_source_are_decoded_before_matching(self, rewriter):
        feed = _wrap("<item><title>[A&amp;B][Show][Ep03]</title></item>")

        result = rewriter.rewrite(feed)

        assert result == _wrap("<item><title> [A&amp;B] Show - 03 </title></item>")

    def test_cdata_terminator_is_split(self):
        rewriter = FeedRewriter(_converter(r"^x$", "a]]>b"))
        feed = _wrap("<item><title><![CDATA[x]]></title></item>")

        result = rewriter.rewrite(feed)

        assert b"<title><![CDATA[a]]]]><![CDATA[>b]]></title>" in result
        assert ET.fromstring(result).find("channel/item/title").text == "a]]>b"

    def test_escape_cdata_leaves_ordinary_text(self):
        assert escape_cdata("[Group] Show ]] > x") == "[Group] Show ]] > x"


class TestFidelity:
    """Bytes outside converted titles are copied unchanged."""

    def test_feed_without_items_round_trips(self, rewriter):
        feed = (
            "<?xml version='1.0' encoding='utf-8'?>\n"
            "<?xml-stylesheet type=\"text/xsl\" href=\"style.xsl\"?>\n"
            "<rss version='2.0' xmlns:atom=\"http://www.w3.org/2005/Atom\">\r\n"
            "  <channel >\n"
            "    <title>[Group][Show][Ep09]</title>\n"
            "    <!-- generated -->\n"
            "    <description><![CDATA[<b>bold</b>]]> &#x4E2D; &amp;</description>\n"
            "    <atom:link href='https://example.com/rss' rel=\"self\"   type=\"application/rss+xml\"/>\n"
            "  </channel>\n"
            "</rss>\n"
        ).encode("utf-8")

        assert rewriter.rewrite(feed) == feed

    def test_unmatched_titles_keep_their_source_form(self, rewriter):
        feed = _wrap("<item><title>Tom &#38; Jerry &gt; 1</title></item>")

        assert rewriter.rewrite(feed) == feed

    def test_namespaced_title_is_not_an_item_title(self, rewriter):
        feed = _wrap("<item><media:title xmlns:media='urn:m'>[G][S][Ep01]</media:title></item>")

        assert rewriter.rewrite(feed) == feed

    def test_titles_outside_items_are_ignored(self, rewriter):
        feed = _wrap("<title>[G][S][Ep01]</title><image><title>[G][S][Ep01]</title></image>")

        assert rewriter.rewrite(feed) == feed

    def test_byte_order_mark_is_preserved(self, rewriter):
        feed = b"\xef\xbb\xbf" + _wrap("<item><title>[G][S][Ep01]</title></item>")

        result = rewriter.rewrite(feed)

        assert result == b"\xef\xbb\xbf" + _wrap("<item><title> [G] S - 01 </title></item>")

    def test_ascii_declaration_is_accepted(self, rewriter):
        feed = _wrap(
            "<item><title>[G][S][Ep01]</title></item>",
            declaration='<?xml version="1.0" encoding="US-ASCII"?>',
        )

        assert b" [G] S - 01 " in rewriter.rewrite(feed)

    def test_rewrite_is_stable_on_its_own_output(self, rewriter, sample_feed):
        once = rewriter.rewrite(sample_feed)

        assert rewriter.rewrite(once) == once

    def test_titles_with_nested_markup_are_left_alone(self, rewriter):
        commented = _wrap("<item><title>[G][S]<!-- x -->[Ep06]</title></item>")
        nested = _wrap("<item><title>[G][S][Ep06]<b>x</b></title></item>")

        assert rewriter.rewrite(commented) == commented
        assert rewriter.rewrite(nested) == nested

    def test_undefined_entity_with_external_dtd_is_not_dropped(self):
        rewriter = FeedRewriter(_converter(r"^(.*) Ep(\d+)$", "$1 - $2"))
        feed = (
            b'<?xml version="1.0"?>\n'
            b'<!DOCTYPE rss SYSTEM "rss-0.91.dtd">\n'
            b'<rss version="0.91"><channel>'
            b"<item><title>Caf&eacute; Ep01</title></item>"
            b"<item><title>Tea Ep02</title></item>"
            b"</channel></rss>"
        )

        titles = rewriter.extract_titles(feed)
        result = rewriter.rewrite(feed)

        assert titles[0].opaque
        assert result == feed.replace(b"Tea Ep02", b"Tea - 02")

    def test_title_from_entity_expansion_is_left_alone(self):
        rewriter = FeedRewriter(_converter(r"^Ep(\d+)$", "Episode $1"))
        feed = (
            b'<?xml version="1.0"?>\n'
            b'<!DOCTYPE rss [<!ENTITY t "<title>Ep05</title>">]>\n'
            b"<rss><channel>"
            b"<item>&t;</item>"
            b"<item><title>Ep06</title></item>"
            b"</channel></rss>"
        )

        result = rewriter.rewrite(feed)

        assert result == feed.replace(b"<title>Ep06</title>", b"<title>Episode 06</title>")

    def test_cdata_from_entity_expansion_is_left_alone(self):
        rewriter = FeedRewriter(_converter(r"^Ep(\d+)$", "Episode $1"))
        feed = (
            b'<?xml version="1.0"?>\n'
            b'<!DOCTYPE rss [<!ENTITY c "<![CDATA[Ep07]]>">]>\n'
            b"<rss><channel><item><title>&c;</title></item></channel></rss>"
        )

        assert rewriter.rewrite(feed) == feed


class TestEmptyTitles:
    """Empty titles still go through the converter."""

    def test_empty_title_is_converted(self):
        converter = Mock(spec=TitleConverter)
        converter.convert.side_effect = lambda title: title
        feed = _wrap("<item><title></title></item>")

        assert FeedRewriter(converter).rewrite(feed) == feed
        converter.convert.assert_called_once_with("")

    def test_empty_title_can_be_filled(self):
        rewriter = FeedRewriter(_converter(r"^$", "Untitled"))

        assert rewriter.rewrite(_wrap("<item><title></title></item>")) == _wrap(
            "<item><title>Untitled</title></item>"
        )

    def test_empty_element_tag_is_expanded(self):
        rewriter = FeedRewriter(_converter(r"^$", "Untitled"))

        assert rewriter.rewrite(_wrap("<item><title/></item>")) == _wrap(
            "<item><title>Untitled</title></item>"
        )
        assert rewriter.rewrite(_wrap('<item><title lang="en" /></item>')) == _wrap(
            '<item><title lang="en">Untitled</title></item>'
        )


class TestExtraction:
    """Test title discovery."""

    def test_occurrences_in_document_order(self, rewriter, sample_feed):
        titles = rewriter.extract_titles(sample_feed)

        assert [t.style for t in titles] == [TextStyle.CDATA, TextStyle.PLAIN, TextStyle.PLAIN]
        assert [t.text for t in titles] == [
            "[Group][Show][Ep01]",
            "[Group][Show][Ep02]",
            "Unrelated & untouched",
        ]
        assert titles[0].raw_text == "<![CDATA[[Group][Show][Ep01]]]>"
        assert titles[2].raw_text == "Unrelated &amp; untouched"

    def test_custom_entry_tag(self, episode_converter):
        rewriter = FeedRewriter(episode_converter, item_tag="entry")
        feed = (
            b'<feed xmlns="http://www.w3.org/2005/Atom">'
            b"<entry><title>[G][S][Ep07]</title></entry></feed>"
        )

        assert rewriter.rewrite(feed) == (
            b'<feed xmlns="http://www.w3.org/2005/Atom">'
            b"<entry><title> [G] S - 07 </title></entry></feed>"
        )


class TestMalformedInput:
    """Invalid documents fail as a whole."""

    @pytest.mark.parametrize("feed", [
        b"",
        b"   \n",
        _wrap("<item><title>[G][S][Ep01]</item>"),
        _wrap("<item><title>[G][S][Ep01]</title></item>")[:-12],
        _wrap("<item><title>&nbsp;</title></item>"),
        b"<rss/><rss/>",
        b'<?xml version="1.0"?><rss><channel><item><title>\xff\xfe</title></item></channel></rss>',
    ])
    def test_malformed_feed_raises(self, rewriter, feed):
        with pytest.raises(MalformedFeed):
            rewriter.rewrite(feed)

    def test_truncated_title_reports_position(self, rewriter):
        feed = _wrap("<item><title>[G][S][Ep01]")

        with pytest.raises(MalformedFeedError) as exc_info:
            rewriter.rewrite(feed)

        assert exc_info.value.error_code == ErrorCode.FEED_MALFORMED
        assert "line" in exc_info.value.context

    def test_empty_document_code(self, rewriter):
        with pytest.raises(MalformedFeedError) as exc_info:
            rewriter.rewrite(b"")

        assert exc_info.value.error_code == ErrorCode.FEED_EMPTY

    @pytest.mark.parametrize("declaration", [
        '<?xml version="1.0" encoding="ISO-8859-1"?>',
        "<?xml version='1.0' encoding='GB2312'?>",
    ])
    def test_non_utf8_encoding_is_rejected(self, rewriter, declaration):
        feed = _wrap("<item><title>[G][S][Ep01]</title></item>", declaration=declaration)

        with pytest.raises(MalformedFeedError) as exc_info:
            rewriter.rewrite(feed)

        assert exc_info.value.error_code == ErrorCode.FEED_UNSUPPORTED_ENCODING

    def test_utf16_is_rejected(self, rewriter):
        feed = '<?xml version="1.0" encoding="UTF-16"?><rss/>'.encode("utf-16")

        with pytest.raises(MalformedFeedError):
            rewriter.rewrite(feed)
