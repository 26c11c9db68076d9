"""
Format-Preserving Feed Rewriter
===============================

Rewrites item titles of an RSS document in place. The document is parsed
with a streaming expat parser that reports byte offsets, so only the
content of converted titles is replaced; every other byte of the source
(declaration, namespaces, attributes, whitespace, entity forms) is copied
verbatim.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple
from xml.parsers import expat
from xml.sax.saxutils import escape

from .rules import TitleConverter
from ..utils.exceptions import ErrorCode, MalformedFeedError
from ..utils.logging import get_logger_for_component

_UTF16_BOMS = (b"\xff\xfe", b"\xfe\xff")
_XML_DECL_ENCODING_RE = re.compile(
    rb"""^(?:\xef\xbb\xbf)?<\?xml\s[^?>]*?encoding\s*=\s*["']([A-Za-z][A-Za-z0-9._-]*)["']"""
)
SUPPORTED_ENCODINGS = {"utf-8", "utf8", "us-ascii", "ascii"}

CDATA_OPEN = "<![CDATA["
CDATA_CLOSE = "]]>"


class TextStyle(str, Enum):
    """How a title's text was written in the source document."""

    PLAIN = "plain"  # character data with entity escaping
    CDATA = "cdata"


@dataclass
class TitleOccurrence:
    """One item title found in a feed.

    ``start``/``end`` delimit the title's content in the source bytes.
    For CDATA titles, ``leading``/``trailing`` hold the whitespace written
    around the CDATA section(s); it is formatting, not part of ``text``.
    """

    raw_text: str
    text: str
    style: TextStyle
    start: int
    end: int
    tag_start: int
    qname: str
    leading: str = ""
    trailing: str = ""
    empty_element: bool = False
    opaque: bool = False


@dataclass
class _TitleCapture:
    qname: str
    tag_start: int
    content_start: int
    empty_element: bool
    depth: int
    segments: List[str] = field(default_factory=list)
    cdata_first: Optional[int] = None
    cdata_last: Optional[int] = None
    opaque: bool = False


def check_encoding(raw_feed: bytes) -> None:
    """Reject documents that are not UTF-8 encoded.

    Raises:
        MalformedFeedError: For empty input, UTF-16 byte order marks or a
            declared encoding other than UTF-8/ASCII.
    """
    if not raw_feed or not raw_feed.strip():
        raise MalformedFeedError(
            "Feed document is empty", error_code=ErrorCode.FEED_EMPTY
        )

    if raw_feed.startswith(_UTF16_BOMS):
        raise MalformedFeedError(
            "UTF-16 feeds are not supported",
            error_code=ErrorCode.FEED_UNSUPPORTED_ENCODING,
        )

    match = _XML_DECL_ENCODING_RE.match(raw_feed)
    if match:
        declared = match.group(1).decode("ascii").lower()
        if declared not in SUPPORTED_ENCODINGS:
            raise MalformedFeedError(
                f"Unsupported feed encoding '{declared}'",
                error_code=ErrorCode.FEED_UNSUPPORTED_ENCODING,
                context={"encoding": declared},
            )


def _find_tag_end(raw_feed: bytes, tag_start: int) -> Tuple[int, bool]:
    """Return the offset just past the start tag at ``tag_start`` and
    whether it is an empty-element tag."""
    quote = None
    for index in range(tag_start + 1, len(raw_feed)):
        byte = raw_feed[index]
        if quote is not None:
            if byte == quote:
                quote = None
        elif byte in (0x22, 0x27):  # " '
            quote = byte
        elif byte == 0x3E:  # >
            return index + 1, raw_feed[index - 1] == 0x2F  # /
    raise MalformedFeedError("Unterminated start tag", error_code=ErrorCode.FEED_MALFORMED)


def escape_cdata(text: str) -> str:
    """Make ``text`` safe inside a CDATA section by splitting ``]]>``."""
    return text.replace(CDATA_CLOSE, "]]" + CDATA_CLOSE + CDATA_OPEN + ">")


def render_title(occurrence: TitleOccurrence, text: str) -> str:
    """Serialize ``text`` in the occurrence's original style."""
    if occurrence.style is TextStyle.CDATA:
        return (
            occurrence.leading
            + CDATA_OPEN
            + escape_cdata(text)
            + CDATA_CLOSE
            + occurrence.trailing
        )
    return escape(text)


class _TitleScanner:
    """Single-use expat driver collecting item titles with byte offsets."""

    def __init__(self, raw_feed: bytes, item_tag: str, title_tag: str):
        self.raw_feed = raw_feed
        self.item_tag = item_tag
        self.title_tag = title_tag
        self.stack: List[str] = []
        self.current: Optional[_TitleCapture] = None
        self.occurrences: List[TitleOccurrence] = []

        self.parser = expat.ParserCreate(encoding="UTF-8")
        self.parser.SetParamEntityParsing(expat.XML_PARAM_ENTITY_PARSING_NEVER)
        self.parser.StartElementHandler = self._start_element
        self.parser.EndElementHandler = self._end_element
        self.parser.CharacterDataHandler = self._character_data
        self.parser.StartCdataSectionHandler = self._start_cdata
        self.parser.EndCdataSectionHandler = self._end_cdata
        self.parser.CommentHandler = self._markup_in_title
        self.parser.ProcessingInstructionHandler = self._markup_in_title
        # Undefined entities are skipped, not reported, once a DOCTYPE
        # references an external DTD; the title text would lose them
        self.parser.SkippedEntityHandler = self._markup_in_title

    def run(self) -> List[TitleOccurrence]:
        try:
            self.parser.Parse(self.raw_feed, True)
        except expat.ExpatError as e:
            raise MalformedFeedError(
                f"Feed is not well-formed XML: {expat.ErrorString(e.code)} "
                f"at line {e.lineno}, column {e.offset}",
                line=e.lineno,
                column=e.offset,
            ) from e
        return self.occurrences

    def _start_element(self, name, attributes):
        if self.current is not None:
            # Markup nested in a title cannot be rewritten as a single text node
            self.current.opaque = True
        elif name == self.title_tag and self.stack and self.stack[-1] == self.item_tag:
            tag_start = self.parser.CurrentByteIndex
            capture = _TitleCapture(
                qname=name,
                tag_start=tag_start,
                content_start=tag_start,
                empty_element=False,
                depth=len(self.stack),
            )
            if self._tag_at(tag_start, "<" + name):
                capture.content_start, capture.empty_element = _find_tag_end(
                    self.raw_feed, tag_start
                )
            else:
                # Element produced by an entity expansion; no source bytes to splice
                capture.opaque = True
            self.current = capture
        self.stack.append(name)

    def _end_element(self, name):
        self.stack.pop()
        capture = self.current
        if capture is None or len(self.stack) != capture.depth:
            return

        if capture.empty_element:
            end = capture.content_start
        else:
            end = self.parser.CurrentByteIndex
            if not self._tag_at(end, "</" + name):
                capture.opaque = True
                end = max(end, capture.content_start)
        self.occurrences.append(self._finish(capture, end))
        self.current = None

    def _tag_at(self, offset: int, tag: str) -> bool:
        """Whether ``tag`` is written in the source at ``offset``, followed by
        a name delimiter."""
        expected = tag.encode("utf-8")
        if self.raw_feed[offset:offset + len(expected)] != expected:
            return False
        following = self.raw_feed[offset + len(expected):offset + len(expected) + 1]
        return following in (b">", b"/", b" ", b"\t", b"\r", b"\n")

    def _character_data(self, data):
        if self.current is not None:
            self.current.segments.append(data)

    def _start_cdata(self):
        capture = self.current
        if capture is not None and capture.cdata_first is None:
            capture.cdata_first = len(capture.segments)

    def _end_cdata(self):
        if self.current is not None:
            self.current.cdata_last = len(self.current.segments)

    def _markup_in_title(self, *args):
        if self.current is not None:
            self.current.opaque = True

    def _finish(self, capture: _TitleCapture, end: int) -> TitleOccurrence:
        raw_text = self.raw_feed[capture.content_start:end].decode("utf-8")
        occurrence = TitleOccurrence(
            raw_text=raw_text,
            text="".join(capture.segments),
            style=TextStyle.PLAIN,
            start=capture.content_start,
            end=end,
            tag_start=capture.tag_start,
            qname=capture.qname,
            empty_element=capture.empty_element,
            opaque=capture.opaque,
        )
        if capture.cdata_first is None or capture.opaque:
            return occurrence

        if CDATA_OPEN not in raw_text:
            # The CDATA section came from an entity expansion
            occurrence.opaque = True
            return occurrence

        occurrence.style = TextStyle.CDATA
        leading = raw_text[: raw_text.find(CDATA_OPEN)]
        trailing = raw_text[raw_text.rfind(CDATA_CLOSE) + len(CDATA_CLOSE):]
        if not leading.strip() and not trailing.strip():
            occurrence.leading = leading
            occurrence.trailing = trailing
            occurrence.text = "".join(
                capture.segments[capture.cdata_first:capture.cdata_last]
            )
        return occurrence


class FeedRewriter:
    """Applies a ``TitleConverter`` to every item title of an RSS feed."""

    def __init__(
        self,
        converter: TitleConverter,
        item_tag: str = "item",
        title_tag: str = "title",
    ):
        self.converter = converter
        self.item_tag = item_tag
        self.title_tag = title_tag
        self.logger = get_logger_for_component("rewriter")

    def extract_titles(self, raw_feed: bytes) -> List[TitleOccurrence]:
        """Validate ``raw_feed`` and return its item titles in document order.

        Raises:
            MalformedFeedError: If the document is not well-formed UTF-8 XML.
        """
        check_encoding(raw_feed)
        return _TitleScanner(raw_feed, self.item_tag, self.title_tag).run()

    def rewrite(self, raw_feed: bytes) -> bytes:
        """Return ``raw_feed`` with every item title converted.

        Titles whose converted text equals their current text, and titles
        containing nested markup or entities that cannot be spliced back, are
        copied unchanged.

        Raises:
            MalformedFeedError: If the document is not well-formed UTF-8 XML.
        """
        occurrences = self.extract_titles(raw_feed)

        pieces: List[bytes] = []
        position = 0
        converted_count = 0

        for occurrence in occurrences:
            if occurrence.opaque:
                self.logger.warning(
                    f"Skipping title that cannot be rewritten in place at byte {occurrence.tag_start}"
                )
                continue

            converted = self.converter.convert(occurrence.text)
            if converted == occurrence.text:
                continue

            replacement = render_title(occurrence, converted).encode("utf-8")
            if occurrence.empty_element:
                # <title/> has no content span; write an explicit element
                open_tag = raw_feed[occurrence.tag_start:occurrence.start]
                open_tag = open_tag[:-2].rstrip() + b">"
                closing = f"</{occurrence.qname}>".encode("utf-8")
                pieces.append(raw_feed[position:occurrence.tag_start])
                pieces.append(open_tag + replacement + closing)
            else:
                pieces.append(raw_feed[position:occurrence.start])
                pieces.append(replacement)
            position = occurrence.end
            converted_count += 1

        pieces.append(raw_feed[position:])

        self.logger.info(
            f"Rewrote {converted_count} of {len(occurrences)} item titles"
        )
        return b"".join(pieces)
