"""Feed response parsing — Atom/RSS search responses to result records.

Atom is the format OpenSearch endpoints answer with; RSS 2.0 is accepted
as well. Extension elements (anything outside the feed's own vocabulary)
are collected by local name, which is where the remote reports
``totalResults`` and per-entry relevance ``score``.
"""

from __future__ import annotations

import copy
import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable

from fedsearch.adapters.base.exceptions import FeedParseError
from fedsearch.models.feed import FeedDocument, FeedEntry
from fedsearch.models.record import QueryOutcome, Record, ResultRecord
from fedsearch.transformers.resolver import TransformerResolver

logger = logging.getLogger(__name__)

ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"
RSS_CONTENT_NAMESPACE = "http://purl.org/rss/1.0/modules/content/"

_ATOM = f"{{{ATOM_NAMESPACE}}}"
_RSS_ENCODED = f"{{{RSS_CONTENT_NAMESPACE}}}encoded"


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _text(element: ET.Element | None) -> str | None:
    if element is None or element.text is None:
        return None
    return element.text.strip()


def _foreign(parent: ET.Element, is_foreign: Callable[[str], bool]) -> dict[str, str]:
    values: dict[str, str] = {}
    for child in parent:
        if is_foreign(child.tag):
            values[_local_name(child.tag)] = (child.text or "").strip()
    return values


def _atom_content(element: ET.Element) -> str:
    """Inline XML content is serialized; anything else is taken as text."""
    children = list(element)
    if children:
        inline = copy.copy(children[0])
        inline.tail = None
        return ET.tostring(inline, encoding="unicode")
    return element.text or ""


def _is_atom_foreign(tag: str) -> bool:
    return not tag.startswith(_ATOM)


def _is_rss_foreign(tag: str) -> bool:
    return tag.startswith("{") and tag != _RSS_ENCODED


def _parse_atom(root: ET.Element) -> FeedDocument:
    entries = []
    for item in root.findall(f"{_ATOM}entry"):
        entries.append(
            FeedEntry(
                uri=_text(item.find(f"{_ATOM}id")),
                title=_text(item.find(f"{_ATOM}title")),
                contents=[_atom_content(c) for c in item.findall(f"{_ATOM}content")],
                categories=[c.get("term", "") for c in item.findall(f"{_ATOM}category")],
                foreign=_foreign(item, _is_atom_foreign),
            )
        )
    return FeedDocument(entries=entries, foreign=_foreign(root, _is_atom_foreign))


def _parse_rss(root: ET.Element) -> FeedDocument:
    channel = root.find("channel")
    if channel is None:
        raise FeedParseError("RSS document has no channel")
    entries = []
    for item in channel.findall("item"):
        entries.append(
            FeedEntry(
                uri=_text(item.find("guid")) or _text(item.find("link")),
                title=_text(item.find("title")),
                contents=[c.text or "" for c in item.findall(_RSS_ENCODED)],
                categories=[(c.text or "").strip() for c in item.findall("category")],
                foreign=_foreign(item, _is_rss_foreign),
            )
        )
    return FeedDocument(entries=entries, foreign=_foreign(channel, _is_rss_foreign))


def parse_feed(data: bytes | str) -> FeedDocument:
    """Parse an Atom or RSS 2.0 document.

    Raises:
        FeedParseError: If the data is not well-formed or not a feed.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise FeedParseError(f"Malformed feed: {e}") from e

    if root.tag == f"{_ATOM}feed":
        return _parse_atom(root)
    if root.tag == "rss":
        return _parse_rss(root)
    raise FeedParseError(f"Unsupported feed root element: {root.tag}")


def entry_identifier(uri: str | None) -> str:
    """Text after the last ``:`` of an entry URI (``urn:catalog:abc`` -> ``abc``)."""
    if not uri:
        return ""
    return uri[uri.rfind(":") + 1 :]


def relevance_of(entry: FeedEntry) -> float:
    score = entry.score
    if not score:
        logger.debug("couldn't find valid relevance. Setting relevance to 0")
        return 0.0
    try:
        return float(score)
    except ValueError:
        logger.debug("Unparseable relevance %r. Setting relevance to 0", score)
        return 0.0


class FeedResponseParser:
    """Turns search response feeds into ``QueryOutcome`` values.

    Args:
        resolver: Resolves content blobs to records.
        shortname: Source id stamped on every record.
    """

    def __init__(self, resolver: TransformerResolver, shortname: str) -> None:
        self.resolver = resolver
        self.shortname = shortname

    def parse(self, data: bytes | str) -> QueryOutcome:
        """Parse a search response.

        A malformed feed yields an empty outcome rather than an error.
        """
        try:
            feed = parse_feed(data)
        except FeedParseError:
            logger.error("Unable to read RSS/Atom feed.", exc_info=True)
            return QueryOutcome()

        records: list[ResultRecord] = []
        for entry in feed.entries:
            records.extend(self.records_for_entry(entry))

        total_hits = feed.total_results_hint
        if total_hits is None:
            if "totalResults" in feed.foreign:
                logger.debug("Received invalid number of results: %r", feed.foreign["totalResults"])
            total_hits = len(feed.entries)

        return QueryOutcome(records=records, total_hits=total_hits)

    def records_for_entry(self, entry: FeedEntry) -> list[ResultRecord]:
        """One result per content blob, all sharing the entry's relevance."""
        identifier = entry_identifier(entry.uri)
        relevance = relevance_of(entry)

        records: list[Record] = []
        for content in entry.contents:
            record = self.resolver.resolve(content, identifier or None) if content else None
            record = record.model_copy(deep=True) if record is not None else Record()
            record.source_id = self.shortname
            if not record.title:
                record.title = entry.title
            records.append(record)

        for category, record in zip(entry.categories, records):
            if not (record.content_type or "").strip():
                record.content_type = category

        return [ResultRecord(record=r, relevance_score=relevance, source_id=self.shortname) for r in records]
