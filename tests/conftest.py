"""Shared test fixtures and configuration."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from fedsearch.config.settings import Settings
from fedsearch.models.filters import (
    And,
    BBoxPredicate,
    ContextualPredicate,
    PointRadiusPredicate,
    PolygonPredicate,
    Query,
    TemporalPredicate,
)
from fedsearch.transformers.metacard import METACARD_NAMESPACE, default_registry
from fedsearch.transformers.registry import TransformerRegistry
from fedsearch.transformers.resolver import TransformerResolver

ENDPOINT = "https://remote.example.com:8993/services/catalog/query"


@pytest.fixture
def settings() -> Settings:
    """Create a test Settings instance with defaults."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        source={"endpoint_url": ENDPOINT, "shortname": "remote-ddf"},
    )


@pytest.fixture
def registry() -> TransformerRegistry:
    """Registry with the built-in metacard transformer bound."""
    return default_registry()


@pytest.fixture
def resolver(registry: TransformerRegistry) -> TransformerResolver:
    return TransformerResolver(registry)


@pytest.fixture
def make_metacard() -> Callable[..., str]:
    """Build a metacard XML document."""

    def _make(
        id: str = "abc123",
        title: str | None = "Harbor survey",
        content_type: str | None = None,
        source: str = "remote-ddf",
    ) -> str:
        attributes = ""
        if title is not None:
            attributes += f'<string name="title"><value>{title}</value></string>'
        if content_type is not None:
            attributes += f'<string name="metadata-content-type"><value>{content_type}</value></string>'
        return (
            f'<metacard xmlns="{METACARD_NAMESPACE}" xmlns:gml="http://www.opengis.net/gml" gml:id="{id}">'
            f"<type>ddf.metacard</type><source>{source}</source>"
            f"{attributes}"
            '<dateTime name="modified"><value>2024-03-01T12:00:00+00:00</value></dateTime>'
            "</metacard>"
        )

    return _make


@pytest.fixture
def make_feed() -> Callable[..., bytes]:
    """Build an Atom search response.

    Each entry is a dict with optional keys ``uri``, ``title``,
    ``contents`` (inline XML strings), ``categories`` and ``score``.
    """

    def _make(entries: list[dict], total_results: str | None = None) -> bytes:
        parts = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<feed xmlns="http://www.w3.org/2005/Atom"'
            ' xmlns:os="http://a9.com/-/spec/opensearch/1.1/"'
            ' xmlns:relevance="http://a9.com/-/opensearch/extensions/relevance/1.0/">',
            "<title>Query Response</title>",
            "<id>urn:uuid:feed</id>",
        ]
        if total_results is not None:
            parts.append(f"<os:totalResults>{total_results}</os:totalResults>")
        for entry in entries:
            parts.append("<entry>")
            if entry.get("uri") is not None:
                parts.append(f"<id>{entry['uri']}</id>")
            parts.append(f"<title>{entry.get('title', 'Entry title')}</title>")
            for category in entry.get("categories", []):
                parts.append(f'<category term="{category}"/>')
            if entry.get("score") is not None:
                parts.append(f"<relevance:score>{entry['score']}</relevance:score>")
            for content in entry.get("contents", []):
                parts.append(f'<content type="application/xml">{content}</content>')
            parts.append("</entry>")
        parts.append("</feed>")
        return "".join(parts).encode("utf-8")

    return _make


@pytest.fixture
def contextual_query() -> Query:
    return Query(filter=ContextualPredicate(phrase="harbor"))


@pytest.fixture
def full_query() -> Query:
    """Search phrase plus temporal and point-radius criteria."""
    return Query(
        filter=And(
            filters=[
                ContextualPredicate(phrase="harbor"),
                TemporalPredicate(
                    start=datetime(2024, 1, 1, tzinfo=UTC),
                    end=datetime(2024, 6, 30, 23, 59, 59, tzinfo=UTC),
                ),
                PointRadiusPredicate(lat=36.8, lon=-76.3, radius=5000.0),
            ]
        ),
        start_index=11,
        page_size=10,
        sort_by="date",
        sort_order="asc",
    )


@pytest.fixture
def polygon() -> PolygonPredicate:
    return PolygonPredicate(points=[(-77.0, 36.0), (-76.0, 36.0), (-76.0, 37.0), (-77.0, 37.0)])


@pytest.fixture
def bbox() -> BBoxPredicate:
    return BBoxPredicate(west=-77.0, south=36.0, east=-76.0, north=37.0)
