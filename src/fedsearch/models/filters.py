"""Filter tree and query request models.

A catalog query is a tree of logical operators (``And``, ``Or``, ``Not``)
over leaf predicates. The OpenSearch source only understands a handful of
leaf kinds: free-text (contextual), date range (temporal), geometry
(spatial) and identifier equality. Everything else is carried through the
tree but cannot be translated.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class ContextualPredicate(_Node):
    """Free-text match against the record's textual content.

    OpenSearch search terms have no case or fuzziness options, so the
    OpenSearch source sends only ``phrase``.
    """

    kind: Literal["contextual"] = "contextual"
    phrase: str = Field(description="Search phrase sent to the remote endpoint")
    case_sensitive: bool = Field(default=False, description="Whether matching is case sensitive")
    fuzzy: bool = Field(default=False, description="Whether matching is fuzzy")


class TemporalPredicate(_Node):
    """Date range over a temporal attribute."""

    kind: Literal["temporal"] = "temporal"
    start: datetime = Field(description="Inclusive range start")
    end: datetime = Field(description="Inclusive range end")
    attribute: str = Field(default="modified", description="Temporal attribute the range applies to")


class PointRadiusPredicate(_Node):
    """Everything within ``radius`` meters of a point."""

    kind: Literal["point_radius"] = "point_radius"
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)
    radius: float = Field(ge=0.0, description="Radius in meters")


class PolygonPredicate(_Node):
    """Everything intersecting a polygon given as ``(lon, lat)`` vertices."""

    kind: Literal["polygon"] = "polygon"
    points: list[tuple[float, float]] = Field(description="Polygon ring as (lon, lat) pairs")


class BBoxPredicate(_Node):
    """Everything intersecting an axis-aligned bounding box."""

    kind: Literal["bbox"] = "bbox"
    west: float
    south: float
    east: float
    north: float


class IdEqualsPredicate(_Node):
    """Record identifier equality."""

    kind: Literal["id"] = "id"
    value: str


class PropertyEqualsPredicate(_Node):
    """Generic attribute equality."""

    kind: Literal["property_equals"] = "property_equals"
    attribute: str
    value: str


class And(_Node):
    kind: Literal["and"] = "and"
    filters: list[Filter] = Field(default_factory=list)


class Or(_Node):
    kind: Literal["or"] = "or"
    filters: list[Filter] = Field(default_factory=list)


class Not(_Node):
    kind: Literal["not"] = "not"
    filter: Filter


Filter = Union[
    And,
    Or,
    Not,
    ContextualPredicate,
    TemporalPredicate,
    PointRadiusPredicate,
    PolygonPredicate,
    BBoxPredicate,
    IdEqualsPredicate,
    PropertyEqualsPredicate,
]

And.model_rebuild()
Or.model_rebuild()
Not.model_rebuild()


class Query(BaseModel):
    """A filter plus paging, sorting and timeout hints."""

    filter: Filter = Field(description="Root of the filter tree")
    start_index: int = Field(default=1, ge=1, description="1-based index of the first result")
    page_size: int = Field(default=10, ge=1, description="Maximum number of results per page")
    sort_by: Literal["relevance", "date"] | None = Field(default=None, description="Sort policy")
    sort_order: Literal["asc", "desc"] = Field(default="desc", description="Sort direction")
    timeout_ms: int | None = Field(default=None, ge=0, description="Remote query timeout in milliseconds")


class Subject(BaseModel):
    """Security subject of the caller, forwarded to the remote endpoint."""

    principal: str = Field(description="Distinguished name or user id")
    token: str | None = Field(default=None, description="Bearer token, if the subject carries one")


class QueryRequest(BaseModel):
    """A query plus the request-scoped properties that travel with it."""

    query: Query
    metacard_id: str | None = Field(default=None, description="Identifier to fetch directly, if known")
    subject: Subject | None = Field(default=None, description="Caller security subject")
    properties: dict[str, Any] = Field(default_factory=dict, description="Additional request properties")
