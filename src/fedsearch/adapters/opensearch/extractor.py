"""Predicate extraction — Pulls the OpenSearch-expressible predicates out of a filter tree."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from fedsearch.models.filters import (
    And,
    BBoxPredicate,
    ContextualPredicate,
    Filter,
    Not,
    Or,
    PointRadiusPredicate,
    PolygonPredicate,
    TemporalPredicate,
)


class ContextualSearch(BaseModel):
    """Search phrase. ``case_sensitive`` is kept for callers; no OpenSearch parameter expresses it."""

    model_config = ConfigDict(frozen=True)

    search_phrase: str
    case_sensitive: bool = False


class TemporalFilter(BaseModel):
    """Date range as given by the query; bounds are not reordered."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime


class SpatialDistanceFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float
    distance: float = Field(description="Radius in meters")


class SpatialShapeFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    shape: Union[PolygonPredicate, BBoxPredicate]


SpatialFilter = Union[SpatialDistanceFilter, SpatialShapeFilter]


class ExtractedPredicates(BaseModel):
    """At most one predicate of each kind, in tree order."""

    model_config = ConfigDict(frozen=True)

    contextual: ContextualSearch | None = None
    temporal: TemporalFilter | None = None
    spatial: SpatialFilter | None = None


def _walk(node: Filter) -> Iterator[Filter]:
    """Pre-order traversal through And/Or. Negated subtrees are not entered."""
    if isinstance(node, And | Or):
        for child in node.filters:
            yield from _walk(child)
    elif not isinstance(node, Not):
        yield node


def extract_predicates(root: Filter) -> ExtractedPredicates:
    """Extract the first contextual, temporal and spatial predicate in *root*.

    Later predicates of a kind already found are ignored; nothing is
    merged. A missing kind is reported as None.
    """
    contextual: ContextualSearch | None = None
    temporal: TemporalFilter | None = None
    spatial: SpatialFilter | None = None

    for node in _walk(root):
        if isinstance(node, ContextualPredicate):
            if contextual is None:
                contextual = ContextualSearch(search_phrase=node.phrase, case_sensitive=node.case_sensitive)
        elif isinstance(node, TemporalPredicate):
            if temporal is None:
                temporal = TemporalFilter(start=node.start, end=node.end)
        elif isinstance(node, PointRadiusPredicate):
            if spatial is None:
                spatial = SpatialDistanceFilter(lat=node.lat, lon=node.lon, distance=node.radius)
        elif isinstance(node, PolygonPredicate | BBoxPredicate):
            if spatial is None:
                spatial = SpatialShapeFilter(shape=node)

    return ExtractedPredicates(contextual=contextual, temporal=temporal, spatial=spatial)
