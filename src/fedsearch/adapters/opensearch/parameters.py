"""OpenSearch parameter population — Maps extracted predicates onto query parameters.

Only parameter names present in the configured allow-list are emitted,
except the source-scope parameter ``src`` which is always sent. Parameter
names follow the OpenSearch core, time and geo extensions:

  q        search terms             start/count/mr  paging
  dtstart  temporal lower bound     dtend           temporal upper bound
  lat/lon  point                    radius          point radius (meters)
  polygon  lat,lon,... ring         bbox            west,south,east,north
  sort     relevance:desc | date:<asc|desc>
  mt       remote timeout (ms)      dn              caller principal
  src      source scope ("local" or "" for the full federation)
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from fedsearch.adapters.base.exceptions import UnsupportedQueryError
from fedsearch.adapters.opensearch.extractor import (
    SpatialDistanceFilter,
    SpatialFilter,
    SpatialShapeFilter,
    TemporalFilter,
    extract_predicates,
)
from fedsearch.models.filters import BBoxPredicate, PolygonPredicate, Query, Subject

if TYPE_CHECKING:
    from collections.abc import Collection

logger = logging.getLogger(__name__)

SEARCH_TERMS = "q"
SOURCE_SCOPE = "src"
LOCAL_SOURCE = "local"
START_INDEX = "start"
COUNT = "count"
MAX_RESULTS = "mr"
MAX_TIMEOUT = "mt"
USER_DN = "dn"
SORT = "sort"
TIME_START = "dtstart"
TIME_END = "dtend"
GEO_LAT = "lat"
GEO_LON = "lon"
GEO_RADIUS = "radius"
GEO_POLYGON = "polygon"
GEO_BBOX = "bbox"

EARTH_RADIUS_METERS = 6_371_008.8


class SearchParameters(BaseModel):
    """Outcome of parameter population."""

    expressible: bool = Field(description="Whether the query can be sent as an OpenSearch search")
    values: dict[str, str] = Field(default_factory=dict, description="Query parameters to send")


def _put(values: dict[str, str], name: str, value: object, parameters: Collection[str]) -> None:
    if name in parameters:
        values[name] = str(value)


def format_date(value: datetime) -> str:
    """Format a timestamp as ISO-8601 UTC with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _fmt(number: float) -> str:
    return repr(float(number))


def populate_search_options(
    values: dict[str, str],
    query: Query,
    subject: Subject | None,
    parameters: Collection[str],
) -> None:
    """Paging, sorting, timeout and caller identity."""
    _put(values, START_INDEX, query.start_index, parameters)
    _put(values, COUNT, query.page_size, parameters)
    _put(values, MAX_RESULTS, query.page_size, parameters)

    if query.timeout_ms is not None:
        _put(values, MAX_TIMEOUT, query.timeout_ms, parameters)

    if query.sort_by == "relevance":
        _put(values, SORT, "relevance:desc", parameters)
    elif query.sort_by == "date":
        _put(values, SORT, f"date:{query.sort_order}", parameters)

    if subject is not None:
        _put(values, USER_DN, subject.principal, parameters)


def populate_contextual(values: dict[str, str], search_phrase: str, parameters: Collection[str]) -> None:
    """Only the phrase is sent: OpenSearch search terms carry no case or fuzziness options."""
    _put(values, SEARCH_TERMS, search_phrase, parameters)


def populate_temporal(values: dict[str, str], temporal: TemporalFilter, parameters: Collection[str]) -> None:
    logger.debug("startDate = %s, endDate = %s", temporal.start, temporal.end)
    _put(values, TIME_START, format_date(temporal.start), parameters)
    _put(values, TIME_END, format_date(temporal.end), parameters)


def circle_to_bbox(lat: float, lon: float, radius: float) -> tuple[float, float, float, float]:
    """Envelope of a circle on a spherical earth as ``(west, south, east, north)``."""
    angular = radius / EARTH_RADIUS_METERS
    dlat = math.degrees(angular)
    south = max(lat - dlat, -90.0)
    north = min(lat + dlat, 90.0)

    if south <= -90.0 or north >= 90.0 or angular >= math.pi / 2:
        return -180.0, south, 180.0, north

    ratio = min(1.0, math.sin(angular) / math.cos(math.radians(lat)))
    dlon = math.degrees(math.asin(ratio))
    return max(lon - dlon, -180.0), south, min(lon + dlon, 180.0), north


def polygon_to_bbox(points: list[tuple[float, float]]) -> tuple[float, float, float, float]:
    """Envelope of ``(lon, lat)`` points as ``(west, south, east, north)``."""
    lons = [p[0] for p in points]
    lats = [p[1] for p in points]
    return min(lons), min(lats), max(lons), max(lats)


def _put_bbox(values: dict[str, str], bbox: tuple[float, float, float, float], parameters: Collection[str]) -> None:
    _put(values, GEO_BBOX, ",".join(_fmt(v) for v in bbox), parameters)


def populate_geospatial(
    values: dict[str, str],
    spatial: SpatialFilter,
    convert_to_bbox: bool,
    parameters: Collection[str],
) -> None:
    """Point-radius, polygon or bounding-box criteria.

    Raises:
        UnsupportedQueryError: If the shape cannot be expressed.
    """
    if isinstance(spatial, SpatialDistanceFilter):
        if convert_to_bbox:
            _put_bbox(values, circle_to_bbox(spatial.lat, spatial.lon, spatial.distance), parameters)
        else:
            _put(values, GEO_LAT, _fmt(spatial.lat), parameters)
            _put(values, GEO_LON, _fmt(spatial.lon), parameters)
            _put(values, GEO_RADIUS, _fmt(spatial.distance), parameters)
        return

    if not isinstance(spatial, SpatialShapeFilter):
        raise UnsupportedQueryError(f"Unsupported spatial filter: {type(spatial).__name__}")

    shape = spatial.shape
    if isinstance(shape, BBoxPredicate):
        _put_bbox(values, (shape.west, shape.south, shape.east, shape.north), parameters)
    elif isinstance(shape, PolygonPredicate):
        if len(shape.points) < 3:
            raise UnsupportedQueryError(f"Polygon needs at least 3 points, got {len(shape.points)}")
        if convert_to_bbox:
            _put_bbox(values, polygon_to_bbox(shape.points), parameters)
        else:
            ring = list(shape.points)
            if ring[0] != ring[-1]:
                ring.append(ring[0])
            _put(values, GEO_POLYGON, ",".join(f"{_fmt(lat)},{_fmt(lon)}" for lon, lat in ring), parameters)
    else:
        raise UnsupportedQueryError(f"Unsupported shape: {type(shape).__name__}")


class ParameterPopulator:
    """Builds OpenSearch query parameters for a catalog query.

    Args:
        parameters: Allow-list of parameter names the remote accepts.
        local_query_only: Restrict the remote to its local catalog.
        convert_to_bbox: Send point-radius and polygon filters as bounding boxes.
    """

    def __init__(
        self,
        parameters: Collection[str],
        local_query_only: bool = False,
        convert_to_bbox: bool = False,
    ) -> None:
        self.parameters = list(parameters)
        self.local_query_only = local_query_only
        self.convert_to_bbox = convert_to_bbox

    def populate(self, query: Query, subject: Subject | None = None) -> SearchParameters:
        """Translate *query* into OpenSearch parameters.

        Every OpenSearch query needs search terms, so a query without a
        non-empty contextual phrase is reported as not expressible and no
        parameters are produced.
        """
        predicates = extract_predicates(query.filter)
        contextual = predicates.contextual
        if contextual is None or not contextual.search_phrase:
            return SearchParameters(expressible=False)

        values: dict[str, str] = {}
        populate_search_options(values, query, subject, self.parameters)
        populate_contextual(values, contextual.search_phrase, self.parameters)

        if predicates.temporal is not None:
            populate_temporal(values, predicates.temporal, self.parameters)

        if predicates.spatial is not None:
            try:
                populate_geospatial(values, predicates.spatial, self.convert_to_bbox, self.parameters)
            except UnsupportedQueryError:
                logger.info("Problem with populating geospatial criteria.", exc_info=True)

        values[SOURCE_SCOPE] = LOCAL_SOURCE if self.local_query_only else ""
        return SearchParameters(expressible=True, values=values)
