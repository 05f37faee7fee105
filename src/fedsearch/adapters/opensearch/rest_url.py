"""Catalog REST URLs — Direct-fetch URLs for queries that are not searches.

A query that carries no search phrase can still be answered when it asks
for exactly one record by identifier: the record is fetched from the
remote catalog's REST endpoint, which lives on the same host as its
OpenSearch endpoint.
"""

from __future__ import annotations

import logging
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

from fedsearch.adapters.base.exceptions import UnsupportedQueryError
from fedsearch.models.filters import Filter, IdEqualsPredicate, PropertyEqualsPredicate

logger = logging.getLogger(__name__)

REST_PATH = "/services/catalog/"
ID_ATTRIBUTE = "id"
TRANSFORM_PARAMETER = "transform"
RESOURCE_TRANSFORM = "resource"


class RestUrl:
    """URL of one record (or its resource) on the remote catalog REST endpoint.

    Args:
        scheme: URL scheme of the remote.
        netloc: Host and port of the remote.
    """

    def __init__(self, scheme: str, netloc: str) -> None:
        self.scheme = scheme
        self.netloc = netloc
        self.id: str | None = None
        self.retrieve_resource = False

    @classmethod
    def from_endpoint(cls, url: str) -> RestUrl:
        """Derive the REST location from an OpenSearch endpoint URL.

        Raises:
            ValueError: If *url* has no scheme or host.
        """
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"Not an absolute http(s) URL: {url!r}")
        return cls(parts.scheme, parts.netloc)

    def build(self) -> str:
        path = REST_PATH + (quote(self.id, safe="") if self.id else "")
        query = urlencode({TRANSFORM_PARAMETER: RESOURCE_TRANSFORM}) if self.retrieve_resource else ""
        return urlunsplit((self.scheme, self.netloc, path, query, ""))


class RestFilterDelegate:
    """Adapts a filter tree onto a ``RestUrl``.

    Only a bare identifier equality can be expressed; every other shape
    raises ``UnsupportedQueryError``.
    """

    def __init__(self, rest_url: RestUrl) -> None:
        self.rest_url = rest_url

    def adapt(self, node: Filter) -> RestUrl:
        if isinstance(node, IdEqualsPredicate):
            return self._set_id(node.value)
        if isinstance(node, PropertyEqualsPredicate) and node.attribute == ID_ATTRIBUTE:
            return self._set_id(node.value)
        raise UnsupportedQueryError(f"{type(node).__name__} cannot be expressed as a REST request")

    def _set_id(self, value: str) -> RestUrl:
        if not value:
            raise UnsupportedQueryError("Empty identifier")
        self.rest_url.id = value
        return self.rest_url


def build_fetch_url(
    base_url: str,
    identifier: str | None = None,
    filter: Filter | None = None,
    retrieve_resource: bool = False,
) -> str | None:
    """Build a direct-fetch URL for a record or its resource.

    Args:
        base_url: The remote's OpenSearch endpoint URL.
        identifier: Record identifier, when the caller already knows it.
        filter: Filter tree to adapt when no identifier is given.
        retrieve_resource: Point at the record's resource bytes instead of its metadata.

    Returns:
        The URL, or None if no identifier could be determined or the base
        URL is malformed.
    """
    try:
        rest_url = RestUrl.from_endpoint(base_url)
    except ValueError:
        logger.info("Bad url given for remote source: %s", base_url, exc_info=True)
        return None
    rest_url.retrieve_resource = retrieve_resource

    if identifier:
        rest_url.id = identifier
        return rest_url.build()

    if filter is None:
        return None

    try:
        return RestFilterDelegate(rest_url).adapt(filter).build()
    except UnsupportedQueryError:
        logger.debug("Not a REST request.", exc_info=True)
        return None
