"""OpenSearch source — Federated queries against OpenSearch-protocol catalogs.

A query is answered in one of two ways:

  * **Search**: when the filter carries a non-empty search phrase, it is
    translated into OpenSearch parameters, sent to the endpoint, and the
    Atom response is reconciled into records.
  * **Fetch**: otherwise, if the query asks for a single record by
    identifier, that record is fetched from the remote catalog's REST
    endpoint and transformed.

Anything else cannot be executed against the endpoint.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import ExitStack
from datetime import UTC, datetime
from typing import IO, Any, TypeVar

import httpx

from fedsearch.adapters.base.adapter import FederatedSource, ResourceReader, SourceHealth
from fedsearch.adapters.base.exceptions import (
    ConfigurationError,
    ConnectionError,
    RequestTimeoutError,
    ResourceNotFoundError,
    ResourceNotSupportedError,
    TransportError,
    UnsupportedQueryError,
)
from fedsearch.adapters.opensearch.availability import AVAILABILITY_WINDOW_SECONDS, AvailabilityProber
from fedsearch.adapters.opensearch.buffer import SPILL_THRESHOLD_BYTES, fill_from, spill_buffer
from fedsearch.adapters.opensearch.client import ClientFactory, RequestExecutor
from fedsearch.adapters.opensearch.feed import FeedResponseParser
from fedsearch.adapters.opensearch.parameters import ParameterPopulator
from fedsearch.adapters.opensearch.rest_url import build_fetch_url
from fedsearch.config.settings import DEFAULT_PARAMETERS, SourceSettings
from fedsearch.models.filters import QueryRequest, Subject
from fedsearch.models.record import QueryOutcome, Record, ResultRecord
from fedsearch.transformers.metacard import default_registry
from fedsearch.transformers.registry import TransformerRegistry
from fedsearch.transformers.resolver import TransformerResolver

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

COULD_NOT_RETRIEVE_RESOURCE_MESSAGE = "Could not retrieve resource"


def _log_abandoned(future: asyncio.Future[Any]) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.warning("Abandoned parse failed", exc_info=future.exception())


class OpenSearchSource(FederatedSource):
    """Federated source for remote OpenSearch endpoints.

    Supports:
      - Contextual search with temporal and spatial criteria
      - Single-record fetch by identifier
      - Resource URL resolution for returned records
      - Cached availability probing

    Args:
        endpoint_url: OpenSearch endpoint URL of the remote catalog.
        shortname: Source id stamped on every returned record.
        parameters: Allow-list of OpenSearch parameter names the remote accepts.
        local_query_only: Restrict the remote to its local catalog.
        convert_to_bbox: Send point-radius and polygon filters as bounding boxes.
        username: Optional HTTP basic-auth username.
        password: Optional HTTP basic-auth password.
        timeout: Request and parse timeout in seconds.
        verify_certs: Whether to verify TLS certificates.
        registry: Content transformer bindings (defaults to the built-in ones).
        resource_reader: Collaborator used by ``retrieve_resource()``.
        availability_window: Seconds a positive availability probe is trusted.
        spill_threshold: Bytes of a fetched document held in memory before spilling to disk.
        **client_kwargs: Additional keyword arguments forwarded to ``httpx.AsyncClient``.
    """

    title = "OpenSearch Federated Source"
    description = "Queries a remote catalog using the synchronous federated OpenSearch query"
    organization = "FedSearch"
    version = "2.0"

    def __init__(
        self,
        endpoint_url: str,
        shortname: str = "opensearch",
        parameters: list[str] | None = None,
        local_query_only: bool = False,
        convert_to_bbox: bool = False,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
        verify_certs: bool = True,
        registry: TransformerRegistry | None = None,
        resource_reader: ResourceReader | None = None,
        availability_window: float = AVAILABILITY_WINDOW_SECONDS,
        spill_threshold: int = SPILL_THRESHOLD_BYTES,
        **client_kwargs: Any,
    ) -> None:
        if not endpoint_url:
            raise ConfigurationError("OpenSearch endpoint URL is required.")

        self._endpoint_url = endpoint_url
        self._shortname = shortname
        self._parameters = list(parameters) if parameters is not None else list(DEFAULT_PARAMETERS)
        self._timeout = timeout
        self._availability_window = availability_window
        self._spill_threshold = spill_threshold
        self._resource_reader = resource_reader

        self._factory = ClientFactory(
            username=username,
            password=password,
            timeout=timeout,
            verify_certs=verify_certs,
            **client_kwargs,
        )
        self._populator = ParameterPopulator(
            self._parameters,
            local_query_only=local_query_only,
            convert_to_bbox=convert_to_bbox,
        )
        self._resolver = TransformerResolver(registry if registry is not None else default_registry())
        self._feed_parser = FeedResponseParser(self._resolver, shortname)

        self._client: httpx.AsyncClient | None = None
        self._executor: RequestExecutor | None = None
        self._prober: AvailabilityProber | None = None

    @classmethod
    def from_settings(
        cls,
        settings: SourceSettings,
        registry: TransformerRegistry | None = None,
        resource_reader: ResourceReader | None = None,
        **client_kwargs: Any,
    ) -> OpenSearchSource:
        """Create a source from ``SourceSettings``."""
        return cls(
            endpoint_url=settings.endpoint_url,
            shortname=settings.shortname,
            parameters=settings.parameters,
            local_query_only=settings.local_query_only,
            convert_to_bbox=settings.convert_to_bbox,
            username=settings.username,
            password=settings.password,
            timeout=settings.receive_timeout,
            verify_certs=settings.verify_certs,
            registry=registry,
            resource_reader=resource_reader,
            availability_window=settings.availability_window,
            spill_threshold=settings.spill_threshold,
            **client_kwargs,
        )

    @property
    def name(self) -> str:
        return self._shortname

    @property
    def endpoint_url(self) -> str:
        return self._endpoint_url

    @property
    def parameters(self) -> list[str]:
        return list(self._parameters)

    @property
    def local_query_only(self) -> bool:
        return self._populator.local_query_only

    @property
    def convert_to_bbox(self) -> bool:
        return self._populator.convert_to_bbox

    async def initialize(self) -> None:
        """Create the HTTP client and availability prober."""
        self._client = self._factory.build()
        self._executor = RequestExecutor(self._client, self._factory)
        executor = self._executor
        self._prober = AvailabilityProber(
            lambda: executor.head(self._endpoint_url),
            window=self._availability_window,
        )
        logger.info("OpenSearch source %s initialized (endpoint: %s)", self._shortname, self._endpoint_url)

    async def shutdown(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self._executor = None
            self._prober = None

    # ── Query ────────────────────────────────────────────────────────────

    async def query(self, request: QueryRequest) -> QueryOutcome:
        """Answer *request* by search or by identifier fetch.

        The request timeout (``Query.timeout_ms``, else the receive timeout)
        is one deadline covering the request, the body and the parse.

        Raises:
            UnsupportedQueryError: If the query is neither a search nor an identifier fetch.
            RemoteQueryError: If the remote rejects the request.
            RequestTimeoutError: If the deadline passes before the outcome is ready.
            TransportError: If the remote cannot be reached.
        """
        if self._executor is None:
            raise ConnectionError("OpenSearch client not initialized.")

        query = request.query
        logger.debug("Received query: %s", query)
        timeout = query.timeout_ms / 1000 if query.timeout_ms else self._timeout

        try:
            async with asyncio.timeout(timeout):
                return await self._answer(request, timeout)
        except TimeoutError as e:
            raise RequestTimeoutError(f"Query to source {self._shortname} exceeded {timeout}s", e) from e

    async def _answer(self, request: QueryRequest, timeout: float) -> QueryOutcome:
        assert self._executor is not None
        query = request.query

        populated = self._populator.populate(query, request.subject)
        if populated.expressible:
            body = await self._executor.execute(
                self._endpoint_url,
                params=populated.values,
                subject=request.subject,
                timeout=timeout,
            )
            outcome = await self._in_thread(self._feed_parser.parse, body)
            logger.debug(
                "OpenSearch query: source=%s, results=%d, total=%d",
                self._shortname,
                len(outcome.records),
                outcome.total_hits,
            )
            return outcome

        url = build_fetch_url(self._endpoint_url, request.metacard_id, query.filter, retrieve_resource=False)
        if url is None:
            raise UnsupportedQueryError(
                f"Query cannot be executed against source {self._shortname}: "
                "it has no search phrase and does not identify a single record."
            )
        return await self._fetch_record(url, request.subject, timeout)

    async def _fetch_record(self, url: str, subject: Subject | None, timeout: float) -> QueryOutcome:
        assert self._executor is not None

        with ExitStack() as stack:
            buffer = stack.enter_context(spill_buffer(self._spill_threshold))
            async with self._executor.open(url, subject=subject, timeout=timeout) as response:
                try:
                    size = await fill_from(buffer, response.aiter_bytes())
                except httpx.TimeoutException as e:
                    raise RequestTimeoutError(f"Timed out reading {url}", e) from e
                except httpx.RequestError as e:
                    raise TransportError(f"Failed reading {url}: {e}", e) from e
            logger.debug("Fetched %d bytes from %s", size, url)
            # The worker closes the buffer, even if this task stops waiting for it
            record = await self._in_thread(self._resolve_spilled, stack.pop_all(), buffer)

        if record is None:
            logger.info("No transformer produced a record for %s", url)
            record = Record()
        else:
            record = record.model_copy(deep=True)
        record.source_id = self._shortname

        return QueryOutcome(
            records=[ResultRecord(record=record, relevance_score=0.0, source_id=self._shortname)],
            total_hits=1,
        )

    def _resolve_spilled(self, owner: ExitStack, buffer: IO[bytes]) -> Record | None:
        with owner:
            return self._resolver.resolve(buffer)

    @staticmethod
    async def _in_thread(func: Callable[..., _T], *args: Any) -> _T:
        """Run blocking parse work in the default executor.

        The work itself cannot be interrupted. When the caller is cancelled
        (or its deadline passes) the work runs to completion in the
        background and any error it raises is logged.
        """
        future = asyncio.get_running_loop().run_in_executor(None, func, *args)
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            future.add_done_callback(_log_abandoned)
            raise

    # ── Resources ────────────────────────────────────────────────────────

    def resource_url(self, identifier: str) -> str | None:
        """URL of the resource bytes behind record *identifier*."""
        return build_fetch_url(self._endpoint_url, identifier, retrieve_resource=True)

    async def retrieve_resource(self, uri: str, properties: dict[str, Any] | None) -> Any:
        """Retrieve a record's resource through the configured ``ResourceReader``.

        Args:
            uri: The resource URI from the record (informational).
            properties: Request properties; ``properties["id"]`` names the record.
        """
        if properties is None:
            raise ResourceNotFoundError("Could not retrieve resource with null properties.")

        identifier = properties.get("id")
        if identifier is None:
            raise ResourceNotFoundError(COULD_NOT_RETRIEVE_RESOURCE_MESSAGE)

        url = self.resource_url(str(identifier))
        if url is None:
            raise ResourceNotSupportedError(f"Cannot build a resource URL from {self._endpoint_url}")
        if self._resource_reader is None:
            raise ResourceNotSupportedError(f"Source {self._shortname} has no resource reader configured.")

        logger.debug("Retrieving resource %s for %s", url, uri)
        return await self._resource_reader.retrieve_resource(url, properties)

    # ── Availability ─────────────────────────────────────────────────────

    async def is_available(self) -> bool:
        if self._prober is None:
            return False
        return await self._prober.is_available()

    async def health_check(self) -> SourceHealth:
        """Check remote availability with a HEAD probe."""
        if self._prober is None:
            return SourceHealth(status="unhealthy", message="Client not initialized")

        start = time.monotonic()
        available = await self._prober.is_available()
        latency_ms = int((time.monotonic() - start) * 1000)

        return SourceHealth(
            status="healthy" if available else "unhealthy",
            latency_ms=latency_ms,
            last_check=datetime.now(UTC).isoformat(),
            message=f"Endpoint: {self._endpoint_url}",
        )
