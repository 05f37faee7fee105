"""Base federated source — Abstract interface for remote catalog connectors.

Every remote catalog must implement this interface. The source is
responsible for:
  1. Translating catalog queries into the remote's request format
  2. Reconciling remote responses into ``QueryOutcome`` records
  3. Locating resources for records it returned
  4. Reporting availability
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol

from pydantic import BaseModel, Field

from fedsearch.models.filters import QueryRequest
from fedsearch.models.record import QueryOutcome, Record


class SourceHealth(BaseModel):
    """Health status of a federated source."""

    status: str = Field(description="Health status: healthy, unhealthy")
    latency_ms: int = Field(default=0, description="Latency of last health check in ms")
    last_check: str | None = Field(default=None, description="ISO timestamp of last health check")
    message: str | None = Field(default=None, description="Additional health message")


class SourceMonitor(Protocol):
    """Callback notified of availability changes."""

    def set_available(self) -> None: ...

    def set_unavailable(self) -> None: ...


class ResourceReader(Protocol):
    """Collaborator that downloads resource bytes from a resolved URL."""

    async def retrieve_resource(self, url: str, properties: dict[str, Any]) -> Any: ...


class FederatedSource(ABC):
    """Abstract base class for federated catalog sources.

    All sources must implement:
      - query(): Answer a catalog query
      - retrieve_resource(): Locate the product behind a record
      - is_available(): Report whether the remote can be queried

    Connection pooling and configuration are handled during
    initialization.
    """

    title: str = ""
    description: str = ""
    organization: str = ""
    version: str = ""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique source id, stamped on every record the source returns."""

    @property
    def id(self) -> str:
        return self.name

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the source (connections, pools, etc.)."""

    @abstractmethod
    async def shutdown(self) -> None:
        """Release connections and other resources."""

    @abstractmethod
    async def query(self, request: QueryRequest) -> QueryOutcome:
        """Execute a catalog query against the remote.

        Args:
            request: The query and its request-scoped properties.

        Returns:
            Results in remote document order and the remote hit count.
        """

    @abstractmethod
    async def retrieve_resource(self, uri: str, properties: dict[str, Any]) -> Any:
        """Retrieve the resource described by a previously returned record.

        Raises:
            ResourceNotFoundError: If the properties do not identify a record.
            ResourceNotSupportedError: If this source cannot serve resources.
        """

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether the remote currently answers requests."""

    async def check_availability(self, monitor: SourceMonitor) -> bool:
        """Probe availability and report the result to *monitor*."""
        if await self.is_available():
            monitor.set_available()
            return True
        monitor.set_unavailable()
        return False

    @abstractmethod
    async def health_check(self) -> SourceHealth:
        """Check the health of the remote catalog."""

    @property
    def content_types(self) -> set[str]:
        return set()

    @property
    def supported_schemes(self) -> set[str]:
        return set()

    def options(self, record: Record) -> set[str]:
        """Resource retrieval options supported for *record*."""
        return set()
