"""HTTP plumbing — Client construction, credentials and request execution.

Credential precedence for every request:
  1. Configured username/password (HTTP basic auth)
  2. The caller's security subject (bearer token)
  3. Unauthenticated
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Generator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from fedsearch.adapters.base.exceptions import RemoteQueryError, RequestTimeoutError, TransportError
from fedsearch.models.filters import Subject

logger = logging.getLogger(__name__)


class SubjectAuth(httpx.Auth):
    """Forwards a security subject as a bearer token."""

    def __init__(self, subject: Subject) -> None:
        self.subject = subject

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self.subject.token:
            request.headers["Authorization"] = f"Bearer {self.subject.token}"
        yield request


class ClientFactory:
    """Builds the pooled HTTP client and per-request credentials.

    Args:
        username: Basic-auth username.
        password: Basic-auth password.
        timeout: Default request timeout in seconds.
        verify_certs: Whether to verify TLS certificates.
        **client_kwargs: Additional keyword arguments forwarded to ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
        verify_certs: bool = True,
        **client_kwargs: Any,
    ) -> None:
        self.username = username
        self.password = password
        self.timeout = timeout
        self.verify_certs = verify_certs
        self.client_kwargs = client_kwargs

    def build(self) -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(self.timeout),
            "verify": self.verify_certs,
            "headers": {"Accept": "application/atom+xml, application/xml;q=0.9, */*;q=0.8"},
        }
        kwargs.update(self.client_kwargs)
        return httpx.AsyncClient(**kwargs)

    def auth_for(self, subject: Subject | None) -> httpx.Auth | None:
        if self.username and self.password:
            return httpx.BasicAuth(self.username, self.password)
        if subject is not None:
            return SubjectAuth(subject)
        return None


class RequestExecutor:
    """Issues GET/HEAD requests and classifies the responses.

    Nothing is retried here; retry policy belongs to the caller.

    Args:
        client: The pooled HTTP client.
        factory: Supplies per-request credentials.
    """

    def __init__(self, client: httpx.AsyncClient, factory: ClientFactory) -> None:
        self.client = client
        self.factory = factory

    def _timeout(self, timeout: float | None) -> Any:
        return httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT

    async def execute(
        self,
        url: str,
        params: dict[str, str] | None = None,
        subject: Subject | None = None,
        timeout: float | None = None,
    ) -> bytes:
        """GET *url* and return the body of a 200 response.

        *timeout* is a deadline for the whole exchange, connect through the
        last body byte, not a per-read limit.

        Raises:
            RemoteQueryError: On any status other than 200.
            RequestTimeoutError: If the request timed out.
            TransportError: On any other transport failure.
        """
        try:
            async with asyncio.timeout(timeout):
                async with self.open(url, params=params, subject=subject, timeout=timeout) as response:
                    try:
                        return await response.aread()
                    except httpx.TimeoutException as e:
                        raise RequestTimeoutError(f"Timed out reading response from {url}", e) from e
                    except httpx.RequestError as e:
                        raise TransportError(f"Failed reading response from {url}: {e}", e) from e
        except TimeoutError as e:
            raise RequestTimeoutError(f"No complete response from {url} within {timeout}s", e) from e

    @asynccontextmanager
    async def open(
        self,
        url: str,
        params: dict[str, str] | None = None,
        subject: Subject | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Stream a GET response; the body has not been read when yielded.

        The response is closed when the context exits, including on
        cancellation.
        """
        request = self.client.build_request("GET", url, params=params, timeout=self._timeout(timeout))
        try:
            response = await self.client.send(request, auth=self.factory.auth_for(subject), stream=True)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request to {url} timed out", e) from e
        except httpx.RequestError as e:
            raise TransportError(f"Request to {url} failed: {e}", e) from e

        try:
            if response.status_code != httpx.codes.OK:
                body = ""
                try:
                    body = (await response.aread()).decode(response.encoding or "utf-8", errors="replace")
                except httpx.RequestError:
                    logger.debug("Could not read error body from %s", url, exc_info=True)
                error = RemoteQueryError(response.status_code, body)
                logger.warning(str(error))
                raise error
            yield response
        finally:
            await response.aclose()

    async def head(self, url: str, timeout: float | None = None) -> int | None:
        """HEAD *url* and return the status code.

        Raises:
            httpx.RequestError: On transport failure.
        """
        response = await self.client.head(url, auth=self.factory.auth_for(None), timeout=self._timeout(timeout))
        return response.status_code
