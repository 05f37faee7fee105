"""Adapter-specific exceptions."""

from __future__ import annotations


class AdapterError(Exception):
    """Base exception for adapter errors."""


class ConnectionError(AdapterError):
    """Raised when the adapter is used before its client exists."""


class ConfigurationError(AdapterError):
    """Raised when adapter configuration is invalid."""


class TransportError(AdapterError):
    """Raised when the remote endpoint cannot be reached."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class RequestTimeoutError(TransportError):
    """Raised when a request or response parse exceeds the caller's timeout."""


class RemoteQueryError(AdapterError):
    """Raised when the remote endpoint answers with a non-200 status."""

    def __init__(self, status: int, body: str = "") -> None:
        super().__init__(f"Received error code from remote source (status {status}): {body}")
        self.status = status
        self.body = body


class FeedParseError(AdapterError):
    """Raised when a response body is not a well-formed Atom or RSS feed."""


class TransformError(AdapterError):
    """Raised when a content transformer cannot produce a record."""


class UnsupportedQueryError(AdapterError):
    """Raised when a query (or part of it) cannot be sent to the endpoint."""


class AmbiguousTransformerError(AdapterError):
    """Raised when more than one transformer is bound to a namespace."""

    def __init__(self, namespace: str, count: int) -> None:
        super().__init__(f"Ambiguous transformer schema {namespace!r} ({count} bindings)")
        self.namespace = namespace
        self.count = count


class ResourceNotFoundError(AdapterError):
    """Raised when a requested resource cannot be located."""


class ResourceNotSupportedError(AdapterError):
    """Raised when this source cannot retrieve the requested resource."""
