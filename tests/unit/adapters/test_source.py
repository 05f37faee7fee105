"""Tests for the OpenSearch federated source."""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import contextmanager
from typing import IO
from unittest.mock import AsyncMock

import httpx
import pytest

from fedsearch.adapters.base.exceptions import (
    ConfigurationError,
    ConnectionError,
    RemoteQueryError,
    RequestTimeoutError,
    ResourceNotFoundError,
    ResourceNotSupportedError,
    UnsupportedQueryError,
)
from fedsearch.adapters.opensearch import adapter as adapter_module
from fedsearch.adapters.opensearch.adapter import COULD_NOT_RETRIEVE_RESOURCE_MESSAGE, OpenSearchSource
from fedsearch.config.settings import Settings
from fedsearch.models.filters import (
    ContextualPredicate,
    IdEqualsPredicate,
    PropertyEqualsPredicate,
    Query,
    QueryRequest,
    Subject,
)
from fedsearch.transformers.registry import TransformerRegistry

ENDPOINT = "https://remote.example.com:8993/services/catalog/query"

Handler = Callable[[httpx.Request], httpx.Response]


class Recorder:
    """MockTransport handler that records requests and replays a fixed response."""

    def __init__(self, response: httpx.Response | Handler) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if callable(self.response):
            return self.response(request)
        return self.response


async def _source(handler: Handler, **kwargs) -> OpenSearchSource:
    kwargs.setdefault("shortname", "remote-ddf")
    source = OpenSearchSource(ENDPOINT, transport=httpx.MockTransport(handler), **kwargs)
    await source.initialize()
    return source


def _search(phrase: str = "harbor", **query_kwargs) -> QueryRequest:
    return QueryRequest(query=Query(filter=ContextualPredicate(phrase=phrase), **query_kwargs))


def _fetch(identifier: str) -> QueryRequest:
    return QueryRequest(query=Query(filter=IdEqualsPredicate(value=identifier)))


# ── Construction ─────────────────────────────────────────────────────────────


class TestOpenSearchSourceProperties:
    def test_defaults(self) -> None:
        source = OpenSearchSource(ENDPOINT)
        assert source.name == "opensearch"
        assert source.id == "opensearch"
        assert source.endpoint_url == ENDPOINT
        assert "q" in source.parameters
        assert source.local_query_only is False
        assert source.convert_to_bbox is False

    def test_descriptive_attributes(self) -> None:
        source = OpenSearchSource(ENDPOINT)
        assert source.title == "OpenSearch Federated Source"
        assert source.version
        assert source.content_types == set()
        assert source.supported_schemes == set()

    def test_empty_endpoint_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            OpenSearchSource("")

    def test_from_settings(self, settings: Settings) -> None:
        settings.source.convert_to_bbox = True
        settings.source.parameters = ["q", "bbox"]
        source = OpenSearchSource.from_settings(settings.source)
        assert source.name == "remote-ddf"
        assert source.convert_to_bbox is True
        assert source.parameters == ["q", "bbox"]


class TestOpenSearchSourceLifecycle:
    async def test_query_before_initialize_raises(self) -> None:
        with pytest.raises(ConnectionError):
            await OpenSearchSource(ENDPOINT).query(_search())

    async def test_shutdown_releases_client(self) -> None:
        source = await _source(Recorder(httpx.Response(200)))
        await source.shutdown()
        assert source._client is None
        assert await source.is_available() is False


# ── Search path ──────────────────────────────────────────────────────────────


class TestSearch:
    async def test_search_results(
        self,
        make_feed: Callable[..., bytes],
        make_metacard: Callable[..., str],
    ) -> None:
        feed = make_feed(
            [{"uri": "urn:catalog:abc123", "categories": ["image"], "score": "0.8", "contents": [make_metacard()]}],
            total_results="42",
        )
        recorder = Recorder(httpx.Response(200, content=feed))
        source = await _source(recorder)

        outcome = await source.query(_search(page_size=5))

        assert outcome.total_hits == 42
        assert len(outcome.records) == 1
        result = outcome.records[0]
        assert result.relevance_score == 0.8
        assert result.record.id == "abc123"
        assert result.record.source_id == "remote-ddf"
        assert result.record.content_type == "image"

        request = recorder.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/services/catalog/query"
        assert request.url.params["q"] == "harbor"
        assert request.url.params["count"] == "5"
        assert request.url.params["src"] == ""

    async def test_local_query_only(self, make_feed: Callable[..., bytes]) -> None:
        recorder = Recorder(httpx.Response(200, content=make_feed([])))
        source = await _source(recorder, local_query_only=True)
        await source.query(_search())
        assert recorder.requests[0].url.params["src"] == "local"

    async def test_subject_forwarded(self, make_feed: Callable[..., bytes]) -> None:
        recorder = Recorder(httpx.Response(200, content=make_feed([])))
        source = await _source(recorder)
        await source.query(
            QueryRequest(
                query=Query(filter=ContextualPredicate(phrase="harbor")),
                subject=Subject(principal="cn=alice", token="tok"),
            )
        )
        request = recorder.requests[0]
        assert request.url.params["dn"] == "cn=alice"
        assert request.headers["Authorization"] == "Bearer tok"

    async def test_remote_error(self) -> None:
        source = await _source(Recorder(httpx.Response(503, text="unavailable")))
        with pytest.raises(RemoteQueryError) as exc_info:
            await source.query(_search())
        assert exc_info.value.status == 503

    async def test_malformed_feed_yields_empty_outcome(self) -> None:
        source = await _source(Recorder(httpx.Response(200, content=b"<<<")))
        outcome = await source.query(_search())
        assert outcome.records == []
        assert outcome.total_hits == 0


# ── Fetch path ───────────────────────────────────────────────────────────────


class TestFetch:
    async def test_fetch_by_identifier(self, make_metacard: Callable[..., str]) -> None:
        recorder = Recorder(httpx.Response(200, text=make_metacard(id="abc123", source="elsewhere")))
        source = await _source(recorder)

        outcome = await source.query(_fetch("abc123"))

        assert recorder.requests[0].url == "https://remote.example.com:8993/services/catalog/abc123"
        assert outcome.total_hits == 1
        result = outcome.records[0]
        assert result.relevance_score == 0.0
        assert result.record.id == "abc123"
        assert result.record.title == "Harbor survey"
        assert result.record.source_id == "remote-ddf"

    async def test_fetch_by_id_property(self, make_metacard: Callable[..., str]) -> None:
        recorder = Recorder(httpx.Response(200, text=make_metacard()))
        source = await _source(recorder)
        request = QueryRequest(query=Query(filter=PropertyEqualsPredicate(attribute="id", value="xyz")))
        await source.query(request)
        assert recorder.requests[0].url.path == "/services/catalog/xyz"

    async def test_metacard_id_takes_precedence(self, make_metacard: Callable[..., str]) -> None:
        recorder = Recorder(httpx.Response(200, text=make_metacard()))
        source = await _source(recorder)
        request = QueryRequest(query=Query(filter=IdEqualsPredicate(value="other")), metacard_id="given")
        await source.query(request)
        assert recorder.requests[0].url.path == "/services/catalog/given"

    async def test_fetch_spills_large_documents(self, make_metacard: Callable[..., str]) -> None:
        source = await _source(Recorder(httpx.Response(200, text=make_metacard())), spill_threshold=16)
        outcome = await source.query(_fetch("abc123"))
        assert outcome.records[0].record.title == "Harbor survey"

    async def test_no_transformer_yields_placeholder(self) -> None:
        source = await _source(
            Recorder(httpx.Response(200, text="<unknown/>")),
            registry=TransformerRegistry(),
        )
        outcome = await source.query(_fetch("abc123"))
        assert outcome.total_hits == 1
        record = outcome.records[0].record
        assert record.id is None
        assert record.source_id == "remote-ddf"

    async def test_fetch_remote_error(self) -> None:
        source = await _source(Recorder(httpx.Response(404, text="no such record")))
        with pytest.raises(RemoteQueryError):
            await source.query(_fetch("missing"))

    async def test_unsupported_query(self) -> None:
        recorder = Recorder(httpx.Response(200))
        source = await _source(recorder)
        request = QueryRequest(query=Query(filter=PropertyEqualsPredicate(attribute="title", value="x")))
        with pytest.raises(UnsupportedQueryError):
            await source.query(request)
        assert recorder.requests == []


# ── Deadlines and cancellation ───────────────────────────────────────────────


class Trickle(httpx.AsyncByteStream):
    """Response body that yields one byte per *interval* seconds."""

    def __init__(self, size: int = 40, interval: float = 0.05) -> None:
        self.size = size
        self.interval = interval

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for _ in range(self.size):
            await asyncio.sleep(self.interval)
            yield b" "


class StalledStream(httpx.AsyncByteStream):
    """Sends a first chunk, then stalls; records whether it was closed."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield b"<metacard"
        self.started.set()
        await asyncio.sleep(30)
        yield b"/>"

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def buffers(monkeypatch: pytest.MonkeyPatch) -> list[IO[bytes]]:
    """Capture every spill buffer the source opens."""
    opened: list[IO[bytes]] = []
    real = adapter_module.spill_buffer

    @contextmanager
    def tracking(threshold: int) -> Iterator[IO[bytes]]:
        with real(threshold) as buffer:
            opened.append(buffer)
            yield buffer

    monkeypatch.setattr(adapter_module, "spill_buffer", tracking)
    return opened


class TestQueryDeadline:
    async def test_trickling_search_response(self) -> None:
        source = await _source(Recorder(lambda request: httpx.Response(200, stream=Trickle())))

        start = time.monotonic()
        with pytest.raises(RequestTimeoutError):
            await source.query(_search(timeout_ms=200))
        assert time.monotonic() - start < 1.0

    async def test_trickling_fetch_response(self) -> None:
        source = await _source(Recorder(lambda request: httpx.Response(200, stream=Trickle())))
        request = QueryRequest(query=Query(filter=IdEqualsPredicate(value="abc123"), timeout_ms=200))

        start = time.monotonic()
        with pytest.raises(RequestTimeoutError):
            await source.query(request)
        assert time.monotonic() - start < 1.0

    async def test_slow_parse(self, make_feed: Callable[..., bytes]) -> None:
        source = await _source(Recorder(httpx.Response(200, content=make_feed([]))))
        source._feed_parser.parse = lambda body: time.sleep(0.5)  # type: ignore[method-assign]

        start = time.monotonic()
        with pytest.raises(RequestTimeoutError):
            await source.query(_search(timeout_ms=100))
        assert time.monotonic() - start < 0.4

    async def test_parse_gets_only_remaining_time(self, make_feed: Callable[..., bytes]) -> None:
        async def slow_answer(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.15)
            return httpx.Response(200, content=make_feed([]))

        source = await _source(slow_answer)
        parse = source._feed_parser.parse

        def slow_parse(body: bytes):
            time.sleep(0.15)
            return parse(body)

        source._feed_parser.parse = slow_parse  # type: ignore[method-assign]

        # Each step fits the deadline alone; together they do not
        with pytest.raises(RequestTimeoutError):
            await source.query(_search(timeout_ms=250))

    async def test_receive_timeout_applies_without_query_timeout(self) -> None:
        source = await _source(Recorder(lambda request: httpx.Response(200, stream=Trickle())), timeout=0.2)
        with pytest.raises(RequestTimeoutError):
            await source.query(_search())

    async def test_in_thread_returns_result(self) -> None:
        assert await OpenSearchSource._in_thread(len, b"abc") == 3

    async def test_abandoned_fetch_parse_keeps_buffer_until_done(
        self,
        make_metacard: Callable[..., str],
        buffers: list[IO[bytes]],
    ) -> None:
        document = make_metacard().encode()
        source = await _source(Recorder(httpx.Response(200, content=document)))
        release = threading.Event()
        read: list[bytes] = []

        def blocked_resolve(buffer: IO[bytes]) -> None:
            release.wait(5)
            read.append(buffer.read())

        source._resolver.resolve = blocked_resolve  # type: ignore[method-assign]
        request = QueryRequest(query=Query(filter=IdEqualsPredicate(value="abc123"), timeout_ms=100))

        try:
            with pytest.raises(RequestTimeoutError):
                await source.query(request)
            assert buffers[0].closed is False
        finally:
            release.set()

        for _ in range(200):
            if buffers[0].closed:
                break
            await asyncio.sleep(0.01)
        assert read == [document]
        assert buffers[0].closed is True


class TestCancellation:
    async def test_cancelled_fetch_closes_stream_and_buffer(self, buffers: list[IO[bytes]]) -> None:
        stream = StalledStream()
        source = await _source(Recorder(lambda request: httpx.Response(200, stream=stream)))

        task = asyncio.create_task(source.query(_fetch("abc123")))
        await asyncio.wait_for(stream.started.wait(), timeout=2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert stream.closed is True
        assert len(buffers) == 1
        assert buffers[0].closed is True

    async def test_cancelled_search_closes_stream(self) -> None:
        stream = StalledStream()
        source = await _source(Recorder(lambda request: httpx.Response(200, stream=stream)))

        task = asyncio.create_task(source.query(_search()))
        await asyncio.wait_for(stream.started.wait(), timeout=2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert stream.closed is True

    async def test_source_usable_after_cancellation(self, make_metacard: Callable[..., str]) -> None:
        stream = StalledStream()
        responses = iter([httpx.Response(200, stream=stream), httpx.Response(200, text=make_metacard())])
        source = await _source(Recorder(lambda request: next(responses)))

        task = asyncio.create_task(source.query(_fetch("abc123")))
        await asyncio.wait_for(stream.started.wait(), timeout=2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        outcome = await source.query(_fetch("abc123"))
        assert outcome.records[0].record.title == "Harbor survey"


# ── Resources ────────────────────────────────────────────────────────────────


class TestRetrieveResource:
    async def test_null_properties(self) -> None:
        with pytest.raises(ResourceNotFoundError):
            await OpenSearchSource(ENDPOINT).retrieve_resource("urn:x", None)

    async def test_missing_id(self) -> None:
        with pytest.raises(ResourceNotFoundError, match=COULD_NOT_RETRIEVE_RESOURCE_MESSAGE):
            await OpenSearchSource(ENDPOINT).retrieve_resource("urn:x", {})

    async def test_no_reader(self) -> None:
        with pytest.raises(ResourceNotSupportedError):
            await OpenSearchSource(ENDPOINT).retrieve_resource("urn:x", {"id": "abc"})

    async def test_delegates_to_reader(self) -> None:
        reader = AsyncMock()
        reader.retrieve_resource.return_value = b"bytes"
        source = OpenSearchSource(ENDPOINT, resource_reader=reader)

        result = await source.retrieve_resource("urn:x", {"id": "abc"})

        assert result == b"bytes"
        reader.retrieve_resource.assert_awaited_once_with(
            "https://remote.example.com:8993/services/catalog/abc?transform=resource",
            {"id": "abc"},
        )

    def test_resource_url(self) -> None:
        assert OpenSearchSource(ENDPOINT).resource_url("abc").endswith("/services/catalog/abc?transform=resource")


# ── Availability ─────────────────────────────────────────────────────────────


class TestAvailability:
    async def test_available(self) -> None:
        recorder = Recorder(httpx.Response(200))
        source = await _source(recorder)
        assert await source.is_available() is True
        assert await source.is_available() is True
        assert [r.method for r in recorder.requests] == ["HEAD"]

    async def test_unavailable_status(self) -> None:
        source = await _source(Recorder(httpx.Response(500)))
        assert await source.is_available() is False

    async def test_connection_refused(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        source = await _source(handler)
        assert await source.is_available() is False

    async def test_health_check(self) -> None:
        source = await _source(Recorder(httpx.Response(200)))
        health = await source.health_check()
        assert health.status == "healthy"
        assert health.last_check is not None
        assert ENDPOINT in (health.message or "")

    async def test_health_check_uninitialized(self) -> None:
        health = await OpenSearchSource(ENDPOINT).health_check()
        assert health.status == "unhealthy"
