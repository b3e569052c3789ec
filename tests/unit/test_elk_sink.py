from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest

from elkbulk.core.events import LogEvent
from elkbulk.core.levels import EventLevel
from elkbulk.metrics.metrics import MetricsCollector
from elkbulk.plugins.sinks.elk_bulk import ElkBulkSink, ElkSinkConfig

_NOW = datetime(2024, 5, 1, 23, 59, tzinfo=timezone.utc)


class _Recorder:
    """Mock bulk endpoint recording every request it receives."""

    def __init__(self, outcomes: list[Any] | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if self.outcomes else httpx.Response(200)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def lines(self, i: int) -> list[str]:
        return self.requests[i].content.decode("utf-8").split("\n")


def _sink(
    recorder: _Recorder,
    *,
    metrics: MetricsCollector | None = None,
    clock: Callable[[], datetime] = lambda: _NOW,
    **config: Any,
) -> tuple[ElkBulkSink, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    config.setdefault("url", "http://elk.local:9200/bulk")
    config.setdefault("index_template", "test-")
    sink = ElkBulkSink(
        ElkSinkConfig(**config), metrics=metrics, client=client, clock=clock
    )
    return sink, client


def _event(message: str = "hello", level: EventLevel = EventLevel.INFORMATION, **props: Any) -> LogEvent:  # fmt: skip
    return LogEvent.create(message, level=level, timestamp=_NOW, **props)


@pytest.mark.asyncio
async def test_emit_batch_posts_one_page_to_dated_index() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder)
    try:
        await sink.emit_batch([_event(n=1), _event(n=2), _event(n=3)])
    finally:
        await client.aclose()

    assert len(recorder.requests) == 1
    request = recorder.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "http://elk.local:9200/bulk/test-2024.05.01"
    assert request.headers["Content-Type"] == "application/json"
    assert "Authorization" not in request.headers
    lines = recorder.lines(0)
    assert [json.loads(line)["n"] for line in lines] == [1, 2, 3]
    assert json.loads(lines[0])["Level"] == "Information"


def test_config_strips_trailing_slash() -> None:
    cfg = ElkSinkConfig(url="http://elk.local:9200/bulk/")
    assert cfg.url == "http://elk.local:9200/bulk"
    assert cfg.index_template == "logstash-"
    assert cfg.auth_scheme == "ELK"
    assert cfg.batch_limit == 100
    assert cfg.period_seconds == 30.0
    assert cfg.timeout_seconds == 120.0
    assert cfg.restricted_to_min_level is EventLevel.VERBOSE


def test_config_rejects_empty_url() -> None:
    with pytest.raises(ValueError):
        ElkSinkConfig(url="  ")


def test_index_url_formats_and_can_skip_date() -> None:
    dated = ElkBulkSink(url="http://elk/", index_template="test-", clock=lambda: _NOW)
    plain = ElkBulkSink(url="http://elk", index_template="test-", append_index=False)

    assert dated.index_url() == "http://elk/test-2024.05.01"
    assert plain.index_url() == "http://elk/test-"


def test_index_url_uses_utc_date() -> None:
    sink = ElkBulkSink(url="http://elk", index_template="test-")
    local = datetime(2024, 5, 2, 1, 30, tzinfo=timezone(timedelta(hours=3)))
    assert sink.index_url(local).endswith("test-2024.05.01")


@pytest.mark.asyncio
async def test_authorization_header_uses_scheme_and_key() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder, auth_key="s3cret", auth_scheme="Bearer")
    try:
        await sink.emit_batch([_event()])
    finally:
        await client.aclose()

    assert recorder.requests[0].headers["Authorization"] == "Bearer s3cret"


@pytest.mark.asyncio
async def test_default_auth_scheme() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder, auth_key="k")
    try:
        await sink.emit_batch([_event()])
    finally:
        await client.aclose()

    assert recorder.requests[0].headers["Authorization"] == "ELK k"


@pytest.mark.asyncio
async def test_diagnostics_record_is_appended_to_final_page() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder, include_diagnostics=True)
    try:
        await sink.emit_batch([_event()])
    finally:
        await client.aclose()

    lines = recorder.lines(0)
    assert len(lines) == 2
    assert json.loads(lines[1])["Event"] == "LogglyDiagnostics"


@pytest.mark.asyncio
async def test_multiple_pages_are_posted_in_order() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder, max_bulk_bytes=1)
    try:
        await sink.emit_batch([_event(n=i) for i in range(3)])
    finally:
        await client.aclose()

    # each document overshoots the limit, so every page carries one document
    assert len(recorder.requests) == 3
    assert [json.loads(recorder.lines(i)[0])["n"] for i in range(3)] == [0, 1, 2]


@pytest.mark.asyncio
async def test_empty_batch_sends_nothing() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder)
    try:
        await sink.emit_batch([])
        await sink.emit_batch(None)
    finally:
        await client.aclose()

    assert recorder.requests == []


@pytest.mark.asyncio
async def test_rejected_page_warns_and_later_pages_still_sent(
    captured_warnings: list[dict[str, Any]],
) -> None:
    recorder = _Recorder(
        [httpx.Response(500, text="mapping exploded"), httpx.Response(200)]
    )
    metrics = MetricsCollector(enabled=False)
    sink, client = _sink(recorder, metrics=metrics, max_bulk_bytes=1)
    try:
        await sink.emit_batch([_event(n=1), _event(n=2)])
    finally:
        await client.aclose()

    assert len(recorder.requests) == 2
    assert len(captured_warnings) == 1
    warning = captured_warnings[0]
    assert warning["component"] == "elk-sink"
    assert warning["status_code"] == 500
    assert warning["body"] == "mapping exploded"
    assert warning["page"] == 0

    snap = await metrics.snapshot()
    assert snap.delivery_failures == 1
    assert snap.events_dropped == 1
    assert snap.pages_delivered == 1
    assert snap.events_processed == 1


@pytest.mark.asyncio
async def test_transport_error_is_contained(
    captured_warnings: list[dict[str, Any]],
) -> None:
    recorder = _Recorder([httpx.ConnectError("refused"), httpx.Response(200)])
    sink, client = _sink(recorder, max_bulk_bytes=1)
    try:
        await sink.emit_batch([_event(n=1), _event(n=2)])
    finally:
        await client.aclose()

    assert len(recorder.requests) == 2
    assert captured_warnings[0]["message"] == "exception posting to bulk endpoint"
    assert captured_warnings[0]["error_type"] == "ConnectError"
    assert await sink.health_check() is True


@pytest.mark.asyncio
async def test_slow_endpoint_times_out(
    captured_warnings: list[dict[str, Any]],
) -> None:
    async def _slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1.0)
        return httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_slow))
    sink = ElkBulkSink(
        ElkSinkConfig(url="http://elk", timeout_seconds=0.01), client=client
    )
    try:
        await sink.emit_batch([_event()])
    finally:
        await client.aclose()

    assert captured_warnings
    assert captured_warnings[0]["error_type"] == "TimeoutError"
    assert await sink.health_check() is False


@pytest.mark.asyncio
async def test_health_check_tracks_last_delivery() -> None:
    recorder = _Recorder([httpx.Response(200), httpx.Response(503)])
    sink, client = _sink(recorder)
    try:
        assert await sink.health_check() is False
        await sink.emit_batch([_event()])
        assert await sink.health_check() is True
        await sink.emit_batch([_event()])
        assert await sink.health_check() is False
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_unserializable_events_are_skipped_and_counted(
    captured_warnings: list[dict[str, Any]],
) -> None:
    recorder = _Recorder()
    metrics = MetricsCollector(enabled=True)
    sink, client = _sink(recorder, metrics=metrics)
    try:
        await sink.emit_batch([_event(n=1), _event(n="\ud800"), _event(n=3)])
    finally:
        await client.aclose()

    assert [json.loads(line)["n"] for line in recorder.lines(0)] == [1, 3]
    assert captured_warnings[0]["component"] == "normalizer"
    snap = await metrics.snapshot()
    assert snap.events_skipped == 1
    assert snap.events_processed == 2
    assert metrics.registry is not None
    assert metrics.registry.get_sample_value("elkbulk_events_skipped_total") == 1.0


@pytest.mark.asyncio
async def test_level_restriction_drops_lower_events() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder, restricted_to_min_level="warning", batch_limit=10)
    try:
        await sink.write(_event("debug", EventLevel.DEBUG))
        await sink.write(_event("warn", EventLevel.WARNING))
        await sink.write(_event("err", EventLevel.ERROR))
        assert sink.pending_count == 2
        await sink.flush()
    finally:
        await client.aclose()

    messages = [json.loads(line)["Message"] for line in recorder.lines(0)]
    assert messages == ["warn", "err"]


@pytest.mark.asyncio
async def test_batch_limit_triggers_flush_and_stop_drains() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder, batch_limit=2, period_seconds=60)
    await sink.start()
    try:
        await sink.write(_event(n=0))
        await sink.write(_event(n=1))
        for _ in range(50):
            if recorder.requests:
                break
            await asyncio.sleep(0.01)
        assert len(recorder.requests) == 1
        assert len(recorder.lines(0)) == 2
        await sink.write(_event(n=2))
        assert sink.pending_count == 1
    finally:
        await sink.stop()
        await client.aclose()

    assert len(recorder.requests) == 2
    assert [json.loads(line)["n"] for line in recorder.lines(1)] == [2]
    assert sink.pending_count == 0


@pytest.mark.asyncio
async def test_period_elapses_and_partial_batch_is_sent() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder, batch_limit=100, period_seconds=0.05)
    await sink.start()
    try:
        await sink.write(_event())
        for _ in range(100):
            if recorder.requests:
                break
            await asyncio.sleep(0.01)
        assert len(recorder.requests) == 1
    finally:
        await sink.stop()
        await client.aclose()


@pytest.mark.asyncio
async def test_enqueue_nowait_applies_level_filter() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder, restricted_to_min_level="Error")
    try:
        sink.enqueue_nowait(_event(level=EventLevel.INFORMATION))
        sink.enqueue_nowait(_event(level=EventLevel.FATAL))
        assert sink.pending_count == 1
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_unstarted_sink_without_client_uses_temporary_client(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    recorder = _Recorder()
    real_client = httpx.AsyncClient

    def _factory(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
        kwargs["transport"] = httpx.MockTransport(recorder)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(
        "elkbulk.plugins.sinks.elk_bulk.httpx.AsyncClient", _factory
    )
    sink = ElkBulkSink(url="http://elk", index_template="tmp-", append_index=False)
    await sink.emit_batch([_event()])

    assert str(recorder.requests[0].url) == "http://elk/tmp-"


@pytest.mark.asyncio
async def test_owned_client_is_closed_on_stop(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder()
    real_client = httpx.AsyncClient
    created: list[httpx.AsyncClient] = []

    def _factory(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
        kwargs["transport"] = httpx.MockTransport(recorder)
        client = real_client(*args, **kwargs)
        created.append(client)
        return client

    monkeypatch.setattr(
        "elkbulk.plugins.sinks.elk_bulk.httpx.AsyncClient", _factory
    )
    sink = ElkBulkSink({"url": "http://elk"})
    await sink.start()
    assert sink.loop is asyncio.get_running_loop()
    await sink.write(_event())
    await sink.stop()

    assert len(recorder.requests) == 1
    assert created and created[0].is_closed
    assert sink.loop is None


@pytest.mark.asyncio
async def test_injected_client_is_not_closed() -> None:
    recorder = _Recorder()
    sink, client = _sink(recorder)
    await sink.start()
    await sink.stop()
    try:
        assert not client.is_closed
    finally:
        await client.aclose()


def test_sink_satisfies_base_protocol() -> None:
    from elkbulk.plugins.sinks import BaseSink

    assert isinstance(ElkBulkSink(url="http://elk"), BaseSink)


@pytest.mark.asyncio
async def test_batch_worker_without_start_exits() -> None:
    sink = ElkBulkSink(url="http://elk")
    await asyncio.wait_for(sink._batch_worker(), timeout=1.0)
    assert sink.pending_count == 0
