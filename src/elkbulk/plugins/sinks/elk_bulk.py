"""
ELK bulk sink.

Buffers events, and on every flush normalizes them, splits the documents
into byte-bounded pages and POSTs each page to
``{url}/{index_template}{yyyy.MM.dd}``. Delivery is best effort: a failed
page is reported through diagnostics and dropped, and the remaining pages
of the flush are still attempted.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Iterable

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...core import diagnostics
from ...core.chunker import MAX_BULK_BYTES, Page, chunk_events
from ...core.events import LogEvent
from ...core.levels import EventLevel
from ...core.normalizer import EventNormalizer, starts_with_double_underscore
from ...metrics.metrics import MetricsCollector
from ..filters.level import LevelFilter
from ..utils import parse_plugin_config
from ._batching import BatchingMixin

__all__ = ["ElkBulkSink", "ElkSinkConfig"]


class ElkSinkConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True, arbitrary_types_allowed=True)  # fmt: skip

    url: str
    index_template: str = "logstash-"
    append_index: bool = True
    auth_key: str | None = None
    auth_scheme: str = "ELK"
    batch_limit: int = Field(default=100, ge=1)
    period_seconds: float = Field(default=30.0, gt=0.0)
    restricted_to_min_level: EventLevel = EventLevel.VERBOSE
    timeout_seconds: float = Field(default=120.0, gt=0.0)
    include_diagnostics: bool = False
    max_bulk_bytes: int = Field(default=MAX_BULK_BYTES, gt=0)
    property_filter: Callable[[str], bool] | None = starts_with_double_underscore

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("url must not be empty")
        return value

    @field_validator("restricted_to_min_level", mode="before")
    @classmethod
    def _parse_level(cls, value: Any) -> EventLevel:
        return EventLevel.parse(value)


class ElkBulkSink(BatchingMixin):
    """Sink that ships events to an ELK bulk endpoint in dated indexes."""

    name = "elk_bulk"

    def __init__(
        self,
        config: ElkSinkConfig | dict | None = None,
        *,
        metrics: MetricsCollector | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
        **kwargs: Any,
    ) -> None:
        cfg = parse_plugin_config(ElkSinkConfig, config, **kwargs)
        self._config = cfg
        self._metrics = metrics
        self._client = client
        self._owns_client = client is None
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._normalizer = EventNormalizer(property_filter=cfg.property_filter)
        self._level_filter = LevelFilter(min_level=cfg.restricted_to_min_level)
        self._emit_lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._last_status: int | None = None
        self._last_error: str | None = None
        self._init_batching(cfg.batch_limit, cfg.period_seconds)

    @property
    def config(self) -> ElkSinkConfig:
        return self._config

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        """Event loop the sink was started on, if any."""
        return self._loop

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_seconds)
            self._owns_client = True
        self._loop = asyncio.get_running_loop()
        await self._start_batching()

    async def stop(self) -> None:
        await self._stop_batching()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        self._loop = None

    async def write(self, event: LogEvent) -> None:
        if not self._level_filter.accepts(event):
            return
        await self._enqueue_for_batch(event)

    def enqueue_nowait(self, event: LogEvent) -> None:
        """Queue an event without awaiting; must run on the sink's loop."""
        if self._level_filter.accepts(event):
            self._enqueue_nowait(event)

    async def flush(self) -> None:
        await self._flush_pending()

    async def _send_batch(self, batch: list[LogEvent]) -> None:
        await self.emit_batch(batch)

    def index_url(self, now: datetime | None = None) -> str:
        now = now or self._clock()
        index = self._config.index_template
        if self._config.append_index:
            index = f"{index}{now.astimezone(timezone.utc).strftime('%Y.%m.%d')}"
        return f"{self._config.url}/{index}"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": Page.content_type}
        if self._config.auth_key:
            headers["Authorization"] = (
                f"{self._config.auth_scheme} {self._config.auth_key}"
            )
        return headers

    @asynccontextmanager
    async def _client_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        # Not started: use a short-lived client for this flush
        async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
            yield client

    async def emit_batch(self, events: Iterable[LogEvent] | None) -> None:
        """Normalize, page and deliver one bounded sequence of events.

        Completes once every page has been attempted; delivery failures
        never propagate. A page without documents (an empty flush) is not
        POSTed, so an empty batch produces no request at all.
        """
        async with self._emit_lock:
            skipped = 0

            def _on_skip() -> None:
                nonlocal skipped
                skipped += 1

            pages = chunk_events(
                events,
                normalizer=self._normalizer,
                max_bulk_bytes=self._config.max_bulk_bytes,
                include_diagnostics=self._config.include_diagnostics,
                on_skip=_on_skip,
            )
            async with self._client_scope() as client:
                for page in pages:
                    if not page.documents:
                        continue
                    await self._deliver(client, page)
            if skipped and self._metrics is not None:
                await self._metrics.record_events_skipped(skipped)

    async def _deliver(self, client: httpx.AsyncClient, page: Page) -> bool:
        url = self.index_url()
        content = page.content
        try:
            resp = await asyncio.wait_for(
                client.post(url, content=content, headers=self._headers()),
                timeout=self._config.timeout_seconds,
            )
        except Exception as exc:
            self._last_error = str(exc) or type(exc).__name__
            self._last_status = None
            diagnostics.warn(
                "elk-sink",
                "exception posting to bulk endpoint",
                url=url,
                page=page.index,
                error=self._last_error,
                error_type=type(exc).__name__,
            )
            await self._record_failure(page, type(exc).__name__)
            return False

        self._last_status = resp.status_code
        if not resp.is_success:
            self._last_error = f"HTTP {resp.status_code}"
            snippet = None
            try:
                snippet = resp.text[:256]
            except Exception:
                snippet = None
            diagnostics.warn(
                "elk-sink",
                "bulk endpoint rejected page",
                status_code=resp.status_code,
                url=url,
                page=page.index,
                body=snippet,
            )
            await self._record_failure(page, f"http_{resp.status_code}")
            return False

        self._last_error = None
        if self._metrics is not None:
            await self._metrics.record_page_delivered(size_bytes=len(content))
            await self._metrics.record_events_processed(page.event_count)
        return True

    async def _record_failure(self, page: Page, reason: str) -> None:
        if self._metrics is None:
            return
        try:
            await self._metrics.record_delivery_failure(reason=reason)
            await self._metrics.record_events_dropped(page.event_count)
        except Exception:
            pass

    async def health_check(self) -> bool:
        return (
            self._last_error is None
            and self._last_status is not None
            and self._last_status < 400
        )


# Mark Pydantic validators as used for vulture
_VULTURE_USED: tuple[object, ...] = (
    ElkSinkConfig._strip_url,
    ElkSinkConfig._parse_level,
)
