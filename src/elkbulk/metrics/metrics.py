"""
Async-first shipping metrics for elkbulk.

Implements minimal Prometheus-compatible counters and a page-size histogram
for the normalize/chunk/deliver pipeline.

Design goals:
- Pure async/await, no blocking I/O
- Zero global state; instances are sink-scoped
- Safe no-op behavior when metrics are disabled by settings
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram


@dataclass
class PipelineMetrics:
    """Captured runtime metrics for quick assertions in tests."""

    events_processed: int = 0
    events_dropped: int = 0
    events_skipped: int = 0
    pages_delivered: int = 0
    delivery_failures: int = 0


class MetricsCollector:
    """Sink-scoped async metrics collector.

    If metrics are disabled, all exporter updates are no-ops while basic
    in-memory counters are still tracked for tests.
    """

    def __init__(self, *, enabled: bool = False) -> None:
        self._enabled = bool(enabled)
        self._lock = asyncio.Lock()
        self._state = PipelineMetrics()

        # Lazily-initialized exporters to avoid global registration noise
        self._c_events: Any | None = None
        self._c_dropped: Any | None = None
        self._c_skipped: Any | None = None
        self._c_pages: Any | None = None
        self._c_failures: Any | None = None
        self._h_page_bytes: Any | None = None
        self._registry: CollectorRegistry | None = None

        if self._enabled:
            # Use isolated registry to avoid global duplication in tests
            self._registry = CollectorRegistry()
            self._c_events = Counter(
                "elkbulk_events_processed_total",
                "Total number of events delivered to the bulk endpoint",
                registry=self._registry,
            )
            self._c_dropped = Counter(
                "elkbulk_events_dropped_total",
                "Total number of events dropped by failed deliveries",
                registry=self._registry,
            )
            self._c_skipped = Counter(
                "elkbulk_events_skipped_total",
                "Total number of events skipped by the normalizer",
                registry=self._registry,
            )
            self._c_pages = Counter(
                "elkbulk_pages_delivered_total",
                "Total number of pages accepted by the bulk endpoint",
                registry=self._registry,
            )
            self._c_failures = Counter(
                "elkbulk_delivery_failures_total",
                "Total number of failed page deliveries",
                ["reason"],
                registry=self._registry,
            )
            self._h_page_bytes = Histogram(
                "elkbulk_page_bytes",
                "Size of delivered pages in bytes",
                buckets=(
                    1024,
                    16 * 1024,
                    128 * 1024,
                    512 * 1024,
                    1024 * 1024,
                    2 * 1024 * 1024,
                    4 * 1024 * 1024,
                    8 * 1024 * 1024,
                ),
                registry=self._registry,
            )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> CollectorRegistry | None:
        """Expose the isolated Prometheus registry when enabled."""
        return self._registry

    async def record_events_processed(self, count: int = 1) -> None:
        async with self._lock:
            self._state.events_processed += count
        if self._enabled and self._c_events is not None:
            self._c_events.inc(count)

    async def record_events_dropped(self, count: int = 1) -> None:
        async with self._lock:
            self._state.events_dropped += count
        if self._enabled and self._c_dropped is not None:
            self._c_dropped.inc(count)

    async def record_events_skipped(self, count: int = 1) -> None:
        async with self._lock:
            self._state.events_skipped += count
        if self._enabled and self._c_skipped is not None:
            self._c_skipped.inc(count)

    async def record_page_delivered(self, *, size_bytes: int | None = None) -> None:
        async with self._lock:
            self._state.pages_delivered += 1
        if not self._enabled:
            return
        if self._c_pages is not None:
            self._c_pages.inc()
        if size_bytes is not None and self._h_page_bytes is not None:
            self._h_page_bytes.observe(size_bytes)

    async def record_delivery_failure(self, *, reason: str | None = None) -> None:
        async with self._lock:
            self._state.delivery_failures += 1
        if self._enabled and self._c_failures is not None:
            self._c_failures.labels(reason=reason or "unknown").inc()

    async def snapshot(self) -> PipelineMetrics:
        # Lightweight copy without exposing internals
        async with self._lock:
            return PipelineMetrics(
                events_processed=self._state.events_processed,
                events_dropped=self._state.events_dropped,
                events_skipped=self._state.events_skipped,
                pages_delivered=self._state.pages_delivered,
                delivery_failures=self._state.delivery_failures,
            )
