"""
Periodic batching for sinks.

Entries are buffered in memory and handed to ``_send_batch`` in slices of
at most ``batch_size`` when either enough entries are pending or
``batch_timeout_seconds`` have elapsed since the oldest pending entry.
``_stop_batching`` drains everything that is still buffered.

A single worker task performs the flushes and a lock serializes them, so at
most one flush cycle runs at a time per sink.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from ...core import diagnostics


class BatchingMixin:
    """Mixin providing size/time triggered batch flushing.

    Subclasses implement ``async def _send_batch(self, batch: list) -> None``.
    """

    def _init_batching(self, batch_size: int, batch_timeout_seconds: float) -> None:
        self._batch_size = max(1, int(batch_size))
        self._batch_timeout = float(batch_timeout_seconds)
        self._pending: list[Any] = []
        self._first_pending_at: float | None = None
        self._wake: asyncio.Event | None = None
        self._batch_task: asyncio.Task[None] | None = None
        self._batch_stopping = False
        self._flush_lock = asyncio.Lock()

    async def _start_batching(self) -> None:
        if self._batch_task is not None:
            return
        self._batch_stopping = False
        self._wake = asyncio.Event()
        self._batch_task = asyncio.create_task(self._batch_worker())

    async def _stop_batching(self) -> None:
        task = self._batch_task
        if task is not None:
            self._batch_stopping = True
            if self._wake is not None:
                self._wake.set()
            await task
            self._batch_task = None
        await self._flush_pending()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _enqueue_nowait(self, entry: Any) -> None:
        self._pending.append(entry)
        first = self._first_pending_at is None
        if first:
            self._first_pending_at = time.monotonic()
        if self._wake is not None and (first or len(self._pending) >= self._batch_size):
            self._wake.set()

    async def _enqueue_for_batch(self, entry: Any) -> None:
        self._enqueue_nowait(entry)
        if self._batch_task is None and len(self._pending) >= self._batch_size:
            # Not started: flush inline so size-triggered batches still go out
            await self._flush_pending()

    async def _batch_worker(self) -> None:
        wake = self._wake
        if wake is None:
            return
        try:
            while not self._batch_stopping:
                if len(self._pending) >= self._batch_size:
                    await self._flush_pending()
                    continue
                timeout: float | None = None
                if self._first_pending_at is not None:
                    deadline = self._first_pending_at + self._batch_timeout
                    timeout = deadline - time.monotonic()
                    if timeout <= 0:
                        await self._flush_pending()
                        continue
                try:
                    await asyncio.wait_for(wake.wait(), timeout=timeout)
                except asyncio.TimeoutError:
                    pass  # Timeout expired, loop to check batch deadline
                wake.clear()
        except asyncio.CancelledError:
            return

    async def _flush_pending(self) -> None:
        async with self._flush_lock:
            while self._pending:
                batch = self._pending[: self._batch_size]
                del self._pending[: self._batch_size]
                try:
                    await self._send_batch(batch)
                except Exception as exc:
                    diagnostics.warn(
                        "batching",
                        "batch flush failed",
                        error=str(exc),
                        batch_size=len(batch),
                    )
            self._first_pending_at = None

    async def _send_batch(self, batch: list[Any]) -> None:  # pragma: no cover
        raise NotImplementedError
