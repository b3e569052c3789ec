from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from ...core.events import LogEvent
from .elk_bulk import ElkBulkSink, ElkSinkConfig


@runtime_checkable
class BaseSink(Protocol):
    """Base async sink interface.

    Sinks receive finalized log events from the host and ship them to an
    external destination. Implementations should be non-blocking and
    resilient; delivery errors must be contained and must not propagate to
    the host.
    """

    async def start(self) -> None:  # Optional lifecycle hook
        ...

    async def stop(self) -> None:  # Optional lifecycle hook
        ...

    async def write(self, _event: LogEvent) -> None:  # noqa: ARG002, D401
        """Accept a single event for the next flush."""
        ...

    async def emit_batch(self, _events: Iterable[LogEvent]) -> None:  # noqa: ARG002
        """Deliver one bounded sequence of events and return when done."""
        ...


__all__ = [
    "BaseSink",
    "ElkBulkSink",
    "ElkSinkConfig",
]
