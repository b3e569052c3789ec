"""
Bridge from the stdlib ``logging`` module into an ELK sink.

``ElkBulkHandler`` converts each ``LogRecord`` into a :class:`LogEvent` and
schedules it on the sink's event loop, so records can be emitted from any
thread. Records from elkbulk's own loggers are ignored to prevent feedback
loops through the diagnostics channel.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from . import diagnostics
from .events import LogEvent

if TYPE_CHECKING:
    from ..plugins.sinks.elk_bulk import ElkBulkSink

_OWN_LOGGER_PREFIX = "elkbulk"


def _is_own_logger(name: str) -> bool:
    return name == _OWN_LOGGER_PREFIX or name.startswith(_OWN_LOGGER_PREFIX + ".")


class ElkBulkHandler(logging.Handler):
    """``logging.Handler`` forwarding records to an :class:`ElkBulkSink`."""

    def __init__(
        self,
        sink: ElkBulkSink,
        *,
        level: int = logging.NOTSET,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__(level)
        self._sink = sink
        self._loop = loop

    def emit(self, record: logging.LogRecord) -> None:
        if _is_own_logger(record.name):
            return
        try:
            loop = self._loop or self._sink.loop
            if loop is None or loop.is_closed():
                diagnostics.debug(
                    "stdlib-bridge",
                    "sink not running; record dropped",
                    logger=record.name,
                )
                return
            event = LogEvent.from_log_record(record)
            loop.call_soon_threadsafe(self._sink.enqueue_nowait, event)
        except Exception:
            self.handleError(record)


def enable_stdlib_bridge(
    sink: ElkBulkSink,
    *,
    level: int = logging.INFO,
    logger: logging.Logger | None = None,
    remove_existing_handlers: bool = False,
) -> ElkBulkHandler:
    """Install an :class:`ElkBulkHandler` on ``logger`` (root by default).

    The logger's level is lowered to ``level`` when it would otherwise
    filter out records the handler should see.
    """
    target = logger or logging.getLogger()
    if remove_existing_handlers:
        for existing in list(target.handlers):
            target.removeHandler(existing)
    handler = ElkBulkHandler(sink, level=level)
    target.addHandler(handler)
    if target.level == logging.NOTSET or target.level > level:
        target.setLevel(level)
    return handler


def disable_stdlib_bridge(
    handler: ElkBulkHandler, *, logger: logging.Logger | None = None
) -> None:
    target = logger or logging.getLogger()
    target.removeHandler(handler)
    handler.close()


__all__ = ["ElkBulkHandler", "disable_stdlib_bridge", "enable_stdlib_bridge"]
