"""
Public entrypoints for elkbulk.

elkbulk ships structured log events to an ELK-style bulk endpoint: each
event is normalized into a flat JSON document, documents are grouped into
byte-bounded pages, and every page is POSTed to a dated index.
"""

from __future__ import annotations

from typing import Any

from ._version import __version__
from .core.chunker import MAX_BULK_BYTES, Page, chunk_documents, chunk_events
from .core.errors import ElkBulkError, ErrorCategory
from .core.events import (
    DictionaryValue,
    ExceptionRecord,
    LogEvent,
    ScalarValue,
    SequenceValue,
    StructureValue,
)
from .core.levels import EventLevel
from .core.normalizer import MAX_TERM_BYTES, EventNormalizer, event_to_json
from .core.settings import Settings
from .core.stdlib_bridge import enable_stdlib_bridge
from .metrics.metrics import MetricsCollector
from .plugins.sinks.elk_bulk import ElkBulkSink, ElkSinkConfig

__all__ = [
    "DictionaryValue",
    "ElkBulkError",
    "ElkBulkSink",
    "ElkSinkConfig",
    "ErrorCategory",
    "EventLevel",
    "EventNormalizer",
    "ExceptionRecord",
    "LogEvent",
    "MAX_BULK_BYTES",
    "MAX_TERM_BYTES",
    "MetricsCollector",
    "Page",
    "ScalarValue",
    "SequenceValue",
    "Settings",
    "StructureValue",
    "VERSION",
    "__version__",
    "chunk_documents",
    "chunk_events",
    "create_sink",
    "enable_stdlib_bridge",
    "event_to_json",
]

VERSION = __version__


def create_sink(
    config: ElkSinkConfig | dict | None = None,
    *,
    settings: Settings | None = None,
    metrics: MetricsCollector | None = None,
    **kwargs: Any,
) -> ElkBulkSink:
    """Build an :class:`ElkBulkSink`.

    An explicit ``config`` (model or dict) is used as given, with keyword
    overrides applied on top. Without one, ``ELKBULK_*`` environment
    settings supply the defaults and keyword arguments override them.

    Example:
        >>> sink = create_sink(url="http://elk:9200/logs", index_template="app-")
        >>> await sink.start()
        >>> await sink.write(LogEvent.create("User {UserId} signed in", UserId=42))
        >>> await sink.stop()

    Raises:
        ElkBulkError: If no endpoint URL is configured anywhere.
    """
    cfg = settings or Settings()
    if metrics is None:
        metrics = MetricsCollector(enabled=cfg.core.enable_metrics)
    if config is None:
        return ElkBulkSink(cfg.to_sink_config(**kwargs), metrics=metrics)
    return ElkBulkSink(config, metrics=metrics, **kwargs)
