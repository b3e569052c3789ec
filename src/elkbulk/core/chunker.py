"""
Byte-bounded batching of normalized documents into pages.

The chunker keeps a running byte counter (UTF-8 length plus one newline
per document) and checks it *before* adding each document: once the
counter is strictly above ``max_bulk_bytes`` the buffered documents are
emitted as a page and the counter restarts. A page may therefore exceed
the limit by up to one document; the bulk endpoint's own ceiling is
expected to tolerate that overshoot.

The last page is always emitted, even when empty, and is the only one
that receives the optional ``LogglyDiagnostics`` record.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, ClassVar, Iterable, Iterator

from .events import LogEvent
from .normalizer import EventNormalizer
from .serialization import serialize_mapping_to_json

MAX_BULK_BYTES = int(4.5 * 1024 * 1024)

DIAGNOSTICS_EVENT = "LogglyDiagnostics"


@dataclass(frozen=True)
class Page:
    """Immutable bundle of documents delivered in one bulk request."""

    documents: tuple[str, ...]
    byte_count: int
    index: int
    has_diagnostics: bool = False

    content_type: ClassVar[str] = "application/json"

    @property
    def event_count(self) -> int:
        """Number of documents excluding the diagnostic record."""
        return len(self.documents) - (1 if self.has_diagnostics else 0)

    @property
    def body(self) -> str:
        return "\n".join(self.documents)

    @property
    def content(self) -> bytes:
        return self.body.encode("utf-8")

    def __len__(self) -> int:
        return len(self.documents)


def diagnostic_record(count: int, byte_count: int, index: int) -> str:
    """Build the self-describing record appended to the final page."""
    return serialize_mapping_to_json(
        {
            "Event": DIAGNOSTICS_EVENT,
            "Trace": f"EventCount={count}, ByteCount={byte_count}, PageCount={index}",
        }
    )


def package_page(
    documents: list[str],
    byte_count: int,
    index: int,
    include_diagnostics: bool = False,
) -> Page:
    """Freeze ``documents`` into a :class:`Page`.

    With ``include_diagnostics`` the diagnostic record is appended to
    ``documents`` itself before packaging.
    """
    if include_diagnostics:
        documents.append(diagnostic_record(len(documents), byte_count, index))
    return Page(
        documents=tuple(documents),
        byte_count=byte_count,
        index=index,
        has_diagnostics=include_diagnostics,
    )


def chunk_documents(
    documents: Iterable[str | None] | None,
    *,
    max_bulk_bytes: int | float = MAX_BULK_BYTES,
    include_diagnostics: bool = False,
) -> Iterator[Page]:
    """Lazily split documents into byte-bounded pages.

    ``None`` and blank documents are ignored.
    """
    if documents is None:
        return

    byte_count = 0
    index = 0
    chunk: list[str] = []

    for document in documents:
        if document is None or not document.strip():
            continue
        if byte_count > max_bulk_bytes:
            yield package_page(chunk, byte_count, index)
            byte_count = 0
            index += 1
            chunk = []

        byte_count += len(document.encode("utf-8")) + 1
        chunk.append(document)

    yield package_page(chunk, byte_count, index, include_diagnostics)


def chunk_events(
    events: Iterable[LogEvent] | None,
    *,
    normalizer: Callable[[LogEvent], str | None] | None = None,
    max_bulk_bytes: int | float = MAX_BULK_BYTES,
    include_diagnostics: bool = False,
    on_skip: Callable[[], None] | None = None,
) -> Iterator[Page]:
    """Normalize events in order and split the documents into pages.

    Events the normalizer rejects are skipped (``on_skip`` is called for
    each one). A ``None`` event raises ``ValueError`` from the normalizer.
    """
    if events is None:
        return
    normalize = normalizer or EventNormalizer()

    def _documents() -> Iterator[str | None]:
        for event in events:
            document = normalize(event)
            if document is None and on_skip is not None:
                on_skip()
            yield document

    yield from chunk_documents(
        _documents(),
        max_bulk_bytes=max_bulk_bytes,
        include_diagnostics=include_diagnostics,
    )


__all__ = [
    "DIAGNOSTICS_EVENT",
    "MAX_BULK_BYTES",
    "Page",
    "chunk_documents",
    "chunk_events",
    "diagnostic_record",
    "package_page",
]
