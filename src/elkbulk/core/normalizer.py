"""
Event normalization: one :class:`LogEvent` to one flat JSON document.

Rules applied to every event:

- properties whose name is a decimal integer (positional template
  placeholders) are dropped, as are names matched by the property filter;
- remaining names are sanitized by removing space, ``:``, ``-`` and ``_``;
- ``Level``, ``@timestamp`` and ``Message`` are always present and carry
  the event's own values; a colliding property never replaces them;
- a message longer than ``MAX_TERM_BYTES`` UTF-8 bytes is truncated with a
  ``[truncated n]`` suffix and ``@truncated`` records ``n``;
- an attached exception is stored under ``Exception`` and its stack trace,
  with GUID-like runs removed, is fingerprinted under
  ``exc_stacktrace_hash`` (MurmurHash3 x64 128-bit, uppercase hex).

Duplicate keys after sanitization keep the first value written.
"""

from __future__ import annotations

import re
from typing import Any, Callable, MutableMapping, TypeVar

import mmh3

from . import diagnostics
from .events import LogEvent, simplify
from .serialization import serialize_mapping_to_json

MAX_TERM_BYTES = 32 * 1024

LEVEL_KEY = "Level"
TIMESTAMP_KEY = "@timestamp"
MESSAGE_KEY = "Message"
TRUNCATED_KEY = "@truncated"
EXCEPTION_KEY = "Exception"
STACKTRACE_HASH_KEY = "exc_stacktrace_hash"

PropertyFilter = Callable[[str], bool]

_UNSAFE_KEY_CHARS = str.maketrans("", "", " :-_")
_POSITIONAL_KEY_RE = re.compile(r"^\s*[+-]?[0-9]+\s*$")
# Runs of 16+ hex/hyphen characters: GUIDs, object ids, correlation ids
_STACKTRACE_FILTER_RE = re.compile(
    r"(([0-9a-f\-][0-9a-f\-]){2}){4,}", re.IGNORECASE | re.MULTILINE
)

K = TypeVar("K")
V = TypeVar("V")


def add_if_absent(mapping: MutableMapping[K, V], key: K, value: V) -> None:
    """Insert ``key`` only when it is not already present."""
    if key in mapping:
        return
    mapping[key] = value


def sanitize_key(key: str) -> str:
    return key.translate(_UNSAFE_KEY_CHARS)


def is_positional_key(key: str) -> bool:
    """Return True for property names that parse as a base-10 integer."""
    return _POSITIONAL_KEY_RE.match(key) is not None


def starts_with_double_underscore(name: str) -> bool:
    """Default property filter: hide ``__``-prefixed (internal) properties."""
    return name.startswith("__")


def prefix_filter(prefix: str) -> PropertyFilter:
    """Build a property filter hiding names that start with ``prefix``."""
    if prefix == "__":
        return starts_with_double_underscore

    def _filter(name: str) -> bool:
        return name.startswith(prefix)

    return _filter


def truncate_message(
    message: str, max_bytes: int = MAX_TERM_BYTES
) -> tuple[str, int | None]:
    """Bound ``message`` to ``max_bytes`` UTF-8 bytes.

    Returns:
        ``(text, removed)`` where ``removed`` is the number of bytes over the
        limit, or ``None`` when the message was left intact. The kept prefix
        is cut on a code point boundary so ``text`` never exceeds
        ``max_bytes`` once encoded.
    """
    encoded = message.encode("utf-8")
    if len(encoded) <= max_bytes:
        return message, None
    removed = len(encoded) - max_bytes
    ending = f"[truncated {removed}]"
    keep = max_bytes - len(ending.encode("utf-8"))
    if keep <= 0:
        # The marker alone does not fit; leave the message alone
        return message, None
    head = encoded[:keep].decode("utf-8", errors="ignore")
    return f"{head}{ending}", removed


def stacktrace_hash(stack_trace: str) -> str:
    """Fingerprint a stack trace, ignoring embedded identifiers."""
    filtered = _STACKTRACE_FILTER_RE.sub("", stack_trace)
    return mmh3.hash_bytes(filtered.encode("utf-8")).hex().upper()


def event_to_json(
    event: LogEvent,
    *,
    property_filter: PropertyFilter | None = None,
    max_term_bytes: int = MAX_TERM_BYTES,
) -> str | None:
    """Normalize ``event`` into a JSON object string.

    Returns:
        The document, or ``None`` when the event could not be extracted or
        serialized. The failure is reported on the diagnostics channel.

    Raises:
        ValueError: If ``event`` is None.
    """
    if event is None:
        raise ValueError("event must not be None")

    payload: dict[str, Any] = {}
    try:
        payload[LEVEL_KEY] = event.level.label
        payload[TIMESTAMP_KEY] = event.timestamp
        message, removed = truncate_message(event.render_message(), max_term_bytes)
        if removed is not None:
            payload[TRUNCATED_KEY] = removed
        payload[MESSAGE_KEY] = message

        if event.exception is not None:
            payload[EXCEPTION_KEY] = str(event.exception)
            stack_trace = event.exception.stack_trace
            if stack_trace is not None:
                payload[STACKTRACE_HASH_KEY] = stacktrace_hash(stack_trace)

        for key, value in event.properties.items():
            if is_positional_key(key):
                continue
            if property_filter is not None and property_filter(key):
                continue
            add_if_absent(payload, sanitize_key(key), simplify(value))

        return serialize_mapping_to_json(payload)
    except Exception as exc:
        diagnostics.warn(
            "normalizer",
            "error extracting json from log event",
            error=str(exc),
            error_type=type(exc).__name__,
        )
    return None


class EventNormalizer:
    """Callable normalizer bound to a property filter and term limit."""

    def __init__(
        self,
        *,
        property_filter: PropertyFilter | None = starts_with_double_underscore,
        max_term_bytes: int = MAX_TERM_BYTES,
    ) -> None:
        self._property_filter = property_filter
        self._max_term_bytes = max_term_bytes

    def __call__(self, event: LogEvent) -> str | None:
        return event_to_json(
            event,
            property_filter=self._property_filter,
            max_term_bytes=self._max_term_bytes,
        )


__all__ = [
    "EventNormalizer",
    "MAX_TERM_BYTES",
    "add_if_absent",
    "event_to_json",
    "is_positional_key",
    "prefix_filter",
    "sanitize_key",
    "stacktrace_hash",
    "starts_with_double_underscore",
    "truncate_message",
]
