"""
Log event model consumed by the shipping pipeline.

A :class:`LogEvent` is supplied by the host (directly or through the stdlib
bridge) and is read-only to elkbulk. Property values form a closed tagged
variant (:class:`ScalarValue`, :class:`SequenceValue`,
:class:`StructureValue`, :class:`DictionaryValue`) which :func:`simplify`
turns into a JSON-primitive tree.
"""

from __future__ import annotations

import base64
import dataclasses
import logging
import re
import traceback
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any, Iterable, Mapping, Union
from uuid import UUID

from .levels import EventLevel


@dataclass(frozen=True)
class ScalarValue:
    value: Any


@dataclass(frozen=True)
class SequenceValue:
    elements: tuple[PropertyValue, ...] = ()


@dataclass(frozen=True)
class StructureValue:
    properties: tuple[tuple[str, PropertyValue], ...] = ()
    type_tag: str | None = None


@dataclass(frozen=True)
class DictionaryValue:
    elements: tuple[tuple[ScalarValue, PropertyValue], ...] = ()


PropertyValue = Union[ScalarValue, SequenceValue, StructureValue, DictionaryValue]

_PROPERTY_VALUE_TYPES = (ScalarValue, SequenceValue, StructureValue, DictionaryValue)

# Marker for members dropped because they close a reference cycle
_ELIDED = object()

# Containers below this depth are rendered as text; orjson stops at 255 levels
MAX_SIMPLIFY_DEPTH = 200

_INT_MIN = -(2**63)
_INT_MAX = 2**64 - 1


def to_property_value(obj: Any) -> PropertyValue:
    """Lift a plain Python object into a :data:`PropertyValue`.

    Mappings become dictionaries and list-likes become sequences; other
    objects are kept as scalars and expanded by :func:`simplify`. Containers
    that reference one of their ancestors are elided.
    """
    lifted = _lift(obj, set())
    if lifted is _ELIDED:  # pragma: no cover - a root cannot be its own ancestor
        return ScalarValue(None)
    return lifted


def _lift(obj: Any, active: set[int]) -> Any:
    if isinstance(obj, _PROPERTY_VALUE_TYPES):
        return obj
    if isinstance(obj, Mapping):
        oid = id(obj)
        if oid in active:
            return _ELIDED
        active.add(oid)
        try:
            pairs = []
            for k, v in obj.items():
                lifted = _lift(v, active)
                if lifted is not _ELIDED:
                    pairs.append((ScalarValue(k), lifted))
            return DictionaryValue(tuple(pairs))
        finally:
            active.discard(oid)
    if isinstance(obj, (list, tuple, set, frozenset)):
        oid = id(obj)
        if oid in active:
            return _ELIDED
        active.add(oid)
        try:
            items = []
            for item in obj:
                lifted = _lift(item, active)
                if lifted is not _ELIDED:
                    items.append(lifted)
            return SequenceValue(tuple(items))
        finally:
            active.discard(oid)
    return ScalarValue(obj)


def simplify(value: PropertyValue | Any) -> Any:
    """Convert a property value into JSON-compatible primitives.

    Structures become mappings (with ``$type`` when tagged), dictionaries
    become mappings with string keys and sequences become lists. Scalars
    holding arbitrary objects are expanded to their public attributes.
    Reference cycles are detected and the closing member is dropped, and
    containers nested deeper than ``MAX_SIMPLIFY_DEPTH`` are replaced by
    their text. Integers outside the 64-bit range become strings.
    """
    result = _simplify(value, set(), 0)
    return None if result is _ELIDED else result


def _simplify(value: Any, active: set[int], depth: int) -> Any:
    if isinstance(value, ScalarValue):
        return _simplify(value.value, active, depth)
    if isinstance(value, _PROPERTY_VALUE_TYPES) and depth >= MAX_SIMPLIFY_DEPTH:
        return render_value(value)
    if isinstance(value, SequenceValue):
        out_list = []
        for element in value.elements:
            item = _simplify(element, active, depth + 1)
            if item is not _ELIDED:
                out_list.append(item)
        return out_list
    if isinstance(value, StructureValue):
        out: dict[str, Any] = {}
        if value.type_tag:
            out["$type"] = value.type_tag
        for name, member in value.properties:
            item = _simplify(member, active, depth + 1)
            if item is not _ELIDED:
                out[name] = item
        return out
    if isinstance(value, DictionaryValue):
        out = {}
        for key, member in value.elements:
            item = _simplify(member, active, depth + 1)
            if item is not _ELIDED:
                out[_key_text(_simplify(key, active, depth + 1))] = item
        return out
    return _simplify_object(value, active, depth)


def _key_text(key: Any) -> str:
    if key is None:
        return "null"
    if isinstance(key, str):
        return key
    return str(key)


def _simplify_object(obj: Any, active: set[int], depth: int) -> Any:
    if isinstance(obj, Enum):
        return obj.name
    if isinstance(obj, int) and not isinstance(obj, bool):
        if _INT_MIN <= obj <= _INT_MAX:
            return obj
        return str(obj)
    if obj is None or isinstance(obj, (bool, float, str)):
        return obj
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal, PurePath)):
        return str(obj)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if depth >= MAX_SIMPLIFY_DEPTH:
        return _truncated_text(obj)

    oid = id(obj)
    if oid in active:
        return _ELIDED
    active.add(oid)
    try:
        if isinstance(obj, Mapping):
            out: dict[str, Any] = {}
            for k, v in obj.items():
                item = _simplify(v, active, depth + 1)
                if item is not _ELIDED:
                    out[_key_text(_simplify(k, active, depth + 1))] = item
            return out
        if isinstance(obj, (list, tuple, set, frozenset)):
            items = []
            for element in obj:
                item = _simplify(element, active, depth + 1)
                if item is not _ELIDED:
                    items.append(item)
            return items
        if hasattr(obj, "model_dump") and not isinstance(obj, type):
            return _simplify_members(obj.model_dump().items(), active, depth)
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            members = ((f.name, getattr(obj, f.name)) for f in dataclasses.fields(obj))
            return _simplify_members(members, active, depth)
        attrs = getattr(obj, "__dict__", None)
        if isinstance(attrs, dict):
            public = ((k, v) for k, v in attrs.items() if not k.startswith("_"))
            return _simplify_members(public, active, depth)
        return str(obj)
    finally:
        active.discard(oid)


def _simplify_members(
    members: Iterable[tuple[str, Any]], active: set[int], depth: int
) -> dict:
    out: dict[str, Any] = {}
    for name, member in members:
        item = _simplify(member, active, depth + 1)
        if item is not _ELIDED:
            out[str(name)] = item
    return out


def _truncated_text(obj: Any) -> str:
    try:
        return repr(obj)
    except Exception:
        return f"<{type(obj).__name__}>"


@dataclass(frozen=True)
class ExceptionRecord:
    """Error attached to an event.

    ``str(record)`` is the full formatted representation written under
    ``Exception``; ``stack_trace`` alone feeds the fingerprint hash.
    """

    type_name: str
    message: str
    stack_trace: str | None = None
    formatted: str | None = None

    def __str__(self) -> str:
        if self.formatted is not None:
            return self.formatted
        text = f"{self.type_name}: {self.message}"
        if self.stack_trace:
            text = f"{text}\n{self.stack_trace}"
        return text

    @classmethod
    def from_exception(cls, exc: BaseException) -> ExceptionRecord:
        exc_type = type(exc)
        module = exc_type.__module__
        type_name = exc_type.__qualname__
        if module and module != "builtins":
            type_name = f"{module}.{type_name}"
        tb = exc.__traceback__
        stack_trace = "".join(traceback.format_tb(tb)) if tb is not None else None
        formatted = "".join(traceback.format_exception(exc_type, exc, tb)).rstrip("\n")
        return cls(
            type_name=type_name,
            message=str(exc),
            stack_trace=stack_trace or None,
            formatted=formatted,
        )


# {{ and }} are escapes; {Name}, {@Name}, {$Name}, {Name,-10}, {Name:fmt}
_TOKEN_RE = re.compile(
    r"\{\{|\}\}|\{(?P<hint>[@$]?)(?P<name>[A-Za-z0-9_]+)"
    r"(?:,(?P<align>[+-]?\d+))?(?::(?P<fmt>[^{}]*))?\}"
)


def render_value(value: PropertyValue, fmt: str | None = None) -> str:
    """Render a property value the way it appears inside a message."""
    if isinstance(value, ScalarValue):
        raw = value.value
        if raw is None:
            return "null"
        if isinstance(raw, str):
            return raw if fmt == "l" else f'"{raw}"'
        if fmt and fmt != "l":
            try:
                return format(raw, fmt)
            except (TypeError, ValueError):
                return str(raw)
        return str(raw)
    if isinstance(value, SequenceValue):
        return "[" + ", ".join(render_value(e) for e in value.elements) + "]"
    if isinstance(value, StructureValue):
        members = ", ".join(f"{n}: {render_value(v)}" for n, v in value.properties)
        prefix = f"{value.type_tag} " if value.type_tag else ""
        return f"{prefix}{{ {members} }}" if members else f"{prefix}{{ }}"
    if isinstance(value, DictionaryValue):
        pairs = ", ".join(
            f"({render_value(k)}: {render_value(v)})" for k, v in value.elements
        )
        return f"[{pairs}]"
    return str(value)


def _align(text: str, align: str | None) -> str:
    if not align:
        return text
    width = int(align)
    if width < 0:
        return text.ljust(-width)
    return text.rjust(width)


@dataclass(frozen=True)
class LogEvent:
    """Structured log event supplied by the host.

    Plain Python property values are lifted with :func:`to_property_value`
    and a live exception is captured as an :class:`ExceptionRecord`.
    Naive timestamps are taken to be UTC.
    """

    timestamp: datetime
    level: EventLevel
    message_template: str
    properties: Mapping[str, PropertyValue] = field(default_factory=dict)
    exception: ExceptionRecord | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.timestamp, datetime):
            raise ValueError("Timestamp must be a datetime object")
        if self.timestamp.tzinfo is None:
            object.__setattr__(
                self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc)
            )
        object.__setattr__(self, "level", EventLevel.parse(self.level))
        props = {
            str(k): v if isinstance(v, _PROPERTY_VALUE_TYPES) else to_property_value(v)
            for k, v in (self.properties or {}).items()
        }
        object.__setattr__(self, "properties", props)
        if isinstance(self.exception, BaseException):
            object.__setattr__(
                self, "exception", ExceptionRecord.from_exception(self.exception)
            )

    @classmethod
    def create(
        cls,
        message_template: str,
        *,
        level: EventLevel | str | int = EventLevel.INFORMATION,
        exception: ExceptionRecord | BaseException | None = None,
        timestamp: datetime | None = None,
        **properties: Any,
    ) -> LogEvent:
        """Convenience constructor stamping the current UTC time."""
        return cls(
            timestamp=timestamp or datetime.now(timezone.utc),
            level=level,  # type: ignore[arg-type]
            message_template=message_template,
            properties=properties,
            exception=exception,  # type: ignore[arg-type]
        )

    def render_message(self) -> str:
        """Render the message template against the event's properties.

        Tokens without a matching property are left as written.
        """

        def _replace(match: re.Match[str]) -> str:
            token = match.group(0)
            if token == "{{":
                return "{"
            if token == "}}":
                return "}"
            value = self.properties.get(match.group("name"))
            if value is None:
                return token
            return _align(render_value(value, match.group("fmt")), match.group("align"))

        return _TOKEN_RE.sub(_replace, self.message_template)

    @classmethod
    def from_log_record(cls, record: logging.LogRecord) -> LogEvent:
        """Build an event from a stdlib ``logging`` record.

        Record extras become properties and the logger name is kept under
        ``SourceContext``. The ``%``-formatted message is pre-rendered.
        """
        message = record.getMessage()
        template = message.replace("{", "{{").replace("}", "}}")
        properties: dict[str, Any] = {"SourceContext": record.name}
        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_ATTRS or key.startswith("_"):
                continue
            properties[key] = value
        exception = None
        if record.exc_info and record.exc_info[1] is not None:
            exception = ExceptionRecord.from_exception(record.exc_info[1])
        return cls(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
            level=EventLevel.parse(record.levelno),
            message_template=template,
            properties=properties,
            exception=exception,
        )


_STANDARD_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}


__all__ = [
    "DictionaryValue",
    "MAX_SIMPLIFY_DEPTH",
    "ExceptionRecord",
    "LogEvent",
    "PropertyValue",
    "ScalarValue",
    "SequenceValue",
    "StructureValue",
    "render_value",
    "simplify",
    "to_property_value",
]
