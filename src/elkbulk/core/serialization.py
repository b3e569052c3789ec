"""
JSON encoding for normalized documents.

orjson writes each document straight to UTF-8 bytes in insertion order, so
the reserved keys written first by the normalizer stay first on the wire.
Aware datetimes are emitted as ISO-8601 with their offset.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import orjson

from .errors import ElkBulkError, ErrorCategory, ErrorSeverity, create_error_context


def _default(obj: Any) -> Any:
    # Values reach here already simplified; models are the only expected leftover
    if hasattr(obj, "model_dump"):
        return obj.model_dump(exclude_none=True)
    raise TypeError(f"Cannot encode {type(obj).__name__} as JSON")


@dataclass
class SerializedView:
    """Encoded document bytes."""

    data: bytes

    def to_text(self) -> str:
        return self.data.decode("utf-8")


def serialize_mapping_to_json_bytes(payload: Mapping[str, Any]) -> SerializedView:
    """Encode ``payload`` as a compact JSON object.

    Raises:
        ElkBulkError: With category ``SERIALIZATION`` when a value cannot be
            encoded (unsupported type, integer outside 64 bits, ...).
    """
    try:
        data = orjson.dumps(payload, default=_default)
    except TypeError as exc:
        # orjson.JSONEncodeError subclasses TypeError
        raise ElkBulkError(
            "Serialization failed",
            category=ErrorCategory.SERIALIZATION,
            error_context=create_error_context(
                ErrorCategory.SERIALIZATION,
                ErrorSeverity.HIGH,
                keys=list(payload.keys())[:20],
            ),
            cause=exc,
        ) from exc
    return SerializedView(data=data)


def serialize_mapping_to_json(payload: Mapping[str, Any]) -> str:
    """Encode ``payload`` and return it as text."""
    return serialize_mapping_to_json_bytes(payload).to_text()


__all__ = [
    "SerializedView",
    "serialize_mapping_to_json",
    "serialize_mapping_to_json_bytes",
]
