"""
Internal diagnostics channel.

Non-fatal problems inside the pipeline (a malformed event, a failed page
delivery) are reported here instead of being raised to the host. Records
go to the stdlib logger ``elkbulk.diagnostics`` so the host application's
logging configuration decides where they end up. They are never written to
the outbound bulk stream.

Emission is gated by ``core.internal_logging_enabled``; the setting is read
once and cached for the lifetime of the process.
"""

from __future__ import annotations

import logging
from typing import Any

LOGGER_NAME = "elkbulk.diagnostics"

_logger = logging.getLogger(LOGGER_NAME)

# Cached settings lookup; None means "not read yet"
_internal_logging_enabled: bool | None = None


def _is_enabled() -> bool:
    global _internal_logging_enabled
    if _internal_logging_enabled is None:
        try:
            from .settings import Settings

            _internal_logging_enabled = bool(Settings().core.internal_logging_enabled)
        except Exception:
            _internal_logging_enabled = True
    return _internal_logging_enabled


def _reset_cache() -> None:
    """Forget the cached enablement flag (for testing only)."""
    global _internal_logging_enabled
    _internal_logging_enabled = None


def _format_fields(fields: dict[str, Any]) -> str:
    return " ".join(f"{k}={v!r}" for k, v in fields.items())


def _emit(level: int, component: str, message: str, fields: dict[str, Any]) -> None:
    if not _is_enabled():
        return
    try:
        payload = {"component": component, "message": message, **fields}
        if fields:
            _logger.log(
                level,
                "[%s] %s %s",
                component,
                message,
                _format_fields(fields),
                extra={"diagnostic": payload},
            )
        else:
            _logger.log(
                level,
                "[%s] %s",
                component,
                message,
                extra={"diagnostic": payload},
            )
    except Exception:
        # Diagnostics must never break the caller
        pass


def warn(component: str, message: str, **fields: Any) -> None:
    """Report a recovered failure."""
    _emit(logging.WARNING, component, message, fields)


def debug(component: str, message: str, **fields: Any) -> None:
    _emit(logging.DEBUG, component, message, fields)


__all__ = ["LOGGER_NAME", "warn", "debug"]
