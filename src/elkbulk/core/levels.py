"""Severity levels for shipped log events.

Events carry an :class:`EventLevel`. Its :attr:`EventLevel.label` is the
value written under ``Level`` in every document (``"Information"``,
``"Warning"`` ...). Priorities are aligned with the stdlib ``logging``
numbers so records bridged from ``logging`` keep their ordering.

Example:
    >>> EventLevel.parse("warn")
    <EventLevel.WARNING: 30>
    >>> EventLevel.parse(40).label
    'Error'
"""

from __future__ import annotations

from enum import IntEnum
from typing import Final


class EventLevel(IntEnum):
    """Ordered event severity."""

    VERBOSE = 0
    DEBUG = 10
    INFORMATION = 20
    WARNING = 30
    ERROR = 40
    FATAL = 50

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, value: EventLevel | str | int) -> EventLevel:
        """Resolve a level from an enum, a name or a numeric priority.

        Names are case-insensitive and include the stdlib spellings
        (``INFO``, ``WARN``, ``CRITICAL``). Numeric values resolve to the
        highest level whose priority does not exceed them.

        Raises:
            ValueError: If a name is not a known level.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid level: {value!r}")
        if isinstance(value, int):
            resolved = cls.VERBOSE
            for member in cls:
                if member.value <= value:
                    resolved = member
            return resolved
        name = str(value).strip().upper()
        if name not in _DEFAULT_LEVELS:
            raise ValueError(f"Unknown level '{value}'")
        return cls(_DEFAULT_LEVELS[name])


_LABELS: Final[dict[EventLevel, str]] = {
    EventLevel.VERBOSE: "Verbose",
    EventLevel.DEBUG: "Debug",
    EventLevel.INFORMATION: "Information",
    EventLevel.WARNING: "Warning",
    EventLevel.ERROR: "Error",
    EventLevel.FATAL: "Fatal",
}

_DEFAULT_LEVELS: Final[dict[str, int]] = {
    "VERBOSE": 0,
    "TRACE": 0,  # alias
    "DEBUG": 10,
    "INFORMATION": 20,
    "INFO": 20,  # alias
    "WARNING": 30,
    "WARN": 30,  # alias
    "ERROR": 40,
    "FATAL": 50,
    "CRITICAL": 50,  # alias
}


def get_level_priority(level: EventLevel | str | int) -> int:
    """Get the numeric priority for a level.

    Args:
        level: Level enum, name (case-insensitive) or number.

    Returns:
        Priority value. Unknown names default to INFORMATION (20).
    """
    try:
        return int(EventLevel.parse(level))
    except ValueError:
        return int(EventLevel.INFORMATION)

