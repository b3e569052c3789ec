from __future__ import annotations

import pytest

from elkbulk.core.events import LogEvent
from elkbulk.core.levels import EventLevel, get_level_priority
from elkbulk.plugins.filters.level import LevelFilter, LevelFilterConfig


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("Verbose", EventLevel.VERBOSE),
        ("trace", EventLevel.VERBOSE),
        ("DEBUG", EventLevel.DEBUG),
        ("info", EventLevel.INFORMATION),
        ("Information", EventLevel.INFORMATION),
        (" warn ", EventLevel.WARNING),
        ("error", EventLevel.ERROR),
        ("critical", EventLevel.FATAL),
        (EventLevel.ERROR, EventLevel.ERROR),
        (30, EventLevel.WARNING),
        (35, EventLevel.WARNING),
        (5, EventLevel.VERBOSE),
        (99, EventLevel.FATAL),
    ],
)
def test_parse(value: object, expected: EventLevel) -> None:
    assert EventLevel.parse(value) is expected  # type: ignore[arg-type]


@pytest.mark.parametrize("value", ["loud", True])
def test_parse_rejects_unknown(value: object) -> None:
    with pytest.raises(ValueError):
        EventLevel.parse(value)  # type: ignore[arg-type]


def test_labels() -> None:
    assert [level.label for level in EventLevel] == [
        "Verbose",
        "Debug",
        "Information",
        "Warning",
        "Error",
        "Fatal",
    ]


def test_priority_helper() -> None:
    assert get_level_priority("warning") == 30
    assert get_level_priority("WARN") == 30
    assert get_level_priority(EventLevel.FATAL) == 50
    assert get_level_priority("nope") == 20


def test_level_filter_threshold() -> None:
    f = LevelFilter(min_level="warning")
    assert f.accepts(LogEvent.create("a", level="info")) is False
    assert f.accepts(LogEvent.create("b", level="warning")) is True
    assert f.accepts(LogEvent.create("c", level="error")) is True


def test_level_filter_from_config_model() -> None:
    f = LevelFilter(config=LevelFilterConfig(min_level=EventLevel.FATAL))
    assert f.accepts(LogEvent.create("x", level="error")) is False
    assert f.accepts(LogEvent.create("y", level="critical")) is True


def test_level_filter_config_rejects_unknown_level() -> None:
    with pytest.raises(ValueError):
        LevelFilterConfig(min_level="shout")
