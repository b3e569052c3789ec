from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from ...core.events import LogEvent
from ...core.levels import EventLevel, get_level_priority
from ..utils import parse_plugin_config


class LevelFilterConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    min_level: EventLevel = EventLevel.VERBOSE

    @field_validator("min_level", mode="before")
    @classmethod
    def _parse_level(cls, value: Any) -> EventLevel:
        return EventLevel.parse(value)


class LevelFilter:
    """Accept events at or above a minimum level."""

    def __init__(
        self, *, config: LevelFilterConfig | dict | None = None, **kwargs: Any
    ) -> None:
        cfg = parse_plugin_config(LevelFilterConfig, config, **kwargs)
        self._min_priority = get_level_priority(cfg.min_level)

    def accepts(self, event: LogEvent) -> bool:
        return get_level_priority(event.level) >= self._min_priority


# Mark Pydantic validators as used for vulture
_VULTURE_USED: tuple[object, ...] = (LevelFilterConfig._parse_level,)
