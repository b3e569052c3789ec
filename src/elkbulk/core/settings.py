"""
Environment-driven configuration using Pydantic v2 Settings.

The host may build :class:`~elkbulk.plugins.sinks.elk_bulk.ElkSinkConfig`
directly; :class:`Settings` exists for hosts that prefer to configure the
sink through ``ELKBULK_*`` environment variables, e.g.
``ELKBULK_SINK__URL=http://elk:9200/logs`` or
``ELKBULK_CORE__INTERNAL_LOGGING_ENABLED=false``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (  # type: ignore[import-not-found]
    BaseSettings,
    SettingsConfigDict,
)

from .errors import ElkBulkError, ErrorCategory, create_error_context
from .levels import EventLevel

if TYPE_CHECKING:
    from ..plugins.sinks.elk_bulk import ElkSinkConfig

# Keep explicit version to allow schema gating and forward migrations later
LATEST_CONFIG_SCHEMA_VERSION = "1.0"


class CoreSettings(BaseModel):
    """Process-wide behavior of the library itself."""

    # Structured internal diagnostics for non-fatal errors (normalizer/sink)
    internal_logging_enabled: bool = Field(
        default=True,
        description=("Emit WARN/DEBUG diagnostics for recovered failures"),
    )
    enable_metrics: bool = Field(
        default=False,
        description=("Enable Prometheus-compatible metrics"),
    )


class SinkSettings(BaseModel):
    """Environment-expressible subset of the ELK sink configuration."""

    url: str | None = Field(
        default=None, description="Base URL of the bulk endpoint"
    )
    index_template: str = Field(
        default="logstash-",
        description="Index name prefix; the UTC date is appended",
    )
    append_index: bool = Field(
        default=True,
        description="Append the current UTC date (yyyy.MM.dd) to the index",
    )
    auth_key: str | None = Field(default=None, description="Authorization key")
    auth_scheme: str = Field(default="ELK", description="Authorization scheme")
    batch_limit: int = Field(
        default=100,
        ge=1,
        description="Maximum number of events per flush before a flush is triggered",
    )
    period_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Maximum time to wait before flushing a partial batch",
    )
    restricted_to_min_level: str = Field(
        default="Verbose", description="Minimum level forwarded to the backend"
    )
    timeout_seconds: float = Field(
        default=120.0, gt=0.0, description="Per-request timeout"
    )
    include_diagnostics: bool = Field(
        default=False,
        description="Append a LogglyDiagnostics record to the last page",
    )
    ignored_property_prefix: str | None = Field(
        default="__",
        description="Properties whose name starts with this prefix are dropped",
    )

    @field_validator("restricted_to_min_level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        return EventLevel.parse(value).label


class Settings(BaseSettings):
    """Top-level configuration model with versioning."""

    schema_version: str = Field(default=LATEST_CONFIG_SCHEMA_VERSION)

    core: CoreSettings = Field(default_factory=CoreSettings)
    sink: SinkSettings = Field(default_factory=SinkSettings)

    model_config = SettingsConfigDict(
        env_prefix="ELKBULK_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    def to_sink_config(self, **overrides: Any) -> ElkSinkConfig:
        """Build the sink configuration from these settings.

        Raises:
            ElkBulkError: With category ``CONFIG`` when no URL is configured.
        """
        from ..plugins.sinks.elk_bulk import ElkSinkConfig
        from .normalizer import prefix_filter

        values = self.sink.model_dump(exclude={"ignored_property_prefix"})
        prefix = self.sink.ignored_property_prefix
        values["property_filter"] = prefix_filter(prefix) if prefix else None
        values.update(overrides)
        if not values.get("url"):
            raise ElkBulkError(
                "No bulk endpoint URL configured (set ELKBULK_SINK__URL)",
                category=ErrorCategory.CONFIG,
                error_context=create_error_context(ErrorCategory.CONFIG),
            )
        return ElkSinkConfig(**values)

    def to_dict(self) -> dict[str, object]:
        from typing import cast

        return cast(
            dict[str, object],
            self.model_dump(by_alias=True, exclude_none=True),
        )
