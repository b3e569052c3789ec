"""
Plugin utilities for configuration parsing.
"""

from __future__ import annotations

from typing import Any, Mapping, TypeVar

from pydantic import BaseModel

ConfigT = TypeVar("ConfigT", bound=BaseModel)


def parse_plugin_config(
    config_cls: type[ConfigT],
    config: ConfigT | Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> ConfigT:
    """Coerce a config model, a mapping or keyword arguments into ``config_cls``.

    Keyword arguments override values from ``config``. The result is always
    validated by the model.

    Args:
        config_cls: Pydantic model class describing the plugin config
        config: Model instance, mapping, or None
        **kwargs: Field overrides

    Returns:
        Validated config instance
    """
    if isinstance(config, config_cls) and not kwargs:
        return config
    data: dict[str, Any] = {}
    if isinstance(config, BaseModel):
        data.update(config.model_dump())
    elif config is not None:
        data.update(dict(config))
    data.update(kwargs)
    return config_cls(**data)
