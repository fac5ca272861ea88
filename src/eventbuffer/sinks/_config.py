from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel

ConfigT = TypeVar("ConfigT", bound=BaseModel)


def parse_sink_config(
    config_cls: type[ConfigT],
    config: ConfigT | dict[str, Any] | None,
    **kwargs: Any,
) -> ConfigT:
    """Coerce a config model, a dict or keyword arguments into ``config_cls``."""
    if isinstance(config, config_cls):
        if kwargs:
            return config_cls.model_validate({**config.model_dump(), **kwargs})
        return config
    data: dict[str, Any] = dict(config or {})
    data.update(kwargs)
    return config_cls.model_validate(data)
