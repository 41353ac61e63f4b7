"""Persistent client defaults stored in ``~/.sse-eventsource/config.toml``."""

from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib

import tomli_w

from .types import EventSourceConfig

CONFIG_DIR = Path.home() / ".sse-eventsource"
CONFIG_FILE = CONFIG_DIR / "config.toml"


def load_raw(path: Path = CONFIG_FILE) -> Dict[str, Any]:
    """Read the config file, returning an empty dict if it doesn't exist."""
    if not path.exists():
        return {}
    with open(path, "rb") as f:
        return tomllib.load(f)


def save_raw(cfg: Dict[str, Any], path: Path = CONFIG_FILE) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        tomli_w.dump(cfg, f)


def set_nested(cfg: Dict[str, Any], dotted_key: str, value: Any) -> None:
    """Set a value in a nested dict using a dotted key like 'default.retry_interval_ms'."""
    parts = dotted_key.split(".")
    d = cfg
    for part in parts[:-1]:
        d = d.setdefault(part, {})
    d[parts[-1]] = value


def coerce_value(dotted_key: str, value: str) -> Any:
    """TOML keeps types: store numeric input as an integer only for integer settings."""
    field = EventSourceConfig.model_fields.get(dotted_key.rsplit(".", 1)[-1])
    if field is not None and field.annotation is int and value.isascii() and value.isdigit():
        return int(value)
    return value


def load_config(path: Path = CONFIG_FILE, **overrides: Optional[Any]) -> EventSourceConfig:
    """Build an :class:`EventSourceConfig` from the ``[default]`` section.

    Keyword overrides that are not None take precedence over the file.
    """
    values = dict(load_raw(path).get("default", {}))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return EventSourceConfig(**values)
