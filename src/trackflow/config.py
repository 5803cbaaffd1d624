"""Config file loading and auto-discovery for Trackflow.

Searches for ``trackflow.yaml`` in the current directory and parent
directories, parses it, and resolves relative paths against the config
file's location.

Example::

    data_dir: ./data
    plans: ./plans.yaml
    default_tier: free
    notifications:
      webhook_url: https://hooks.example.com/trackflow
      log_events: true
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from trackflow.models import Tier

CONFIG_FILENAME = "trackflow.yaml"


class ConfigError(ValueError):
    """Raised when a config file exists but cannot be used."""


@dataclass(frozen=True)
class TrackflowConfig:
    """Parsed Trackflow project configuration."""

    config_path: Path | None = None
    data_dir: str | None = None
    plans: str | None = None
    default_tier: Tier | None = None
    notifications: dict[str, Any] | None = None


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``trackflow.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> TrackflowConfig:
    """Load a Trackflow config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Return an empty ``TrackflowConfig`` (all defaults).
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    if config_path is None:
        return TrackflowConfig()

    return _parse_config(config_path)


def _parse_config(config_path: Path) -> TrackflowConfig:
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ConfigError(msg)

    base = config_path.parent

    def _resolve(key: str) -> str | None:
        val = data.get(key)
        if val is None:
            return None
        return str((base / val).resolve())

    default_tier = data.get("default_tier")
    if default_tier is not None:
        try:
            default_tier = Tier(default_tier)
        except ValueError as e:
            raise ConfigError(
                f"Unknown default_tier '{default_tier}' in {config_path}"
            ) from e

    notifications = data.get("notifications")
    if notifications is not None and not isinstance(notifications, dict):
        raise ConfigError(f"'notifications' must be a mapping in {config_path}")

    return TrackflowConfig(
        config_path=config_path,
        data_dir=_resolve("data_dir"),
        plans=_resolve("plans"),
        default_tier=default_tier,
        notifications=notifications,
    )
