"""Build a validated ``WatcherConfig`` from YAML, environment and overrides."""

from __future__ import annotations

import json
import os
from typing import Any

from pydantic import ValidationError

from sqlite_watcher.config.loader import read_settings_file
from sqlite_watcher.config.models import WatcherConfig
from sqlite_watcher.exceptions import ConfigurationError

ENV_PREFIX = "SQLITE_WATCHER_"


def _coerce_env_value(raw: str) -> Any:
    value = raw.strip()
    lowered = value.lower()
    if lowered in {"null", "none"}:
        return None
    if value.startswith("[") or value.startswith("{"):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _collect_env_overrides(prefix: str = ENV_PREFIX) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    fields = set(WatcherConfig.model_fields)
    for key, raw_value in os.environ.items():
        if not key.startswith(prefix):
            continue
        name = key[len(prefix) :].strip().lower()
        if name in fields:
            overrides[name] = _coerce_env_value(raw_value)
    return overrides


def load_config(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> WatcherConfig:
    """Load configuration from YAML + environment + runtime overrides.

    Later sources win: the YAML file is overridden by ``SQLITE_WATCHER_*``
    environment variables, which are overridden by ``overrides``. Keys whose
    override value is ``None`` are ignored.

    Raises:
        ConfigLoadError: The settings file is missing, malformed or holds
            unknown keys.
        ConfigurationError: The merged settings fail validation.
    """
    merged: dict[str, Any] = read_settings_file(config_path)
    merged.update(_collect_env_overrides())
    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})
    try:
        return WatcherConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid watcher configuration: {exc}") from exc
