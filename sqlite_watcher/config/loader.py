"""Read watcher settings from a YAML file.

The file holds ``WatcherConfig`` fields either at the root or under a
``watcher:`` section, which lets the settings live in a shared application
config. Keys may use dashes instead of underscores. Any other key in the
watcher section is an error that names the key, so a typo never silently
falls back to a default.
"""

from __future__ import annotations

import difflib
import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from sqlite_watcher.config.models import WatcherConfig
from sqlite_watcher.exceptions import ConfigLoadError

CONFIG_FILENAME = "sqlite_watcher.yaml"
CONFIG_PATH_ENV = "SQLITE_WATCHER_CONFIG"
SECTION = "watcher"


def resolve_config_path(explicit: str | Path | None = None) -> tuple[Path, bool]:
    """Pick the settings file and whether it must exist.

    An explicit path wins, then ``SQLITE_WATCHER_CONFIG``; both must point at
    an existing file. The ``sqlite_watcher.yaml`` in the working directory is
    optional.
    """
    if explicit is not None and str(explicit).strip():
        return Path(str(explicit).strip()), True
    from_env = os.environ.get(CONFIG_PATH_ENV, "").strip()
    if from_env:
        return Path(from_env), True
    return Path.cwd() / CONFIG_FILENAME, False


def read_settings_file(path: str | Path | None = None) -> dict[str, Any]:
    """Return the watcher settings found in the resolved YAML file.

    Raises:
        ConfigLoadError: A required file is missing, the YAML is malformed,
            or the watcher section is not a mapping of known settings.
    """
    target, required = resolve_config_path(path)
    if not target.is_file():
        if required:
            raise ConfigLoadError(target, "config file not found")
        return {}
    try:
        data = yaml.safe_load(target.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark is not None else ""
        raise ConfigLoadError(target, f"invalid YAML{where}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(target, f"expected a mapping at the top level, got {type(data).__name__}")
    return _settings_section(target, data)


def _settings_section(target: Path, data: dict[Any, Any]) -> dict[str, Any]:
    if SECTION in data:
        section = data[SECTION]
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ConfigLoadError(target, f"'{SECTION}' must be a mapping")
    else:
        section = data

    known = set(WatcherConfig.model_fields)
    settings: dict[str, Any] = {}
    for raw_key, value in section.items():
        key = str(raw_key).strip().replace("-", "_")
        if key not in known:
            hint = difflib.get_close_matches(key, sorted(known), n=1)
            suffix = f" (did you mean '{hint[0]}'?)" if hint else ""
            raise ConfigLoadError(target, f"unknown setting '{raw_key}'{suffix}")
        if key in settings:
            raise ConfigLoadError(target, f"setting '{key}' given more than once")
        settings[key] = value
    return settings
