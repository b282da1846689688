"""Configuration for sqlite-watcher."""

from sqlite_watcher.config.loader import read_settings_file, resolve_config_path
from sqlite_watcher.config.manager import load_config
from sqlite_watcher.config.models import IDENTIFIER_PATTERN, WatcherConfig
from sqlite_watcher.exceptions import ConfigLoadError

__all__ = [
    "ConfigLoadError",
    "IDENTIFIER_PATTERN",
    "WatcherConfig",
    "load_config",
    "read_settings_file",
    "resolve_config_path",
]
