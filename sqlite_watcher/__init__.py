"""sqlite-watcher: trigger-based change data capture for SQLite."""

from sqlite_watcher.config import WatcherConfig, load_config
from sqlite_watcher.exceptions import (
    CallbackError,
    ConfigLoadError,
    ConfigurationError,
    DatabaseClosedError,
    SchemaError,
    StorageError,
    WatcherError,
)
from sqlite_watcher.models import ChangeOperation, ChangeRecord
from sqlite_watcher.store import ChangeLogStore
from sqlite_watcher.subscriptions import SubscriberSet, SubscriptionRegistry, TableWatcher
from sqlite_watcher.watcher import SQLiteWatcher

__all__ = [
    "CallbackError",
    "ChangeLogStore",
    "ChangeOperation",
    "ChangeRecord",
    "ConfigLoadError",
    "ConfigurationError",
    "DatabaseClosedError",
    "SQLiteWatcher",
    "SchemaError",
    "StorageError",
    "SubscriberSet",
    "SubscriptionRegistry",
    "TableWatcher",
    "WatcherConfig",
    "WatcherError",
    "load_config",
]
