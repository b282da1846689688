"""Exceptions raised and reported by sqlite-watcher.

Setup and teardown errors propagate to the caller. Errors raised while
draining are never raised out of the drain loop; they are handed to the
handlers registered with ``SQLiteWatcher.on_error``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlite_watcher.models import ChangeOperation


class WatcherError(Exception):
    """Base exception for sqlite-watcher."""

    pass


class ConfigurationError(WatcherError):
    """Raised when watcher configuration is invalid or missing."""

    pass


class ConfigLoadError(ConfigurationError):
    """Raised when a config file cannot be read as watcher settings."""

    def __init__(self, path: object, message: str) -> None:
        self.path = str(path)
        super().__init__(f"{self.path}: {message}")


class DatabaseClosedError(WatcherError):
    """Raised when a disposed database handle is used before being reopened."""

    pass


class SchemaError(WatcherError):
    """Raised when a watched table is missing or cannot be introspected."""

    def __init__(self, table: str, message: str) -> None:
        self.table = table
        super().__init__(f"Table '{table}': {message}")


class StorageError(WatcherError):
    """Raised when reading or deleting from the change log fails."""

    def __init__(self, action: str, cause: BaseException) -> None:
        self.action = action
        self.cause = cause
        super().__init__(f"Change log {action} failed: {cause}")


class CallbackError(WatcherError):
    """Raised when a subscriber callback or filter fails for one change."""

    def __init__(
        self,
        table: str,
        operation: ChangeOperation,
        sequence_id: int,
        cause: BaseException,
    ) -> None:
        self.table = table
        self.operation = operation
        self.sequence_id = sequence_id
        self.cause = cause
        super().__init__(
            f"Subscriber for {operation.value} on '{table}' "
            f"(change #{sequence_id}) failed: {cause!r}"
        )
