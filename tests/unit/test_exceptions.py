"""Unit tests for the sqlite-watcher exception hierarchy."""

from __future__ import annotations

from sqlite_watcher.exceptions import (
    CallbackError,
    ConfigLoadError,
    ConfigurationError,
    DatabaseClosedError,
    SchemaError,
    StorageError,
    WatcherError,
)
from sqlite_watcher.models import ChangeOperation


def test_all_errors_share_base() -> None:
    for exc_type in (ConfigurationError, SchemaError, StorageError, CallbackError, DatabaseClosedError):
        assert issubclass(exc_type, WatcherError)


def test_schema_error_names_table() -> None:
    error = SchemaError("orders", "table does not exist")
    assert error.table == "orders"
    assert str(error) == "Table 'orders': table does not exist"


def test_storage_error_keeps_cause() -> None:
    cause = RuntimeError("disk I/O error")
    error = StorageError("read", cause)
    assert error.action == "read"
    assert error.cause is cause
    assert "Change log read failed" in str(error)
    assert "disk I/O error" in str(error)


def test_callback_error_carries_change_context() -> None:
    cause = KeyError("email")
    error = CallbackError("users", ChangeOperation.INSERT, 42, cause)
    assert error.table == "users"
    assert error.operation is ChangeOperation.INSERT
    assert error.sequence_id == 42
    assert error.cause is cause
    message = str(error)
    assert "INSERT" in message
    assert "'users'" in message
    assert "#42" in message


def test_config_load_error_is_a_configuration_error() -> None:
    error = ConfigLoadError("/etc/sqlite_watcher.yaml", "unknown setting 'tabels'")
    assert isinstance(error, ConfigurationError)
    assert error.path == "/etc/sqlite_watcher.yaml"
    assert str(error) == "/etc/sqlite_watcher.yaml: unknown setting 'tabels'"
