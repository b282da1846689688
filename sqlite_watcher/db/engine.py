"""Async database handle for the watched SQLite file."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from sqlite_watcher.exceptions import ConfigurationError, DatabaseClosedError

MEMORY_PATH = ":memory:"


def _normalize_url(db_path: str) -> str:
    """Turn a file path or sqlite URL into a sqlite+aiosqlite URL."""
    value = db_path.strip()
    if not value:
        raise ConfigurationError("Database path must be non-empty.")
    if value == MEMORY_PATH:
        return "sqlite+aiosqlite://"
    if value.startswith("sqlite+aiosqlite://"):
        return value
    if value.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + value[len("sqlite://") :]
    if "://" in value:
        raise ConfigurationError(
            "Database URL must be SQLite (a file path, sqlite:// or sqlite+aiosqlite://)."
        )
    return f"sqlite+aiosqlite:///{value}"


def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
    # Let SQLAlchemy's begin event own transaction boundaries so that trigger
    # DDL runs inside the same transaction as the statements around it.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
    finally:
        cursor.close()


def _on_begin(conn: Any) -> None:
    conn.exec_driver_sql("BEGIN")


def create_engine(
    db_path: str,
    *,
    busy_timeout: float = 5.0,
    echo: bool = False,
) -> AsyncEngine:
    """Create the single-connection async engine used by a watcher.

    Args:
        db_path: File path, ``:memory:``, or a sqlite URL.
        busy_timeout: Seconds to wait on a lock held by another writer.
        echo: Log SQL (for development).

    Returns:
        AsyncEngine whose pool holds exactly one connection, opened in WAL
        journal mode with ``synchronous=NORMAL``.

    Raises:
        ConfigurationError: Path missing or not a SQLite URL.
    """
    engine = create_async_engine(
        _normalize_url(db_path),
        poolclass=StaticPool,
        connect_args={"timeout": busy_timeout},
        echo=echo,
    )
    event.listen(engine.sync_engine, "connect", _on_connect)
    event.listen(engine.sync_engine, "begin", _on_begin)
    return engine


class Database:
    """Owns one engine and serializes this process's transactions on it.

    After ``dispose()`` the handle refuses new transactions until ``open()``
    is called, so nothing silently reconnects behind a closed watcher.
    """

    def __init__(self, db_path: str, *, busy_timeout: float = 5.0, echo: bool = False) -> None:
        self.db_path = db_path
        self.url = _normalize_url(db_path)
        self._busy_timeout = busy_timeout
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_engine(self.db_path, busy_timeout=self._busy_timeout, echo=self._echo)
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        """Allow transactions again after ``dispose()``; the engine opens lazily."""
        self._closed = False

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Yield a connection inside one transaction.

        Commits on success, rolls back on exception. Only one transaction
        from this handle is active at a time.

        Raises:
            DatabaseClosedError: The handle was disposed and not reopened.
        """
        async with self._lock:
            if self._closed:
                raise DatabaseClosedError(f"Database handle for {self.db_path} is closed")
            async with self.engine.begin() as conn:
                yield conn

    async def dispose(self) -> None:
        """Close the connection and refuse further transactions."""
        async with self._lock:
            self._closed = True
            if self._engine is not None:
                await self._engine.dispose()
                self._engine = None
