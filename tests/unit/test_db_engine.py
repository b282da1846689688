"""Unit tests for the SQLite database handle."""

from __future__ import annotations

import pytest

from sqlite_watcher.db import Database
from sqlite_watcher.db.engine import _normalize_url
from sqlite_watcher.exceptions import ConfigurationError, DatabaseClosedError


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("app.db", "sqlite+aiosqlite:///app.db"),
        (" /var/data/app.db ", "sqlite+aiosqlite:////var/data/app.db"),
        (":memory:", "sqlite+aiosqlite://"),
        ("sqlite:///app.db", "sqlite+aiosqlite:///app.db"),
        ("sqlite+aiosqlite:///app.db", "sqlite+aiosqlite:///app.db"),
    ],
)
def test_normalize_url(value: str, expected: str) -> None:
    assert _normalize_url(value) == expected


@pytest.mark.parametrize("value", ["", "   ", "postgresql://localhost/app"])
def test_normalize_url_rejects(value: str) -> None:
    with pytest.raises(ConfigurationError):
        _normalize_url(value)


@pytest.mark.asyncio
async def test_disposed_handle_refuses_transactions(db_path: str) -> None:
    database = Database(db_path)
    async with database.transaction() as conn:
        assert (await conn.exec_driver_sql("SELECT 1")).scalar_one() == 1
    assert database.is_open

    await database.dispose()
    assert database.is_closed
    assert not database.is_open
    with pytest.raises(DatabaseClosedError):
        async with database.transaction():
            pass
    assert not database.is_open

    database.open()
    async with database.transaction() as conn:
        assert (await conn.exec_driver_sql("SELECT 1")).scalar_one() == 1
    await database.dispose()


@pytest.mark.asyncio
async def test_transactions_roll_back_on_error(db_path: str) -> None:
    database = Database(db_path)
    with pytest.raises(RuntimeError):
        async with database.transaction() as conn:
            await conn.exec_driver_sql("INSERT INTO users (id, name) VALUES (1, 'a')")
            raise RuntimeError("abort")
    async with database.transaction() as conn:
        assert (await conn.exec_driver_sql("SELECT COUNT(*) FROM users")).scalar_one() == 0
    await database.dispose()
