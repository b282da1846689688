"""Unit tests for ChangeLogStore against a real SQLite file."""

from __future__ import annotations

import time

import pytest
import pytest_asyncio

from sqlite_watcher.db import Database
from sqlite_watcher.models import ChangeOperation
from sqlite_watcher.store import CHANGE_LOG_TABLE, CLEANUP_TRIGGER, ChangeLogStore, build_cleanup_trigger


@pytest_asyncio.fixture
async def database(db_path: str):
    db = Database(db_path)
    yield db
    await db.dispose()


async def _setup(database: Database, store: ChangeLogStore) -> None:
    async with database.transaction() as conn:
        await store.setup(conn)


def test_cleanup_trigger_rejects_non_positive_bounds() -> None:
    with pytest.raises(ValueError):
        build_cleanup_trigger(0, 10)
    with pytest.raises(ValueError):
        build_cleanup_trigger(10, 0)


def test_cleanup_trigger_keeps_buffer_size_rows() -> None:
    sql = build_cleanup_trigger(60, 25)
    assert f"CREATE TRIGGER {CLEANUP_TRIGGER}" in sql
    assert "LIMIT 1 OFFSET 25" in sql
    assert "- 60" in sql


@pytest.mark.asyncio
async def test_setup_is_idempotent(database: Database) -> None:
    store = ChangeLogStore()
    await _setup(database, store)
    await _setup(database, store)
    async with database.transaction() as conn:
        assert await store.exists(conn)
        assert await store.size(conn) == 0


@pytest.mark.asyncio
async def test_setup_enables_wal(database: Database) -> None:
    await _setup(database, ChangeLogStore())
    async with database.transaction() as conn:
        mode = (await conn.exec_driver_sql("PRAGMA journal_mode")).scalar_one()
    assert str(mode).lower() == "wal"


@pytest.mark.asyncio
async def test_buffer_size_evicts_oldest(database: Database) -> None:
    store = ChangeLogStore(buffer_size=3)
    await _setup(database, store)
    async with database.transaction() as conn:
        for row_id in range(1, 5):
            await store.insert(conn, "users", ChangeOperation.INSERT, row_id, {"id": row_id})
        assert await store.size(conn) == 3
        batch = await store.drain_batch(conn, 10)
    assert [record.row_id for record in batch] == [2, 3, 4]


@pytest.mark.asyncio
async def test_drain_batch_orders_by_sequence_and_limits(database: Database) -> None:
    store = ChangeLogStore()
    await _setup(database, store)
    now = int(time.time())
    async with database.transaction() as conn:
        # Out-of-order timestamps must not affect ordering.
        first = await store.insert(conn, "users", "INSERT", 1, {"id": 1}, captured_at=now)
        second = await store.insert(conn, "users", "UPDATE", 1, {"id": 1}, captured_at=now - 5)
        third = await store.insert(conn, "orders", "DELETE", 9, {"id": 9}, captured_at=now - 10)
        batch = await store.drain_batch(conn, 2)
    assert first < second < third
    assert [record.sequence_id for record in batch] == [first, second]
    assert [record.operation for record in batch] == [ChangeOperation.INSERT, ChangeOperation.UPDATE]


@pytest.mark.asyncio
async def test_expired_records_are_not_drained(database: Database) -> None:
    await _setup(database, ChangeLogStore(retention_seconds=100_000))
    now = int(time.time())
    aged = ChangeLogStore(retention_seconds=60)
    async with database.transaction() as conn:
        await aged.insert(conn, "users", "INSERT", 1, {"id": 1}, captured_at=now - 3600)
        fresh = await aged.insert(conn, "users", "INSERT", 2, {"id": 2}, captured_at=now)
        assert await aged.size(conn) == 2
        batch = await aged.drain_batch(conn, 10)
        assert await aged.size(conn) == 1
    assert [record.sequence_id for record in batch] == [fresh]


@pytest.mark.asyncio
async def test_cleanup_trigger_evicts_on_insert(database: Database) -> None:
    store = ChangeLogStore(retention_seconds=60)
    await _setup(database, store)
    async with database.transaction() as conn:
        await store.insert(conn, "users", "INSERT", 1, {}, captured_at=int(time.time()) - 3600)
        assert await store.size(conn) == 0


@pytest.mark.asyncio
async def test_delete_up_to(database: Database) -> None:
    store = ChangeLogStore()
    await _setup(database, store)
    async with database.transaction() as conn:
        ids = [await store.insert(conn, "users", "INSERT", n, {"id": n}) for n in range(1, 5)]
        assert await store.delete_up_to(conn, ids[1]) == 2
        remaining = await store.drain_batch(conn, 10)
    assert [record.sequence_id for record in remaining] == ids[2:]


@pytest.mark.asyncio
async def test_drop_removes_table_and_trigger(database: Database) -> None:
    store = ChangeLogStore()
    await _setup(database, store)
    async with database.transaction() as conn:
        await store.drop(conn)
        assert not await store.exists(conn)
        result = await conn.exec_driver_sql(
            "SELECT name FROM sqlite_master WHERE name IN (?, ?)",
            (CHANGE_LOG_TABLE, CLEANUP_TRIGGER),
        )
        assert result.all() == []
