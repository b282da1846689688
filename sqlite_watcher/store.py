"""Change log store: the shared table every capture trigger appends to.

Retention is owned here. The ``cleanup_old_watcher_changes`` trigger evicts
rows older than ``retention_seconds`` and everything beyond the newest
``buffer_size`` rows on every insert, and ``drain_batch`` evicts aged-out
rows again before reading. Evicted rows are gone whether or not they were
delivered: retention is a hard cap, and that loss is silent. It is never
reported as an error.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlite_watcher.models import ChangeOperation, ChangeRecord

logger = logging.getLogger(__name__)

CHANGE_LOG_TABLE = "_sqlite_watcher_changes"
CLEANUP_TRIGGER = "cleanup_old_watcher_changes"
NOW_EXPRESSION = "CAST(strftime('%s', 'now') AS INTEGER)"

_SCHEMA_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS {CHANGE_LOG_TABLE} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        table_name TEXT NOT NULL,
        operation TEXT NOT NULL,
        row_id INTEGER NOT NULL,
        changed_data TEXT NOT NULL,
        timestamp INTEGER NOT NULL
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_watcher_changes_timestamp ON {CHANGE_LOG_TABLE}(timestamp)",
    f"CREATE INDEX IF NOT EXISTS idx_watcher_changes_table ON {CHANGE_LOG_TABLE}(table_name)",
)


def build_cleanup_trigger(retention_seconds: int, buffer_size: int) -> str:
    """Cleanup trigger enforcing the age and count bounds on every insert."""
    retention = int(retention_seconds)
    buffer = int(buffer_size)
    if retention < 1 or buffer < 1:
        raise ValueError("retention_seconds and buffer_size must be >= 1")
    return f"""
    CREATE TRIGGER {CLEANUP_TRIGGER}
    AFTER INSERT ON {CHANGE_LOG_TABLE}
    BEGIN
        DELETE FROM {CHANGE_LOG_TABLE}
        WHERE timestamp < {NOW_EXPRESSION} - {retention}
           OR id <= (
               SELECT id FROM {CHANGE_LOG_TABLE}
               ORDER BY id DESC
               LIMIT 1 OFFSET {buffer}
           );
    END
    """


class ChangeLogStore:
    """Schema management and batch access for ``_sqlite_watcher_changes``.

    Every method runs on a connection supplied by the caller, inside the
    caller's transaction.
    """

    def __init__(self, retention_seconds: int = 3600, buffer_size: int = 10000) -> None:
        self.retention_seconds = int(retention_seconds)
        self.buffer_size = int(buffer_size)
        self._cleanup_trigger_sql = build_cleanup_trigger(self.retention_seconds, self.buffer_size)

    async def setup(self, conn: AsyncConnection) -> None:
        """Create the change log, its indexes and the cleanup trigger.

        Idempotent. The cleanup trigger is recreated so it always carries the
        current retention settings.
        """
        for statement in _SCHEMA_STATEMENTS:
            await conn.exec_driver_sql(statement)
        await conn.exec_driver_sql(f"DROP TRIGGER IF EXISTS {CLEANUP_TRIGGER}")
        await conn.exec_driver_sql(self._cleanup_trigger_sql)
        logger.info(
            "Change log ready (retention=%ss, buffer=%d)",
            self.retention_seconds,
            self.buffer_size,
        )

    async def exists(self, conn: AsyncConnection) -> bool:
        result = await conn.execute(
            text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = :name"),
            {"name": CHANGE_LOG_TABLE},
        )
        return result.first() is not None

    async def insert(
        self,
        conn: AsyncConnection,
        table: str,
        operation: ChangeOperation,
        row_id: Any,
        payload: dict[str, Any],
        captured_at: int | None = None,
    ) -> int:
        """Append one record the way a capture trigger would; returns its id."""
        result = await conn.execute(
            text(
                f"INSERT INTO {CHANGE_LOG_TABLE} (table_name, operation, row_id, changed_data, timestamp) "
                f"VALUES (:table_name, :operation, :row_id, :changed_data, COALESCE(:captured_at, {NOW_EXPRESSION}))"
            ),
            {
                "table_name": table,
                "operation": ChangeOperation(operation).value,
                "row_id": row_id,
                "changed_data": json.dumps(payload),
                "captured_at": captured_at,
            },
        )
        return int(result.lastrowid)

    async def evict_expired(self, conn: AsyncConnection) -> int:
        """Delete rows older than the retention window; returns rows removed."""
        result = await conn.execute(
            text(f"DELETE FROM {CHANGE_LOG_TABLE} WHERE timestamp < {NOW_EXPRESSION} - :retention"),
            {"retention": self.retention_seconds},
        )
        evicted = int(result.rowcount or 0)
        if evicted:
            logger.debug("Evicted %d expired change records", evicted)
        return evicted

    async def drain_batch(self, conn: AsyncConnection, limit: int) -> list[ChangeRecord]:
        """Oldest ``limit`` records by sequence id, after evicting expired ones."""
        await self.evict_expired(conn)
        result = await conn.execute(
            text(
                "SELECT id, table_name, operation, row_id, changed_data, timestamp "
                f"FROM {CHANGE_LOG_TABLE} ORDER BY id ASC LIMIT :limit"
            ),
            {"limit": int(limit)},
        )
        return [ChangeRecord.from_row(row) for row in result.mappings().all()]

    async def delete_up_to(self, conn: AsyncConnection, sequence_id: int) -> int:
        """Delete every record with ``id <= sequence_id``; returns rows removed."""
        result = await conn.execute(
            text(f"DELETE FROM {CHANGE_LOG_TABLE} WHERE id <= :sequence_id"),
            {"sequence_id": int(sequence_id)},
        )
        return int(result.rowcount or 0)

    async def size(self, conn: AsyncConnection) -> int:
        result = await conn.execute(text(f"SELECT COUNT(*) FROM {CHANGE_LOG_TABLE}"))
        return int(result.scalar_one())

    async def drop(self, conn: AsyncConnection) -> None:
        """Drop the cleanup trigger and the change log table."""
        await conn.exec_driver_sql(f"DROP TRIGGER IF EXISTS {CLEANUP_TRIGGER}")
        await conn.exec_driver_sql(f"DROP TABLE IF EXISTS {CHANGE_LOG_TABLE}")
        logger.info("Dropped change log %s", CHANGE_LOG_TABLE)
