"""Polling drain loop delivering change records to subscribers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextvars import ContextVar

from sqlalchemy.ext.asyncio import AsyncConnection

from sqlite_watcher.db.engine import Database
from sqlite_watcher.exceptions import SchemaError, StorageError
from sqlite_watcher.store import ChangeLogStore
from sqlite_watcher.subscriptions import ErrorSink, SubscriptionRegistry, TableWatcher
from sqlite_watcher.triggers import capture_trigger_names, list_capture_triggers

logger = logging.getLogger(__name__)

_active_tick: ContextVar[DrainLoop | None] = ContextVar("sqlite_watcher_active_tick", default=None)


class DrainLoop:
    """Read, dispatch and delete batches of change records on a timer.

    At most one tick runs at a time. When the timer fires while a tick is
    still in flight, that firing is skipped. A tick deletes its batch only
    after every record in it has been dispatched, so a crash in between
    redelivers the batch.

    Watched tables whose capture triggers disappeared are looked for on
    ticks that read records and on every ``schema_check_every``-th tick, so
    an idle tick only touches the change log.
    """

    def __init__(
        self,
        *,
        database: Database,
        store: ChangeLogStore,
        registry: SubscriptionRegistry,
        on_error: ErrorSink,
        interval_seconds: float = 1.0,
        batch_size: int = 1000,
        schema_check_every: int = 10,
    ) -> None:
        self._database = database
        self._store = store
        self._registry = registry
        self._on_error = on_error
        self.interval_seconds = float(interval_seconds)
        self.batch_size = int(batch_size)
        self.schema_check_every = max(1, int(schema_check_every))
        self._ticks = 0
        self._timer: asyncio.Task[None] | None = None
        self._current: asyncio.Task[int] | None = None
        self._missing_tables: set[str] = set()
        self.skipped_ticks = 0

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def is_draining(self) -> bool:
        return self._current is not None and not self._current.done()

    @property
    def in_tick(self) -> bool:
        """True when called from code running inside this loop's tick."""
        return _active_tick.get() is self

    def start(self) -> None:
        """Start the timer. Must be called from a running event loop."""
        if self.is_running:
            return
        self._timer = asyncio.create_task(self._run(), name="sqlite-watcher-timer")
        logger.info("Drain loop started (interval=%.3fs, batch=%d)", self.interval_seconds, self.batch_size)

    async def stop(self) -> None:
        """Cancel the timer and wait for an in-flight tick to finish."""
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
            logger.info("Drain loop stopped")
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait for the in-flight tick, unless called from inside it."""
        current = self._current
        if current is None or current.done() or self.in_tick:
            return
        await asyncio.shield(current)

    async def tick(self) -> int:
        """Run one tick now; returns the number of records processed.

        Returns 0 without doing anything when a tick is already in flight.
        """
        if self.is_draining:
            self.skipped_ticks += 1
            logger.debug("Drain tick already in flight; skipping")
            return 0
        self._current = asyncio.create_task(self._run_tick(), name="sqlite-watcher-drain")
        return await asyncio.shield(self._current)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            if self.is_draining:
                self.skipped_ticks += 1
                logger.debug("Drain tick still in flight; skipping timer firing")
                continue
            self._current = asyncio.create_task(self._run_tick(), name="sqlite-watcher-drain")

    async def _run_tick(self) -> int:
        _active_tick.set(self)
        try:
            return await self._drain_once()
        except Exception as exc:  # pragma: no cover - _drain_once reports its own failures
            logger.exception("Unexpected drain tick failure: %s", exc)
            return 0

    async def _drain_once(self) -> int:
        try:
            async with self._database.transaction() as conn:
                # Registry changes happen under the same lock, so the snapshot
                # and the installed triggers agree.
                snapshot = self._registry.snapshot()
                batch = await self._store.drain_batch(conn, self.batch_size)
                check_schema = bool(snapshot) and (bool(batch) or self._ticks % self.schema_check_every == 0)
                missing = await self._find_missing_tables(conn, snapshot) if check_schema else None
        except Exception as exc:
            await self._on_error(StorageError("read", exc))
            return 0
        finally:
            self._ticks += 1

        if missing is not None:
            await self._report_missing_tables(missing)
        if not batch:
            return 0

        logger.debug("Draining %d change records (#%d..#%d)", len(batch), batch[0].sequence_id, batch[-1].sequence_id)
        for record in batch:
            watcher = snapshot.get(record.table.lower())
            if watcher is None:
                # Unwatched between capture and drain.
                continue
            await watcher.handle_change(record, self._on_error)

        try:
            async with self._database.transaction() as conn:
                await self._store.delete_up_to(conn, batch[-1].sequence_id)
        except Exception as exc:
            await self._on_error(StorageError("delete", exc))
        return len(batch)

    @staticmethod
    async def _find_missing_tables(conn: AsyncConnection, snapshot: dict[str, TableWatcher]) -> set[str]:
        installed = {
            table.lower(): {name.lower() for name in names}
            for table, names in (await list_capture_triggers(conn)).items()
        }
        missing = set()
        for key, watcher in snapshot.items():
            expected = {name.lower() for name in capture_trigger_names(watcher.table).values()}
            if not expected <= installed.get(key, set()):
                missing.add(watcher.table)
        return missing

    async def _report_missing_tables(self, missing: set[str]) -> None:
        newly_missing = sorted(missing - self._missing_tables)
        self._missing_tables = missing
        for table in newly_missing:
            await self._on_error(
                SchemaError(table, "capture triggers are gone; the table was dropped or renamed while watched")
            )
