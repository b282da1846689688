"""SQLiteWatcher: lifecycle controller tying store, triggers and drain loop together."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any

from pydantic import ValidationError

from sqlite_watcher.config.models import WatcherConfig
from sqlite_watcher.db.engine import Database
from sqlite_watcher.drain import DrainLoop
from sqlite_watcher.exceptions import ConfigurationError, WatcherError
from sqlite_watcher.store import ChangeLogStore
from sqlite_watcher.subscriptions import SubscriptionRegistry, TableWatcher
from sqlite_watcher.triggers import install_capture_triggers, remove_capture_triggers, validate_table_name

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[Exception], Awaitable[None] | None]


def _build_config(config: WatcherConfig | str, overrides: dict[str, Any]) -> WatcherConfig:
    try:
        if isinstance(config, WatcherConfig):
            if not overrides:
                return config
            return WatcherConfig.model_validate({**config.model_dump(), **overrides})
        return WatcherConfig(db_path=config, **overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid watcher configuration: {exc}") from exc


class SQLiteWatcher:
    """Watch SQLite tables for row changes and deliver them to callbacks.

    Changes made by any connection or process are captured by triggers into
    the shared ``_sqlite_watcher_changes`` table and delivered in order by a
    polling drain loop. Delivery is at-least-once: a batch is deleted only
    after all of its records were dispatched.

    Errors raised while draining go to the handlers registered with
    ``on_error``. With no handler registered they are only logged.

    Example::

        async with SQLiteWatcher("app.db", watch_interval_ms=200) as watcher:
            (await watcher.watch("users")).on_insert(handle_new_user)
            await watcher.start()
            ...
    """

    def __init__(self, config: WatcherConfig | str, **overrides: Any) -> None:
        self.config = _build_config(config, overrides)
        self._database = Database(self.config.db_path)
        self._store = ChangeLogStore(
            retention_seconds=self.config.retention_seconds,
            buffer_size=self.config.buffer_size,
        )
        self._registry = SubscriptionRegistry(callback_timeout=self.config.callback_timeout_seconds)
        self._error_handlers: list[ErrorCallback] = []
        self._drain = DrainLoop(
            database=self._database,
            store=self._store,
            registry=self._registry,
            on_error=self._report_error,
            interval_seconds=self.config.watch_interval_seconds,
            batch_size=self.config.max_changes_per_batch,
        )
        self._initialized = False

    async def initialize(self) -> None:
        """Create the change log and cleanup trigger once per open handle."""
        if self._initialized:
            return
        self._database.open()
        async with self._database.transaction() as conn:
            await self._store.setup(conn)
        self._initialized = True
        logger.info("Watcher initialized for %s", self.config.db_path)

    async def watch(self, table: str) -> TableWatcher:
        """Start capturing ``table`` and return its registration builder.

        Calling this again for the same table reinstalls its triggers and
        returns the same builder. Names are matched case-insensitively, as
        SQLite does; the builder is keyed on the name as declared.

        Raises:
            SchemaError: The table does not exist or cannot be captured; no
                trigger is left installed.
        """
        validate_table_name(table)
        await self.initialize()
        async with self._database.transaction() as conn:
            schema = await install_capture_triggers(conn, table)
            is_new = schema.name not in self._registry
            watcher = self._registry.get_or_create(schema.name)
        if is_new:
            logger.info("Watching table %s", schema.name)
        return watcher

    async def unwatch(self, table: str) -> None:
        """Stop capturing ``table`` and drop its subscribers; no-op if unwatched.

        A tick already dispatching records for the table finishes doing so.
        """
        registered = self._registry.get(table)
        if registered is None:
            return
        async with self._database.transaction() as conn:
            await remove_capture_triggers(conn, registered.table)
            self._registry.remove(registered.table)
        logger.info("Stopped watching table %s", registered.table)

    async def start(self) -> SQLiteWatcher:
        """Watch the configured tables and start the drain loop."""
        await self.initialize()
        for table in self.config.tables:
            if table not in self._registry:
                await self.watch(table)
        self._drain.start()
        return self

    async def stop(self) -> SQLiteWatcher:
        """Stop the drain loop, letting an in-flight tick finish."""
        await self._drain.stop()
        return self

    async def drain(self) -> int:
        """Run one drain tick immediately; returns records processed."""
        await self.initialize()
        return await self._drain.tick()

    def on_error(self, handler: ErrorCallback) -> SQLiteWatcher:
        """Register a handler for errors raised while draining."""
        if handler not in self._error_handlers:
            self._error_handlers.append(handler)
        return self

    def is_watching(self, table: str) -> bool:
        return table in self._registry

    @property
    def watched_tables(self) -> list[str]:
        return self._registry.tables

    @property
    def is_running(self) -> bool:
        return self._drain.is_running

    async def has_change_log_table(self) -> bool:
        """Whether the change log exists. Raises ``DatabaseClosedError`` after cleanup."""
        async with self._database.transaction() as conn:
            return await self._store.exists(conn)

    async def get_change_log_size(self) -> int:
        """Number of undelivered records in the change log.

        Raises ``DatabaseClosedError`` after ``cleanup()`` until the watcher is
        initialized again.
        """
        async with self._database.transaction() as conn:
            return await self._store.size(conn)

    async def cleanup(self, drop_table: bool = False) -> None:
        """Stop, remove every capture trigger and close the database handle.

        With ``drop_table`` the change log and its cleanup trigger are
        dropped too; otherwise undelivered records stay for a later watcher.

        Raises:
            WatcherError: Called from a subscriber callback. The tick running
                that callback still has to delete its batch, so call
                ``stop()`` there and clean up once it returns.
        """
        if self._drain.in_tick:
            raise WatcherError("cleanup() cannot run inside a drain tick; call stop() from the callback instead")
        await self.stop()
        self._database.open()
        tables = self._registry.tables
        try:
            if tables or drop_table:
                async with self._database.transaction() as conn:
                    for table in tables:
                        await remove_capture_triggers(conn, table)
                    if drop_table:
                        await self._store.drop(conn)
        finally:
            self._registry.clear()
            await self._database.dispose()
            self._initialized = False
        logger.info(
            "Watcher cleaned up (%d table(s) unwatched, change log %s)",
            len(tables),
            "dropped" if drop_table else "kept",
        )

    async def _report_error(self, error: Exception) -> None:
        if not self._error_handlers:
            logger.warning("Unhandled watcher error: %s", error)
            return
        for handler in list(self._error_handlers):
            try:
                result = handler(error)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.exception("Watcher error handler %r failed: %s", handler, exc)

    async def __aenter__(self) -> SQLiteWatcher:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.cleanup(drop_table=False)
