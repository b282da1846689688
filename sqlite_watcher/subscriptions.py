"""Per-table subscriber sets and the builder applications register through."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from sqlite_watcher.exceptions import CallbackError
from sqlite_watcher.models import ChangeOperation, ChangeRecord

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeRecord], Awaitable[Any] | Any]
ChangePredicate = Callable[[ChangeRecord], Awaitable[bool] | bool]
ErrorSink = Callable[[Exception], Awaitable[None]]


@dataclass(slots=True)
class SubscriberSet:
    """Callbacks registered for one table, one list per operation tag."""

    insert: list[ChangeCallback] = field(default_factory=list)
    update: list[ChangeCallback] = field(default_factory=list)
    delete: list[ChangeCallback] = field(default_factory=list)
    wildcard: list[ChangeCallback] = field(default_factory=list)
    predicate: ChangePredicate | None = None

    def callbacks_for(self, operation: ChangeOperation) -> list[ChangeCallback]:
        """Callbacks that fire for ``operation``, wildcard ones included."""
        if operation is ChangeOperation.INSERT:
            specific = self.insert
        elif operation is ChangeOperation.UPDATE:
            specific = self.update
        elif operation is ChangeOperation.DELETE:
            specific = self.delete
        else:  # pragma: no cover - ChangeOperation is exhaustive
            raise ValueError(f"unknown operation: {operation!r}")
        return [*specific, *self.wildcard]

    def clear(self) -> None:
        self.insert.clear()
        self.update.clear()
        self.delete.clear()
        self.wildcard.clear()
        self.predicate = None

    def __len__(self) -> int:
        return len(self.insert) + len(self.update) + len(self.delete) + len(self.wildcard)


class TableWatcher:
    """Chainable registration handle returned by ``SQLiteWatcher.watch``.

    Example::

        (await watcher.watch("users"))
            .on_insert(send_welcome)
            .on_delete(archive)
            .filter(lambda change: change.payload.get("active") == 1)
    """

    def __init__(self, table: str, *, callback_timeout: float | None = None) -> None:
        self.table = table
        self.subscribers = SubscriberSet()
        self._callback_timeout = callback_timeout

    def on_insert(self, callback: ChangeCallback) -> TableWatcher:
        self.subscribers.insert.append(callback)
        return self

    def on_update(self, callback: ChangeCallback) -> TableWatcher:
        self.subscribers.update.append(callback)
        return self

    def on_delete(self, callback: ChangeCallback) -> TableWatcher:
        self.subscribers.delete.append(callback)
        return self

    def on_any(self, callback: ChangeCallback) -> TableWatcher:
        self.subscribers.wildcard.append(callback)
        return self

    def filter(self, predicate: ChangePredicate | None) -> TableWatcher:
        """Set the predicate gating every callback. Replaces any earlier one."""
        self.subscribers.predicate = predicate
        return self

    async def handle_change(self, record: ChangeRecord, on_error: ErrorSink | None = None) -> bool:
        """Dispatch one record to the matching callbacks.

        Matching callbacks run concurrently and are all awaited. A failing
        callback is reported through ``on_error`` as ``CallbackError`` and
        does not affect its siblings. Returns False when the filter rejected
        the record (or failed), True otherwise.
        """
        predicate = self.subscribers.predicate
        if predicate is not None:
            try:
                accepted = await self._resolve(predicate(record))
            except Exception as exc:
                await self._report(on_error, record, exc)
                return False
            if not accepted:
                return False

        callbacks = self.subscribers.callbacks_for(record.operation)
        if not callbacks:
            return True
        outcomes = await asyncio.gather(
            *(self._invoke(callback, record) for callback in callbacks),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                await self._report(on_error, record, outcome)
        return True

    def clear(self) -> None:
        self.subscribers.clear()

    async def _invoke(self, callback: ChangeCallback, record: ChangeRecord) -> None:
        result = callback(record)
        if not inspect.isawaitable(result):
            return
        if self._callback_timeout is None:
            await result
        else:
            await asyncio.wait_for(result, timeout=self._callback_timeout)

    @staticmethod
    async def _resolve(value: Awaitable[bool] | bool) -> bool:
        if inspect.isawaitable(value):
            value = await value
        return bool(value)

    async def _report(self, on_error: ErrorSink | None, record: ChangeRecord, exc: Exception) -> None:
        error = CallbackError(self.table, record.operation, record.sequence_id, exc)
        if on_error is None:
            logger.warning("%s", error)
            return
        await on_error(error)

    def __repr__(self) -> str:
        return f"TableWatcher(table={self.table!r}, callbacks={len(self.subscribers)})"


class SubscriptionRegistry:
    """Table name -> ``TableWatcher`` map owned by one ``SQLiteWatcher``.

    Lookups ignore case, like SQLite's own name resolution. Each
    ``TableWatcher.table`` keeps the name as declared in the schema.
    """

    def __init__(self, *, callback_timeout: float | None = None) -> None:
        self._watchers: dict[str, TableWatcher] = {}
        self._callback_timeout = callback_timeout

    def get_or_create(self, table: str) -> TableWatcher:
        key = table.lower()
        watcher = self._watchers.get(key)
        if watcher is None:
            watcher = TableWatcher(table, callback_timeout=self._callback_timeout)
            self._watchers[key] = watcher
        else:
            watcher.table = table
        return watcher

    def get(self, table: str) -> TableWatcher | None:
        return self._watchers.get(table.lower())

    def remove(self, table: str) -> TableWatcher | None:
        return self._watchers.pop(table.lower(), None)

    def snapshot(self) -> dict[str, TableWatcher]:
        """Shallow copy handed to one drain tick, keyed by lower-cased name."""
        return dict(self._watchers)

    @property
    def tables(self) -> list[str]:
        return [watcher.table for watcher in self._watchers.values()]

    def clear(self) -> None:
        for watcher in self._watchers.values():
            watcher.clear()
        self._watchers.clear()

    def __contains__(self, table: object) -> bool:
        return isinstance(table, str) and table.lower() in self._watchers

    def __len__(self) -> int:
        return len(self._watchers)
