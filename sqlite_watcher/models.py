"""Change record model shared by the store, drain loop and subscribers."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ChangeOperation(str, Enum):
    """Row-level operation captured by a watcher trigger."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True, slots=True)
class ChangeRecord:
    """One captured row mutation read from the change log.

    ``payload`` holds the row's new values for INSERT/UPDATE and its old
    values for DELETE. ``captured_at`` is a unix timestamp in seconds and is
    only meaningful for retention; ordering always uses ``sequence_id``.
    """

    sequence_id: int
    table: str
    operation: ChangeOperation
    row_id: Any
    payload: dict[str, Any] = field(default_factory=dict)
    captured_at: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ChangeRecord:
        """Build a record from a ``_sqlite_watcher_changes`` row mapping."""
        raw = row["changed_data"]
        payload = json.loads(raw) if raw else {}
        if not isinstance(payload, dict):
            payload = {"value": payload}
        return cls(
            sequence_id=int(row["id"]),
            table=str(row["table_name"]),
            operation=ChangeOperation(row["operation"]),
            row_id=row["row_id"],
            payload=payload,
            captured_at=int(row["timestamp"]),
        )

    def __str__(self) -> str:
        return f"ChangeRecord(#{self.sequence_id} {self.operation.value} on {self.table} row {self.row_id})"
