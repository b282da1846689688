"""Unit tests for ChangeRecord and ChangeOperation."""

from __future__ import annotations

import dataclasses
import json

import pytest

from sqlite_watcher.models import ChangeOperation, ChangeRecord


def _row(**overrides: object) -> dict[str, object]:
    row: dict[str, object] = {
        "id": 7,
        "table_name": "users",
        "operation": "UPDATE",
        "row_id": 3,
        "changed_data": json.dumps({"id": 3, "name": "b"}),
        "timestamp": 1_700_000_000,
    }
    row.update(overrides)
    return row


def test_from_row_decodes_payload_and_operation() -> None:
    record = ChangeRecord.from_row(_row())
    assert record.sequence_id == 7
    assert record.table == "users"
    assert record.operation is ChangeOperation.UPDATE
    assert record.row_id == 3
    assert record.payload == {"id": 3, "name": "b"}
    assert record.captured_at == 1_700_000_000


def test_from_row_empty_payload_is_empty_dict() -> None:
    assert ChangeRecord.from_row(_row(changed_data="")).payload == {}


def test_from_row_wraps_non_object_payload() -> None:
    assert ChangeRecord.from_row(_row(changed_data="[1, 2]")).payload == {"value": [1, 2]}


def test_from_row_rejects_unknown_operation() -> None:
    with pytest.raises(ValueError):
        ChangeRecord.from_row(_row(operation="TRUNCATE"))


def test_record_is_immutable() -> None:
    record = ChangeRecord(sequence_id=1, table="users", operation=ChangeOperation.INSERT, row_id=1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.table = "other"  # type: ignore[misc]


def test_operation_is_str_enum() -> None:
    assert ChangeOperation("DELETE") is ChangeOperation.DELETE
    assert ChangeOperation.INSERT == "INSERT"
    assert "#1 INSERT on users row 1" in str(
        ChangeRecord(sequence_id=1, table="users", operation=ChangeOperation.INSERT, row_id=1)
    )
