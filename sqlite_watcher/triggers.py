"""Capture trigger generation and installation.

Each watched table gets three AFTER triggers that append one row per
mutation to the change log. Trigger text is produced by
``build_capture_triggers``, a pure function of the introspected schema; the
async helpers around it read the schema and apply the DDL on a connection
owned by the caller.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlite_watcher.config.models import IDENTIFIER_PATTERN
from sqlite_watcher.exceptions import SchemaError
from sqlite_watcher.models import ChangeOperation
from sqlite_watcher.store import CHANGE_LOG_TABLE, NOW_EXPRESSION

logger = logging.getLogger(__name__)

TRIGGER_PREFIX = "_sqlite_watcher_"
WITHOUT_ROWID_PATTERN = re.compile(r"\bWITHOUT\s+ROWID\b", re.IGNORECASE)

# Row image each operation captures: post-mutation for INSERT/UPDATE,
# pre-mutation for DELETE.
_ROW_REFERENCE = {
    ChangeOperation.INSERT: "new",
    ChangeOperation.UPDATE: "new",
    ChangeOperation.DELETE: "old",
}


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    """One column as reported by ``PRAGMA table_info``."""

    name: str
    data_type: str = ""
    pk_position: int = 0


@dataclass(frozen=True, slots=True)
class TableSchema:
    """Schema description a capture trigger set is generated from."""

    name: str
    columns: tuple[ColumnInfo, ...] = ()
    without_rowid: bool = False

    @property
    def primary_keys(self) -> list[str]:
        keyed = sorted((c for c in self.columns if c.pk_position > 0), key=lambda c: c.pk_position)
        return [c.name for c in keyed]

    @property
    def key_column(self) -> str | None:
        """Declared primary key when it is a single column, else None."""
        keys = self.primary_keys
        return keys[0] if len(keys) == 1 else None


def validate_table_name(table: str) -> str:
    """Return ``table`` if it is safe to embed in trigger names and SQL."""
    if not isinstance(table, str) or not IDENTIFIER_PATTERN.match(table):
        raise SchemaError(str(table), "invalid table name; expected letters, digits and underscores")
    lowered = table.lower()
    if lowered == CHANGE_LOG_TABLE or lowered.startswith("sqlite_"):
        raise SchemaError(table, "internal tables cannot be watched")
    return table


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def capture_trigger_names(table: str) -> dict[ChangeOperation, str]:
    """Names of the three capture triggers for ``table``."""
    return {
        operation: f"{TRIGGER_PREFIX}{table}_{operation.value.lower()}"
        for operation in ChangeOperation
    }


def _row_id_expression(schema: TableSchema, ref: str) -> str:
    key = schema.key_column
    if key is None:
        return f"{ref}.rowid"
    column = f"{ref}.{quote_identifier(key)}"
    if schema.without_rowid:
        return column
    return f"COALESCE({column}, {ref}.rowid)"


def _payload_expression(schema: TableSchema, ref: str) -> str:
    if not schema.columns:
        return "json_object()"
    pairs = []
    for column in schema.columns:
        value = f"{ref}.{quote_identifier(column.name)}"
        # json_object() rejects BLOB arguments.
        pairs.append(
            f"{quote_literal(column.name)}, "
            f"CASE WHEN typeof({value}) = 'blob' THEN hex({value}) ELSE {value} END"
        )
    body = ",\n            ".join(pairs)
    return f"json_object(\n            {body}\n        )"


def build_capture_triggers(schema: TableSchema) -> list[str]:
    """Generate the INSERT, UPDATE and DELETE capture trigger statements."""
    table = validate_table_name(schema.name)
    if schema.without_rowid and schema.key_column is None:
        raise SchemaError(table, "WITHOUT ROWID table needs a single-column primary key")
    names = capture_trigger_names(table)
    statements = []
    for operation in ChangeOperation:
        ref = _ROW_REFERENCE[operation]
        statements.append(
            f"CREATE TRIGGER {quote_identifier(names[operation])}\n"
            f"AFTER {operation.value} ON {quote_identifier(table)}\n"
            "BEGIN\n"
            f"    INSERT INTO {CHANGE_LOG_TABLE} (table_name, operation, row_id, changed_data, timestamp)\n"
            f"    VALUES (\n"
            f"        {quote_literal(table)},\n"
            f"        {quote_literal(operation.value)},\n"
            f"        {_row_id_expression(schema, ref)},\n"
            f"        {_payload_expression(schema, ref)},\n"
            f"        {NOW_EXPRESSION}\n"
            "    );\n"
            "END"
        )
    return statements


async def introspect_table(conn: AsyncConnection, table: str) -> TableSchema:
    """Read the columns and key layout of ``table``.

    SQLite resolves table names case-insensitively; the returned schema
    carries the name as declared, which is what triggers and subscribers are
    keyed on.

    Raises:
        SchemaError: The name is not allowed or the table does not exist.
    """
    validate_table_name(table)
    result = await conn.execute(
        text("SELECT name, sql FROM sqlite_master WHERE type = 'table' AND name = :name COLLATE NOCASE"),
        {"name": table},
    )
    row = result.first()
    if row is None:
        raise SchemaError(table, "table does not exist")
    name, create_sql = str(row[0]), row[1]
    validate_table_name(name)
    result = await conn.execute(
        text("SELECT name, type, pk FROM pragma_table_info(:name) ORDER BY cid"),
        {"name": name},
    )
    columns = tuple(
        ColumnInfo(name=str(column), data_type=str(data_type or ""), pk_position=int(pk or 0))
        for column, data_type, pk in result.all()
    )
    return TableSchema(
        name=name,
        columns=columns,
        without_rowid=bool(create_sql and WITHOUT_ROWID_PATTERN.search(create_sql)),
    )


async def install_capture_triggers(conn: AsyncConnection, table: str) -> TableSchema:
    """(Re)install the capture triggers for ``table``.

    Returns the introspected schema; ``schema.name`` is the table name as
    declared, whatever case ``table`` was given in.

    Existing capture triggers are dropped first, so repeated installs never
    produce duplicate change records. Run this inside one transaction; a
    failure then leaves no partial trigger set behind.
    """
    schema = await introspect_table(conn, table)
    statements = build_capture_triggers(schema)
    await remove_capture_triggers(conn, schema.name)
    for statement in statements:
        await conn.exec_driver_sql(statement)
    logger.debug(
        "Installed capture triggers on %s (key=%s, columns=%d)",
        schema.name,
        schema.key_column or "rowid",
        len(schema.columns),
    )
    return schema


async def remove_capture_triggers(conn: AsyncConnection, table: str) -> None:
    """Drop the capture triggers for ``table``; no-op when absent."""
    validate_table_name(table)
    for name in capture_trigger_names(table).values():
        await conn.exec_driver_sql(f"DROP TRIGGER IF EXISTS {quote_identifier(name)}")


async def list_capture_triggers(conn: AsyncConnection) -> dict[str, list[str]]:
    """Installed capture triggers grouped by the table they are attached to."""
    result = await conn.execute(
        text(
            r"SELECT tbl_name, name FROM sqlite_master "
            r"WHERE type = 'trigger' AND name LIKE '\_sqlite\_watcher\_%' ESCAPE '\' "
            r"ORDER BY tbl_name, name"
        )
    )
    grouped: dict[str, list[str]] = {}
    for table, name in result.all():
        grouped.setdefault(str(table), []).append(str(name))
    return grouped


async def remove_all_capture_triggers(conn: AsyncConnection) -> list[str]:
    """Drop every capture trigger in the database; returns the names dropped."""
    dropped = []
    for names in (await list_capture_triggers(conn)).values():
        for name in names:
            await conn.exec_driver_sql(f"DROP TRIGGER IF EXISTS {quote_identifier(name)}")
            dropped.append(name)
    return dropped
