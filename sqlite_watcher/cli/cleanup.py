"""sqlite-watcher cleanup: remove capture triggers left behind by a watcher."""

from __future__ import annotations

import asyncio

import typer

from sqlite_watcher.cli.status import ensure_database_file
from sqlite_watcher.db.engine import Database
from sqlite_watcher.exceptions import WatcherError
from sqlite_watcher.store import ChangeLogStore
from sqlite_watcher.triggers import (
    remove_all_capture_triggers,
    remove_capture_triggers,
    validate_table_name,
)


async def _cleanup(db_path: str, tables: list[str], drop_table: bool) -> list[str]:
    database = Database(db_path)
    try:
        async with database.transaction() as conn:
            if tables:
                for table in tables:
                    await remove_capture_triggers(conn, table)
                removed = list(tables)
            else:
                removed = await remove_all_capture_triggers(conn)
            if drop_table:
                await ChangeLogStore().drop(conn)
    finally:
        await database.dispose()
    return removed


def cleanup_command(
    db_path: str = typer.Argument(..., help="SQLite database file."),
    tables: list[str] = typer.Option([], "--table", "-t", help="Only clean up these tables (repeatable)."),
    drop_table: bool = typer.Option(False, "--drop-table", help="Also drop the change log table."),
) -> None:
    """Remove capture triggers (all of them unless --table is given)."""
    ensure_database_file(db_path)
    try:
        for table in tables:
            validate_table_name(table)
        removed = asyncio.run(_cleanup(db_path, list(tables), drop_table))
    except WatcherError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e
    if tables:
        typer.echo(f"Removed capture triggers for: {', '.join(removed)}")
    else:
        typer.echo(f"Removed {len(removed)} capture trigger(s).")
    if drop_table:
        typer.echo("Dropped change log table.")
