"""sqlite-watcher status: change log size and installed capture triggers."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sqlite_watcher.db.engine import MEMORY_PATH, Database
from sqlite_watcher.exceptions import WatcherError
from sqlite_watcher.store import CHANGE_LOG_TABLE, ChangeLogStore
from sqlite_watcher.triggers import list_capture_triggers


def ensure_database_file(db_path: str) -> None:
    """Exit with code 2 when a file path does not exist, so it is never created."""
    if db_path.strip() == MEMORY_PATH or "://" in db_path:
        return
    if not Path(db_path).exists():
        typer.echo(f"Error: database not found: {db_path}", err=True)
        raise typer.Exit(2)


async def _collect_status(db_path: str) -> dict[str, Any]:
    database = Database(db_path)
    store = ChangeLogStore()
    try:
        async with database.transaction() as conn:
            exists = await store.exists(conn)
            size = await store.size(conn) if exists else 0
            triggers = await list_capture_triggers(conn)
    finally:
        await database.dispose()
    return {"change_log": exists, "pending": size, "triggers": triggers}


def _print_status(db_path: str, info: dict[str, Any]) -> None:
    console = Console()
    console.print(f"Database: {escape(db_path)}")
    if info["change_log"]:
        console.print(f"Change log: {CHANGE_LOG_TABLE} ({info['pending']} pending)")
    else:
        console.print("Change log: not installed")
    if not info["triggers"]:
        console.print("No capture triggers installed.")
        return
    table = Table(title="Watched tables", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Triggers", style="dim")
    for name in sorted(info["triggers"]):
        table.add_row(name, "\n".join(info["triggers"][name]))
    console.print(table)


def status_command(
    db_path: str = typer.Argument(..., help="SQLite database file."),
) -> None:
    """Show the change log size and which tables have capture triggers."""
    ensure_database_file(db_path)
    try:
        info = asyncio.run(_collect_status(db_path))
    except WatcherError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e
    _print_status(db_path, info)
