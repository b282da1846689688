"""sqlite-watcher tail: print changes to watched tables as they are delivered."""

from __future__ import annotations

import asyncio
import json

import typer
from rich.console import Console
from rich.markup import escape

from sqlite_watcher.config import WatcherConfig, load_config
from sqlite_watcher.exceptions import WatcherError
from sqlite_watcher.models import ChangeOperation, ChangeRecord
from sqlite_watcher.watcher import SQLiteWatcher

_OPERATION_STYLES = {
    ChangeOperation.INSERT: "green",
    ChangeOperation.UPDATE: "yellow",
    ChangeOperation.DELETE: "red",
}


def format_change(change: ChangeRecord) -> str:
    """Render one change as a single rich-markup line."""
    style = _OPERATION_STYLES[change.operation]
    payload = escape(json.dumps(change.payload, sort_keys=True, default=str))
    return (
        f"[dim]#{change.sequence_id}[/dim] [{style}]{change.operation.value}[/{style}] "
        f"{escape(change.table)} row={escape(str(change.row_id))} {payload}"
    )


async def _tail(config: WatcherConfig, console: Console, *, once: bool, limit: int | None) -> int:
    printed = 0
    done = asyncio.Event()
    watcher = SQLiteWatcher(config)

    def _print(change: ChangeRecord) -> None:
        nonlocal printed
        console.print(format_change(change))
        printed += 1
        if limit is not None and printed >= limit:
            done.set()

    def _print_error(error: Exception) -> None:
        console.print(f"[red]error:[/red] {escape(str(error))}")

    watcher.on_error(_print_error)
    try:
        for table in config.tables:
            (await watcher.watch(table)).on_any(_print)
        if once:
            await watcher.drain()
            return printed
        await watcher.start()
        await done.wait()
    finally:
        await watcher.cleanup(drop_table=False)
    return printed


def tail_command(
    db_path: str = typer.Argument(..., help="SQLite database file."),
    tables: list[str] = typer.Option([], "--table", "-t", help="Table to watch (repeatable)."),
    interval_ms: int | None = typer.Option(None, "--interval-ms", help="Polling interval in milliseconds."),
    batch_size: int | None = typer.Option(None, "--batch-size", help="Max changes per drain tick."),
    config: str | None = typer.Option(None, "--config", help="Optional sqlite_watcher.yaml path."),
    once: bool = typer.Option(False, "--once", help="Drain pending changes once and exit."),
    limit: int | None = typer.Option(None, "--limit", min=1, help="Exit after printing this many changes."),
) -> None:
    """Watch tables and print every change until interrupted."""
    try:
        settings = load_config(
            config,
            overrides={
                "db_path": db_path,
                "tables": list(tables) or None,
                "watch_interval_ms": interval_ms,
                "max_changes_per_batch": batch_size,
            },
        )
    except WatcherError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e
    if not settings.tables:
        typer.echo("Error: pass at least one --table or set tables in the config.", err=True)
        raise typer.Exit(2)

    console = Console()
    if not once:
        console.print(f"Watching {', '.join(settings.tables)} in {escape(settings.db_path)} (Ctrl+C to stop)")
    try:
        asyncio.run(_tail(settings, console, once=once, limit=limit))
    except KeyboardInterrupt:
        console.print("Stopped.")
    except WatcherError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
