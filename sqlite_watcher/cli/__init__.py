"""CLI tools: sqlite-watcher tail, sqlite-watcher status, sqlite-watcher cleanup."""

import logging
from importlib import metadata

import typer

from sqlite_watcher.cli.cleanup import cleanup_command
from sqlite_watcher.cli.status import status_command
from sqlite_watcher.cli.tail import tail_command

app = typer.Typer(
    name="sqlite-watcher",
    help="Watch SQLite tables for row changes.",
    no_args_is_help=True,
)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _version_callback(value: bool) -> None:
    if not value:
        return
    try:
        version = metadata.version("sqlite-watcher")
    except metadata.PackageNotFoundError:
        version = "unknown"
    typer.echo(f"sqlite-watcher {version}")
    raise typer.Exit(0)


@app.callback()
def _root(
    log_level: str = typer.Option("WARNING", "--log-level", help="Root logger level."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Print installed package version and exit.",
    ),
) -> None:
    level = logging.getLevelName(log_level.strip().upper())
    if not isinstance(level, int):
        typer.echo(f"Error: unknown log level {log_level!r}", err=True)
        raise typer.Exit(2)
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    logging.getLogger().setLevel(level)


app.command("tail")(tail_command)
app.command("status")(status_command)
app.command("cleanup")(cleanup_command)


def main() -> None:
    app()
