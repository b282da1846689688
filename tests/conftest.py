"""Shared fixtures for sqlite-watcher tests."""

from __future__ import annotations

import os
import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Path of a fresh SQLite file with a ``users`` table."""
    path = tmp_path / "app.db"
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)")
        conn.commit()
    finally:
        conn.close()
    return str(path)


@pytest.fixture
def sql(db_path: str) -> Iterator[sqlite3.Connection]:
    """Independent autocommit connection standing in for another process."""
    conn = sqlite3.connect(db_path, isolation_level=None, timeout=5.0)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep SQLITE_WATCHER_* variables and a stray cwd config out of tests."""
    for key in list(os.environ):
        if key.startswith("SQLITE_WATCHER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
