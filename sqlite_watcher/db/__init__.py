"""Database handle for sqlite-watcher."""

from sqlite_watcher.db.engine import Database, create_engine

__all__ = ["Database", "create_engine"]
