"""
Basic usage of sqlite-watcher: watch a table and react to row changes.

Run from repo root:
  python examples/basic_usage.py

The script writes to the database through a plain sqlite3 connection, the
same way another process would, and prints what the watcher delivers.
"""

import asyncio
import sqlite3
import tempfile
from pathlib import Path

from sqlite_watcher import ChangeRecord, SQLiteWatcher


async def main() -> None:
    db_path = str(Path(tempfile.mkdtemp()) / "demo.db")
    writer = sqlite3.connect(db_path, isolation_level=None)
    writer.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, active INTEGER)")

    # 1. Create the watcher. Settings can also come from sqlite_watcher.yaml
    #    or SQLITE_WATCHER_* environment variables (see load_config).
    async with SQLiteWatcher(db_path, watch_interval_ms=100) as watcher:
        done = asyncio.Event()

        # 2. Register callbacks. Sync and async callables both work.
        async def on_insert(change: ChangeRecord) -> None:
            print(f"new user #{change.row_id}: {change.payload['name']}")

        def on_any(change: ChangeRecord) -> None:
            print(f"  {change}")
            if change.operation == "DELETE":
                done.set()

        users = await watcher.watch("users")
        users.on_insert(on_insert).on_any(on_any)

        # 3. Only active users are interesting; the filter gates every callback.
        users.filter(lambda change: change.payload.get("active") == 1 or change.operation == "DELETE")

        # 4. Errors raised by callbacks are reported here, never raised.
        watcher.on_error(lambda error: print(f"watcher error: {error}"))

        # 5. Start polling and make some changes.
        await watcher.start()
        writer.execute("INSERT INTO users (id, name, active) VALUES (1, 'ada', 1)")
        writer.execute("INSERT INTO users (id, name, active) VALUES (2, 'bob', 0)")
        writer.execute("UPDATE users SET name = 'ada lovelace' WHERE id = 1")
        writer.execute("DELETE FROM users WHERE id = 2")

        await asyncio.wait_for(done.wait(), timeout=5.0)
        print(f"pending changes: {await watcher.get_change_log_size()}")

    # 6. Leaving the context removes the capture triggers; the change log stays.
    writer.close()


if __name__ == "__main__":
    asyncio.run(main())
