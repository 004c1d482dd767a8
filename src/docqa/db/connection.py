"""SQLite connection for the docqa document store, with sqlite-vec loaded."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

MEMORY = ":memory:"

# Milliseconds a writer waits on a lock held by another docqa process.
_BUSY_TIMEOUT_MS = 5_000


class Database:
    """Opens connections to one store file.

    Args:
        db_path: Store file; its parent directory is created on connect.
            ``":memory:"`` gives a throwaway database.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = MEMORY if str(db_path) == MEMORY else Path(db_path)
        self._conn: sqlite3.Connection | None = None

    @property
    def in_memory(self) -> bool:
        return self.db_path == MEMORY

    def connect(self) -> sqlite3.Connection:
        """Return a new connection with rows as ``sqlite3.Row`` and vec0 available."""
        if not self.in_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS}")
        if not self.in_memory:
            conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
