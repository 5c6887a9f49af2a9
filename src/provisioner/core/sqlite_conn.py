"""SQLite adapter for the store's ``Connection`` protocol.

Several provisioner processes may share one SQLite file, each running its own
scheduler, so file databases are opened in WAL mode with a busy timeout: a
competing writer waits instead of failing the claim outright. Compare-and-set
claims read :attr:`SqliteConnection.rowcount` right after the ``UPDATE``.

Usage::

    conn = SqliteConnection(":memory:")
    conn.execute("CREATE TABLE t (id TEXT, owner TEXT)")
    conn.execute("INSERT INTO t VALUES (?, NULL)", ("a",))
    conn.execute("UPDATE t SET owner = ? WHERE id = ? AND owner IS NULL", ("me", "a"))
    assert conn.rowcount == 1
"""

from __future__ import annotations

import sqlite3
from typing import Any

# Seconds a writer waits on a locked database file.
BUSY_TIMEOUT_SECONDS = 5.0


class SqliteConnection:
    """One ``sqlite3`` connection and the cursor of its last statement.

    Shared between the API worker threads and the scheduler thread; callers
    serialise access (see :class:`provisioner.store.SQLStore`).
    """

    def __init__(self, path: str = ":memory:", *, timeout: float = BUSY_TIMEOUT_SECONDS) -> None:
        self.path = path
        self._conn = sqlite3.connect(path, timeout=timeout, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._cursor = self._conn.cursor()

    def execute(self, sql: str, params: tuple = ()) -> Any:
        self._cursor.execute(sql, params)
        return self._cursor

    def fetchone(self) -> Any:
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        return self._cursor.fetchall()

    @property
    def rowcount(self) -> int:
        """Rows changed by the last ``UPDATE``/``INSERT``/``DELETE``."""
        return self._cursor.rowcount

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        """Close the database; calling it again is a no-op."""
        self._conn.close()

    def __repr__(self) -> str:
        return f"SqliteConnection(path={self.path!r})"
