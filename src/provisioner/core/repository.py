"""Row-level helpers shared by SQL-backed stores.

:class:`BaseRepository` turns a :class:`~provisioner.core.protocols.Connection`
plus a :class:`~provisioner.core.dialect.Dialect` into dict-in, dict-out
access. Transactions stay with the subclass: these helpers never commit.
"""

from __future__ import annotations

from typing import Any

from provisioner.core.dialect import Dialect, SQLiteDialect
from provisioner.core.protocols import Connection


class BaseRepository:
    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()

    def ph(self, count: int) -> str:
        """Placeholders for *count* binds, for use inside f-string SQL."""
        return self.dialect.placeholders(count)

    def execute(self, sql: str, params: tuple = ()) -> Any:
        return self.conn.execute(sql, params)

    def query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        self.conn.execute(sql, params)
        return [dict(row) for row in self.conn.fetchall()]

    def query_one(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        self.conn.execute(sql, params)
        row = self.conn.fetchone()
        return dict(row) if row is not None else None

    def insert(self, table: str, row: dict[str, Any]) -> None:
        columns = ", ".join(row)
        self.conn.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({self.ph(len(row))})",
            tuple(row.values()),
        )

    def update(
        self,
        table: str,
        row_id: str,
        changes: dict[str, Any],
        where: str = "",
        params: tuple = (),
    ) -> int:
        """``UPDATE`` one row by id and return the number of rows matched.

        *where* narrows the match further (with its own *params*): the store
        passes ``lock_acquired_by = ?`` so a write by an actor that lost its
        lock matches nothing.
        """
        sets = ", ".join(f"{column} = {self.ph(1)}" for column in changes)
        sql = f"UPDATE {table} SET {sets} WHERE id = {self.ph(1)}"
        if where:
            sql = f"{sql} AND {where}"
        self.conn.execute(sql, (*changes.values(), row_id, *params))
        return self.conn.rowcount


__all__ = ["BaseRepository"]
