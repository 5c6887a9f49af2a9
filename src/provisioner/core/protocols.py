"""The database connection the entity store is written against.

Two implementations exist: :class:`~provisioner.core.sqlite_conn.SqliteConnection`
for SQLite files and in-memory test databases, and
:class:`~provisioner.core.orm.session.SAConnectionBridge` for PostgreSQL.
Both take qmark (``?``) SQL and return rows that ``dict()`` accepts.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Synchronous, single-cursor connection.

    Lock claims are ``UPDATE ... WHERE lock_acquired_by IS NULL`` statements
    followed by a ``rowcount == 1`` check, so :attr:`rowcount` must report
    the rows matched by the most recent :meth:`execute`.
    """

    def execute(self, sql: str, params: tuple = ()) -> Any: ...

    def fetchone(self) -> Any: ...

    def fetchall(self) -> list: ...

    @property
    def rowcount(self) -> int: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


__all__ = ["Connection"]
