"""SQL dialect abstraction for the entity store.

Both supported backends receive qmark (``?``) placeholders: SQLite natively,
PostgreSQL through :class:`~provisioner.core.orm.session.SAConnectionBridge`,
which rewrites them into SQLAlchemy bind parameters. What differs between
them is catalogue introspection.

Examples:
    >>> from provisioner.core.dialect import SQLiteDialect
    >>> SQLiteDialect().placeholders(3)
    '?, ?, ?'

Tags:
    dialect, sql, sqlite, postgresql, provisioner
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """Backend-specific SQL fragments."""

    @property
    def name(self) -> str:
        """Short backend identifier (``sqlite``, ``postgresql``)."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated bind placeholders."""
        ...

    def table_exists_query(self) -> str:
        """SELECT returning one row when the table named by the single bind exists."""
        ...


class SQLiteDialect:
    """SQLite dialect (``?`` placeholders, ``sqlite_master`` catalogue)."""

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def table_exists_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?"


class PostgreSQLDialect:
    """PostgreSQL reached through the SQLAlchemy bridge."""

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholders(self, count: int) -> str:
        # The bridge binds qmark placeholders as :p0, :p1, ...
        return ", ".join("?" for _ in range(count))

    def table_exists_query(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = ?"
        )


def get_dialect(backend: str) -> Dialect:
    """Return the dialect for a :class:`ConnectionInfo` backend name."""
    if backend == "postgresql":
        return PostgreSQLDialect()
    return SQLiteDialect()


__all__ = ["Dialect", "SQLiteDialect", "PostgreSQLDialect", "get_dialect"]
