"""SQLAlchemy engine and the bridge that lets the entity store run on it.

The store writes qmark SQL against the :class:`~provisioner.core.protocols.Connection`
protocol. :class:`SAConnectionBridge` carries that SQL over a SQLAlchemy
``Session``: placeholders become ``:p0, :p1, ...`` binds and rows come back as
mappings, so ``dict(row)`` works the same as on ``sqlite3.Row``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, Result
from sqlalchemy.orm import Session

_PSYCOPG = "postgresql+psycopg://"


def create_provisioner_engine(url: str, *, echo: bool = False, **kwargs: Any) -> Engine:
    """Engine for *url*.

    Bare ``postgresql://`` and ``postgres://`` URLs are pinned to psycopg 3
    and get ``pool_pre_ping`` so a restarted database does not fail the
    next supervisor tick. SQLite engines enforce foreign keys and may be
    shared across threads.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, echo=echo, **kwargs)
        event.listen(engine, "connect", _sqlite_foreign_keys)
        return engine

    scheme, sep, rest = url.partition("://")
    if sep and scheme in ("postgresql", "postgres"):
        url = _PSYCOPG + rest
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, echo=echo, **kwargs)


def _sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    dbapi_connection.execute("PRAGMA foreign_keys=ON")


class ProvisionerSession(Session):
    """Session whose objects stay readable after commit."""

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def _rewrite_qmark(sql: str) -> str:
    """``a = ? AND b = ?`` -> ``a = :p0 AND b = :p1``."""
    pieces = sql.split("?")
    out = [pieces[0]]
    for i, piece in enumerate(pieces[1:]):
        out.append(f":p{i}{piece}")
    return "".join(out)


class SAConnectionBridge:
    """:class:`~provisioner.core.protocols.Connection` over a SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self._result: Result | None = None

    def execute(self, sql: str, params: Sequence[Any] = ()) -> SAConnectionBridge:
        binds = {f"p{i}": value for i, value in enumerate(params)}
        self._result = self.session.execute(text(_rewrite_qmark(sql) if binds else sql), binds)
        return self

    def _rows(self) -> Result | None:
        if self._result is None or not self._result.returns_rows:
            return None
        return self._result

    def fetchone(self) -> dict[str, Any] | None:
        result = self._rows()
        if result is None:
            return None
        row = result.mappings().fetchone()
        return dict(row) if row is not None else None

    def fetchall(self) -> list[dict[str, Any]]:
        result = self._rows()
        return [dict(row) for row in result.mappings()] if result is not None else []

    @property
    def rowcount(self) -> int:
        return self._result.rowcount if self._result is not None else -1

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def close(self) -> None:
        self.session.close()
