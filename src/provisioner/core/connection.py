"""Open the entity store's database from ``PROVISIONER_DATABASE_URL``.

Accepted values::

    (unset), memory, :memory:, sqlite://     in-memory SQLite (tests, dry runs)
    sqlite:///var/lib/provisioner.db         SQLite file, created on demand
    ./provisioner.db                         same, as a bare path
    postgresql://user:pw@host/db             PostgreSQL via psycopg 3
    postgres://..., postgresql+psycopg://... likewise

A PostgreSQL server that cannot be reached raises
:class:`~provisioner.core.errors.StoreUnavailableError` at startup; there is
no fallback to SQLite.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.exc import OperationalError

from provisioner.core.errors import ConfigError, StoreUnavailableError
from provisioner.core.logging import get_logger
from provisioner.core.orm.session import (
    ProvisionerSession,
    SAConnectionBridge,
    create_provisioner_engine,
)
from provisioner.core.protocols import Connection
from provisioner.core.schema import create_tables
from provisioner.core.sqlite_conn import SqliteConnection

logger = get_logger(__name__)

_MEMORY = ("memory", ":memory:")
_SQLITE_PREFIXES = ("sqlite:///", "sqlite://")
_POSTGRES_SCHEMES = ("postgresql", "postgres")


@dataclass(frozen=True)
class ConnectionInfo:
    """Where the store lives.

    ``backend`` is ``"sqlite"`` or ``"postgresql"``; ``resolved_path`` is
    set for SQLite files only.
    """

    backend: str
    persistent: bool
    url: str
    resolved_path: str | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"

    @property
    def is_postgres(self) -> bool:
        return self.backend == "postgresql"

    def __repr__(self) -> str:
        where = f"path={self.resolved_path!r}" if self.resolved_path else f"url={self.url!r}"
        return f"ConnectionInfo(backend={self.backend!r}, persistent={self.persistent}, {where})"


def _parse_url(db: str | None) -> tuple[str, str]:
    """Split *db* into ``(kind, target)``.

    *kind* is ``memory``, ``sqlite`` (from a ``sqlite:`` URL), ``file``
    (a bare path) or ``postgresql``.
    """
    if not db or db in _MEMORY:
        return _MEMORY
    for prefix in _SQLITE_PREFIXES:
        if db.startswith(prefix):
            path = db[len(prefix):]
            return _MEMORY if path in ("", ":memory:") else ("sqlite", path)

    scheme, sep, _ = db.partition("://")
    if not sep:
        return "file", db
    if scheme.split("+", 1)[0] in _POSTGRES_SCHEMES:
        return "postgresql", db
    raise ConfigError(f"Unsupported database URL scheme: {scheme!r}")


def _open_sqlite(target: str) -> tuple[Connection, ConnectionInfo]:
    if target == ":memory:":
        return SqliteConnection(), ConnectionInfo("sqlite", persistent=False, url=target)
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    resolved = str(path.resolve())
    return SqliteConnection(resolved), ConnectionInfo(
        "sqlite", persistent=True, url=target, resolved_path=resolved
    )


def _open_postgres(url: str) -> tuple[Connection, ConnectionInfo]:
    engine = create_provisioner_engine(url)
    try:
        with engine.connect():
            pass
    except OperationalError as e:
        engine.dispose()
        raise StoreUnavailableError(f"Cannot connect to PostgreSQL: {e}", cause=e) from e
    bridge = SAConnectionBridge(ProvisionerSession(bind=engine))
    return bridge, ConnectionInfo("postgresql", persistent=True, url=url)


def create_connection(
    db: str | None = None,
    *,
    init_schema: bool = False,
) -> tuple[Connection, ConnectionInfo]:
    """Open *db* and, with *init_schema*, create any missing tables.

    Raises:
        ConfigError: The URL scheme is not SQLite or PostgreSQL.
        StoreUnavailableError: PostgreSQL did not accept a connection.
    """
    kind, target = _parse_url(db)
    if kind == "postgresql":
        conn, info = _open_postgres(target)
    else:
        conn, info = _open_sqlite(target)

    logger.debug("store_connection_opened", backend=info.backend, persistent=info.persistent)
    if init_schema:
        create_tables(conn)
    return conn, info


__all__ = ["ConnectionInfo", "create_connection"]
