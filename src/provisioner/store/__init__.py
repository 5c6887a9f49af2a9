"""Entity store."""

from __future__ import annotations

from provisioner.core.connection import create_connection
from provisioner.core.dialect import get_dialect
from provisioner.store.sql_store import SQLStore


def open_store(database_url: str | None, *, init_schema: bool = True) -> SQLStore:
    """Connect to *database_url* and return a ready :class:`SQLStore`."""
    conn, info = create_connection(database_url, init_schema=init_schema)
    return SQLStore(conn, get_dialect(info.backend))


__all__ = ["SQLStore", "open_store"]
