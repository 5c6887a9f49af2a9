"""
Entity store tables.

Defines table names and DDL statements for the four entity types the
supervisors reconcile. The DDL is portable between SQLite and PostgreSQL:
ids are ULID text, timestamps are integer milliseconds (``BIGINT``),
booleans are ``0``/``1`` integers.

Architecture:
    ::

        Table Registry (TABLES):
        ┌────────────────────────────────────────────────────────────┐
        │ cluster              → clusters                             │
        │ installation         → installations                        │
        │ cluster_installation → cluster_installations                │
        │ migration            → cluster_installation_migrations      │
        └────────────────────────────────────────────────────────────┘

        Lock columns (every table):
        ┌────────────────────────────────────────────────────────────┐
        │ lock_acquired_by  TEXT NULL     owner id, NULL when free    │
        │ lock_acquired_at  BIGINT        ms, 0 when free             │
        └────────────────────────────────────────────────────────────┘

        Soft delete: ``delete_at`` is 0 while live; rows with a
        non-zero ``delete_at`` are invisible to every read.

Tags:
    schema, ddl, tables, provisioner, locks
"""

from __future__ import annotations

from provisioner.core.dialect import Dialect, SQLiteDialect

TABLES = {
    "cluster": "clusters",
    "installation": "installations",
    "cluster_installation": "cluster_installations",
    "migration": "cluster_installation_migrations",
}


DDL = {
    "clusters": """
        CREATE TABLE IF NOT EXISTS clusters (
            id TEXT PRIMARY KEY,
            provider TEXT NOT NULL,
            provisioner TEXT NOT NULL,
            size TEXT NOT NULL DEFAULT '',
            allow_installations INTEGER NOT NULL DEFAULT 1,
            state TEXT NOT NULL,
            lock_acquired_by TEXT,
            lock_acquired_at BIGINT NOT NULL DEFAULT 0,
            create_at BIGINT NOT NULL,
            delete_at BIGINT NOT NULL DEFAULT 0
        )
    """,
    "installations": """
        CREATE TABLE IF NOT EXISTS installations (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            dns TEXT NOT NULL,
            database TEXT NOT NULL,
            filestore TEXT NOT NULL DEFAULT '',
            size TEXT NOT NULL DEFAULT '',
            state TEXT NOT NULL,
            lock_acquired_by TEXT,
            lock_acquired_at BIGINT NOT NULL DEFAULT 0,
            create_at BIGINT NOT NULL,
            delete_at BIGINT NOT NULL DEFAULT 0
        )
    """,
    "cluster_installations": """
        CREATE TABLE IF NOT EXISTS cluster_installations (
            id TEXT PRIMARY KEY,
            cluster_id TEXT NOT NULL,
            installation_id TEXT NOT NULL,
            namespace TEXT NOT NULL,
            state TEXT NOT NULL,
            lock_acquired_by TEXT,
            lock_acquired_at BIGINT NOT NULL DEFAULT 0,
            create_at BIGINT NOT NULL,
            delete_at BIGINT NOT NULL DEFAULT 0
        )
    """,
    "cluster_installations_idx_installation": """
        CREATE INDEX IF NOT EXISTS idx_cluster_installations_installation
        ON cluster_installations(installation_id)
    """,
    "cluster_installation_migrations": """
        CREATE TABLE IF NOT EXISTS cluster_installation_migrations (
            id TEXT PRIMARY KEY,
            cluster_id TEXT NOT NULL,
            cluster_installation_id TEXT NOT NULL,
            state TEXT NOT NULL,
            lock_acquired_by TEXT,
            lock_acquired_at BIGINT NOT NULL DEFAULT 0,
            create_at BIGINT NOT NULL,
            delete_at BIGINT NOT NULL DEFAULT 0
        )
    """,
    "migrations_idx_state": """
        CREATE INDEX IF NOT EXISTS idx_migrations_state
        ON cluster_installation_migrations(state)
    """,
    "migrations_idx_source": """
        CREATE INDEX IF NOT EXISTS idx_migrations_source
        ON cluster_installation_migrations(cluster_installation_id)
    """,
}


def create_tables(conn) -> None:
    """
    Create all entity tables.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    for _name, ddl in DDL.items():
        conn.execute(ddl)
    conn.commit()


def missing_tables(conn, dialect: Dialect | None = None) -> list[str]:
    """Return the entity tables that do not exist yet."""
    dialect = dialect or SQLiteDialect()
    missing = []
    for table in TABLES.values():
        conn.execute(dialect.table_exists_query(), (table,))
        if conn.fetchone() is None:
            missing.append(table)
    return missing


__all__ = ["TABLES", "DDL", "create_tables", "missing_tables"]
