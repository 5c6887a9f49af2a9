"""
Database migration capability contract.

A capability drives one installation's database through snapshot and
restore. Each method performs at most one request against the backend and
returns immediately; the migration supervisor polls the ``*_status``
methods on later ticks instead of waiting.

Architecture:
    ::

        DatabaseMigration (Protocol)
        ├── snapshot()          → request a snapshot (already requested is success)
        ├── snapshot_status()   → DatabaseStatus
        ├── restore()           → request the replica (already ours is success)
        ├── database_status()   → DatabaseStatus
        └── teardown()          → delete the replica (honours keep_data)

        Implementations (selected by DatabaseBackendKind):
        ├── aws-rds         → RDSDatabaseMigration
        └── anything else   → UnsupportedDatabaseMigration (always raises)

Errors:
    Methods raise :class:`~provisioner.core.errors.ProvisionerError`
    subclasses. ``retryable`` errors leave the migration where it is;
    anything else fails it.

Tags:
    capability, protocol, database, migration, provisioner
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from provisioner.model.enums import DatabaseStatus


@runtime_checkable
class DatabaseMigration(Protocol):
    """Backend-specific database lifecycle operations for one migration."""

    def snapshot(self) -> None:
        """Request a snapshot of the source database."""
        ...

    def snapshot_status(self) -> DatabaseStatus:
        """Status of the most recent snapshot taken for this migration."""
        ...

    def restore(self) -> None:
        """Request the destination database from the most recent snapshot."""
        ...

    def database_status(self) -> DatabaseStatus:
        """Readiness of the restored destination database."""
        ...

    def teardown(self) -> None:
        """Delete the restored destination database."""
        ...


__all__ = ["DatabaseMigration"]
