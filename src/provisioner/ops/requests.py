"""
Typed request objects for operations.

Each dataclass is the input contract of one operation function: validated,
transport-agnostic data, no raw HTTP bodies and no CLI params.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CreateMigrationRequest:
    """Request for :func:`provisioner.ops.migrations.create_migration`.

    Attributes:
        cluster_id: Destination cluster.
        installation_id: Installation whose current placement moves.
    """

    cluster_id: str = ""
    installation_id: str = ""


@dataclass(frozen=True, slots=True)
class ListMigrationsRequest:
    state: str | None = None
    cluster_installation_id: str | None = None
    active_only: bool = False
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True, slots=True)
class UnlockMigrationRequest:
    """Request for :func:`provisioner.ops.migrations.unlock_migration`.

    Without ``force`` only a lock held by ``owner_id`` is released.
    """

    migration_id: str = ""
    owner_id: str | None = None
    force: bool = False
