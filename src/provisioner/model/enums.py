"""
State and kind enumerations for every entity the supervisors reconcile.

The string values are the persisted wire values; never rename one without a
data migration.

Tags:
    enums, states, fsm, provisioner, model
"""

from __future__ import annotations

from enum import Enum


class MigrationState(str, Enum):
    """States of a cluster installation migration, in forward order."""

    CREATION_REQUESTED = "creation-requested"
    CREATION_COMPLETE = "creation-complete"
    SNAPSHOT_CREATION_IN_PROGRESS = "snapshot-creation-in-progress"
    SNAPSHOT_CREATION_COMPLETE = "snapshot-creation-complete"
    RESTORE_DATABASE_IN_PROGRESS = "restore-database-in-progress"
    RESTORE_DATABASE_COMPLETE = "restore-database-complete"
    STABLE = "stable"
    CREATION_FAILED = "creation-failed"

    @property
    def is_terminal(self) -> bool:
        return self in MIGRATION_TERMINAL_STATES

    @property
    def successor(self) -> MigrationState | None:
        """The single forward successor, ``None`` for terminal states."""
        return MIGRATION_SUCCESSORS.get(self)


MIGRATION_SUCCESSORS: dict[MigrationState, MigrationState] = {
    MigrationState.CREATION_REQUESTED: MigrationState.CREATION_COMPLETE,
    MigrationState.CREATION_COMPLETE: MigrationState.SNAPSHOT_CREATION_IN_PROGRESS,
    MigrationState.SNAPSHOT_CREATION_IN_PROGRESS: MigrationState.SNAPSHOT_CREATION_COMPLETE,
    MigrationState.SNAPSHOT_CREATION_COMPLETE: MigrationState.RESTORE_DATABASE_IN_PROGRESS,
    MigrationState.RESTORE_DATABASE_IN_PROGRESS: MigrationState.RESTORE_DATABASE_COMPLETE,
    MigrationState.RESTORE_DATABASE_COMPLETE: MigrationState.STABLE,
}

MIGRATION_TERMINAL_STATES = frozenset({MigrationState.STABLE, MigrationState.CREATION_FAILED})

# States the migration supervisor acts on each tick.
MIGRATION_PENDING_WORK = tuple(MIGRATION_SUCCESSORS)


class ClusterState(str, Enum):
    CREATION_REQUESTED = "creation-requested"
    PROVISIONING_REQUESTED = "provisioning-requested"
    STABLE = "stable"
    DELETION_REQUESTED = "deletion-requested"
    DELETED = "deleted"
    CREATION_FAILED = "creation-failed"
    PROVISIONING_FAILED = "provisioning-failed"
    DELETION_FAILED = "deletion-failed"


CLUSTER_PENDING_WORK = (
    ClusterState.CREATION_REQUESTED,
    ClusterState.PROVISIONING_REQUESTED,
    ClusterState.DELETION_REQUESTED,
)


class InstallationState(str, Enum):
    CREATION_REQUESTED = "creation-requested"
    CREATION_IN_PROGRESS = "creation-in-progress"
    CREATION_NO_COMPATIBLE_CLUSTERS = "creation-no-compatible-clusters"
    STABLE = "stable"
    DELETION_REQUESTED = "deletion-requested"
    DELETION_IN_PROGRESS = "deletion-in-progress"
    DELETED = "deleted"
    CREATION_FAILED = "creation-failed"
    DELETION_FAILED = "deletion-failed"


INSTALLATION_PENDING_WORK = (
    InstallationState.CREATION_REQUESTED,
    InstallationState.CREATION_IN_PROGRESS,
    InstallationState.CREATION_NO_COMPATIBLE_CLUSTERS,
    InstallationState.DELETION_REQUESTED,
    InstallationState.DELETION_IN_PROGRESS,
)


class ClusterInstallationState(str, Enum):
    CREATION_REQUESTED = "creation-requested"
    RECONCILING = "reconciling"
    STABLE = "stable"
    DELETION_REQUESTED = "deletion-requested"
    DELETED = "deleted"
    CREATION_FAILED = "creation-failed"
    DELETION_FAILED = "deletion-failed"


CLUSTER_INSTALLATION_PENDING_WORK = (
    ClusterInstallationState.CREATION_REQUESTED,
    ClusterInstallationState.RECONCILING,
    ClusterInstallationState.DELETION_REQUESTED,
)


class DatabaseBackendKind(str, Enum):
    """Database backend an installation was provisioned with."""

    MYSQL_OPERATOR = "mysql-operator"
    AWS_RDS = "aws-rds"


# Backends that have a database migration capability.
MIGRATABLE_BACKENDS = frozenset({DatabaseBackendKind.AWS_RDS})


class DatabaseStatus(str, Enum):
    """Normalised status reported by a database migration capability."""

    IN_PROGRESS = "in-progress"
    READY = "ready"
    FAILING = "failing"


__all__ = [
    "MigrationState",
    "MIGRATION_SUCCESSORS",
    "MIGRATION_TERMINAL_STATES",
    "MIGRATION_PENDING_WORK",
    "ClusterState",
    "CLUSTER_PENDING_WORK",
    "InstallationState",
    "INSTALLATION_PENDING_WORK",
    "ClusterInstallationState",
    "CLUSTER_INSTALLATION_PENDING_WORK",
    "DatabaseBackendKind",
    "MIGRATABLE_BACKENDS",
    "DatabaseStatus",
]
