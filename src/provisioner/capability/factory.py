"""Capability dispatch keyed on the installation's database backend."""

from __future__ import annotations

from provisioner.capability.aws import AWSClient
from provisioner.capability.protocol import DatabaseMigration
from provisioner.capability.rds import RDSDatabaseMigration
from provisioner.capability.unsupported import UnsupportedDatabaseMigration
from provisioner.model.entities import Installation, Migration
from provisioner.model.enums import MIGRATABLE_BACKENDS, DatabaseBackendKind


def is_migratable(installation: Installation) -> bool:
    """Whether a database migration capability exists for the backend."""
    return installation.database in {kind.value for kind in MIGRATABLE_BACKENDS}


def get_database_migration(
    installation: Installation,
    migration: Migration,
    client: AWSClient,
    *,
    keep_data: bool = False,
) -> DatabaseMigration:
    """Return the capability for *installation*'s backend.

    The destination is ``migration.cluster_id``. Unknown or non-migratable
    backends get an :class:`UnsupportedDatabaseMigration`.
    """
    if installation.database == DatabaseBackendKind.AWS_RDS.value:
        return RDSDatabaseMigration(
            installation.id,
            migration.cluster_id,
            migration.id,
            client,
            keep_data=keep_data,
        )
    return UnsupportedDatabaseMigration(installation.database)
