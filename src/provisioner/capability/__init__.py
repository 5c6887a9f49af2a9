"""Database migration capabilities."""

from provisioner.capability.aws import AWSClient, cloud_id
from provisioner.capability.factory import get_database_migration, is_migratable
from provisioner.capability.protocol import DatabaseMigration
from provisioner.capability.rds import RDSDatabaseMigration, select_latest_snapshot
from provisioner.capability.unsupported import UnsupportedDatabaseMigration

__all__ = [
    "AWSClient",
    "cloud_id",
    "DatabaseMigration",
    "RDSDatabaseMigration",
    "UnsupportedDatabaseMigration",
    "get_database_migration",
    "is_migratable",
    "select_latest_snapshot",
]
