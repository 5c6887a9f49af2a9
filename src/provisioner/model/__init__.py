"""Entity dataclasses and state enums."""

from provisioner.model.entities import Cluster, ClusterInstallation, Installation, Migration
from provisioner.model.enums import (
    ClusterInstallationState,
    ClusterState,
    DatabaseBackendKind,
    DatabaseStatus,
    InstallationState,
    MigrationState,
)

__all__ = [
    "Cluster",
    "ClusterInstallation",
    "Installation",
    "Migration",
    "ClusterInstallationState",
    "ClusterState",
    "DatabaseBackendKind",
    "DatabaseStatus",
    "InstallationState",
    "MigrationState",
]
