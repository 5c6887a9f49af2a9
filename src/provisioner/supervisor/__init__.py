"""Reconcilers that drive clusters, installations, placements and migrations."""

from provisioner.supervisor.base import EntitySupervisor, StoreBackedSupervisor
from provisioner.supervisor.cluster import ClusterSupervisor
from provisioner.supervisor.cluster_installation import ClusterInstallationSupervisor
from provisioner.supervisor.installation import InstallationSupervisor
from provisioner.supervisor.lock import EntityLock
from provisioner.supervisor.migration import MigrationSupervisor
from provisioner.supervisor.provisioners import (
    ClusterInstallationProvisioner,
    ClusterProvisioner,
)

__all__ = [
    "EntitySupervisor",
    "StoreBackedSupervisor",
    "EntityLock",
    "ClusterSupervisor",
    "InstallationSupervisor",
    "ClusterInstallationSupervisor",
    "MigrationSupervisor",
    "ClusterProvisioner",
    "ClusterInstallationProvisioner",
]
