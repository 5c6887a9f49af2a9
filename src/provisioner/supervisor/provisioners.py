"""
Interfaces to the orchestration layer the entity supervisors drive.

Generating workload manifests and talking to the orchestrated clusters lives
outside this package; a deployment injects implementations of these protocols
into :class:`~provisioner.supervisor.cluster.ClusterSupervisor` and
:class:`~provisioner.supervisor.cluster_installation.ClusterInstallationSupervisor`.

Every method returns promptly. Long operations are polled on later ticks.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from provisioner.model.entities import Cluster, ClusterInstallation, Installation


@runtime_checkable
class ClusterProvisioner(Protocol):
    def create_cluster(self, cluster: Cluster) -> None:
        ...

    def provision_cluster(self, cluster: Cluster) -> None:
        ...

    def delete_cluster(self, cluster: Cluster) -> None:
        ...


@runtime_checkable
class ClusterInstallationProvisioner(Protocol):
    def create_cluster_installation(
        self,
        cluster: Cluster,
        installation: Installation,
        cluster_installation: ClusterInstallation,
    ) -> None:
        """Request the workload for *cluster_installation* on *cluster*."""
        ...

    def is_resource_ready(self, cluster: Cluster, cluster_installation: ClusterInstallation) -> bool:
        ...

    def delete_cluster_installation(
        self,
        cluster: Cluster,
        installation: Installation,
        cluster_installation: ClusterInstallation,
    ) -> None:
        ...


__all__ = ["ClusterProvisioner", "ClusterInstallationProvisioner"]
