"""Cluster supervisor.

::

    creation-requested ──create──► provisioning-requested ──provision──► stable
    deletion-requested ──(no placements left) delete──► deleted
"""

from __future__ import annotations

from typing import Any

from provisioner.core.errors import ConfigError
from provisioner.model.entities import Cluster
from provisioner.model.enums import ClusterState
from provisioner.store.sql_store import SQLStore
from provisioner.supervisor.base import StoreBackedSupervisor
from provisioner.supervisor.provisioners import ClusterProvisioner


class ClusterSupervisor(StoreBackedSupervisor[Cluster]):
    kind = "cluster"

    def __init__(
        self,
        store: SQLStore,
        instance_id: str,
        provisioner: ClusterProvisioner | None = None,
    ) -> None:
        super().__init__(
            instance_id,
            pending=store.get_unlocked_clusters_pending_work,
            reload=store.get_cluster,
            update=store.update_cluster,
            lock=store.lock_cluster,
            unlock=store.unlock_cluster,
        )
        self.store = store
        self.provisioner = provisioner

    def do(self) -> None:
        if self.provisioner is None:
            raise ConfigError("Cluster supervisor has no provisioner configured")
        super().do()

    def transition(self, cluster: Cluster, log: Any) -> ClusterState:
        state = cluster.state
        if state == ClusterState.CREATION_REQUESTED:
            return self.run_step(self._create, cluster, log, ClusterState.CREATION_FAILED)
        if state == ClusterState.PROVISIONING_REQUESTED:
            return self.run_step(self._provision, cluster, log, ClusterState.PROVISIONING_FAILED)
        if state == ClusterState.DELETION_REQUESTED:
            return self.run_step(self._delete, cluster, log, ClusterState.DELETION_FAILED)

        log.warning("unexpected_pending_state", state=state.value)
        return state

    def after_persist(self, cluster: Cluster, log: Any) -> None:
        if cluster.state == ClusterState.DELETED:
            self.store.delete_cluster(cluster.id)
            log.info("cluster_deleted")

    def _create(self, cluster: Cluster, log: Any) -> ClusterState:
        self.provisioner.create_cluster(cluster)
        return ClusterState.PROVISIONING_REQUESTED

    def _provision(self, cluster: Cluster, log: Any) -> ClusterState:
        self.provisioner.provision_cluster(cluster)
        return ClusterState.STABLE

    def _delete(self, cluster: Cluster, log: Any) -> ClusterState:
        placements = self.store.get_cluster_installations(cluster_id=cluster.id)
        if placements:
            log.info("cluster_still_hosts_installations", count=len(placements))
            return cluster.state
        self.provisioner.delete_cluster(cluster)
        return ClusterState.DELETED


__all__ = ["ClusterSupervisor"]
