"""Cluster installation supervisor: drives placements through their FSM.

::

    creation-requested ──create──► reconciling ──ready──► stable
    deletion-requested ──delete──► deleted (row soft-deleted)

A placement claimed by a migration is invisible here: pending-work queries
only return unlocked rows.
"""

from __future__ import annotations

from typing import Any

from provisioner.core.errors import ConfigError, EntityNotFoundError
from provisioner.model.entities import Cluster, ClusterInstallation, Installation
from provisioner.model.enums import ClusterInstallationState
from provisioner.store.sql_store import SQLStore
from provisioner.supervisor.base import StoreBackedSupervisor
from provisioner.supervisor.provisioners import ClusterInstallationProvisioner


class ClusterInstallationSupervisor(StoreBackedSupervisor[ClusterInstallation]):
    kind = "cluster_installation"

    def __init__(
        self,
        store: SQLStore,
        instance_id: str,
        provisioner: ClusterInstallationProvisioner | None = None,
    ) -> None:
        super().__init__(
            instance_id,
            pending=store.get_unlocked_cluster_installations_pending_work,
            reload=store.get_cluster_installation,
            update=store.update_cluster_installation,
            lock=store.lock_cluster_installation,
            unlock=store.unlock_cluster_installation,
        )
        self.store = store
        self.provisioner = provisioner

    def do(self) -> None:
        if self.provisioner is None:
            raise ConfigError("Cluster installation supervisor has no provisioner configured")
        super().do()

    def transition(self, ci: ClusterInstallation, log: Any) -> ClusterInstallationState:
        state = ci.state
        if state == ClusterInstallationState.CREATION_REQUESTED:
            return self.run_step(self._create, ci, log, ClusterInstallationState.CREATION_FAILED)
        if state == ClusterInstallationState.RECONCILING:
            return self.run_step(self._check_ready, ci, log, ClusterInstallationState.CREATION_FAILED)
        if state == ClusterInstallationState.DELETION_REQUESTED:
            return self.run_step(self._delete, ci, log, ClusterInstallationState.DELETION_FAILED)

        log.warning("unexpected_pending_state", state=state.value)
        return state

    def after_persist(self, ci: ClusterInstallation, log: Any) -> None:
        if ci.state == ClusterInstallationState.DELETED:
            self.store.delete_cluster_installation(ci.id)
            log.info("cluster_installation_deleted")

    def _load(self, ci: ClusterInstallation) -> tuple[Cluster, Installation]:
        cluster = self.store.get_cluster(ci.cluster_id)
        if cluster is None:
            raise EntityNotFoundError(f"Cluster {ci.cluster_id} not found").with_context(
                cluster_id=ci.cluster_id, cluster_installation_id=ci.id
            )
        installation = self.store.get_installation(ci.installation_id)
        if installation is None:
            raise EntityNotFoundError(f"Installation {ci.installation_id} not found").with_context(
                installation_id=ci.installation_id, cluster_installation_id=ci.id
            )
        return cluster, installation

    def _create(self, ci: ClusterInstallation, log: Any) -> ClusterInstallationState:
        cluster, installation = self._load(ci)
        self.provisioner.create_cluster_installation(cluster, installation, ci)
        log.info("cluster_installation_requested", cluster=cluster.id, namespace=ci.namespace)
        return ClusterInstallationState.RECONCILING

    def _check_ready(self, ci: ClusterInstallation, log: Any) -> ClusterInstallationState:
        cluster, _ = self._load(ci)
        if not self.provisioner.is_resource_ready(cluster, ci):
            log.debug("cluster_installation_not_ready")
            return ci.state
        return ClusterInstallationState.STABLE

    def _delete(self, ci: ClusterInstallation, log: Any) -> ClusterInstallationState:
        cluster, installation = self._load(ci)
        self.provisioner.delete_cluster_installation(cluster, installation, ci)
        return ClusterInstallationState.DELETED


__all__ = ["ClusterInstallationSupervisor"]
