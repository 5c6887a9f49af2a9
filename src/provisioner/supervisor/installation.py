"""
Installation supervisor.

::

    creation-requested ──place──► creation-in-progress ──all stable──► stable
          │                              └──any failed──► creation-failed
          └──no cluster──► creation-no-compatible-clusters (retried every tick)

    deletion-requested ──flag placements──► deletion-in-progress ──none left──► deleted

Placement picks the stable cluster that allows installations and currently
hosts the fewest cluster installations. Deletion claims each placement for
this supervisor before flagging it ``deletion-requested`` so it never writes
a row another actor (a running migration, say) holds.

Tags:
    supervisor, installation, placement, fsm, provisioner
"""

from __future__ import annotations

from typing import Any

from provisioner.model.entities import Cluster, ClusterInstallation, Installation
from provisioner.model.enums import (
    ClusterInstallationState,
    ClusterState,
    InstallationState,
)
from provisioner.store.sql_store import SQLStore
from provisioner.supervisor.base import StoreBackedSupervisor
from provisioner.supervisor.lock import EntityLock

# Placement states that no longer count towards deletion progress.
_PLACEMENT_GONE = frozenset({ClusterInstallationState.DELETED})
_PLACEMENT_DELETING = frozenset({
    ClusterInstallationState.DELETION_REQUESTED,
    ClusterInstallationState.DELETED,
})


class InstallationSupervisor(StoreBackedSupervisor[Installation]):
    """Places installations on clusters and retires them.

    Also the claim/release collaborator the migration supervisor uses to take
    an installation out of this supervisor's hands.
    """

    kind = "installation"

    def __init__(self, store: SQLStore, instance_id: str) -> None:
        super().__init__(
            instance_id,
            pending=store.get_unlocked_installations_pending_work,
            reload=store.get_installation,
            update=store.update_installation,
            lock=store.lock_installation,
            unlock=store.unlock_installation,
        )
        self.store = store

    def transition(self, installation: Installation, log: Any) -> InstallationState:
        state = installation.state
        if state in (
            InstallationState.CREATION_REQUESTED,
            InstallationState.CREATION_NO_COMPATIBLE_CLUSTERS,
        ):
            return self.run_step(self._place, installation, log, InstallationState.CREATION_FAILED)
        if state == InstallationState.CREATION_IN_PROGRESS:
            return self.run_step(self._check_creation, installation, log, InstallationState.CREATION_FAILED)
        if state == InstallationState.DELETION_REQUESTED:
            return self.run_step(self._request_deletion, installation, log, InstallationState.DELETION_FAILED)
        if state == InstallationState.DELETION_IN_PROGRESS:
            return self.run_step(self._check_deletion, installation, log, InstallationState.DELETION_FAILED)

        log.warning("unexpected_pending_state", state=state.value)
        return state

    def after_persist(self, installation: Installation, log: Any) -> None:
        if installation.state == InstallationState.DELETED:
            self.store.delete_installation(installation.id)
            log.info("installation_deleted")

    # -- creation ----------------------------------------------------------

    def select_cluster(self) -> Cluster | None:
        """Least-loaded stable cluster accepting installations, or ``None``."""
        candidates = [
            c for c in self.store.get_clusters()
            if c.state == ClusterState.STABLE and c.allow_installations
        ]
        if not candidates:
            return None
        load = {c.id: len(self.store.get_cluster_installations(cluster_id=c.id)) for c in candidates}
        return min(candidates, key=lambda c: (load[c.id], c.create_at, c.id))

    def _place(self, installation: Installation, log: Any) -> InstallationState:
        if self.store.get_cluster_installations(installation_id=installation.id):
            # Placed on an earlier tick whose state write was lost.
            return InstallationState.CREATION_IN_PROGRESS

        cluster = self.select_cluster()
        if cluster is None:
            log.info("no_compatible_clusters")
            return InstallationState.CREATION_NO_COMPATIBLE_CLUSTERS

        ci = self.store.create_cluster_installation(
            ClusterInstallation(
                cluster_id=cluster.id,
                installation_id=installation.id,
                namespace=installation.id.lower(),
            )
        )
        log.info("installation_placed", cluster=cluster.id, cluster_installation=ci.id)
        return InstallationState.CREATION_IN_PROGRESS

    def _check_creation(self, installation: Installation, log: Any) -> InstallationState:
        placements = self.store.get_cluster_installations(installation_id=installation.id)
        if not placements:
            log.warning("installation_has_no_placements")
            return InstallationState.CREATION_REQUESTED
        states = {ci.state for ci in placements}
        if ClusterInstallationState.CREATION_FAILED in states:
            return InstallationState.CREATION_FAILED
        if states == {ClusterInstallationState.STABLE}:
            return InstallationState.STABLE
        log.debug("installation_placements_pending", states=sorted(s.value for s in states))
        return installation.state

    # -- deletion ----------------------------------------------------------

    def _request_deletion(self, installation: Installation, log: Any) -> InstallationState:
        for ci in self.store.get_cluster_installations(installation_id=installation.id):
            if ci.state in _PLACEMENT_DELETING:
                continue
            claim = EntityLock(
                "cluster_installation",
                ci.id,
                self.instance_id,
                self.store.lock_cluster_installation,
                self.store.unlock_cluster_installation,
                log=log,
            )
            if not claim.try_lock():
                log.info("placement_busy", cluster_installation=ci.id)
                return installation.state
            try:
                current = self.store.get_cluster_installation(ci.id)
                if current is not None and current.state not in _PLACEMENT_DELETING:
                    current.state = ClusterInstallationState.DELETION_REQUESTED
                    self.store.update_cluster_installation(current, owner_id=self.instance_id)
            finally:
                claim.unlock()
        return InstallationState.DELETION_IN_PROGRESS

    def _check_deletion(self, installation: Installation, log: Any) -> InstallationState:
        remaining = [
            ci for ci in self.store.get_cluster_installations(installation_id=installation.id)
            if ci.state not in _PLACEMENT_GONE
        ]
        if any(ci.state == ClusterInstallationState.DELETION_FAILED for ci in remaining):
            return InstallationState.DELETION_FAILED
        if remaining:
            log.debug("installation_placements_remaining", count=len(remaining))
            return installation.state
        return InstallationState.DELETED


__all__ = ["InstallationSupervisor"]
