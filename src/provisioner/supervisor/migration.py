"""
Migration supervisor: moves a cluster installation's database to a new cluster.

Each tick advances a migration by at most one state:

    ::

        creation-requested            claim placement, then installation
        creation-complete             request snapshot
        snapshot-creation-in-progress poll snapshot
        snapshot-creation-complete    request replica from snapshot
        restore-database-in-progress  poll replica
        restore-database-complete
        stable (T)                    creation-failed (T) reachable from any state

Re-entry:
    A step may run again after a crash between the cloud request and the
    state write. The capability treats "already requested by this migration"
    as success, so a repeated step issues no second create call.

Errors:
    Retryable provisioner errors leave the state unchanged (next tick
    retries); any other provisioner error moves the migration to
    ``creation-failed``. Nothing escapes :meth:`supervise`.

Collaborators:
    The placement and the installation are claimed with the *migration id* as
    owner (placement first, always) through the installation and cluster
    installation supervisors, which takes them out of those supervisors'
    pending work. The claims are kept when the migration finishes.

    No destination installation or cluster installation is created: a
    migration ends once the replica database is restored on the destination
    cluster's network. Moving the placement itself is left to the operator.

Tags:
    supervisor, migration, rds, snapshot, fsm, provisioner
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from provisioner.capability.aws import AWSClient
from provisioner.capability.factory import get_database_migration, is_migratable
from provisioner.capability.protocol import DatabaseMigration
from provisioner.core.errors import EntityNotFoundError
from provisioner.model.entities import ClusterInstallation, Installation, Migration
from provisioner.model.enums import DatabaseStatus, MigrationState
from provisioner.store.sql_store import SQLStore
from provisioner.supervisor.base import StoreBackedSupervisor
from provisioner.supervisor.cluster_installation import ClusterInstallationSupervisor
from provisioner.supervisor.installation import InstallationSupervisor

CapabilityFactory = Callable[..., DatabaseMigration]


class MigrationSupervisor(StoreBackedSupervisor[Migration]):
    """Drives migrations to ``stable`` or ``creation-failed``.

    Args:
        store: Entity store.
        aws_client: Client handed to the database capability.
        instance_id: Lock owner for the migration rows themselves.
        installations / cluster_installations: Claim collaborators; built
            over *store* when omitted.
        keep_database_data: Passed to the capability (teardown keeps data).
        capability_factory: ``(installation, migration, client, *, keep_data)``
            → :class:`DatabaseMigration`. Tests pass a fake.
    """

    kind = "migration"

    def __init__(
        self,
        store: SQLStore,
        aws_client: AWSClient | None,
        instance_id: str,
        *,
        installations: InstallationSupervisor | None = None,
        cluster_installations: ClusterInstallationSupervisor | None = None,
        keep_database_data: bool = False,
        capability_factory: CapabilityFactory = get_database_migration,
    ) -> None:
        super().__init__(
            instance_id,
            pending=store.get_unlocked_migrations_pending_work,
            reload=store.get_migration,
            update=store.update_migration,
            lock=store.lock_migration,
            unlock=store.unlock_migration,
        )
        self.store = store
        self.aws_client = aws_client
        self.installations = installations or InstallationSupervisor(store, instance_id)
        self.cluster_installations = cluster_installations or ClusterInstallationSupervisor(
            store, instance_id
        )
        self.keep_database_data = keep_database_data
        self.capability_factory = capability_factory
        self._steps: dict[MigrationState, Callable[[Migration, Any], MigrationState]] = {
            MigrationState.CREATION_REQUESTED: self._claim_source,
            MigrationState.CREATION_COMPLETE: self._request_snapshot,
            MigrationState.SNAPSHOT_CREATION_IN_PROGRESS: self._check_snapshot,
            MigrationState.SNAPSHOT_CREATION_COMPLETE: self._request_restore,
            MigrationState.RESTORE_DATABASE_IN_PROGRESS: self._check_restore,
            MigrationState.RESTORE_DATABASE_COMPLETE: self._complete,
        }

    def transition(self, migration: Migration, log: Any) -> MigrationState:
        if migration.state.is_terminal:
            return migration.state

        step = self._steps.get(migration.state)
        if step is None:
            log.warning("unexpected_pending_state", state=migration.state.value)
            return migration.state
        return self.run_step(step, migration, log, MigrationState.CREATION_FAILED)

    # -- collaborators -----------------------------------------------------

    def load_source(self, migration: Migration) -> tuple[ClusterInstallation, Installation]:
        """Source placement and its installation, read fresh from the store."""
        ci = self.store.get_cluster_installation(migration.cluster_installation_id)
        if ci is None:
            raise EntityNotFoundError(
                f"Cluster installation {migration.cluster_installation_id} not found"
            ).with_context(
                migration_id=migration.id,
                cluster_installation_id=migration.cluster_installation_id,
            )
        installation = self.store.get_installation(ci.installation_id)
        if installation is None:
            raise EntityNotFoundError(
                f"Installation {ci.installation_id} not found"
            ).with_context(migration_id=migration.id, installation_id=ci.installation_id)
        return ci, installation

    def capability_for(self, migration: Migration) -> DatabaseMigration:
        _, installation = self.load_source(migration)
        return self.capability_factory(
            installation,
            migration,
            self.aws_client,
            keep_data=self.keep_database_data,
        )

    # -- steps -------------------------------------------------------------

    def _claim_source(self, migration: Migration, log: Any) -> MigrationState:
        ci, installation = self.load_source(migration)
        if self.store.get_cluster(migration.cluster_id) is None:
            raise EntityNotFoundError(
                f"Destination cluster {migration.cluster_id} not found"
            ).with_context(migration_id=migration.id, cluster_id=migration.cluster_id)

        if not is_migratable(installation):
            log.error("database_backend_not_migratable", backend=installation.database)
            return MigrationState.CREATION_FAILED

        if not self.cluster_installations.claim(ci.id, migration.id):
            log.info("cluster_installation_claimed_elsewhere", cluster_installation=ci.id)
            return migration.state
        if not self.installations.claim(installation.id, migration.id):
            log.info("installation_claimed_elsewhere", installation=installation.id)
            return migration.state

        log.debug("source_claimed", cluster_installation=ci.id, installation=installation.id)
        return MigrationState.CREATION_COMPLETE

    def _request_snapshot(self, migration: Migration, log: Any) -> MigrationState:
        self.capability_for(migration).snapshot()
        return MigrationState.SNAPSHOT_CREATION_IN_PROGRESS

    def _check_snapshot(self, migration: Migration, log: Any) -> MigrationState:
        return self._follow(
            self.capability_for(migration).snapshot_status(),
            migration,
            log,
            MigrationState.SNAPSHOT_CREATION_COMPLETE,
        )

    def _request_restore(self, migration: Migration, log: Any) -> MigrationState:
        self.capability_for(migration).restore()
        return MigrationState.RESTORE_DATABASE_IN_PROGRESS

    def _check_restore(self, migration: Migration, log: Any) -> MigrationState:
        return self._follow(
            self.capability_for(migration).database_status(),
            migration,
            log,
            MigrationState.RESTORE_DATABASE_COMPLETE,
        )

    def _complete(self, migration: Migration, log: Any) -> MigrationState:
        return MigrationState.STABLE

    @staticmethod
    def _follow(
        status: DatabaseStatus,
        migration: Migration,
        log: Any,
        ready_state: MigrationState,
    ) -> MigrationState:
        if status == DatabaseStatus.READY:
            return ready_state
        if status == DatabaseStatus.IN_PROGRESS:
            log.debug("database_operation_in_progress", state=migration.state.value)
            return migration.state
        log.error("database_operation_failing", state=migration.state.value)
        return MigrationState.CREATION_FAILED


__all__ = ["MigrationSupervisor"]
