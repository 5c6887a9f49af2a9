"""Tests for the cluster, installation and cluster installation supervisors."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from provisioner.core.errors import CapabilityError, ConfigError, TransientError
from provisioner.model.entities import Cluster, ClusterInstallation, Installation
from provisioner.model.enums import (
    ClusterInstallationState,
    ClusterState,
    InstallationState,
)
from provisioner.supervisor import (
    ClusterInstallationSupervisor,
    ClusterSupervisor,
    EntitySupervisor,
    InstallationSupervisor,
    StoreBackedSupervisor,
)


def _set(update, entity, state):
    entity.state = state
    update(entity)


class TestClusterSupervisor:
    @pytest.fixture
    def provisioner(self):
        return MagicMock()

    @pytest.fixture
    def supervisor(self, store, provisioner):
        return ClusterSupervisor(store, "instance-a", provisioner)

    def test_requires_provisioner(self, store):
        with pytest.raises(ConfigError):
            ClusterSupervisor(store, "instance-a").do()

    def test_create_then_provision(self, store, supervisor, provisioner):
        c = store.create_cluster(Cluster())
        supervisor.do()
        assert store.get_cluster(c.id).state is ClusterState.PROVISIONING_REQUESTED
        supervisor.do()
        assert store.get_cluster(c.id).state is ClusterState.STABLE
        provisioner.create_cluster.assert_called_once()
        provisioner.provision_cluster.assert_called_once()

    def test_create_failure(self, store, supervisor, provisioner):
        provisioner.create_cluster.side_effect = CapabilityError("kops failed")
        c = store.create_cluster(Cluster())
        supervisor.do()
        assert store.get_cluster(c.id).state is ClusterState.CREATION_FAILED

    def test_provision_failure(self, store, supervisor, provisioner):
        provisioner.provision_cluster.side_effect = CapabilityError("helm failed")
        c = store.create_cluster(Cluster(state=ClusterState.PROVISIONING_REQUESTED))
        supervisor.do()
        assert store.get_cluster(c.id).state is ClusterState.PROVISIONING_FAILED

    def test_transient_failure_retries(self, store, supervisor, provisioner):
        provisioner.create_cluster.side_effect = TransientError("api timeout")
        c = store.create_cluster(Cluster())
        supervisor.do()
        assert store.get_cluster(c.id).state is ClusterState.CREATION_REQUESTED

    def test_delete_waits_for_placements(self, store, world, supervisor, provisioner):
        _set(store.update_cluster, world.source_cluster, ClusterState.DELETION_REQUESTED)
        supervisor.do()
        assert store.get_cluster(world.source_cluster.id).state is ClusterState.DELETION_REQUESTED
        provisioner.delete_cluster.assert_not_called()

    def test_delete_empty_cluster(self, store, world, supervisor, provisioner):
        _set(store.update_cluster, world.destination, ClusterState.DELETION_REQUESTED)
        supervisor.do()
        provisioner.delete_cluster.assert_called_once()
        assert store.get_cluster(world.destination.id) is None


class TestInstallationSupervisor:
    @pytest.fixture
    def supervisor(self, store):
        return InstallationSupervisor(store, "instance-a")

    def test_places_on_least_loaded_cluster(self, store, world, supervisor):
        inst = store.create_installation(Installation(owner_id="o", dns="n", database="aws-rds"))
        supervisor.do()

        assert store.get_installation(inst.id).state is InstallationState.CREATION_IN_PROGRESS
        placements = store.get_cluster_installations(installation_id=inst.id)
        assert len(placements) == 1
        assert placements[0].cluster_id == world.destination.id
        assert placements[0].namespace == inst.id.lower()

    def test_skips_clusters_not_accepting_installations(self, store, supervisor):
        store.create_cluster(Cluster(state=ClusterState.STABLE, allow_installations=False))
        store.create_cluster(Cluster(state=ClusterState.CREATION_REQUESTED))
        inst = store.create_installation(Installation(owner_id="o", dns="n", database="aws-rds"))
        supervisor.do()
        assert store.get_installation(inst.id).state is InstallationState.CREATION_NO_COMPATIBLE_CLUSTERS
        assert store.get_cluster_installations(installation_id=inst.id) == []

    def test_no_compatible_cluster_is_retried(self, store, supervisor):
        inst = store.create_installation(Installation(owner_id="o", dns="n", database="aws-rds"))
        supervisor.do()
        store.create_cluster(Cluster(state=ClusterState.STABLE))
        supervisor.do()
        assert store.get_installation(inst.id).state is InstallationState.CREATION_IN_PROGRESS

    def test_does_not_place_twice(self, store, world, supervisor):
        inst = store.create_installation(Installation(owner_id="o", dns="n", database="aws-rds"))
        supervisor.transition(store.get_installation(inst.id), supervisor.logger)
        supervisor.transition(store.get_installation(inst.id), supervisor.logger)
        assert len(store.get_cluster_installations(installation_id=inst.id)) == 1

    def test_stable_when_all_placements_stable(self, store, world, supervisor):
        _set(store.update_installation, world.installation, InstallationState.CREATION_IN_PROGRESS)
        supervisor.do()
        assert store.get_installation(world.installation.id).state is InstallationState.STABLE

    def test_creation_failed_when_placement_failed(self, store, world, supervisor):
        _set(store.update_installation, world.installation, InstallationState.CREATION_IN_PROGRESS)
        _set(
            store.update_cluster_installation,
            world.cluster_installation,
            ClusterInstallationState.CREATION_FAILED,
        )
        supervisor.do()
        assert store.get_installation(world.installation.id).state is InstallationState.CREATION_FAILED

    def test_deletion_flags_placements(self, store, world, supervisor):
        _set(store.update_installation, world.installation, InstallationState.DELETION_REQUESTED)
        supervisor.do()
        assert store.get_installation(world.installation.id).state is InstallationState.DELETION_IN_PROGRESS
        ci = store.get_cluster_installation(world.cluster_installation.id)
        assert ci.state is ClusterInstallationState.DELETION_REQUESTED
        assert ci.lock_acquired_by is None

    def test_deletion_waits_for_claimed_placement(self, store, world, supervisor):
        store.lock_cluster_installation(world.cluster_installation.id, "migration-1")
        _set(store.update_installation, world.installation, InstallationState.DELETION_REQUESTED)
        supervisor.do()
        assert store.get_installation(world.installation.id).state is InstallationState.DELETION_REQUESTED
        ci = store.get_cluster_installation(world.cluster_installation.id)
        assert ci.state is ClusterInstallationState.STABLE

    def test_deleted_once_placements_gone(self, store, world, supervisor):
        _set(store.update_installation, world.installation, InstallationState.DELETION_IN_PROGRESS)
        store.delete_cluster_installation(world.cluster_installation.id)
        supervisor.do()
        assert store.get_installation(world.installation.id) is None

    def test_claim_and_release(self, store, world, supervisor):
        assert supervisor.claim(world.installation.id, "migration-1")
        assert not supervisor.claim(world.installation.id, "migration-2")
        assert not supervisor.release(world.installation.id, "migration-2")
        assert supervisor.release(world.installation.id, "migration-1")


class TestClusterInstallationSupervisor:
    @pytest.fixture
    def provisioner(self):
        p = MagicMock()
        p.is_resource_ready.return_value = True
        return p

    @pytest.fixture
    def supervisor(self, store, provisioner):
        return ClusterInstallationSupervisor(store, "instance-a", provisioner)

    def _placement(self, store, world, state=ClusterInstallationState.CREATION_REQUESTED):
        return store.create_cluster_installation(
            ClusterInstallation(
                cluster_id=world.destination.id,
                installation_id=world.installation.id,
                namespace="ns",
                state=state,
            )
        )

    def test_requires_provisioner(self, store):
        with pytest.raises(ConfigError):
            ClusterInstallationSupervisor(store, "instance-a").do()

    def test_create_reconcile_stable(self, store, world, supervisor, provisioner):
        ci = self._placement(store, world)
        supervisor.do()
        assert store.get_cluster_installation(ci.id).state is ClusterInstallationState.RECONCILING
        supervisor.do()
        assert store.get_cluster_installation(ci.id).state is ClusterInstallationState.STABLE
        provisioner.create_cluster_installation.assert_called_once()

    def test_not_ready_keeps_reconciling(self, store, world, supervisor, provisioner):
        provisioner.is_resource_ready.return_value = False
        ci = self._placement(store, world, ClusterInstallationState.RECONCILING)
        supervisor.do()
        assert store.get_cluster_installation(ci.id).state is ClusterInstallationState.RECONCILING

    def test_delete_soft_deletes_row(self, store, world, supervisor, provisioner):
        ci = self._placement(store, world, ClusterInstallationState.DELETION_REQUESTED)
        supervisor.do()
        provisioner.delete_cluster_installation.assert_called_once()
        assert store.get_cluster_installation(ci.id) is None

    def test_delete_failure(self, store, world, supervisor, provisioner):
        provisioner.delete_cluster_installation.side_effect = CapabilityError("namespace stuck")
        ci = self._placement(store, world, ClusterInstallationState.DELETION_REQUESTED)
        supervisor.do()
        assert store.get_cluster_installation(ci.id).state is ClusterInstallationState.DELETION_FAILED

    def test_claimed_placement_is_skipped(self, store, world, supervisor, provisioner):
        ci = self._placement(store, world)
        supervisor.claim(ci.id, "migration-1")
        supervisor.do()
        provisioner.create_cluster_installation.assert_not_called()
        assert store.get_cluster_installation(ci.id).state is ClusterInstallationState.CREATION_REQUESTED

    def test_missing_cluster_fails_creation(self, store, world, supervisor):
        ci = store.create_cluster_installation(
            ClusterInstallation(cluster_id="gone", installation_id=world.installation.id, namespace="ns")
        )
        supervisor.do()
        assert store.get_cluster_installation(ci.id).state is ClusterInstallationState.CREATION_FAILED


class TestEntitySupervisorHooks:
    def test_missing_transition_cannot_be_instantiated(self, store):
        class Untransitioned(StoreBackedSupervisor):
            kind = "installation"

        with pytest.raises(TypeError, match="transition"):
            Untransitioned(
                "instance-a",
                pending=store.get_unlocked_installations_pending_work,
                reload=store.get_installation,
                update=store.update_installation,
                lock=store.lock_installation,
                unlock=store.unlock_installation,
            )

    def test_missing_store_hooks_cannot_be_instantiated(self):
        class TransitionOnly(EntitySupervisor):
            def transition(self, entity, log):
                return entity.state

        with pytest.raises(TypeError, match="pending"):
            TransitionOnly("instance-a")
