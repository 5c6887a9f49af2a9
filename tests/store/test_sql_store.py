"""Tests for SQLStore: entity CRUD, compare-and-set locks and pending work."""

from __future__ import annotations

import threading

import pytest

from provisioner.core.errors import EntityNotFoundError, LockNotHeldError
from provisioner.model.entities import Cluster, Installation, Migration
from provisioner.model.enums import (
    ClusterInstallationState,
    ClusterState,
    InstallationState,
    MigrationState,
)


class TestCrud:
    def test_create_assigns_id_and_create_at(self, store):
        m = store.create_migration(Migration(cluster_id="c1", cluster_installation_id="ci1"))
        assert len(m.id) == 26
        assert m.create_at > 0
        assert m.delete_at == 0
        assert m.lock_acquired_by is None

    def test_get_returns_enum_state(self, store):
        m = store.create_migration(Migration(cluster_id="c1", cluster_installation_id="ci1"))
        loaded = store.get_migration(m.id)
        assert loaded.state is MigrationState.CREATION_REQUESTED

    def test_get_unknown_is_none(self, store):
        assert store.get_migration("nope") is None

    def test_cluster_bool_round_trip(self, store):
        c = store.create_cluster(Cluster(allow_installations=False))
        assert store.get_cluster(c.id).allow_installations is False

    def test_lists_skip_soft_deleted(self, store, world):
        store.delete_installation(world.installation.id)
        assert store.get_installations() == []
        assert {c.id for c in store.get_clusters()} == {world.source_cluster.id, world.destination.id}

    def test_update_persists_state(self, store, migration):
        migration.state = MigrationState.CREATION_COMPLETE
        store.update_migration(migration)
        assert store.get_migration(migration.id).state is MigrationState.CREATION_COMPLETE

    def test_update_does_not_touch_lock_columns(self, store, migration):
        store.lock_migration(migration.id, "owner-a")
        stale = store.get_migration(migration.id)
        stale.lock_acquired_by = None
        store.update_migration(stale)
        assert store.get_migration(migration.id).lock_acquired_by == "owner-a"

    def test_update_guarded_by_owner(self, store, migration):
        store.lock_migration(migration.id, "owner-a")
        migration.state = MigrationState.STABLE
        with pytest.raises(LockNotHeldError):
            store.update_migration(migration, owner_id="owner-b")
        store.update_migration(migration, owner_id="owner-a")
        assert store.get_migration(migration.id).state is MigrationState.STABLE

    def test_update_unknown_raises_not_found(self, store):
        with pytest.raises(EntityNotFoundError):
            store.update_migration(Migration(id="ghost"))

    def test_soft_delete_hides_row(self, store, migration):
        store.delete_migration(migration.id)
        assert store.get_migration(migration.id) is None
        assert store.count_migrations() == 0

    def test_cluster_installation_filters(self, store, world):
        by_installation = store.get_cluster_installations(installation_id=world.installation.id)
        by_cluster = store.get_cluster_installations(cluster_id=world.destination.id)
        assert [ci.id for ci in by_installation] == [world.cluster_installation.id]
        assert by_cluster == []


class TestLocks:
    def test_claim_free_row(self, store, migration):
        assert store.lock_migration(migration.id, "owner-a") is True
        row = store.get_migration(migration.id)
        assert row.lock_acquired_by == "owner-a"
        assert row.lock_acquired_at > 0

    def test_reclaim_by_same_owner_succeeds(self, store, migration):
        assert store.lock_migration(migration.id, "owner-a")
        assert store.lock_migration(migration.id, "owner-a")

    def test_claim_by_other_owner_fails(self, store, migration):
        assert store.lock_migration(migration.id, "owner-a")
        assert store.lock_migration(migration.id, "owner-b") is False
        assert store.get_migration(migration.id).lock_acquired_by == "owner-a"

    def test_claim_unknown_row_fails(self, store):
        assert store.lock_migration("ghost", "owner-a") is False

    def test_claim_soft_deleted_row_fails(self, store, world, migration):
        store.delete_migration(migration.id)
        store.delete_installation(world.installation.id)
        assert store.lock_migration(migration.id, "owner-a") is False
        assert store.lock_installation(world.installation.id, "owner-a") is False

    def test_release_by_owner(self, store, migration):
        store.lock_migration(migration.id, "owner-a")
        assert store.unlock_migration(migration.id, "owner-a") is True
        row = store.get_migration(migration.id)
        assert row.lock_acquired_by is None
        assert row.lock_acquired_at == 0

    def test_release_by_non_owner_fails(self, store, migration):
        store.lock_migration(migration.id, "owner-a")
        assert store.unlock_migration(migration.id, "owner-b") is False
        assert store.get_migration(migration.id).lock_acquired_by == "owner-a"

    def test_release_free_row_fails(self, store, migration):
        assert store.unlock_migration(migration.id, "owner-a") is False

    def test_forced_release(self, store, migration):
        store.lock_migration(migration.id, "owner-a")
        assert store.unlock_migration(migration.id, "operator", force=True) is True
        assert store.get_migration(migration.id).lock_acquired_by is None

    def test_forced_release_of_free_row_reports_false(self, store, migration):
        assert store.unlock_migration(migration.id, "operator", force=True) is False

    def test_concurrent_claims_have_one_winner(self, store, migration):
        owners = [f"owner-{i}" for i in range(8)]
        results: dict[str, bool] = {}
        barrier = threading.Barrier(len(owners))

        def claim(owner: str) -> None:
            barrier.wait()
            results[owner] = store.lock_migration(migration.id, owner)

        threads = [threading.Thread(target=claim, args=(o,)) for o in owners]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [o for o, ok in results.items() if ok]
        assert len(winners) == 1
        assert store.get_migration(migration.id).lock_acquired_by == winners[0]

    @pytest.mark.parametrize(
        "lock_name",
        ["lock_cluster", "lock_installation", "lock_cluster_installation"],
    )
    def test_every_entity_has_compare_and_set(self, store, world, lock_name):
        entity_id = {
            "lock_cluster": world.source_cluster.id,
            "lock_installation": world.installation.id,
            "lock_cluster_installation": world.cluster_installation.id,
        }[lock_name]
        lock = getattr(store, lock_name)
        unlock = getattr(store, "un" + lock_name)
        assert lock(entity_id, "a")
        assert not lock(entity_id, "b")
        assert unlock(entity_id, "a")
        assert lock(entity_id, "b")


class TestPendingWork:
    def test_migrations_in_pending_states_listed(self, store, world):
        active = world.new_migration()
        done = world.new_migration(state=MigrationState.STABLE)
        failed = world.new_migration(state=MigrationState.CREATION_FAILED)
        ids = [m.id for m in store.get_unlocked_migrations_pending_work()]
        assert active.id in ids
        assert done.id not in ids
        assert failed.id not in ids

    def test_locked_rows_are_excluded(self, store, migration):
        store.lock_migration(migration.id, "someone")
        assert store.get_unlocked_migrations_pending_work() == []

    def test_deleted_rows_are_excluded(self, store, migration):
        store.delete_migration(migration.id)
        assert store.get_unlocked_migrations_pending_work() == []

    def test_installation_claimed_by_migration_is_invisible(self, store, world):
        world.installation.state = InstallationState.DELETION_REQUESTED
        store.update_installation(world.installation)
        assert [i.id for i in store.get_unlocked_installations_pending_work()] == [world.installation.id]

        store.lock_installation(world.installation.id, "migration-1")
        assert store.get_unlocked_installations_pending_work() == []

    def test_stable_entities_have_no_pending_work(self, store, world):
        assert store.get_unlocked_clusters_pending_work() == []
        assert store.get_unlocked_cluster_installations_pending_work() == []

    def test_pending_cluster_installation(self, store, world):
        world.cluster_installation.state = ClusterInstallationState.DELETION_REQUESTED
        store.update_cluster_installation(world.cluster_installation)
        pending = store.get_unlocked_cluster_installations_pending_work()
        assert [ci.id for ci in pending] == [world.cluster_installation.id]

    def test_pending_cluster(self, store):
        c = store.create_cluster(Cluster(state=ClusterState.CREATION_REQUESTED))
        assert [x.id for x in store.get_unlocked_clusters_pending_work()] == [c.id]


class TestMigrationQueries:
    def test_filters_and_paging(self, store, world):
        first = world.new_migration()
        second = world.new_migration(state=MigrationState.STABLE)
        third = world.new_migration(state=MigrationState.SNAPSHOT_CREATION_IN_PROGRESS)

        assert store.count_migrations() == 3
        assert store.count_migrations(active_only=True) == 2
        assert [m.id for m in store.get_migrations(states=[MigrationState.STABLE])] == [second.id]
        assert {m.id for m in store.get_migrations(active_only=True)} == {first.id, third.id}
        assert len(store.get_migrations(limit=2)) == 2
        assert len(store.get_migrations(limit=2, offset=2)) == 1

    def test_filter_by_source(self, store, world):
        m = world.new_migration()
        world.new_migration(cluster_installation_id="other")
        found = store.get_migrations(cluster_installation_id=world.cluster_installation.id)
        assert [x.id for x in found] == [m.id]


class TestSchema:
    def test_init_schema_is_idempotent(self, store):
        store.init_schema()
        store.init_schema()
        assert store.missing_tables() == []

    def test_installation_entity_defaults(self, store):
        i = store.create_installation(Installation(owner_id="o", dns="d", database="aws-rds"))
        assert store.get_installation(i.id).state is InstallationState.CREATION_REQUESTED
