"""Tests for the FastAPI application (migrations and health routers)."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from provisioner.api.app import create_app
from provisioner.model.enums import MigrationState
from provisioner.store import open_store
from provisioner.supervisor import MigrationSupervisor

PREFIX = "/api/v1"


@pytest.fixture
def supervisor(store, fake_capability):
    return MigrationSupervisor(store, None, "instance-api", capability_factory=fake_capability.factory)


@pytest.fixture
def client(settings, store, supervisor, fake_aws):
    app = create_app(settings, store=store, supervisor=supervisor, aws_client=fake_aws)
    with TestClient(app) as c:
        yield c


def _finish(store, migration, state=MigrationState.STABLE):
    migration.state = state
    store.update_migration(migration)


class TestCreateMigration:
    def test_accepted_and_supervised(self, client, world, store, fake_capability):
        resp = client.post(
            f"{PREFIX}/migrations",
            json={"cluster_id": world.destination.id, "installation_id": world.installation.id},
        )
        assert resp.status_code == 202
        body = resp.json()
        assert body["data"]["state"] == "creation-requested"

        # The background pass has already claimed the placement.
        stored = store.get_migration(body["data"]["id"])
        assert stored.state is MigrationState.CREATION_COMPLETE
        assert store.get_installation(world.installation.id).lock_acquired_by == stored.id
        assert fake_capability.calls == []

    def test_repost_does_not_trigger_supervisor(self, settings, store, world):
        supervisor = MagicMock()
        app = create_app(settings, store=store, supervisor=supervisor)
        with TestClient(app) as c:
            payload = {"cluster_id": world.destination.id, "installation_id": world.installation.id}
            first = c.post(f"{PREFIX}/migrations", json=payload)
            second = c.post(f"{PREFIX}/migrations", json=payload)
        assert first.json()["data"]["id"] == second.json()["data"]["id"]
        assert supervisor.do.call_count == 1

    def test_supervisor_failure_does_not_fail_request(self, settings, store, world):
        supervisor = MagicMock()
        supervisor.do.side_effect = RuntimeError("boom")
        app = create_app(settings, store=store, supervisor=supervisor)
        with TestClient(app) as c:
            resp = c.post(
                f"{PREFIX}/migrations",
                json={"cluster_id": world.destination.id, "installation_id": world.installation.id},
            )
        assert resp.status_code == 202

    def test_unknown_cluster_is_problem_json(self, client, world):
        resp = client.post(
            f"{PREFIX}/migrations",
            json={"cluster_id": "nope", "installation_id": world.installation.id},
        )
        assert resp.status_code == 404
        assert resp.headers["content-type"].startswith("application/problem+json")
        problem = resp.json()
        assert problem["status"] == 404
        assert problem["code"] == "NOT_FOUND"
        assert problem["title"] == "Not Found"
        assert problem["instance"] == f"{PREFIX}/migrations"

    def test_same_cluster_conflicts(self, client, world):
        resp = client.post(
            f"{PREFIX}/migrations",
            json={"cluster_id": world.source_cluster.id, "installation_id": world.installation.id},
        )
        assert resp.status_code == 409

    def test_body_validation(self, client):
        resp = client.post(f"{PREFIX}/migrations", json={"cluster_id": ""})
        assert resp.status_code == 422
        assert resp.headers["content-type"].startswith("application/problem+json")
        fields = {e["field"] for e in resp.json()["errors"]}
        assert {"body.cluster_id", "body.installation_id"} <= fields

    def test_conflict_names_active_migration(self, client, world, store):
        from provisioner.model.entities import Cluster

        other = store.create_cluster(Cluster(size="SizeAlef500"))
        active = world.new_migration(cluster_id=other.id)
        resp = client.post(
            f"{PREFIX}/migrations",
            json={"cluster_id": world.destination.id, "installation_id": world.installation.id},
        )
        assert resp.status_code == 409
        assert resp.json()["details"] == {"migration_id": active.id}

    @pytest.mark.parametrize("state", [MigrationState.STABLE, MigrationState.CREATION_FAILED])
    def test_finished_migration_still_claiming_conflicts(self, client, world, store, state):
        payload = {"cluster_id": world.destination.id, "installation_id": world.installation.id}
        first = client.post(f"{PREFIX}/migrations", json=payload)
        assert first.status_code == 202
        finished = store.get_migration(first.json()["data"]["id"])
        _finish(store, finished, state)

        resp = client.post(f"{PREFIX}/migrations", json=payload)
        assert resp.status_code == 409
        assert resp.json()["details"] == {"lock_acquired_by": finished.id}
        assert store.count_migrations() == 1

    def test_create_after_deleting_finished_migration(self, client, world, store):
        payload = {"cluster_id": world.destination.id, "installation_id": world.installation.id}
        first = client.post(f"{PREFIX}/migrations", json=payload)
        finished = store.get_migration(first.json()["data"]["id"])
        _finish(store, finished)

        assert client.delete(f"{PREFIX}/migrations/{finished.id}").status_code == 204
        resp = client.post(f"{PREFIX}/migrations", json=payload)
        assert resp.status_code == 202
        assert resp.json()["data"]["id"] != finished.id


class TestReadEndpoints:
    def test_list(self, client, world):
        for _ in range(3):
            world.new_migration()
        resp = client.get(f"{PREFIX}/migrations", params={"limit": 2})
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["data"]) == 2
        assert body["page"] == {"total": 3, "limit": 2, "offset": 0, "has_more": True}

    def test_list_active_only(self, client, world, store):
        done = world.new_migration()
        _finish(store, done)
        active = world.new_migration()
        body = client.get(f"{PREFIX}/migrations", params={"active": True}).json()
        assert [m["id"] for m in body["data"]] == [active.id]

    def test_list_bad_state(self, client):
        resp = client.get(f"{PREFIX}/migrations", params={"state": "bogus"})
        assert resp.status_code == 400

    def test_get(self, client, migration):
        resp = client.get(f"{PREFIX}/migrations/{migration.id}")
        assert resp.status_code == 200
        assert resp.json()["data"]["cluster_installation_id"] == migration.cluster_installation_id

    def test_get_missing(self, client):
        assert client.get(f"{PREFIX}/migrations/missing").status_code == 404


class TestWriteEndpoints:
    def test_delete_finished(self, client, store, migration):
        _finish(store, migration)
        resp = client.delete(f"{PREFIX}/migrations/{migration.id}")
        assert resp.status_code == 204
        assert store.get_migration(migration.id) is None

    def test_delete_active_conflicts(self, client, migration):
        assert client.delete(f"{PREFIX}/migrations/{migration.id}").status_code == 409

    def test_unlock_wrong_owner_is_423(self, client, store, migration):
        store.lock_migration(migration.id, "instance-a")
        resp = client.post(f"{PREFIX}/migrations/{migration.id}/unlock", json={"owner_id": "instance-b"})
        assert resp.status_code == 423
        assert resp.json()["details"] == {"lock_acquired_by": "instance-a"}

    def test_unlock_force(self, client, store, migration):
        store.lock_migration(migration.id, "instance-a")
        resp = client.post(f"{PREFIX}/migrations/{migration.id}/unlock", json={"force": True})
        assert resp.status_code == 200
        assert resp.json()["data"] == {"migration_id": migration.id, "released": True}

    def test_unlock_without_owner_is_400(self, client, migration):
        resp = client.post(f"{PREFIX}/migrations/{migration.id}/unlock", json={})
        assert resp.status_code == 400

    def test_teardown_requires_failed_migration(self, client, migration):
        assert client.post(f"{PREFIX}/migrations/{migration.id}/teardown").status_code == 409

    def test_teardown_failed_migration(self, client, store, migration, fake_aws):
        _finish(store, migration, MigrationState.CREATION_FAILED)
        resp = client.post(f"{PREFIX}/migrations/{migration.id}/teardown")
        assert resp.status_code == 202
        assert resp.json()["data"] == {"migration_id": migration.id}


class TestRequestID:
    def test_generated(self, client):
        assert client.get("/health/live").headers["X-Request-ID"]

    def test_echoed(self, client):
        resp = client.get("/health/live", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

    def test_long_id_truncated(self, client):
        resp = client.get("/health/live", headers={"X-Request-ID": "x" * 500})
        assert resp.headers["X-Request-ID"] == "x" * 128


class TestHealth:
    def test_healthy(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["checks"]["store"]["missing_tables"] == []

    def test_missing_tables_is_503(self, settings):
        bare = open_store("memory", init_schema=False)
        with TestClient(create_app(settings, store=bare)) as c:
            resp = c.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "unhealthy"

    def test_reports_scheduler(self, settings, store):
        scheduler = MagicMock()
        scheduler.health.return_value.to_dict.return_value = {"healthy": False, "running": False}
        with TestClient(create_app(settings, store=store, scheduler=scheduler)) as c:
            resp = c.get("/health")
        assert resp.status_code == 503
        assert resp.json()["checks"]["scheduler"]["running"] is False

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}


class TestUnhandledErrors:
    def test_500_problem(self, settings):
        store = MagicMock()
        store.get_migration.side_effect = RuntimeError("db exploded")
        app = create_app(settings, store=store)
        with TestClient(app, raise_server_exceptions=False) as c:
            resp = c.get(f"{PREFIX}/migrations/abc")
        assert resp.status_code == 500
        assert resp.json()["detail"] == "An unexpected error occurred."
