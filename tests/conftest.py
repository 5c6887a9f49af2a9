"""
Shared pytest fixtures for the provisioner tests.

This module provides:
- An in-memory SQLite entity store
- A small world of clusters, an installation and its placement
- Deterministic fakes for the database capability and the AWS client

Usage:
    def test_something(store, world, fake_capability):
        ...
"""

import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

# Ensure the provisioner package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from provisioner.core.settings import ProvisionerSettings
from provisioner.model.entities import (
    Cluster,
    ClusterInstallation,
    Installation,
    Migration,
)
from provisioner.model.enums import (
    ClusterInstallationState,
    ClusterState,
    DatabaseBackendKind,
    DatabaseStatus,
    InstallationState,
)
from provisioner.store import open_store


# =============================================================================
# Store and entities
# =============================================================================


@pytest.fixture
def store():
    """Fresh in-memory store with every table created."""
    s = open_store("memory")
    yield s
    s.close()


@pytest.fixture
def settings():
    return ProvisionerSettings(
        database_url="memory",
        instance_id="instance-test",
        aws_region="us-east-1",
    )


@dataclass
class World:
    store: Any
    source_cluster: Cluster
    destination: Cluster
    installation: Installation
    cluster_installation: ClusterInstallation

    def new_migration(self, **overrides: Any) -> Migration:
        data = {
            "cluster_id": self.destination.id,
            "cluster_installation_id": self.cluster_installation.id,
        }
        data.update(overrides)
        return self.store.create_migration(Migration(**data))


def make_world(store, database: str = DatabaseBackendKind.AWS_RDS.value) -> World:
    source = store.create_cluster(Cluster(size="SizeAlef500", state=ClusterState.STABLE))
    destination = store.create_cluster(Cluster(size="SizeAlef500", state=ClusterState.STABLE))
    installation = store.create_installation(
        Installation(
            owner_id="owner-1",
            dns="tenant.example.com",
            database=database,
            filestore="aws-s3",
            size="100users",
            state=InstallationState.STABLE,
        )
    )
    ci = store.create_cluster_installation(
        ClusterInstallation(
            cluster_id=source.id,
            installation_id=installation.id,
            namespace=installation.id.lower(),
            state=ClusterInstallationState.STABLE,
        )
    )
    return World(store, source, destination, installation, ci)


@pytest.fixture
def world(store) -> World:
    """Two stable clusters and one RDS installation placed on the first."""
    return make_world(store)


@pytest.fixture
def world_with_backend(store):
    """``world_with_backend("mysql-operator")`` builds a world with that backend."""
    return lambda database: make_world(store, database)


@pytest.fixture
def migration(world) -> Migration:
    return world.new_migration()


# =============================================================================
# Capability fake
# =============================================================================


class FakeCapability:
    """Database migration capability that records calls.

    Status checks return ``snapshot_state`` / ``database_state``; an entry in
    ``errors`` makes the named method raise instead.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.built_for: list[tuple[str, str, bool]] = []
        self.snapshot_state = DatabaseStatus.READY
        self.database_state = DatabaseStatus.READY
        self.errors: dict[str, Exception] = {}

    def factory(self, installation, migration, client, *, keep_data=False):
        self.built_for.append((installation.id, migration.id, keep_data))
        return self

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.errors:
            raise self.errors[name]

    def snapshot(self) -> None:
        self._record("snapshot")

    def snapshot_status(self) -> DatabaseStatus:
        self._record("snapshot_status")
        return self.snapshot_state

    def restore(self) -> None:
        self._record("restore")

    def database_status(self) -> DatabaseStatus:
        self._record("database_status")
        return self.database_state

    def teardown(self) -> None:
        self._record("teardown")


@pytest.fixture
def fake_capability() -> FakeCapability:
    return FakeCapability()


# =============================================================================
# AWS client fake
# =============================================================================


@dataclass
class FakeAWSClient:
    """In-memory stand-in for :class:`provisioner.capability.aws.AWSClient`.

    Everything it creates starts in ``creating``; :meth:`settle` makes all
    resources ``available``.
    """

    vpc_ids: list[str] = field(default_factory=lambda: ["vpc-dest"])
    snapshots: dict[str, list[dict]] = field(default_factory=dict)
    db_clusters: dict[str, dict] = field(default_factory=dict)
    db_instances: dict[str, dict] = field(default_factory=dict)
    endpoints: dict[str, list[dict]] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    CREATE_CALLS = (
        "create_db_cluster_snapshot",
        "restore_db_cluster_from_snapshot",
        "create_db_instance",
    )

    def create_calls(self) -> list[str]:
        return [c for c in self.calls if c in self.CREATE_CALLS]

    def settle(self) -> None:
        now = datetime.now(UTC)
        for snaps in self.snapshots.values():
            for snap in snaps:
                snap["Status"] = "available"
                snap["SnapshotCreateTime"] = snap["SnapshotCreateTime"] or now
        for cluster in self.db_clusters.values():
            cluster["Status"] = "available"
        for endpoints in self.endpoints.values():
            for endpoint in endpoints:
                endpoint["Status"] = "available"
        for instance in self.db_instances.values():
            instance["DBInstanceStatus"] = "available"

    # -- EC2 ---------------------------------------------------------------

    def get_cluster_vpcs(self, cluster_id: str) -> list[dict]:
        self.calls.append("get_cluster_vpcs")
        return [{"VpcId": v} for v in self.vpc_ids]

    def get_db_security_group_ids(self, vpc_id: str) -> list[str]:
        return ["sg-db"]

    def get_db_subnet_group_name(self, vpc_id: str) -> str:
        return f"provisioner-db-{vpc_id}"

    # -- RDS ---------------------------------------------------------------

    def describe_db_cluster_snapshots(self, db_cluster_id: str) -> list[dict]:
        self.calls.append("describe_db_cluster_snapshots")
        return [dict(s) for s in self.snapshots.get(db_cluster_id, [])]

    def create_db_cluster_snapshot(self, db_cluster_id: str, snapshot_id: str, tags: dict) -> None:
        self.calls.append("create_db_cluster_snapshot")
        self.snapshots.setdefault(db_cluster_id, []).append({
            "DBClusterSnapshotIdentifier": snapshot_id,
            "DBClusterSnapshotArn": f"arn:aws:rds:us-east-1:000:cluster-snapshot:{snapshot_id}",
            "Status": "creating",
            "SnapshotCreateTime": None,
            "Tags": dict(tags),
        })

    def describe_db_cluster(self, db_cluster_id: str) -> dict | None:
        return self.db_clusters.get(db_cluster_id)

    def describe_db_instance(self, instance_id: str) -> dict | None:
        return self.db_instances.get(instance_id)

    def describe_db_cluster_endpoints(self, db_cluster_id: str) -> list[dict]:
        return self.endpoints.get(db_cluster_id, [])

    def restore_db_cluster_from_snapshot(self, **kwargs: Any) -> None:
        self.calls.append("restore_db_cluster_from_snapshot")
        cluster_id = kwargs["DBClusterIdentifier"]
        self.db_clusters[cluster_id] = {
            "DBClusterIdentifier": cluster_id,
            "Status": "creating",
            "TagList": list(kwargs.get("Tags", [])),
            "DBClusterMembers": [],
            "SnapshotIdentifier": kwargs["SnapshotIdentifier"],
        }
        self.endpoints[cluster_id] = [
            {"Endpoint": f"{cluster_id}.cluster-xyz.rds.amazonaws.com", "Status": "creating"},
        ]

    def create_db_instance(self, **kwargs: Any) -> None:
        self.calls.append("create_db_instance")
        instance_id = kwargs["DBInstanceIdentifier"]
        self.db_instances[instance_id] = {
            "DBInstanceIdentifier": instance_id,
            "DBInstanceStatus": "creating",
            "TagList": list(kwargs.get("Tags", [])),
        }
        cluster = self.db_clusters.get(kwargs["DBClusterIdentifier"])
        if cluster is not None:
            cluster["DBClusterMembers"].append({"DBInstanceIdentifier": instance_id})

    def delete_db_instance(self, instance_id: str) -> None:
        self.calls.append("delete_db_instance")
        self.db_instances.pop(instance_id, None)

    def delete_db_cluster(self, db_cluster_id: str) -> None:
        self.calls.append("delete_db_cluster")
        self.db_clusters.pop(db_cluster_id, None)
        self.endpoints.pop(db_cluster_id, None)


@pytest.fixture
def fake_aws() -> FakeAWSClient:
    return FakeAWSClient()
