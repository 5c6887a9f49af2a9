"""
AWS RDS (Aurora MySQL) database migration capability.

Naming, for an installation whose cloud id is ``cloud-<id>``:

- source DB cluster:       ``cloud-<id>``
- snapshot:                ``cloud-<id>-snapshot-<migration id>``
- replica DB cluster:      ``cloud-<id>-migrated``
- replica master instance: ``cloud-<id>-migrated-master``

Every resource this capability creates is tagged with ``MigrationID``; that
tag is how a later tick recognises "already requested by us" as opposed to
"someone else's resource with the same name".

Snapshot selection:
    Candidates must carry both
    ``ClusterInstallationSnapshot = rds-snapshot-<cloud id>`` and
    ``MigrationID = <migration id>``. Among candidates the newest
    ``SnapshotCreateTime`` wins; a snapshot without a create time is still
    being created and counts as the newest.

Tags:
    aws, rds, aurora, snapshot, restore, capability, provisioner
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from provisioner.capability.aws import AWSClient, cloud_id, tags_to_dict
from provisioner.core.errors import (
    ResourceBusyError,
    ResourceConflictError,
    ResourceNotFoundError,
    UnexpectedStatusError,
)
from provisioner.core.logging import get_logger
from provisioner.model.enums import DatabaseStatus

logger = get_logger(__name__)

SNAPSHOT_TAG_KEY = "ClusterInstallationSnapshot"
SNAPSHOT_TAG_VALUE_TEMPLATE = "rds-snapshot-{cloud_id}"
MIGRATION_TAG_KEY = "MigrationID"

AURORA_MYSQL_ENGINE = "aurora-mysql"
AURORA_MYSQL_ENGINE_VERSION = "5.7"
AURORA_ENGINE_MODE = "provisioned"
RDS_PARAMETER_GROUP_NAME = "replication-aurora-mysql57"
RDS_INSTANCE_CLASS = "db.r5.large"
RDS_MYSQL_PORT = 3306

STATUS_AVAILABLE = "available"
STATUS_CREATING = "creating"
STATUS_MODIFYING = "modifying"
STATUS_DELETING = "deleting"

# Instance statuses a freshly requested instance passes through.
_INSTANCE_SETTLING = frozenset({
    STATUS_CREATING,
    "backing-up",
    "configuring-enhanced-monitoring",
    "configuring-iam-database-auth",
    "configuring-log-exports",
})

_EPOCH = datetime.min.replace(tzinfo=UTC)


def select_latest_snapshot(
    snapshots: list[dict[str, Any]],
    expected_tags: dict[str, str],
) -> dict[str, Any] | None:
    """Pick the newest snapshot whose ``Tags`` contain every expected pair."""
    candidates = [
        s for s in snapshots
        if all(s.get("Tags", {}).get(k) == v for k, v in expected_tags.items())
    ]
    if not candidates:
        return None
    candidates.sort(
        key=lambda s: (s.get("SnapshotCreateTime") is None, s.get("SnapshotCreateTime") or _EPOCH),
        reverse=True,
    )
    return candidates[0]


def _worst(statuses: list[DatabaseStatus]) -> DatabaseStatus:
    if DatabaseStatus.FAILING in statuses:
        return DatabaseStatus.FAILING
    if DatabaseStatus.IN_PROGRESS in statuses:
        return DatabaseStatus.IN_PROGRESS
    return DatabaseStatus.READY


class RDSDatabaseMigration:
    """Snapshot an installation's Aurora cluster and restore it as a replica
    inside the destination compute cluster's VPC.

    Parameters:
        installation_id: Source installation (its cloud id names the DB cluster).
        destination_cluster_id: Compute cluster whose VPC receives the replica.
        migration_id: Owning migration; used in names and tags.
        client: Explicit :class:`AWSClient`.
        keep_data: ``teardown`` leaves the replica in place.
    """

    def __init__(
        self,
        installation_id: str,
        destination_cluster_id: str,
        migration_id: str,
        client: AWSClient,
        *,
        keep_data: bool = False,
    ) -> None:
        self.client = client
        self.keep_data = keep_data
        self.destination_cluster_id = destination_cluster_id
        self.migration_id = migration_id

        self.source_db_cluster_id = cloud_id(installation_id)
        self.snapshot_id = f"{self.source_db_cluster_id}-snapshot-{migration_id.lower()}"
        self.replica_db_cluster_id = f"{self.source_db_cluster_id}-migrated"
        self.replica_instance_id = f"{self.source_db_cluster_id}-migrated-master"

        self.snapshot_tags = {
            SNAPSHOT_TAG_KEY: SNAPSHOT_TAG_VALUE_TEMPLATE.format(cloud_id=self.source_db_cluster_id),
            MIGRATION_TAG_KEY: migration_id,
        }
        self.logger = logger.bind(
            migration=migration_id,
            db_cluster=self.source_db_cluster_id,
        )

    # -- helpers -----------------------------------------------------------

    def _latest_snapshot(self) -> dict[str, Any] | None:
        snapshots = self.client.describe_db_cluster_snapshots(self.source_db_cluster_id)
        return select_latest_snapshot(snapshots, self.snapshot_tags)

    def _is_ours(self, resource: dict[str, Any]) -> bool:
        return tags_to_dict(resource.get("TagList")).get(MIGRATION_TAG_KEY) == self.migration_id

    def _destination_vpc_id(self) -> str:
        vpcs = self.client.get_cluster_vpcs(self.destination_cluster_id)
        if len(vpcs) != 1:
            raise ResourceNotFoundError(
                f"Expected 1 VPC for cluster {self.destination_cluster_id}, found {len(vpcs)}"
            ).with_context(cluster_id=self.destination_cluster_id)
        return vpcs[0]["VpcId"]

    def _check_existing(self, resource: dict[str, Any] | None, status_key: str, name: str) -> bool:
        """``True`` when *resource* already exists and belongs to this migration."""
        if resource is None:
            return False
        if resource.get(status_key) == STATUS_DELETING:
            raise ResourceBusyError(f"{name} is still being deleted").with_context(resource_id=name)
        if not self._is_ours(resource):
            raise ResourceConflictError(
                f"{name} already exists and does not belong to migration {self.migration_id}"
            ).with_context(resource_id=name, migration_id=self.migration_id)
        return True

    # -- DatabaseMigration -------------------------------------------------

    def snapshot(self) -> None:
        existing = self._latest_snapshot()
        if existing is not None:
            self.logger.debug(
                "rds_snapshot_already_requested",
                snapshot=existing.get("DBClusterSnapshotIdentifier"),
            )
            return

        self.client.create_db_cluster_snapshot(
            self.source_db_cluster_id, self.snapshot_id, self.snapshot_tags
        )
        self.logger.info("rds_snapshot_requested", snapshot=self.snapshot_id)

    def snapshot_status(self) -> DatabaseStatus:
        snapshot = self._latest_snapshot()
        if snapshot is None:
            raise ResourceNotFoundError(
                f"DB cluster {self.source_db_cluster_id} has no snapshot for migration {self.migration_id}"
            ).with_context(resource_id=self.source_db_cluster_id)

        status = snapshot.get("Status")
        if status in (STATUS_CREATING, STATUS_MODIFYING):
            return DatabaseStatus.IN_PROGRESS
        if status == STATUS_AVAILABLE:
            self.logger.info("rds_snapshot_available", snapshot=snapshot.get("DBClusterSnapshotIdentifier"))
            return DatabaseStatus.READY
        self.logger.warning("rds_snapshot_unusable", status=status)
        return DatabaseStatus.FAILING

    def restore(self) -> None:
        vpc_id = self._destination_vpc_id()

        snapshot = self._latest_snapshot()
        if snapshot is None:
            raise ResourceNotFoundError(
                f"DB cluster {self.source_db_cluster_id} has no snapshot to restore from"
            ).with_context(resource_id=self.source_db_cluster_id)
        status = snapshot.get("Status")
        if status == STATUS_DELETING:
            raise UnexpectedStatusError(
                f"Snapshot {snapshot.get('DBClusterSnapshotIdentifier')} is being deleted"
            )
        if status != STATUS_AVAILABLE:
            raise ResourceBusyError(f"Snapshot is not available yet (status {status})")

        tags = [{"Key": MIGRATION_TAG_KEY, "Value": self.migration_id}]

        existing_cluster = self.client.describe_db_cluster(self.replica_db_cluster_id)
        if self._check_existing(existing_cluster, "Status", self.replica_db_cluster_id):
            self.logger.debug("rds_replica_cluster_already_requested", replica=self.replica_db_cluster_id)
        else:
            self.client.restore_db_cluster_from_snapshot(
                DBClusterIdentifier=self.replica_db_cluster_id,
                SnapshotIdentifier=snapshot["DBClusterSnapshotIdentifier"],
                Engine=AURORA_MYSQL_ENGINE,
                EngineVersion=AURORA_MYSQL_ENGINE_VERSION,
                EngineMode=AURORA_ENGINE_MODE,
                DBClusterParameterGroupName=RDS_PARAMETER_GROUP_NAME,
                DBSubnetGroupName=self.client.get_db_subnet_group_name(vpc_id),
                VpcSecurityGroupIds=self.client.get_db_security_group_ids(vpc_id),
                Port=RDS_MYSQL_PORT,
                Tags=tags,
            )
            self.logger.info(
                "rds_replica_cluster_requested",
                replica=self.replica_db_cluster_id,
                snapshot=snapshot["DBClusterSnapshotIdentifier"],
                vpc_id=vpc_id,
            )

        existing_instance = self.client.describe_db_instance(self.replica_instance_id)
        if self._check_existing(existing_instance, "DBInstanceStatus", self.replica_instance_id):
            self.logger.debug("rds_replica_instance_already_requested", instance=self.replica_instance_id)
            return

        self.client.create_db_instance(
            DBClusterIdentifier=self.replica_db_cluster_id,
            DBInstanceIdentifier=self.replica_instance_id,
            DBInstanceClass=RDS_INSTANCE_CLASS,
            Engine=AURORA_MYSQL_ENGINE,
            PubliclyAccessible=False,
            Tags=tags,
        )
        self.logger.info("rds_replica_instance_requested", instance=self.replica_instance_id)

    def database_status(self) -> DatabaseStatus:
        endpoints = self.client.describe_db_cluster_endpoints(self.replica_db_cluster_id)
        statuses = []
        if not endpoints:
            statuses.append(DatabaseStatus.IN_PROGRESS)
        for endpoint in endpoints:
            status = endpoint.get("Status")
            if status == STATUS_AVAILABLE:
                statuses.append(DatabaseStatus.READY)
            elif status == STATUS_CREATING:
                statuses.append(DatabaseStatus.IN_PROGRESS)
            else:
                self.logger.warning("rds_endpoint_unusable", endpoint=endpoint.get("Endpoint"), status=status)
                statuses.append(DatabaseStatus.FAILING)

        instance = self.client.describe_db_instance(self.replica_instance_id)
        if instance is None:
            raise ResourceNotFoundError(
                f"DB instance {self.replica_instance_id} not found"
            ).with_context(resource_id=self.replica_instance_id)
        instance_status = instance.get("DBInstanceStatus")
        if instance_status == STATUS_AVAILABLE:
            statuses.append(DatabaseStatus.READY)
        elif instance_status in _INSTANCE_SETTLING:
            statuses.append(DatabaseStatus.IN_PROGRESS)
        else:
            self.logger.warning("rds_instance_unusable", instance=self.replica_instance_id, status=instance_status)
            statuses.append(DatabaseStatus.FAILING)

        result = _worst(statuses)
        if result is DatabaseStatus.READY:
            self.logger.info("rds_replica_ready", replica=self.replica_db_cluster_id)
        return result

    def teardown(self) -> None:
        if self.keep_data:
            self.logger.info("rds_teardown_skipped_keep_data", replica=self.replica_db_cluster_id)
            return

        cluster = self.client.describe_db_cluster(self.replica_db_cluster_id)
        if cluster is None:
            self.logger.warning("rds_replica_not_found_assuming_deleted", replica=self.replica_db_cluster_id)
            return
        if not self._is_ours(cluster):
            raise ResourceConflictError(
                f"{self.replica_db_cluster_id} does not belong to migration {self.migration_id}"
            ).with_context(resource_id=self.replica_db_cluster_id)

        for member in cluster.get("DBClusterMembers", []):
            self.client.delete_db_instance(member["DBInstanceIdentifier"])
            self.logger.debug("rds_instance_deleted", instance=member["DBInstanceIdentifier"])

        self.client.delete_db_cluster(self.replica_db_cluster_id)
        self.logger.info("rds_replica_deleted", replica=self.replica_db_cluster_id)


__all__ = ["RDSDatabaseMigration", "select_latest_snapshot"]
