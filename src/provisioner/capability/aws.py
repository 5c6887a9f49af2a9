"""
AWS client wrapper for the RDS / EC2 calls the migration capability needs.

One :class:`AWSClient` is built per supervisor (from settings) and passed in
explicitly; nothing in the package keeps a module-level boto3 client.

Every call goes through :meth:`AWSClient._call`, which turns botocore
exceptions into the provisioner error hierarchy (throttling and connection
failures are retryable, other client errors are terminal) and lets the
caller name error codes that simply mean "nothing there" or "already done".

Tags:
    aws, boto3, rds, ec2, client, provisioner
"""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from provisioner.core.errors import (
    ResourceBusyError,
    ResourceNotFoundError,
    aws_error_code,
    classify_aws_error,
)
from provisioner.core.logging import get_logger

logger = get_logger(__name__)

# Prefix used when naming AWS resources after an installation. Changing it
# orphans the resources of existing installations.
CLOUD_ID_PREFIX = "cloud-"

VPC_CLUSTER_ID_TAG_KEY = "tag:CloudClusterID"
VPC_AVAILABLE_TAG_KEY = "tag:Available"
VPC_AVAILABLE_TAG_VALUE_FALSE = "false"

DB_SECURITY_GROUP_TAG_KEY = "tag:InstallationDatabase"
DB_SECURITY_GROUP_TAG_VALUE = "MYSQL/Aurora"
DB_SUBNET_GROUP_NAME_TEMPLATE = "provisioner-db-{vpc_id}"

DB_CLUSTER_NOT_FOUND = "DBClusterNotFoundFault"
DB_INSTANCE_NOT_FOUND = "DBInstanceNotFound"
DB_CLUSTER_SNAPSHOT_NOT_FOUND = "DBClusterSnapshotNotFoundFault"
DB_CLUSTER_ALREADY_EXISTS = "DBClusterAlreadyExistsFault"
DB_INSTANCE_ALREADY_EXISTS = "DBInstanceAlreadyExists"
DB_CLUSTER_SNAPSHOT_ALREADY_EXISTS = "DBClusterSnapshotAlreadyExistsFault"
INVALID_DB_CLUSTER_STATE = "InvalidDBClusterStateFault"
INVALID_DB_INSTANCE_STATE = "InvalidDBInstanceState"


def cloud_id(installation_id: str) -> str:
    """AWS-safe identifier for an installation (lowercase, ``cloud-`` prefix)."""
    return f"{CLOUD_ID_PREFIX}{installation_id}".lower()


def tags_to_dict(tag_list: list[dict[str, str]] | None) -> dict[str, str]:
    """``[{"Key": k, "Value": v}, ...]`` → ``{k: v}``."""
    return {t["Key"]: t.get("Value", "") for t in tag_list or [] if "Key" in t}


def dict_to_tags(tags: dict[str, str]) -> list[dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in tags.items()]


class AWSClient:
    """Thin wrapper over boto3 ``rds`` and ``ec2`` clients.

    Parameters:
        region: AWS region for both clients.
        rds_client / ec2_client: Pre-built clients (tests pass stubbed ones).
        endpoint_url: Alternate endpoint (LocalStack).
    """

    def __init__(
        self,
        region: str = "us-east-1",
        *,
        rds_client: Any = None,
        ec2_client: Any = None,
        endpoint_url: str | None = None,
    ) -> None:
        self.region = region
        client_kwargs: dict[str, Any] = {
            "region_name": region,
            "config": Config(retries={"max_attempts": 3, "mode": "standard"}),
        }
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        self.rds = rds_client or boto3.client("rds", **client_kwargs)
        self.ec2 = ec2_client or boto3.client("ec2", **client_kwargs)

    def _call(
        self,
        client: Any,
        operation: str,
        *,
        tolerate: tuple[str, ...] = (),
        busy: tuple[str, ...] = (),
        **kwargs: Any,
    ) -> Any:
        """Invoke *operation*.

        Returns ``None`` when the error code is in *tolerate*; raises
        :class:`ResourceBusyError` (retry next tick) when it is in *busy*.
        """
        try:
            return getattr(client, operation)(**kwargs)
        except ClientError as e:
            code = aws_error_code(e)
            if code in tolerate:
                logger.debug("aws_error_tolerated", operation=operation, code=code)
                return None
            if code in busy:
                raise ResourceBusyError(f"{operation} failed: {code}", cause=e) from e
            raise classify_aws_error(e, f"{operation} failed") from e
        except BotoCoreError as e:
            raise classify_aws_error(e, f"{operation} failed") from e

    # -- EC2 ---------------------------------------------------------------

    def get_cluster_vpcs(self, cluster_id: str) -> list[dict[str, Any]]:
        """VPCs claimed by the given compute cluster."""
        result = self._call(
            self.ec2,
            "describe_vpcs",
            Filters=[
                {"Name": VPC_CLUSTER_ID_TAG_KEY, "Values": [cluster_id]},
                {"Name": VPC_AVAILABLE_TAG_KEY, "Values": [VPC_AVAILABLE_TAG_VALUE_FALSE]},
            ],
        )
        return result.get("Vpcs", [])

    def get_db_security_group_ids(self, vpc_id: str) -> list[str]:
        result = self._call(
            self.ec2,
            "describe_security_groups",
            Filters=[
                {"Name": "vpc-id", "Values": [vpc_id]},
                {"Name": DB_SECURITY_GROUP_TAG_KEY, "Values": [DB_SECURITY_GROUP_TAG_VALUE]},
            ],
        )
        group_ids = [sg["GroupId"] for sg in result.get("SecurityGroups", [])]
        if not group_ids:
            raise ResourceNotFoundError(
                f"No security groups tagged {DB_SECURITY_GROUP_TAG_KEY}={DB_SECURITY_GROUP_TAG_VALUE}"
            ).with_context(resource_id=vpc_id)
        logger.debug("db_security_groups_found", vpc_id=vpc_id, group_ids=group_ids)
        return group_ids

    # -- RDS: subnet groups ------------------------------------------------

    def get_db_subnet_group_name(self, vpc_id: str) -> str:
        # DescribeDBSubnetGroups has no filter support; match by name.
        expected = DB_SUBNET_GROUP_NAME_TEMPLATE.format(vpc_id=vpc_id)
        marker = None
        while True:
            kwargs: dict[str, Any] = {"Marker": marker} if marker else {}
            result = self._call(self.rds, "describe_db_subnet_groups", **kwargs)
            for group in result.get("DBSubnetGroups", []):
                if group.get("DBSubnetGroupName") == expected:
                    return expected
            marker = result.get("Marker")
            if not marker:
                break
        raise ResourceNotFoundError(f"DB subnet group {expected} not found").with_context(
            resource_id=vpc_id
        )

    # -- RDS: clusters and instances ---------------------------------------

    def describe_db_cluster(self, db_cluster_id: str) -> dict[str, Any] | None:
        result = self._call(
            self.rds,
            "describe_db_clusters",
            tolerate=(DB_CLUSTER_NOT_FOUND,),
            DBClusterIdentifier=db_cluster_id,
        )
        if not result or not result.get("DBClusters"):
            return None
        return result["DBClusters"][0]

    def describe_db_instance(self, instance_id: str) -> dict[str, Any] | None:
        result = self._call(
            self.rds,
            "describe_db_instances",
            tolerate=(DB_INSTANCE_NOT_FOUND,),
            DBInstanceIdentifier=instance_id,
        )
        if not result or not result.get("DBInstances"):
            return None
        return result["DBInstances"][0]

    def describe_db_cluster_endpoints(self, db_cluster_id: str) -> list[dict[str, Any]]:
        result = self._call(
            self.rds,
            "describe_db_cluster_endpoints",
            DBClusterIdentifier=db_cluster_id,
        )
        return result.get("DBClusterEndpoints", [])

    def restore_db_cluster_from_snapshot(self, **kwargs: Any) -> None:
        self._call(
            self.rds,
            "restore_db_cluster_from_snapshot",
            tolerate=(DB_CLUSTER_ALREADY_EXISTS,),
            **kwargs,
        )

    def create_db_instance(self, **kwargs: Any) -> None:
        self._call(
            self.rds,
            "create_db_instance",
            tolerate=(DB_INSTANCE_ALREADY_EXISTS,),
            **kwargs,
        )

    def delete_db_instance(self, instance_id: str) -> None:
        self._call(
            self.rds,
            "delete_db_instance",
            tolerate=(DB_INSTANCE_NOT_FOUND, INVALID_DB_INSTANCE_STATE),
            DBInstanceIdentifier=instance_id,
            SkipFinalSnapshot=True,
        )

    def delete_db_cluster(self, db_cluster_id: str) -> None:
        # Members still shutting down leave the cluster in an invalid state.
        self._call(
            self.rds,
            "delete_db_cluster",
            tolerate=(DB_CLUSTER_NOT_FOUND,),
            busy=(INVALID_DB_CLUSTER_STATE,),
            DBClusterIdentifier=db_cluster_id,
            SkipFinalSnapshot=True,
        )

    # -- RDS: snapshots ----------------------------------------------------

    def describe_db_cluster_snapshots(self, db_cluster_id: str) -> list[dict[str, Any]]:
        """Manual snapshots of *db_cluster_id*, each with a ``Tags`` dict attached."""
        snapshots: list[dict[str, Any]] = []
        marker = None
        while True:
            kwargs: dict[str, Any] = {
                "DBClusterIdentifier": db_cluster_id,
                "SnapshotType": "manual",
            }
            if marker:
                kwargs["Marker"] = marker
            result = self._call(
                self.rds,
                "describe_db_cluster_snapshots",
                tolerate=(DB_CLUSTER_NOT_FOUND, DB_CLUSTER_SNAPSHOT_NOT_FOUND),
                **kwargs,
            )
            if not result:
                break
            snapshots.extend(result.get("DBClusterSnapshots", []))
            marker = result.get("Marker")
            if not marker:
                break

        for snapshot in snapshots:
            tags = self._call(
                self.rds,
                "list_tags_for_resource",
                ResourceName=snapshot["DBClusterSnapshotArn"],
            )
            snapshot["Tags"] = tags_to_dict(tags.get("TagList"))
        return snapshots

    def create_db_cluster_snapshot(self, db_cluster_id: str, snapshot_id: str, tags: dict[str, str]) -> None:
        self._call(
            self.rds,
            "create_db_cluster_snapshot",
            tolerate=(DB_CLUSTER_SNAPSHOT_ALREADY_EXISTS,),
            DBClusterIdentifier=db_cluster_id,
            DBClusterSnapshotIdentifier=snapshot_id,
            Tags=dict_to_tags(tags),
        )


__all__ = [
    "AWSClient",
    "cloud_id",
    "tags_to_dict",
    "dict_to_tags",
    "CLOUD_ID_PREFIX",
]
