"""Tests for the boto3 wrapper, using botocore's Stubber."""

from __future__ import annotations

import boto3
import pytest
from botocore.stub import Stubber

from provisioner.capability.aws import AWSClient, cloud_id, dict_to_tags, tags_to_dict
from provisioner.core.errors import (
    CapabilityError,
    CloudThrottledError,
    ResourceBusyError,
    ResourceNotFoundError,
)


def _client(service: str):
    return boto3.client(
        service,
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubbed():
    rds = _client("rds")
    ec2 = _client("ec2")
    client = AWSClient("us-east-1", rds_client=rds, ec2_client=ec2)
    with Stubber(rds) as rds_stub, Stubber(ec2) as ec2_stub:
        yield client, rds_stub, ec2_stub
        rds_stub.assert_no_pending_responses()
        ec2_stub.assert_no_pending_responses()


class TestHelpers:
    def test_cloud_id(self):
        assert cloud_id("ABC123") == "cloud-abc123"

    def test_tag_conversions(self):
        tags = {"MigrationID": "m1", "Owner": "x"}
        assert tags_to_dict(dict_to_tags(tags)) == tags
        assert tags_to_dict(None) == {}


class TestEc2:
    def test_get_cluster_vpcs_filters_on_cluster_tag(self, stubbed):
        client, _, ec2 = stubbed
        ec2.add_response(
            "describe_vpcs",
            {"Vpcs": [{"VpcId": "vpc-1"}]},
            {
                "Filters": [
                    {"Name": "tag:CloudClusterID", "Values": ["cluster-1"]},
                    {"Name": "tag:Available", "Values": ["false"]},
                ]
            },
        )
        assert client.get_cluster_vpcs("cluster-1") == [{"VpcId": "vpc-1"}]

    def test_no_db_security_groups_is_not_found(self, stubbed):
        client, _, ec2 = stubbed
        ec2.add_response("describe_security_groups", {"SecurityGroups": []})
        with pytest.raises(ResourceNotFoundError):
            client.get_db_security_group_ids("vpc-1")

    def test_db_security_groups(self, stubbed):
        client, _, ec2 = stubbed
        ec2.add_response("describe_security_groups", {"SecurityGroups": [{"GroupId": "sg-1"}]})
        assert client.get_db_security_group_ids("vpc-1") == ["sg-1"]


class TestRds:
    def test_describe_cluster(self, stubbed):
        client, rds, _ = stubbed
        rds.add_response(
            "describe_db_clusters",
            {"DBClusters": [{"DBClusterIdentifier": "cloud-x", "Status": "available"}]},
            {"DBClusterIdentifier": "cloud-x"},
        )
        assert client.describe_db_cluster("cloud-x")["Status"] == "available"

    def test_missing_cluster_is_none(self, stubbed):
        client, rds, _ = stubbed
        rds.add_client_error(
            "describe_db_clusters",
            service_error_code="DBClusterNotFoundFault",
            http_status_code=404,
        )
        assert client.describe_db_cluster("cloud-x") is None

    def test_missing_instance_is_none(self, stubbed):
        client, rds, _ = stubbed
        rds.add_client_error(
            "describe_db_instances",
            service_error_code="DBInstanceNotFound",
            http_status_code=404,
        )
        assert client.describe_db_instance("cloud-x-migrated-master") is None

    def test_throttling_is_retryable(self, stubbed):
        client, rds, _ = stubbed
        rds.add_client_error("describe_db_clusters", service_error_code="Throttling", http_status_code=400)
        with pytest.raises(CloudThrottledError) as exc:
            client.describe_db_cluster("cloud-x")
        assert exc.value.retryable

    def test_unknown_client_error_is_terminal(self, stubbed):
        client, rds, _ = stubbed
        rds.add_client_error(
            "describe_db_cluster_endpoints",
            service_error_code="InvalidParameterCombination",
            http_status_code=400,
        )
        with pytest.raises(CapabilityError) as exc:
            client.describe_db_cluster_endpoints("cloud-x")
        assert not exc.value.retryable

    def test_existing_snapshot_is_tolerated(self, stubbed):
        client, rds, _ = stubbed
        rds.add_client_error(
            "create_db_cluster_snapshot",
            service_error_code="DBClusterSnapshotAlreadyExistsFault",
            http_status_code=400,
        )
        client.create_db_cluster_snapshot("cloud-x", "cloud-x-snapshot-m", {"MigrationID": "M"})

    def test_cluster_with_members_shutting_down_is_busy(self, stubbed):
        client, rds, _ = stubbed
        rds.add_client_error(
            "delete_db_cluster",
            service_error_code="InvalidDBClusterStateFault",
            http_status_code=400,
        )
        with pytest.raises(ResourceBusyError):
            client.delete_db_cluster("cloud-x-migrated")

    def test_subnet_group_found_on_second_page(self, stubbed):
        client, rds, _ = stubbed
        rds.add_response(
            "describe_db_subnet_groups",
            {"DBSubnetGroups": [{"DBSubnetGroupName": "other"}], "Marker": "page-2"},
            {},
        )
        rds.add_response(
            "describe_db_subnet_groups",
            {"DBSubnetGroups": [{"DBSubnetGroupName": "provisioner-db-vpc-1"}]},
            {"Marker": "page-2"},
        )
        assert client.get_db_subnet_group_name("vpc-1") == "provisioner-db-vpc-1"

    def test_subnet_group_missing(self, stubbed):
        client, rds, _ = stubbed
        rds.add_response("describe_db_subnet_groups", {"DBSubnetGroups": []})
        with pytest.raises(ResourceNotFoundError):
            client.get_db_subnet_group_name("vpc-1")

    def test_snapshots_carry_tags(self, stubbed):
        client, rds, _ = stubbed
        arn = "arn:aws:rds:us-east-1:000000000000:cluster-snapshot:s1"
        rds.add_response(
            "describe_db_cluster_snapshots",
            {
                "DBClusterSnapshots": [
                    {"DBClusterSnapshotIdentifier": "s1", "DBClusterSnapshotArn": arn, "Status": "available"}
                ]
            },
            {"DBClusterIdentifier": "cloud-x", "SnapshotType": "manual"},
        )
        rds.add_response(
            "list_tags_for_resource",
            {"TagList": [{"Key": "MigrationID", "Value": "M"}]},
            {"ResourceName": arn},
        )
        snapshots = client.describe_db_cluster_snapshots("cloud-x")
        assert snapshots[0]["Tags"] == {"MigrationID": "M"}
