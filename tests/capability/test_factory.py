"""Tests for capability dispatch on the database backend."""

from __future__ import annotations

import pytest

from provisioner.capability.factory import get_database_migration, is_migratable
from provisioner.capability.protocol import DatabaseMigration
from provisioner.capability.rds import RDSDatabaseMigration
from provisioner.capability.unsupported import UnsupportedDatabaseMigration
from provisioner.core.errors import NotSupportedError
from provisioner.model.entities import Installation, Migration


def _installation(database: str) -> Installation:
    return Installation(id="INST1", database=database)


class TestDispatch:
    def test_rds_backend(self, fake_aws):
        cap = get_database_migration(
            _installation("aws-rds"), Migration(id="M1", cluster_id="dest"), fake_aws, keep_data=True
        )
        assert isinstance(cap, RDSDatabaseMigration)
        assert cap.destination_cluster_id == "dest"
        assert cap.keep_data is True
        assert isinstance(cap, DatabaseMigration)

    @pytest.mark.parametrize("backend", ["mysql-operator", "", "future-backend"])
    def test_other_backends_fail_closed(self, fake_aws, backend):
        cap = get_database_migration(_installation(backend), Migration(id="M1"), fake_aws)
        assert isinstance(cap, UnsupportedDatabaseMigration)
        for op in ("snapshot", "snapshot_status", "restore", "database_status", "teardown"):
            with pytest.raises(NotSupportedError):
                getattr(cap, op)()

    def test_is_migratable(self):
        assert is_migratable(_installation("aws-rds"))
        assert not is_migratable(_installation("mysql-operator"))
