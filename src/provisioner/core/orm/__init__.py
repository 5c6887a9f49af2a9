"""SQLAlchemy 2.0 layer for the provisioner.

Declarative models that mirror every table in :mod:`provisioner.core.schema`,
plus the engine factory and the ``Connection`` bridge the entity store uses
on PostgreSQL.

Modules
-------
base        ProvisionerBase (declarative base) + LockableMixin
session     Engine factory, ProvisionerSession, SAConnectionBridge
tables      ClusterTable, InstallationTable, ClusterInstallationTable, MigrationTable

Tags:
    provisioner, orm, sqlalchemy, declarative
"""

from __future__ import annotations

from provisioner.core.orm.base import LockableMixin, ProvisionerBase
from provisioner.core.orm.session import (
    ProvisionerSession,
    SAConnectionBridge,
    create_provisioner_engine,
)
from provisioner.core.orm.tables import (
    ClusterInstallationTable,
    ClusterTable,
    InstallationTable,
    MigrationTable,
)

__all__ = [
    "ProvisionerBase",
    "LockableMixin",
    "ProvisionerSession",
    "SAConnectionBridge",
    "create_provisioner_engine",
    "ClusterTable",
    "InstallationTable",
    "ClusterInstallationTable",
    "MigrationTable",
]
