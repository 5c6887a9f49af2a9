"""Entity table definitions mirroring :mod:`provisioner.core.schema`.

Tags:
    provisioner, orm, sqlalchemy, tables

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from sqlalchemy import Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from provisioner.core.orm.base import LockableMixin, ProvisionerBase


class ClusterTable(LockableMixin, ProvisionerBase):
    __tablename__ = "clusters"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    provider: Mapped[str] = mapped_column(Text, nullable=False)
    provisioner: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[str] = mapped_column(Text, nullable=False, default="")
    allow_installations: Mapped[bool] = mapped_column(Integer, nullable=False, default=True)


class InstallationTable(LockableMixin, ProvisionerBase):
    __tablename__ = "installations"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    dns: Mapped[str] = mapped_column(Text, nullable=False)
    database: Mapped[str] = mapped_column(Text, nullable=False)
    filestore: Mapped[str] = mapped_column(Text, nullable=False, default="")
    size: Mapped[str] = mapped_column(Text, nullable=False, default="")


class ClusterInstallationTable(LockableMixin, ProvisionerBase):
    __tablename__ = "cluster_installations"
    __table_args__ = (
        Index("idx_cluster_installations_installation", "installation_id"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    cluster_id: Mapped[str] = mapped_column(Text, nullable=False)
    installation_id: Mapped[str] = mapped_column(Text, nullable=False)
    namespace: Mapped[str] = mapped_column(Text, nullable=False)


class MigrationTable(LockableMixin, ProvisionerBase):
    __tablename__ = "cluster_installation_migrations"
    __table_args__ = (
        Index("idx_migrations_state", "state"),
        Index("idx_migrations_source", "cluster_installation_id"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    cluster_id: Mapped[str] = mapped_column(Text, nullable=False)
    cluster_installation_id: Mapped[str] = mapped_column(Text, nullable=False)


__all__ = [
    "ClusterTable",
    "InstallationTable",
    "ClusterInstallationTable",
    "MigrationTable",
]
