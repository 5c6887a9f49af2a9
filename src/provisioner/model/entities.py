"""
Entity dataclasses persisted by :mod:`provisioner.store`.

Every entity carries the same lock and lifecycle fields:

- ``lock_acquired_by``: owner id of the current claim, ``None`` when free
- ``lock_acquired_at``: milliseconds, ``0`` when free
- ``create_at`` / ``delete_at``: milliseconds, ``delete_at == 0`` while live

Tags:
    model, entities, dataclasses, provisioner
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, ClassVar, TypeVar

from provisioner.model.enums import (
    ClusterInstallationState,
    ClusterState,
    InstallationState,
    MigrationState,
)

T = TypeVar("T", bound="_Entity")


@dataclass
class _Entity:
    id: str = ""
    lock_acquired_by: str | None = None
    lock_acquired_at: int = 0
    create_at: int = 0
    delete_at: int = 0

    # Enum-typed fields, coerced on load
    _enum_fields: ClassVar[tuple[tuple[str, type], ...]] = ()

    @classmethod
    def from_row(cls: type[T], row: dict[str, Any]) -> T:
        """Build an entity from a store row, ignoring unknown columns."""
        names = {f.name for f in fields(cls)}
        data = {k: v for k, v in row.items() if k in names}
        for name, enum_type in cls._enum_fields:
            if name in data and data[name] is not None:
                data[name] = enum_type(data[name])
        if "allow_installations" in data:
            data["allow_installations"] = bool(data["allow_installations"])
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        """Plain dict with enum values unwrapped (store rows, JSON output)."""
        return {
            key: value.value if isinstance(value, Enum) else value
            for key, value in asdict(self).items()
        }

    @property
    def is_locked(self) -> bool:
        return self.lock_acquired_by is not None


@dataclass
class Cluster(_Entity):
    """A shared compute cluster installations are placed on."""

    provider: str = "aws"
    provisioner: str = "kops"
    size: str = ""
    allow_installations: bool = True
    state: ClusterState = ClusterState.CREATION_REQUESTED

    _enum_fields = (("state", ClusterState),)


@dataclass
class Installation(_Entity):
    """A tenant's logical application instance, independent of placement.

    ``database`` holds a :class:`~provisioner.model.enums.DatabaseBackendKind`
    value; it stays a plain string so rows written by newer versions with
    unknown backends still load.
    """

    owner_id: str = ""
    dns: str = ""
    database: str = ""
    filestore: str = ""
    size: str = ""
    state: InstallationState = InstallationState.CREATION_REQUESTED

    _enum_fields = (("state", InstallationState),)


@dataclass
class ClusterInstallation(_Entity):
    """The placement of an installation on one cluster."""

    cluster_id: str = ""
    installation_id: str = ""
    namespace: str = ""
    state: ClusterInstallationState = ClusterInstallationState.CREATION_REQUESTED

    _enum_fields = (("state", ClusterInstallationState),)


@dataclass
class Migration(_Entity):
    """Move of a cluster installation (``cluster_installation_id``) to a
    destination cluster (``cluster_id``)."""

    cluster_id: str = ""
    cluster_installation_id: str = ""
    state: MigrationState = MigrationState.CREATION_REQUESTED

    _enum_fields = (("state", MigrationState),)


__all__ = [
    "Cluster",
    "Installation",
    "ClusterInstallation",
    "Migration",
]
