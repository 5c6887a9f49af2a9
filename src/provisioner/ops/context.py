"""
Request-scoped context for operations.

Every operation function receives an :class:`OperationContext` as its first
argument. The context carries the entity store, the settings, the caller's
identity and the request id, which doubles as the lock owner when an
operation has to claim a migration.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from provisioner.capability.aws import AWSClient
from provisioner.core.settings import ProvisionerSettings
from provisioner.store.sql_store import SQLStore


@dataclass
class OperationContext:
    """Context passed to every operation function.

    Attributes:
        store: Entity store.
        settings: Settings (region, keep-data flag, ...).
        aws_client: Pre-built AWS client; built from *settings* on first use
            when ``None``.
        request_id: Unique id for this invocation; lock owner for claims.
        caller: ``"api"``, ``"cli"`` or ``"sdk"``.
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    store: SQLStore
    settings: ProvisionerSettings = field(default_factory=ProvisionerSettings)
    aws_client: AWSClient | None = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    caller: str = "sdk"
    metadata: dict[str, Any] = field(default_factory=dict)

    def aws(self) -> AWSClient:
        if self.aws_client is None:
            self.aws_client = AWSClient(self.settings.aws_region)
        return self.aws_client
