"""
FastAPI dependency injection.

The app factory puts the settings, the shared store, the AWS client and the
migration supervisor on ``app.state``; these dependencies hand them to the
routers and build a per-request :class:`OperationContext`.

Usage in routers::

    from provisioner.api.deps import OpContext

    @router.get("/migrations")
    def list_migrations(ctx: OpContext):
        ...
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any

from fastapi import Depends, Request

from provisioner.core.settings import ProvisionerSettings
from provisioner.ops.context import OperationContext
from provisioner.store.sql_store import SQLStore


def get_settings(request: Request) -> ProvisionerSettings:
    return request.app.state.settings


def get_store(request: Request) -> SQLStore:
    return request.app.state.store


def get_supervisor(request: Request) -> Any:
    """Migration supervisor to trigger after writes, or ``None``."""
    return getattr(request.app.state, "supervisor", None)


def get_operation_context(
    request: Request,
    store: Annotated[SQLStore, Depends(get_store)],
    settings: Annotated[ProvisionerSettings, Depends(get_settings)],
) -> OperationContext:
    """Build an :class:`OperationContext` from the current request."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    return OperationContext(
        store=store,
        settings=settings,
        aws_client=getattr(request.app.state, "aws_client", None),
        request_id=request_id,
        caller="api",
    )


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[ProvisionerSettings, Depends(get_settings)]
Store = Annotated[SQLStore, Depends(get_store)]
Supervisor = Annotated[Any, Depends(get_supervisor)]
OpContext = Annotated[OperationContext, Depends(get_operation_context)]
