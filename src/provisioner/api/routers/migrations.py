"""
Migrations router: request, inspect and retire cluster installation migrations.

Endpoints:
    POST   /migrations                       Request a migration (202)
    GET    /migrations                       List migrations (state filter, paging)
    GET    /migrations/{migration_id}        Get one migration
    DELETE /migrations/{migration_id}        Delete a finished migration
    POST   /migrations/{migration_id}/unlock    Release the migration lock
    POST   /migrations/{migration_id}/teardown  Delete a failed migration's replica DB
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Path, Query, Request, Response

from provisioner.api.deps import OpContext, Supervisor
from provisioner.api.schemas.common import PagedResponse, PageMeta, SuccessResponse
from provisioner.api.schemas.migrations import (
    CreateMigrationBody,
    MigrationSchema,
    UnlockMigrationBody,
    UnlockResultSchema,
)
from provisioner.api.middleware.errors import problem_from_result
from provisioner.core.logging import get_logger
from provisioner.ops import migrations as ops
from provisioner.ops.requests import (
    CreateMigrationRequest,
    ListMigrationsRequest,
    UnlockMigrationRequest,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/migrations")


def _schema(migration) -> MigrationSchema:
    return MigrationSchema(**migration.to_dict())


def _run_supervisor(supervisor) -> None:
    """Runs on the threadpool; waits for a scheduled pass of the same supervisor."""
    try:
        supervisor.do()
    except Exception:
        logger.exception("triggered_supervisor_pass_failed")


@router.post("", response_model=SuccessResponse[MigrationSchema], status_code=202)
def create_migration(
    ctx: OpContext,
    body: CreateMigrationBody,
    request: Request,
    background_tasks: BackgroundTasks,
    supervisor: Supervisor,
):
    """Request the move of an installation to another cluster.

    The migration is created in ``creation-requested`` and one supervisor
    pass is scheduled after the response is sent. Re-posting an active
    migration with the same destination returns it unchanged.

    Raises:
        404 NOT_FOUND: Unknown installation, cluster, or no placement.
        409 CONFLICT: Another active migration, or an ambiguous placement.
    """
    result = ops.create_migration(
        ctx,
        CreateMigrationRequest(cluster_id=body.cluster_id, installation_id=body.installation_id),
    )
    if not result.success:
        return problem_from_result(result, request)

    if supervisor is not None and result.metadata.get("created"):
        background_tasks.add_task(_run_supervisor, supervisor)

    return SuccessResponse(data=_schema(result.data), elapsed_ms=result.elapsed_ms)


@router.get("", response_model=PagedResponse[MigrationSchema])
def list_migrations(
    ctx: OpContext,
    request: Request,
    state: str | None = Query(None, description="Filter by migration state"),
    cluster_installation_id: str | None = Query(None, description="Filter by source placement"),
    active: bool = Query(False, description="Only non-terminal migrations"),
    limit: int = Query(50, ge=1, le=500, description="Maximum items to return"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
):
    result = ops.list_migrations(
        ctx,
        ListMigrationsRequest(
            state=state,
            cluster_installation_id=cluster_installation_id,
            active_only=active,
            limit=limit,
            offset=offset,
        ),
    )
    if not result.success:
        return problem_from_result(result, request)
    return PagedResponse(
        data=[_schema(m) for m in result.data or []],
        page=PageMeta(
            total=result.total,
            limit=result.limit,
            offset=result.offset,
            has_more=result.has_more,
        ),
        elapsed_ms=result.elapsed_ms,
    )


@router.get("/{migration_id}", response_model=SuccessResponse[MigrationSchema])
def get_migration(
    ctx: OpContext,
    request: Request,
    migration_id: str = Path(..., description="Migration id"),
):
    result = ops.get_migration(ctx, migration_id)
    if not result.success:
        return problem_from_result(result, request)
    return SuccessResponse(data=_schema(result.data), elapsed_ms=result.elapsed_ms)


@router.delete("/{migration_id}", status_code=204)
def delete_migration(
    ctx: OpContext,
    request: Request,
    migration_id: str = Path(..., description="Migration id"),
):
    """Delete a finished migration, releasing the claims it still holds.

    Raises:
        404 NOT_FOUND: Unknown migration.
        409 CONFLICT: Migration still active or locked by someone else.
    """
    result = ops.delete_migration(ctx, migration_id)
    if not result.success:
        return problem_from_result(result, request)
    return Response(status_code=204)


@router.post("/{migration_id}/unlock", response_model=SuccessResponse[UnlockResultSchema])
def unlock_migration(
    ctx: OpContext,
    request: Request,
    body: UnlockMigrationBody,
    migration_id: str = Path(..., description="Migration id"),
):
    """Release the migration's lock.

    ``force`` releases a lock held by any owner (e.g. a dead supervisor).
    It does not roll back cloud state.
    """
    result = ops.unlock_migration(
        ctx,
        UnlockMigrationRequest(migration_id=migration_id, owner_id=body.owner_id, force=body.force),
    )
    if not result.success:
        return problem_from_result(result, request)
    return SuccessResponse(data=UnlockResultSchema(**result.data), elapsed_ms=result.elapsed_ms)


@router.post("/{migration_id}/teardown", status_code=202)
def teardown_migration(
    ctx: OpContext,
    request: Request,
    migration_id: str = Path(..., description="Migration id"),
):
    """Delete the replica database a failed migration restored."""
    result = ops.teardown_migration(ctx, migration_id)
    if not result.success:
        return problem_from_result(result, request)
    return SuccessResponse(data={"migration_id": migration_id}, elapsed_ms=result.elapsed_ms)
