"""
Migration operations.

Create, inspect and retire cluster installation migrations. The API routers
and the CLI commands are thin wrappers over these functions.

Writes to an existing migration (delete, teardown) first claim the migration
with the request id as owner, so they never race the migration supervisor;
a migration held by someone else yields ``CONFLICT``. Creating a migration
claims the source cluster installation the same way for the duplicate check
and the insert.
"""

from __future__ import annotations

from provisioner.capability.factory import get_database_migration
from provisioner.core.errors import ProvisionerError
from provisioner.core.logging import get_logger
from provisioner.model.entities import ClusterInstallation, Installation, Migration
from provisioner.model.enums import MigrationState
from provisioner.ops.context import OperationContext
from provisioner.ops.requests import (
    CreateMigrationRequest,
    ListMigrationsRequest,
    UnlockMigrationRequest,
)
from provisioner.ops.result import OperationResult, PagedResult, Stopwatch, start_timer
from provisioner.supervisor.lock import EntityLock

logger = get_logger(__name__)


def _migration_lock(ctx: OperationContext, migration_id: str) -> EntityLock:
    return EntityLock(
        "migration",
        migration_id,
        ctx.request_id,
        ctx.store.lock_migration,
        ctx.store.unlock_migration,
        log=logger.bind(migration=migration_id, request_id=ctx.request_id),
    )


def _placement_lock(ctx: OperationContext, ci_id: str) -> EntityLock:
    return EntityLock(
        "cluster_installation",
        ci_id,
        ctx.request_id,
        ctx.store.lock_cluster_installation,
        ctx.store.unlock_cluster_installation,
        log=logger.bind(cluster_installation=ci_id, request_id=ctx.request_id),
    )


def _existing_or_conflict(
    ctx: OperationContext,
    source: ClusterInstallation,
    installation: Installation,
    request: CreateMigrationRequest,
    timer: Stopwatch,
    owner: str | None = None,
) -> OperationResult[Migration] | None:
    """The result that ends a create early, or ``None`` to go ahead.

    An active migration to the same destination is returned as is. Any other
    active migration, or a claim on the placement or installation by anyone
    but *owner*, is a ``CONFLICT``: a finished migration keeps its claims
    until it is deleted.
    """
    active = ctx.store.get_migrations(cluster_installation_id=source.id, active_only=True)
    for existing in active:
        if existing.cluster_id == request.cluster_id:
            return OperationResult.ok(existing, elapsed_ms=timer.elapsed_ms, metadata={"created": False})
    if active:
        return OperationResult.fail(
            "CONFLICT",
            f"Cluster installation {source.id} already has an active migration",
            details={"migration_id": active[0].id},
            elapsed_ms=timer.elapsed_ms,
        )
    for kind, entity in (("Cluster installation", source), ("Installation", installation)):
        holder = entity.lock_acquired_by
        if holder and holder != owner:
            return OperationResult.fail(
                "CONFLICT",
                f"{kind} {entity.id} is claimed by {holder}",
                details={"lock_acquired_by": holder},
                elapsed_ms=timer.elapsed_ms,
            )
    return None


def create_migration(
    ctx: OperationContext,
    request: CreateMigrationRequest,
) -> OperationResult[Migration]:
    """Request the move of an installation's placement to another cluster.

    Re-posting an active migration for the same placement and destination
    returns that migration (``metadata["created"]`` is ``False``). A source
    placement or installation still claimed by anyone, including a finished
    migration that was not deleted, is a ``CONFLICT``.
    """
    timer = start_timer()

    if not request.cluster_id or not request.installation_id:
        return OperationResult.fail(
            "VALIDATION_FAILED",
            "cluster_id and installation_id are required",
            elapsed_ms=timer.elapsed_ms,
        )

    try:
        store = ctx.store
        installation = store.get_installation(request.installation_id)
        if installation is None:
            return OperationResult.fail(
                "NOT_FOUND",
                f"Installation {request.installation_id} not found",
                elapsed_ms=timer.elapsed_ms,
            )
        if store.get_cluster(request.cluster_id) is None:
            return OperationResult.fail(
                "NOT_FOUND",
                f"Cluster {request.cluster_id} not found",
                elapsed_ms=timer.elapsed_ms,
            )

        placements = store.get_cluster_installations(installation_id=installation.id)
        if not placements:
            return OperationResult.fail(
                "NOT_FOUND",
                f"Installation {installation.id} has no cluster installation",
                elapsed_ms=timer.elapsed_ms,
            )
        if len(placements) > 1:
            return OperationResult.fail(
                "CONFLICT",
                f"Installation {installation.id} has {len(placements)} cluster installations",
                details={"cluster_installation_ids": [ci.id for ci in placements]},
                elapsed_ms=timer.elapsed_ms,
            )
        source = placements[0]
        if source.cluster_id == request.cluster_id:
            return OperationResult.fail(
                "CONFLICT",
                f"Installation {installation.id} is already on cluster {request.cluster_id}",
                elapsed_ms=timer.elapsed_ms,
            )

        early = _existing_or_conflict(ctx, source, installation, request, timer)
        if early is not None:
            return early

        claim = _placement_lock(ctx, source.id)
        if not claim.try_lock():
            return OperationResult.fail(
                "CONFLICT",
                f"Cluster installation {source.id} is claimed by another owner",
                elapsed_ms=timer.elapsed_ms,
            )
        try:
            # Checked again under the claim: a concurrent create may have
            # inserted its migration since the first look.
            source = store.get_cluster_installation(source.id)
            installation = store.get_installation(installation.id)
            if source is None or installation is None:
                return OperationResult.fail(
                    "NOT_FOUND",
                    f"Installation {request.installation_id} was deleted",
                    elapsed_ms=timer.elapsed_ms,
                )
            early = _existing_or_conflict(ctx, source, installation, request, timer, owner=ctx.request_id)
            if early is not None:
                return early
            migration = store.create_migration(
                Migration(
                    cluster_id=request.cluster_id,
                    cluster_installation_id=source.id,
                    state=MigrationState.CREATION_REQUESTED,
                )
            )
        finally:
            claim.unlock()
    except ProvisionerError as exc:
        logger.exception("op_failed", op="create_migration", error=str(exc))
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    logger.info(
        "migration_created",
        migration=migration.id,
        cluster_installation=source.id,
        destination=request.cluster_id,
        caller=ctx.caller,
    )
    return OperationResult.ok(migration, elapsed_ms=timer.elapsed_ms, metadata={"created": True})


def list_migrations(
    ctx: OperationContext,
    request: ListMigrationsRequest | None = None,
) -> PagedResult[Migration]:
    timer = start_timer()
    request = request or ListMigrationsRequest()

    states = None
    if request.state:
        try:
            states = [MigrationState(request.state)]
        except ValueError:
            return PagedResult.fail(
                "VALIDATION_FAILED",
                f"Unknown migration state {request.state!r}",
                details={"allowed": [s.value for s in MigrationState]},
                elapsed_ms=timer.elapsed_ms,
            )

    try:
        items = ctx.store.get_migrations(
            states=states,
            cluster_installation_id=request.cluster_installation_id,
            active_only=request.active_only,
            limit=request.limit,
            offset=request.offset,
        )
        total = ctx.store.count_migrations(
            states=states,
            cluster_installation_id=request.cluster_installation_id,
            active_only=request.active_only,
        )
    except ProvisionerError as exc:
        logger.exception("op_failed", op="list_migrations", error=str(exc))
        return PagedResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    return PagedResult.from_items(
        items,
        total=total,
        limit=request.limit,
        offset=request.offset,
        elapsed_ms=timer.elapsed_ms,
    )


def get_migration(ctx: OperationContext, migration_id: str) -> OperationResult[Migration]:
    timer = start_timer()
    try:
        migration = ctx.store.get_migration(migration_id)
    except ProvisionerError as exc:
        logger.exception("op_failed", op="get_migration", error=str(exc))
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    if migration is None:
        return OperationResult.fail(
            "NOT_FOUND", f"Migration {migration_id} not found", elapsed_ms=timer.elapsed_ms
        )
    return OperationResult.ok(migration, elapsed_ms=timer.elapsed_ms)


def delete_migration(ctx: OperationContext, migration_id: str) -> OperationResult[None]:
    """Delete a finished migration and release the claims it still holds.

    The source placement and installation stay claimed by a finished
    migration until it is deleted; deleting releases them (not forced).
    """
    timer = start_timer()
    store = ctx.store

    try:
        migration = store.get_migration(migration_id)
        if migration is None:
            return OperationResult.fail(
                "NOT_FOUND", f"Migration {migration_id} not found", elapsed_ms=timer.elapsed_ms
            )
        if not migration.state.is_terminal:
            return OperationResult.fail(
                "CONFLICT",
                f"Migration {migration_id} is still active ({migration.state.value})",
                elapsed_ms=timer.elapsed_ms,
            )

        lock = _migration_lock(ctx, migration_id)
        if not lock.try_lock():
            return OperationResult.fail(
                "CONFLICT",
                f"Migration {migration_id} is locked by another owner",
                elapsed_ms=timer.elapsed_ms,
            )
        try:
            released = _release_collaborators(ctx, migration)
            store.delete_migration(migration_id)
        finally:
            lock.unlock()
    except ProvisionerError as exc:
        logger.exception("op_failed", op="delete_migration", error=str(exc))
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    logger.info("migration_deleted", migration=migration_id, released=released, caller=ctx.caller)
    return OperationResult.ok(None, elapsed_ms=timer.elapsed_ms, metadata={"released": released})


def _release_collaborators(ctx: OperationContext, migration: Migration) -> list[str]:
    store = ctx.store
    released = []
    ci = store.get_cluster_installation(migration.cluster_installation_id)
    if ci is None:
        return released
    if store.unlock_cluster_installation(ci.id, migration.id):
        released.append(ci.id)
    if store.unlock_installation(ci.installation_id, migration.id):
        released.append(ci.installation_id)
    return released


def unlock_migration(
    ctx: OperationContext,
    request: UnlockMigrationRequest,
) -> OperationResult[dict]:
    """Release a migration's lock; ``force`` ignores the current owner."""
    timer = start_timer()

    if not request.force and not request.owner_id:
        return OperationResult.fail(
            "VALIDATION_FAILED",
            "owner_id is required unless force is set",
            elapsed_ms=timer.elapsed_ms,
        )

    try:
        migration = ctx.store.get_migration(request.migration_id)
        if migration is None:
            return OperationResult.fail(
                "NOT_FOUND",
                f"Migration {request.migration_id} not found",
                elapsed_ms=timer.elapsed_ms,
            )
        released = ctx.store.unlock_migration(
            request.migration_id,
            request.owner_id or ctx.request_id,
            force=request.force,
        )
    except ProvisionerError as exc:
        logger.exception("op_failed", op="unlock_migration", error=str(exc))
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    if not released and migration.is_locked and not request.force:
        return OperationResult.fail(
            "LOCKED",
            f"Migration {request.migration_id} is locked by {migration.lock_acquired_by}",
            details={"lock_acquired_by": migration.lock_acquired_by},
            elapsed_ms=timer.elapsed_ms,
        )
    return OperationResult.ok(
        {"migration_id": request.migration_id, "released": released},
        elapsed_ms=timer.elapsed_ms,
    )


def teardown_migration(ctx: OperationContext, migration_id: str) -> OperationResult[None]:
    """Delete the replica database restored by a failed migration.

    Honours ``settings.keep_database_data``.
    """
    timer = start_timer()
    store = ctx.store

    try:
        migration = store.get_migration(migration_id)
        if migration is None:
            return OperationResult.fail(
                "NOT_FOUND", f"Migration {migration_id} not found", elapsed_ms=timer.elapsed_ms
            )
        if migration.state != MigrationState.CREATION_FAILED:
            return OperationResult.fail(
                "CONFLICT",
                f"Only failed migrations can be torn down (state {migration.state.value})",
                elapsed_ms=timer.elapsed_ms,
            )

        ci = store.get_cluster_installation(migration.cluster_installation_id)
        installation = store.get_installation(ci.installation_id) if ci else None
        if installation is None:
            return OperationResult.fail(
                "NOT_FOUND",
                f"Source installation of migration {migration_id} not found",
                elapsed_ms=timer.elapsed_ms,
            )

        lock = _migration_lock(ctx, migration_id)
        if not lock.try_lock():
            return OperationResult.fail(
                "CONFLICT",
                f"Migration {migration_id} is locked by another owner",
                elapsed_ms=timer.elapsed_ms,
            )
        try:
            capability = get_database_migration(
                installation,
                migration,
                ctx.aws(),
                keep_data=ctx.settings.keep_database_data,
            )
            capability.teardown()
        finally:
            lock.unlock()
    except ProvisionerError as exc:
        logger.warning("teardown_failed", migration=migration_id, error=str(exc))
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    logger.info("migration_torn_down", migration=migration_id, caller=ctx.caller)
    return OperationResult.ok(None, elapsed_ms=timer.elapsed_ms)
