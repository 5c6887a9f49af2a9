"""Entity store operations: schema initialisation and health."""

from __future__ import annotations

from provisioner.core.errors import ProvisionerError
from provisioner.core.logging import get_logger
from provisioner.core.schema import TABLES
from provisioner.ops.context import OperationContext
from provisioner.ops.result import OperationResult, start_timer

logger = get_logger(__name__)


def initialize_database(ctx: OperationContext) -> OperationResult[dict]:
    """Create every entity table that does not exist yet."""
    timer = start_timer()
    try:
        ctx.store.init_schema()
        missing = ctx.store.missing_tables()
    except ProvisionerError as exc:
        logger.exception("op_failed", op="initialize_database", error=str(exc))
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    if missing:
        return OperationResult.fail(
            "INTERNAL",
            f"Tables still missing after init: {', '.join(missing)}",
            elapsed_ms=timer.elapsed_ms,
        )
    return OperationResult.ok(
        {"tables": sorted(TABLES.values()), "backend": ctx.store.dialect.name},
        elapsed_ms=timer.elapsed_ms,
    )


def check_database_health(ctx: OperationContext) -> OperationResult[dict]:
    timer = start_timer()
    try:
        missing = ctx.store.missing_tables()
        counts = {}
        if not missing:
            counts = {
                "migrations": ctx.store.count_migrations(),
                "active_migrations": ctx.store.count_migrations(active_only=True),
            }
    except ProvisionerError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    return OperationResult.ok(
        {"healthy": not missing, "missing_tables": missing, **counts},
        elapsed_ms=timer.elapsed_ms,
    )
