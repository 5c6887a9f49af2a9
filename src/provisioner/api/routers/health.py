"""Health endpoints (root level, no prefix) for container probes.

``GET /health`` reports the store and, when the app runs an embedded
scheduler, its tick statistics. ``GET /health/live`` always answers 200.
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from provisioner import __version__
from provisioner.core.errors import ProvisionerError

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> JSONResponse:
    store = request.app.state.store
    checks: dict[str, dict] = {}

    try:
        missing = store.missing_tables()
        checks["store"] = {"healthy": not missing, "missing_tables": missing}
    except ProvisionerError as e:
        checks["store"] = {"healthy": False, "error": str(e)}

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is not None:
        checks["scheduler"] = scheduler.health().to_dict()

    healthy = all(c.get("healthy", False) for c in checks.values())
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "service": "provisioner",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "checks": checks,
    }
    return JSONResponse(content=body, status_code=200 if healthy else 503)


@router.get("/health/live")
def liveness() -> dict[str, str]:
    return {"status": "alive"}
