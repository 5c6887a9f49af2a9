"""
FastAPI application factory.

``create_app()`` wires middleware, routers, error handlers and lifespan
events into a single ``FastAPI`` instance. It is the only place that touches
``FastAPI`` directly.

Tags:
    api, app-factory, composition-root, FastAPI, provisioner
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from provisioner import __version__
from provisioner.api.middleware.errors import (
    unhandled_exception_handler,
    validation_exception_handler,
)
from provisioner.api.middleware.request_id import RequestIDMiddleware
from provisioner.core.logging import get_logger
from provisioner.core.settings import ProvisionerSettings, get_settings
from provisioner.store import open_store
from provisioner.store.sql_store import SQLStore

log = get_logger("provisioner.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the store when none was injected; close it on shutdown."""
    settings: ProvisionerSettings = app.state.settings
    owns_store = app.state.store is None
    if owns_store:
        app.state.store = open_store(settings.database_url)
        log.info("store_opened", database_url=settings.database_url)

    log.info("api_starting", version=app.version, prefix=settings.api_prefix)
    yield
    log.info("api_shutting_down")

    if owns_store:
        app.state.store.close()


def create_app(
    settings: ProvisionerSettings | None = None,
    *,
    store: SQLStore | None = None,
    supervisor: Any = None,
    scheduler: Any = None,
    aws_client: Any = None,
) -> FastAPI:
    """Build a fully-configured FastAPI application.

    Parameters
    ----------
    settings : ProvisionerSettings | None
        Override settings (tests). Defaults to the cached process settings.
    store : SQLStore | None
        Shared entity store. Opened from ``settings.database_url`` at startup
        when ``None``.
    supervisor : MigrationSupervisor | None
        Run once in the background after a migration is created.
    scheduler : SchedulerService | None
        Reported by ``/health`` when the process runs one.
    aws_client : AWSClient | None
        Client used by the teardown endpoint.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Provisioner",
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.state.settings = settings
    app.state.store = store
    app.state.supervisor = supervisor
    app.state.scheduler = scheduler
    app.state.aws_client = aws_client

    # ── Middleware ───────────────────────────────────────────────────
    app.add_middleware(RequestIDMiddleware)

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from provisioner.api.routers import health, migrations

    app.include_router(health.router)
    app.include_router(migrations.router, prefix=settings.api_prefix, tags=["migrations"])

    return app
