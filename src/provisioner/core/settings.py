"""Settings for the provisioner server, supervisors and CLI.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not runtime
    - **Environment-driven:** Reads ``PROVISIONER_*`` env vars and ``.env``
    - **Sensible defaults:** A local SQLite store and only the migration
      supervisor enabled, so ``provisioner serve start`` works out of the box

Examples:
    >>> from provisioner.core.settings import ProvisionerSettings
    >>> settings = ProvisionerSettings(database_url="sqlite:///:memory:")
    >>> settings.poll_interval_seconds
    30.0

Tags:
    settings, configuration, pydantic, environment, provisioner
"""

from __future__ import annotations

import uuid
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProvisionerSettings(BaseSettings):
    """Provisioner configuration.

    Fields
    ──────
    database_url           : Entity store URL (``sqlite:///path``, ``postgresql://...``)
    instance_id            : Lock owner id for this process's supervisors
    poll_interval_seconds  : Scheduler tick interval
    *_supervisor           : Which supervisors the scheduler drives each tick
    aws_region             : Region for the RDS / EC2 clients
    keep_database_data     : Teardown leaves the restored DB cluster intact
    host / port            : HTTP bind address
    api_prefix             : Prefix for versioned routes
    debug / log_level      : Observability
    json_logs              : Force JSON (True) or console (False); auto when unset
    """

    model_config = SettingsConfigDict(
        env_prefix="PROVISIONER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Store ────────────────────────────────────────────────────
    database_url: str = "sqlite:///provisioner.db"

    # ── Supervisors ──────────────────────────────────────────────
    instance_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    poll_interval_seconds: float = 30.0
    migration_supervisor: bool = True
    cluster_supervisor: bool = False
    installation_supervisor: bool = False
    cluster_installation_supervisor: bool = False

    # ── Cloud ────────────────────────────────────────────────────
    aws_region: str = "us-east-1"
    keep_database_data: bool = False

    # ── Network ──────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8075
    api_prefix: str = "/api/v1"

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("poll_interval_seconds")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> ProvisionerSettings:
    """Return the process-wide settings (cached)."""
    return ProvisionerSettings()
