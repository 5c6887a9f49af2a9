"""Request and response schemas for the migration endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class MigrationSchema(BaseModel):
    """A cluster installation migration as persisted."""

    id: str
    cluster_id: str = Field(description="Destination cluster")
    cluster_installation_id: str = Field(description="Source cluster installation")
    state: str
    lock_acquired_by: str | None = None
    lock_acquired_at: int = 0
    create_at: int = 0
    delete_at: int = 0


class CreateMigrationBody(BaseModel):
    """Body of ``POST /migrations``.

    Example:
        {"cluster_id": "01J...", "installation_id": "01J..."}
    """

    cluster_id: str = Field(min_length=1, description="Destination cluster id")
    installation_id: str = Field(min_length=1, description="Installation to move")


class UnlockMigrationBody(BaseModel):
    owner_id: str | None = Field(default=None, description="Expected current lock owner")
    force: bool = Field(default=False, description="Release regardless of the owner")


class UnlockResultSchema(BaseModel):
    migration_id: str
    released: bool
