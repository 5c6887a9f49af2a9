"""Pydantic request/response schemas."""

from provisioner.api.schemas.common import (
    ErrorDetail,
    PagedResponse,
    PageMeta,
    ProblemDetail,
    SuccessResponse,
)
from provisioner.api.schemas.migrations import (
    CreateMigrationBody,
    MigrationSchema,
    UnlockMigrationBody,
    UnlockResultSchema,
)

__all__ = [
    "ErrorDetail",
    "PagedResponse",
    "PageMeta",
    "ProblemDetail",
    "SuccessResponse",
    "CreateMigrationBody",
    "MigrationSchema",
    "UnlockMigrationBody",
    "UnlockResultSchema",
]
