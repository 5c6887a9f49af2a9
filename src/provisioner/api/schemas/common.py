"""
Common API schemas: success envelopes and RFC 7807 problems.

Every endpoint returns either :class:`SuccessResponse` / :class:`PagedResponse`
(2xx) or :class:`ProblemDetail` (4xx/5xx).

Problem codes:
    - ``NOT_FOUND`` (404): unknown migration, installation, cluster or placement
    - ``VALIDATION_FAILED`` (400, or 422 for malformed requests)
    - ``CONFLICT`` (409): active migration, ambiguous placement, migration locked
    - ``LOCKED`` (423): unlock refused, lock held by another owner
    - ``INTERNAL`` (500): store or unexpected failure
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorDetail(BaseModel):
    """One field-level error of a malformed request."""

    code: str
    message: str
    field: str | None = Field(default=None, description="Dotted location, e.g. body.cluster_id")


class ProblemDetail(BaseModel):
    """RFC 7807 problem document with the ops error code as an extension."""

    type: str = Field(default="about:blank")
    title: str = Field(description="HTTP status phrase")
    status: int
    code: str = Field(description="Ops error code, e.g. CONFLICT")
    detail: str = Field(default="", description="What went wrong for this request")
    instance: str = Field(default="", description="Request path")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Context such as the conflicting migration or the lock holder",
    )
    errors: list[ErrorDetail] = Field(default_factory=list)


class PageMeta(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class SuccessResponse(BaseModel, Generic[T]):
    data: T
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time")


class PagedResponse(BaseModel, Generic[T]):
    data: list[T]
    page: PageMeta
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time")
