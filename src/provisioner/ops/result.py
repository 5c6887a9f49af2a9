"""
Operation result envelope.

Every operation in :mod:`provisioner.ops` returns an :class:`OperationResult`
instead of raising, so the API and the CLI render outcomes the same way:

    result = create_migration(ctx, request)
    if not result.success:
        result.error.code          # ErrorCode.CONFLICT
        result.error.code.http_status  # 409

A failure carries an :class:`ErrorCode`. Store and cloud exceptions caught by
an operation are mapped through their :class:`ErrorCategory`
(:meth:`OperationResult.from_error`).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from provisioner.core.errors import ErrorCategory, ProvisionerError

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Failure codes of the ops layer and the HTTP status each maps to."""

    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    LOCKED = "LOCKED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INTERNAL = "INTERNAL"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.LOCKED: 423,
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.INTERNAL: 500,
}

_CATEGORY_CODES = {
    ErrorCategory.NOT_FOUND: ErrorCode.NOT_FOUND,
    ErrorCategory.CONFLICT: ErrorCode.CONFLICT,
    ErrorCategory.LOCK: ErrorCode.LOCKED,
    ErrorCategory.VALIDATION: ErrorCode.VALIDATION_FAILED,
}


@dataclass(frozen=True, slots=True)
class OperationError:
    """Why an operation failed.

    Attributes:
        code: The :class:`ErrorCode`.
        message: Human-readable description.
        details: Extra context, e.g. the id of a conflicting migration.
        retryable: ``True`` when the cause was transient (store or cloud).
    """

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False


@dataclass
class OperationResult(Generic[T]):
    """Success payload or :class:`OperationError`, plus timing and metadata.

    Build with :meth:`ok`, :meth:`fail` or :meth:`from_error`.
    """

    success: bool
    data: T | None = None
    error: OperationError | None = None
    elapsed_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        data: T,
        *,
        elapsed_ms: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult[T]:
        return cls(success=True, data=data, elapsed_ms=elapsed_ms, metadata=metadata or {})

    @classmethod
    def fail(
        cls,
        code: ErrorCode | str,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
        elapsed_ms: float = 0.0,
    ) -> OperationResult[T]:
        error = OperationError(ErrorCode(code), message, details or {}, retryable)
        return cls(success=False, error=error, elapsed_ms=elapsed_ms)

    @classmethod
    def from_error(cls, error: ProvisionerError, *, elapsed_ms: float = 0.0) -> OperationResult[T]:
        """Failure result for a caught :class:`ProvisionerError`."""
        return cls.fail(
            _CATEGORY_CODES.get(error.category, ErrorCode.INTERNAL),
            error.message,
            details=error.context.to_dict(),
            retryable=error.retryable,
            elapsed_ms=elapsed_ms,
        )


@dataclass
class PagedResult(OperationResult[list[T]]):
    """One page of a list operation; ``has_more`` is derived from the total."""

    total: int = 0
    limit: int = 50
    offset: int = 0
    has_more: bool = False

    @classmethod
    def from_items(
        cls,
        items: list[T],
        total: int,
        *,
        limit: int = 50,
        offset: int = 0,
        elapsed_ms: float = 0.0,
    ) -> PagedResult[T]:
        return cls(
            success=True,
            data=items,
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(items) < total,
            elapsed_ms=elapsed_ms,
        )


class Stopwatch:
    """Milliseconds since construction, read through :attr:`elapsed_ms`."""

    def __init__(self) -> None:
        self.started = time.monotonic_ns()

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic_ns() - self.started) / 1_000_000


def start_timer() -> Stopwatch:
    return Stopwatch()
