"""Tests for provisioner.ops.result."""

import pytest

from provisioner.core.errors import (
    CloudThrottledError,
    EntityNotFoundError,
    LockNotHeldError,
    ResourceConflictError,
)
from provisioner.ops.result import ErrorCode, OperationResult, PagedResult


@pytest.mark.parametrize(
    ("code", "status"),
    [
        (ErrorCode.NOT_FOUND, 404),
        (ErrorCode.CONFLICT, 409),
        (ErrorCode.LOCKED, 423),
        (ErrorCode.VALIDATION_FAILED, 400),
        (ErrorCode.INTERNAL, 500),
    ],
)
def test_http_status(code, status):
    assert code.http_status == status


def test_fail_accepts_plain_strings():
    result = OperationResult.fail("CONFLICT", "busy", details={"migration_id": "m"})
    assert not result.success
    assert result.error.code is ErrorCode.CONFLICT
    assert result.error.details == {"migration_id": "m"}


@pytest.mark.parametrize(
    ("error", "code", "retryable"),
    [
        (EntityNotFoundError("gone"), ErrorCode.NOT_FOUND, False),
        (ResourceConflictError("taken"), ErrorCode.CONFLICT, False),
        (LockNotHeldError("held"), ErrorCode.LOCKED, False),
        (CloudThrottledError("slow down"), ErrorCode.INTERNAL, True),
    ],
)
def test_from_error(error, code, retryable):
    result = OperationResult.from_error(error.with_context(migration_id="m-1"))
    assert result.error.code is code
    assert result.error.retryable is retryable
    assert result.error.details["migration_id"] == "m-1"


def test_paged_has_more():
    assert PagedResult.from_items([1, 2], total=3, limit=2).has_more
    assert not PagedResult.from_items([3], total=3, limit=2, offset=2).has_more
