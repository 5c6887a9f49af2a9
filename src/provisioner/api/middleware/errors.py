"""
RFC 7807 error responses.

Failed operations, request validation errors and unhandled exceptions all
leave the API as ``application/problem+json``:

    {
        "type": "about:blank",
        "title": "Conflict",
        "status": 409,
        "code": "CONFLICT",
        "detail": "Cluster installation 01J... already has an active migration",
        "instance": "/api/v1/migrations",
        "details": {"migration_id": "01J..."},
        "errors": []
    }
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from provisioner.api.schemas.common import ErrorDetail, ProblemDetail
from provisioner.core.logging import get_logger
from provisioner.ops.result import ErrorCode, OperationResult

logger = get_logger(__name__)

PROBLEM_JSON = "application/problem+json"


def problem_response(
    *,
    code: ErrorCode,
    detail: str,
    instance: str = "",
    status: int | None = None,
    details: dict[str, Any] | None = None,
    errors: list[ErrorDetail] | None = None,
) -> JSONResponse:
    """Build a problem document; *status* defaults to the code's status."""
    status = status or code.http_status
    body = ProblemDetail(
        title=HTTPStatus(status).phrase,
        status=status,
        code=code.value,
        detail=detail,
        instance=instance,
        details=details or {},
        errors=errors or [],
    )
    return JSONResponse(status_code=status, content=body.model_dump(), media_type=PROBLEM_JSON)


def problem_from_result(result: OperationResult, request: Request) -> JSONResponse:
    """Render a failed :class:`OperationResult`."""
    error = result.error
    if error is None:
        return problem_response(code=ErrorCode.INTERNAL, detail="Operation failed", instance=request.url.path)
    return problem_response(
        code=error.code,
        detail=error.message,
        instance=request.url.path,
        details=error.details,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query parameters: 422 with one entry per field."""
    errors = [
        ErrorDetail(
            code=ErrorCode.VALIDATION_FAILED.value,
            message=e.get("msg", ""),
            field=".".join(str(p) for p in e.get("loc", ())),
        )
        for e in exc.errors()
    ]
    return problem_response(
        code=ErrorCode.VALIDATION_FAILED,
        status=422,
        detail="Request validation failed",
        instance=request.url.path,
        errors=errors,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
    debug = request.app.state.settings.debug
    return problem_response(
        code=ErrorCode.INTERNAL,
        detail=str(exc) if debug else "An unexpected error occurred.",
        instance=request.url.path,
    )
