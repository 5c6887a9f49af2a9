"""HTTP middleware and error handlers."""

from provisioner.api.middleware.errors import (
    problem_from_result,
    problem_response,
    unhandled_exception_handler,
    validation_exception_handler,
)
from provisioner.api.middleware.request_id import RequestIDMiddleware

__all__ = [
    "problem_from_result",
    "problem_response",
    "unhandled_exception_handler",
    "validation_exception_handler",
    "RequestIDMiddleware",
]
