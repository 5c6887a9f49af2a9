"""Transport-agnostic operations shared by the API and the CLI."""

from provisioner.ops.context import OperationContext
from provisioner.ops.result import ErrorCode, OperationError, OperationResult, PagedResult, start_timer

__all__ = [
    "ErrorCode",
    "OperationContext",
    "OperationError",
    "OperationResult",
    "PagedResult",
    "start_timer",
]
