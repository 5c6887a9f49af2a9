"""
Exception hierarchy of the provisioner.

The migration supervisor decides what to do with a failed step from one
attribute, :attr:`ProvisionerError.retryable`:

* retryable: log, leave the migration in its state, try again next tick
* terminal: move the migration to ``creation-failed``

::

    ProvisionerError                    category     retryable
    ├── TransientError                  CLOUD        yes
    │   ├── CloudThrottledError         CLOUD        yes
    │   ├── ResourceBusyError           CLOUD        yes
    │   └── StoreUnavailableError       DATABASE     yes
    ├── CapabilityError                 CLOUD        no
    │   ├── NotSupportedError           VALIDATION   no
    │   ├── ResourceConflictError       CONFLICT     no
    │   ├── ResourceNotFoundError       NOT_FOUND    no
    │   └── UnexpectedStatusError       CLOUD        no
    ├── StoreError                      DATABASE     no
    │   ├── EntityNotFoundError         NOT_FOUND    no
    │   └── LockNotHeldError            LOCK         no
    └── ConfigError                     CONFIG       no

Botocore exceptions enter the hierarchy through :func:`classify_aws_error`,
which keeps the original as ``cause``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)


class ErrorCategory(str, Enum):
    DATABASE = "DATABASE"
    CLOUD = "CLOUD"
    LOCK = "LOCK"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Ids of the entities and cloud resource an error concerns.

    Keys passed to :meth:`ProvisionerError.with_context` that are not
    fields land in ``metadata``.
    """

    migration_id: str | None = None
    installation_id: str | None = None
    cluster_id: str | None = None
    cluster_installation_id: str | None = None
    resource_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        ids = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "metadata" and getattr(self, f.name) is not None
        }
        return {**ids, **self.metadata}


class ProvisionerError(Exception):
    """Base class; subclasses pick the default category and retry flag.

    Examples:
        >>> TransientError("throttled").retryable
        True
        >>> CapabilityError("boom").with_context(resource_id="db-1").context.resource_id
        'db-1'
    """

    default_category = ErrorCategory.INTERNAL
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **ids: Any) -> ProvisionerError:
        for key, value in ids.items():
            if key in ErrorContext.__dataclass_fields__ and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if context := self.context.to_dict():
            out["context"] = context
        if self.cause is not None:
            out["cause"] = str(self.cause)
        return out

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


class TransientError(ProvisionerError):
    """Worth retrying on a later tick.

    Losing a lock race is not an error at all (the claim returns ``False``).
    """

    default_category = ErrorCategory.CLOUD
    default_retryable = True


class CloudThrottledError(TransientError):
    """Throttled, timed out, or a 5xx from the cloud API."""


class ResourceBusyError(TransientError):
    """A cloud resource is still being created, modified or deleted."""


class StoreUnavailableError(TransientError):
    default_category = ErrorCategory.DATABASE


class CapabilityError(ProvisionerError):
    """A migration capability failed in a way retrying will not fix."""

    default_category = ErrorCategory.CLOUD


class NotSupportedError(CapabilityError):
    """The installation's database backend has no migration capability."""

    default_category = ErrorCategory.VALIDATION


class ResourceConflictError(CapabilityError):
    """The identifier we need is already used by a resource we do not own."""

    default_category = ErrorCategory.CONFLICT


class ResourceNotFoundError(CapabilityError):
    """A VPC, snapshot or DB cluster that must exist is missing."""

    default_category = ErrorCategory.NOT_FOUND


class UnexpectedStatusError(CapabilityError):
    """A resource reached a status the migration cannot progress from."""


class StoreError(ProvisionerError):
    default_category = ErrorCategory.DATABASE


class EntityNotFoundError(StoreError):
    """No such entity, or it was soft-deleted."""

    default_category = ErrorCategory.NOT_FOUND


class LockNotHeldError(StoreError):
    """A locked write by an actor that does not hold the lock."""

    default_category = ErrorCategory.LOCK


class ConfigError(ProvisionerError):
    default_category = ErrorCategory.CONFIG


THROTTLING_ERROR_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "RequestThrottled",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "ServiceUnavailable",
    "InternalFailure",
    "RequestTimeout",
    "RequestTimeoutException",
})

_NETWORK_ERRORS = (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)


def aws_error_code(error: Exception) -> str:
    """``Error.Code`` of a ``ClientError``; empty for anything else."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "")
    return ""


def classify_aws_error(error: Exception, message: str) -> ProvisionerError:
    """Map a botocore exception onto the hierarchy.

    Throttling codes, HTTP 5xx and connection failures are
    :class:`CloudThrottledError`; other botocore errors are terminal
    :class:`CapabilityError`. Provisioner errors pass through unchanged.
    """
    if isinstance(error, ProvisionerError):
        return error
    if isinstance(error, ClientError):
        code = aws_error_code(error)
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        transient = code in THROTTLING_ERROR_CODES or status >= 500
        cls = CloudThrottledError if transient else CapabilityError
        return cls(f"{message}: {code}", cause=error)
    if isinstance(error, _NETWORK_ERRORS):
        return CloudThrottledError(f"{message}: {error}", cause=error)
    if isinstance(error, BotoCoreError):
        return CapabilityError(f"{message}: {error}", cause=error)
    return ProvisionerError(f"{message}: {error}", cause=error)


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ProvisionerError",
    "TransientError",
    "CloudThrottledError",
    "ResourceBusyError",
    "StoreUnavailableError",
    "CapabilityError",
    "NotSupportedError",
    "ResourceConflictError",
    "ResourceNotFoundError",
    "UnexpectedStatusError",
    "StoreError",
    "EntityNotFoundError",
    "LockNotHeldError",
    "ConfigError",
    "THROTTLING_ERROR_CODES",
    "aws_error_code",
    "classify_aws_error",
]
