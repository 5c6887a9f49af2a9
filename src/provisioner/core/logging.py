"""
Structured logging for supervisors, the API and the CLI.

Several provisioner processes may reconcile the same store. Every line
carries the ``instance`` that emitted it (the id a supervisor locks rows
with), and supervisors bind the entity they are working on, so one migration
can be followed across ticks and across processes::

    {"event": "transitioned", "migration": "01J...", "old_state": "creation-complete",
     "new_state": "snapshot-creation-in-progress", "instance": "a1b2...",
     "tick": 7, "service": "provisioner", "level": "info", ...}

Manifesto:
    - **JSON off a TTY:** log shippers get one object per line
    - **Console on a TTY:** colours for a developer running ``supervisor run``
    - **Plain values:** state enums are rendered as their wire values

Tags:
    logging, structlog, observability, provisioner
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_static_fields: dict[str, str] = {"service": "provisioner"}


def _add_static_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for key, value in _static_fields.items():
        event_dict.setdefault(key, value)
    return event_dict


def _enum_values(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "provisioner",
    instance_id: str | None = None,
) -> None:
    """Configure structlog (and the stdlib root logger) once per process.

    Args:
        level: DEBUG, INFO, WARNING or ERROR.
        json_format: ``None`` picks JSON unless stdout is a TTY.
        service: Value of the ``service`` field.
        instance_id: Value of the ``instance`` field, normally the
            supervisors' lock owner id.
    """
    _static_fields.clear()
    _static_fields["service"] = service
    if instance_id:
        _static_fields["instance"] = instance_id

    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.dev.set_exc_info,
        _add_static_fields,
        _enum_values,
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    numeric_level = getattr(logging, level.upper())
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn, botocore and sqlalchemy log through the standard library.
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind fields onto every log line of the current context (request, tick)."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Bind fields for the duration of a ``with`` block.

    Example:
        with LogContext(tick=42):
            supervisor.do()
    """

    def __init__(self, **fields: Any) -> None:
        self._fields = fields

    def __enter__(self) -> LogContext:
        bind_context(**self._fields)
        return self

    def __exit__(self, *exc: Any) -> None:
        unbind_context(*self._fields)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "LogContext",
]
