"""Contracts of the scheduling package.

A backend owns the clock and calls one tick function repeatedly; the
:class:`~provisioner.scheduling.SchedulerService` tick walks the supervisors.
Supervisors are synchronous (their cloud and store calls block), so ticks
are plain callables.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

TickFn = Callable[[], None]


@runtime_checkable
class Supervisor(Protocol):
    """One reconciler, named by the entity kind it drives."""

    kind: str

    def do(self) -> None: ...


@runtime_checkable
class SchedulerBackend(Protocol):
    name: str

    def start(self, tick: TickFn, interval_seconds: float) -> None:
        """Call *tick* every *interval_seconds* until :meth:`stop`."""
        ...

    def stop(self) -> None: ...

    def health(self) -> dict[str, Any]:
        """Must contain ``healthy`` and ``backend``."""
        ...
