"""One reconciliation pass over the enabled supervisors per tick.

The background thread and ``provisioner supervisor tick`` both go through
:meth:`SchedulerService.tick_once`; a lock keeps a manual tick from running
alongside a scheduled one in the same process. Supervisors already isolate
per-entity failures, so an exception escaping ``do()`` means something
broke for the whole kind (a closed store, say). It is logged and counted
against that kind, and the remaining supervisors still run.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

from provisioner.core.logging import LogContext, get_logger
from provisioner.core.timestamps import now_millis

from .protocol import SchedulerBackend, Supervisor

logger = get_logger(__name__)


@dataclass
class SchedulerStats:
    tick_count: int = 0
    supervisor_runs: int = 0
    supervisor_failures: dict[str, int] = field(default_factory=dict)
    last_tick: int = 0
    last_error: str | None = None

    def record_failure(self, kind: str, error: Exception) -> None:
        self.supervisor_failures[kind] = self.supervisor_failures.get(kind, 0) + 1
        self.last_error = f"{kind}: {error}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SchedulerHealth:
    """Service state plus whatever the backend reports about its thread."""

    healthy: bool
    backend: dict[str, Any]
    supervisors: list[str]
    stats: SchedulerStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": dict(self.backend),
            "supervisors": list(self.supervisors),
            "stats": self.stats.to_dict(),
        }


class SchedulerService:
    """Drive *supervisors*, in order, from a timing backend.

    Example:
        >>> service = SchedulerService(ThreadSchedulerBackend(), supervisors, 30.0)
        >>> service.start()
        >>> service.stop()
    """

    def __init__(
        self,
        backend: SchedulerBackend,
        supervisors: Sequence[Supervisor],
        interval_seconds: float = 30.0,
    ) -> None:
        self.backend = backend
        self.supervisors = list(supervisors)
        self.interval = interval_seconds
        self._stats = SchedulerStats()
        self._tick_lock = threading.Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def supervisor_kinds(self) -> list[str]:
        return [supervisor.kind for supervisor in self.supervisors]

    def start(self) -> None:
        if self._running:
            logger.warning("scheduler_already_running")
            return
        logger.info(
            "scheduler_starting",
            backend=self.backend.name,
            interval_seconds=self.interval,
            supervisors=self.supervisor_kinds,
        )
        self.backend.start(self.tick_once, self.interval)
        self._running = True

    def stop(self) -> None:
        if not self._running:
            return
        self.backend.stop()
        self._running = False
        logger.info("scheduler_stopped", ticks=self._stats.tick_count)

    def tick_once(self) -> None:
        """Run every supervisor's ``do()`` once, in the calling thread."""
        with self._tick_lock:
            self._stats.tick_count += 1
            self._stats.last_tick = now_millis()
            with LogContext(tick=self._stats.tick_count):
                for supervisor in self.supervisors:
                    self._stats.supervisor_runs += 1
                    try:
                        supervisor.do()
                    except Exception as e:
                        self._stats.record_failure(supervisor.kind, e)
                        logger.exception("supervisor_pass_failed", kind=supervisor.kind)

    def health(self) -> SchedulerHealth:
        backend = self.backend.health()
        return SchedulerHealth(
            healthy=self._running and bool(backend.get("healthy")),
            backend=backend,
            supervisors=self.supervisor_kinds,
            stats=self._stats,
        )

    def get_stats(self) -> SchedulerStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = SchedulerStats()
