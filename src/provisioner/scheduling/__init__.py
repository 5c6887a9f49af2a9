"""Timer-driven invocation of the supervisors."""

from .protocol import SchedulerBackend, Supervisor, TickFn
from .service import SchedulerHealth, SchedulerService, SchedulerStats
from .thread_backend import ThreadSchedulerBackend

__all__ = [
    "SchedulerBackend",
    "Supervisor",
    "TickFn",
    "SchedulerHealth",
    "SchedulerService",
    "SchedulerStats",
    "ThreadSchedulerBackend",
]
