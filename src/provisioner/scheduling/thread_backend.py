"""Daemon-thread scheduling backend.

The thread sleeps *interval* seconds, runs the tick, and sleeps again, so a
tick that spends a minute waiting on RDS pushes the next one back instead of
overlapping it. :meth:`ThreadSchedulerBackend.stop` wakes the sleep at once;
a tick already running is given ``join_timeout`` seconds to finish.
"""

from __future__ import annotations

import threading
from typing import Any

from provisioner.core.logging import get_logger
from provisioner.core.timestamps import now_millis

from .protocol import TickFn

logger = get_logger(__name__)


class ThreadSchedulerBackend:
    """Run ticks on a single ``provisioner-scheduler`` daemon thread."""

    name = "thread"

    def __init__(self, join_timeout: float = 5.0) -> None:
        self.join_timeout = join_timeout
        self.interval_seconds = 0.0
        self.tick_count = 0
        self.last_tick = 0
        self._wake = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, tick: TickFn, interval_seconds: float) -> None:
        if self._thread is not None:
            logger.warning("scheduler_already_started", backend=self.name)
            return
        self.interval_seconds = interval_seconds
        self._wake.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(tick,),
            name="provisioner-scheduler",
            daemon=True,
        )
        self._thread.start()

    def _loop(self, tick: TickFn) -> None:
        logger.info("scheduler_thread_started", interval_seconds=self.interval_seconds)
        while not self._wake.wait(self.interval_seconds):
            self.tick_count += 1
            self.last_tick = now_millis()
            try:
                tick()
            except Exception:
                logger.exception("scheduler_tick_failed", tick=self.tick_count)
        logger.info("scheduler_thread_exited", ticks=self.tick_count)

    def stop(self) -> None:
        thread, self._thread = self._thread, None
        if thread is None:
            return
        self._wake.set()
        thread.join(self.join_timeout)
        if thread.is_alive():
            logger.warning("scheduler_thread_still_running", join_timeout=self.join_timeout)

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "backend": self.name,
            "interval_seconds": self.interval_seconds,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick,
        }
