"""Scoped claim on one entity row.

``EntityLock`` pairs a store's ``lock_*`` / ``unlock_*`` functions for one
entity and owner. ``unlock`` runs at most once, so it is safe to call from a
``finally`` block and from an early-return path alike.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from provisioner.core.logging import get_logger

logger = get_logger(__name__)


class EntityLock:
    """Claim/release an entity for *owner_id*.

    Example:
        lock = EntityLock("migration", m.id, instance_id,
                          store.lock_migration, store.unlock_migration)
        if not lock.try_lock():
            return
        try:
            ...
        finally:
            lock.unlock()
    """

    def __init__(
        self,
        kind: str,
        entity_id: str,
        owner_id: str,
        lock: Callable[[str, str], bool],
        unlock: Callable[..., bool],
        log: Any = None,
    ) -> None:
        self.kind = kind
        self.entity_id = entity_id
        self.owner_id = owner_id
        self._lock = lock
        self._unlock = unlock
        self._log = log or logger.bind(**{kind: entity_id})
        self._held = False
        self._released = False
        self._guard = threading.Lock()

    def try_lock(self) -> bool:
        self._held = self._lock(self.entity_id, self.owner_id)
        if not self._held:
            self._log.debug("lock_not_acquired", kind=self.kind, owner=self.owner_id)
        return self._held

    def unlock(self) -> None:
        with self._guard:
            if not self._held or self._released:
                return
            self._released = True
        if not self._unlock(self.entity_id, self.owner_id, False):
            self._log.error("lock_release_failed", kind=self.kind, owner=self.owner_id)

    def __enter__(self) -> bool:
        return self.try_lock()

    def __exit__(self, *args: Any) -> None:
        self.unlock()
