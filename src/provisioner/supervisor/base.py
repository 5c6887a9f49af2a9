"""
Generic claim → re-read → transition → persist → release loop.

Every supervisor in the package is a subclass of :class:`EntitySupervisor`
that names its entity kind, the store functions it works through, and a
``transition`` method. The base class owns the lock discipline:

    ::

        do()
        └── for entity in pending():        # unlocked rows in pending states
            └── supervise(entity)
                ├── EntityLock.try_lock()    # skip if another owner holds it
                ├── reload(entity.id)        # the listed copy may be stale
                ├── transition(entity, log)  # -> next state (or the same one)
                ├── persist(entity)          # only when the state changed
                ├── after_persist(entity)    # optional hook (soft delete)
                └── EntityLock.unlock()      # always, in ``finally``

Nothing raised inside ``supervise`` reaches the scheduler; provisioner errors
are logged at warning, anything else with a traceback.

Tags:
    supervisor, reconcile, lock, fsm, provisioner
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from provisioner.core.errors import ProvisionerError, ResourceBusyError
from provisioner.core.logging import get_logger
from provisioner.supervisor.lock import EntityLock

E = TypeVar("E")


class EntitySupervisor(ABC, Generic[E]):
    """Base class for the per-entity reconcilers.

    Subclasses set :attr:`kind` and implement :meth:`pending`,
    :meth:`reload`, :meth:`persist`, :meth:`lock`, :meth:`unlock` and
    :meth:`transition`. Passes over one instance are serialised: the
    scheduler thread and a pass triggered from an API write share the same
    lock owner id, so they must never hold the same row at once.
    """

    kind: str = "entity"

    def __init__(self, instance_id: str) -> None:
        self.instance_id = instance_id
        self.logger = get_logger(f"provisioner.supervisor.{self.kind}")
        self._pass_lock = threading.Lock()

    # -- store hooks (subclasses) ------------------------------------------

    @abstractmethod
    def pending(self) -> list[E]:
        ...

    @abstractmethod
    def reload(self, entity_id: str) -> E | None:
        ...

    @abstractmethod
    def persist(self, entity: E) -> None:
        ...

    @abstractmethod
    def lock(self, entity_id: str, owner_id: str) -> bool:
        ...

    @abstractmethod
    def unlock(self, entity_id: str, owner_id: str, force: bool = False) -> bool:
        ...

    @abstractmethod
    def transition(self, entity: E, log: Any) -> Any:
        """Return the state *entity* should move to (may be its current one)."""

    def after_persist(self, entity: E, log: Any) -> None:
        """Runs after a state change was written, still under the claim."""

    def run_step(
        self,
        step: Callable[[E, Any], Any],
        entity: E,
        log: Any,
        failed_state: Any,
    ) -> Any:
        """Run one FSM step, mapping provisioner errors onto states.

        Retryable errors keep the current state (busy resources at info,
        everything else at warning); any other provisioner error moves the
        entity to *failed_state*.
        """
        try:
            return step(entity, log)
        except ProvisionerError as e:
            state = getattr(entity, "state")
            if e.retryable:
                emit = log.info if isinstance(e, ResourceBusyError) else log.warning
                emit("step_retry_next_tick", state=_value(state), error=str(e))
                return state
            log.error(
                "step_failed",
                state=_value(state),
                error=str(e),
                error_type=type(e).__name__,
            )
            return failed_state

    # -- loop --------------------------------------------------------------

    def do(self) -> None:
        """One reconcile pass over every unlocked entity with pending work.

        A second caller waits for the running pass to finish.
        """
        with self._pass_lock:
            try:
                entities = self.pending()
            except ProvisionerError as e:
                self.logger.warning("pending_work_query_failed", kind=self.kind, error=str(e))
                return

            for entity in entities:
                self.supervise(entity)

    def supervise(self, entity: E) -> None:
        entity_id = getattr(entity, "id")
        log = self.logger.bind(**{self.kind: entity_id})
        claim = self._claim(entity_id, log)
        try:
            if not claim.try_lock():
                return
            try:
                self._supervise_locked(entity_id, log)
            finally:
                claim.unlock()
        except ProvisionerError as e:
            log.warning("supervise_failed", error=str(e), category=e.category.value)
        except Exception:
            log.exception("supervise_crashed")

    def _claim(self, entity_id: str, log: Any) -> EntityLock:
        return EntityLock(
            self.kind,
            entity_id,
            self.instance_id,
            self.lock,
            self.unlock,
            log=log,
        )

    def _supervise_locked(self, entity_id: str, log: Any) -> None:
        entity = self.reload(entity_id)
        if entity is None:
            log.info("entity_vanished")
            return

        old_state = getattr(entity, "state")
        new_state = self.transition(entity, log)
        if new_state == old_state:
            return

        setattr(entity, "state", new_state)
        self.persist(entity)
        log.info(
            "transitioned",
            old_state=_value(old_state),
            new_state=_value(new_state),
        )
        self.after_persist(entity, log)


class StoreBackedSupervisor(EntitySupervisor[E]):
    """An :class:`EntitySupervisor` wired to one entity's store functions."""

    def __init__(
        self,
        instance_id: str,
        *,
        pending: Callable[[], list[E]],
        reload: Callable[[str], E | None],
        update: Callable[..., None],
        lock: Callable[[str, str], bool],
        unlock: Callable[..., bool],
    ) -> None:
        super().__init__(instance_id)
        self._pending = pending
        self._reload = reload
        self._update = update
        self._lock = lock
        self._unlock = unlock

    def pending(self) -> list[E]:
        return self._pending()

    def reload(self, entity_id: str) -> E | None:
        return self._reload(entity_id)

    def persist(self, entity: E) -> None:
        self._update(entity, owner_id=self.instance_id)

    def lock(self, entity_id: str, owner_id: str) -> bool:
        return self._lock(entity_id, owner_id)

    def unlock(self, entity_id: str, owner_id: str, force: bool = False) -> bool:
        return self._unlock(entity_id, owner_id, force)

    def claim(self, entity_id: str, owner_id: str) -> bool:
        """Claim *entity_id* for another owner (e.g. a migration id)."""
        return self._lock(entity_id, owner_id)

    def release(self, entity_id: str, owner_id: str) -> bool:
        return self._unlock(entity_id, owner_id, False)


def _value(state: Any) -> Any:
    return getattr(state, "value", state)


__all__ = ["EntitySupervisor", "StoreBackedSupervisor"]
