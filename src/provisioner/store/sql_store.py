"""
SQL entity store with compare-and-set row locks.

Persists clusters, installations, cluster installations and migrations, and
offers the atomic claim/release primitive every supervisor relies on.

Manifesto:
    Supervisors in different processes coordinate only through this store.
    A claim is a single guarded ``UPDATE``; whoever's statement affects the
    row owns it. No advisory locks, no separate lock table, no expiry: a
    dead owner is cleared by an operator with a forced unlock.

Architecture:
    ::

        try_lock(table, id, owner)
        ┌──────────────────────────────────────────────────────────────┐
        │ UPDATE t SET lock_acquired_by = :owner, lock_acquired_at = :now│
        │ WHERE id = :id                                                 │
        │   AND (lock_acquired_by IS NULL OR lock_acquired_by = :owner)  │
        │ → claimed  ⇔  rowcount == 1                                    │
        └──────────────────────────────────────────────────────────────┘

        unlock(table, id, owner, force)
        ┌──────────────────────────────────────────────────────────────┐
        │ UPDATE t SET lock_acquired_by = NULL, lock_acquired_at = 0     │
        │ WHERE id = :id AND lock_acquired_by = :owner                   │
        │       (force: AND lock_acquired_by IS NOT NULL)                │
        │ → released  ⇔  rowcount == 1                                   │
        └──────────────────────────────────────────────────────────────┘

        pending work:
        SELECT * FROM t WHERE state IN (...) AND lock_acquired_by IS NULL
                        AND delete_at = 0 ORDER BY create_at

Guardrails:
    ❌ DON'T: Write lock columns through ``update_*``
    ✅ DO: Use ``lock_*`` / ``unlock_*``; ``update_*`` only touches business
       fields

    ❌ DON'T: Share a store across threads without its RLock
    ✅ DO: Go through the public methods; each one is serialised

Tags:
    store, persistence, locks, compare-and-set, provisioner
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy.exc import OperationalError as SAOperationalError
from sqlalchemy.exc import SQLAlchemyError

from provisioner.core.dialect import Dialect
from provisioner.core.errors import (
    EntityNotFoundError,
    LockNotHeldError,
    StoreError,
    StoreUnavailableError,
)
from provisioner.core.logging import get_logger
from provisioner.core.protocols import Connection
from provisioner.core.repository import BaseRepository
from provisioner.core.schema import TABLES, create_tables, missing_tables
from provisioner.core.timestamps import generate_ulid, now_millis
from provisioner.model.entities import (
    Cluster,
    ClusterInstallation,
    Installation,
    Migration,
)
from provisioner.model.enums import (
    CLUSTER_INSTALLATION_PENDING_WORK,
    CLUSTER_PENDING_WORK,
    INSTALLATION_PENDING_WORK,
    MIGRATION_PENDING_WORK,
    MIGRATION_TERMINAL_STATES,
    MigrationState,
)

logger = get_logger(__name__)

E = TypeVar("E", Cluster, Installation, ClusterInstallation, Migration)

_LOCK_COLUMNS = {"id", "lock_acquired_by", "lock_acquired_at", "create_at", "delete_at"}


class SQLStore(BaseRepository):
    """Entity store over any :class:`Connection`.

    Every public method holds ``self._lock`` so the API threads and the
    scheduler thread can share one connection.
    """

    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        super().__init__(conn, dialect)
        self._lock = threading.RLock()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # -- plumbing ----------------------------------------------------------

    @contextmanager
    def _tx(self) -> Iterator[None]:
        """Serialise, commit on success, roll back and wrap driver errors."""
        with self._lock:
            try:
                yield
                self.conn.commit()
            except (sqlite3.OperationalError, SAOperationalError) as e:
                self.conn.rollback()
                raise StoreUnavailableError(f"Store unavailable: {e}", cause=e) from e
            except (sqlite3.Error, SQLAlchemyError) as e:
                self.conn.rollback()
                raise StoreError(f"Store error: {e}", cause=e) from e

    def _get(self, table: str, cls: type[E], entity_id: str) -> E | None:
        with self._tx():
            row = self.query_one(
                f"SELECT * FROM {table} WHERE id = {self.ph(1)} AND delete_at = 0",
                (entity_id,),
            )
        return cls.from_row(row) if row else None

    def _list(self, table: str, cls: type[E], where: str = "", params: tuple = (),
              limit: int | None = None, offset: int = 0) -> list[E]:
        sql = f"SELECT * FROM {table} WHERE delete_at = 0"
        if where:
            sql += f" AND {where}"
        sql += " ORDER BY create_at ASC, id ASC"
        if limit is not None:
            sql += f" LIMIT {int(limit)} OFFSET {int(offset)}"
        with self._tx():
            rows = self.query(sql, params)
        return [cls.from_row(row) for row in rows]

    def _count(self, table: str, where: str = "", params: tuple = ()) -> int:
        sql = f"SELECT COUNT(*) AS n FROM {table} WHERE delete_at = 0"
        if where:
            sql += f" AND {where}"
        with self._tx():
            row = self.query_one(sql, params)
        return int(row["n"]) if row else 0

    def _create(self, table: str, entity: E) -> E:
        if not entity.id:
            entity.id = generate_ulid()
        entity.create_at = now_millis()
        entity.delete_at = 0
        entity.lock_acquired_by = None
        entity.lock_acquired_at = 0
        with self._tx():
            self.insert(table, _row(entity))
        return entity

    def _update(self, table: str, entity: E, owner_id: str | None = None) -> None:
        data = {k: v for k, v in _row(entity).items() if k not in _LOCK_COLUMNS}
        where, params = "delete_at = 0", ()
        if owner_id is not None:
            where += f" AND lock_acquired_by = {self.ph(1)}"
            params = (owner_id,)
        with self._tx():
            affected = self.update(table, entity.id, data, where=where, params=params)
        if affected != 1:
            if owner_id is not None and self._get(table, type(entity), entity.id) is not None:
                raise LockNotHeldError(
                    f"{table} {entity.id} is not locked by {owner_id}"
                ).with_context(resource_id=entity.id)
            raise EntityNotFoundError(f"{table} {entity.id} not found").with_context(
                resource_id=entity.id
            )

    def _delete(self, table: str, entity_id: str) -> None:
        with self._tx():
            self.execute(
                f"UPDATE {table} SET delete_at = {self.ph(1)} "
                f"WHERE id = {self.ph(1)} AND delete_at = 0",
                (now_millis(), entity_id),
            )

    def _try_lock(self, table: str, entity_id: str, owner_id: str) -> bool:
        with self._tx():
            self.execute(
                f"UPDATE {table} SET lock_acquired_by = {self.ph(1)}, "
                f"lock_acquired_at = {self.ph(1)} "
                f"WHERE id = {self.ph(1)} AND delete_at = 0 "
                f"AND (lock_acquired_by IS NULL OR lock_acquired_by = {self.ph(1)})",
                (owner_id, now_millis(), entity_id, owner_id),
            )
            claimed = self.conn.rowcount == 1
        logger.debug("lock_attempted", table=table, id=entity_id, owner=owner_id, claimed=claimed)
        return claimed

    def _unlock(self, table: str, entity_id: str, owner_id: str, force: bool) -> bool:
        sql = (
            f"UPDATE {table} SET lock_acquired_by = NULL, lock_acquired_at = 0 "
            f"WHERE id = {self.ph(1)} AND "
        )
        if force:
            sql += "lock_acquired_by IS NOT NULL"
            params: tuple = (entity_id,)
        else:
            sql += f"lock_acquired_by = {self.ph(1)}"
            params = (entity_id, owner_id)
        with self._tx():
            self.execute(sql, params)
            released = self.conn.rowcount == 1
        if force and released:
            logger.warning("lock_force_released", table=table, id=entity_id, by=owner_id)
        return released

    def _pending(self, table: str, cls: type[E], states: Sequence[Any]) -> list[E]:
        values = self._values(states)
        return self._list(
            table,
            cls,
            where=f"state IN ({self.ph(len(values))}) AND lock_acquired_by IS NULL",
            params=values,
        )

    @staticmethod
    def _values(states: Sequence[Any]) -> tuple:
        return tuple(getattr(s, "value", s) for s in states)

    def init_schema(self) -> None:
        """Create the entity tables (idempotent)."""
        with self._tx():
            create_tables(self.conn)

    def missing_tables(self) -> list[str]:
        """Entity tables that do not exist yet (empty when the schema is ready)."""
        with self._tx():
            return missing_tables(self.conn, self.dialect)

    # -- clusters ----------------------------------------------------------

    def get_cluster(self, cluster_id: str) -> Cluster | None:
        return self._get(TABLES["cluster"], Cluster, cluster_id)

    def get_clusters(self) -> list[Cluster]:
        return self._list(TABLES["cluster"], Cluster)

    def create_cluster(self, cluster: Cluster) -> Cluster:
        return self._create(TABLES["cluster"], cluster)

    def update_cluster(self, cluster: Cluster, owner_id: str | None = None) -> None:
        self._update(TABLES["cluster"], cluster, owner_id)

    def delete_cluster(self, cluster_id: str) -> None:
        self._delete(TABLES["cluster"], cluster_id)

    def lock_cluster(self, cluster_id: str, owner_id: str) -> bool:
        return self._try_lock(TABLES["cluster"], cluster_id, owner_id)

    def unlock_cluster(self, cluster_id: str, owner_id: str, force: bool = False) -> bool:
        return self._unlock(TABLES["cluster"], cluster_id, owner_id, force)

    def get_unlocked_clusters_pending_work(self) -> list[Cluster]:
        return self._pending(TABLES["cluster"], Cluster, CLUSTER_PENDING_WORK)

    # -- installations -----------------------------------------------------

    def get_installation(self, installation_id: str) -> Installation | None:
        return self._get(TABLES["installation"], Installation, installation_id)

    def get_installations(self) -> list[Installation]:
        return self._list(TABLES["installation"], Installation)

    def create_installation(self, installation: Installation) -> Installation:
        return self._create(TABLES["installation"], installation)

    def update_installation(self, installation: Installation, owner_id: str | None = None) -> None:
        self._update(TABLES["installation"], installation, owner_id)

    def delete_installation(self, installation_id: str) -> None:
        self._delete(TABLES["installation"], installation_id)

    def lock_installation(self, installation_id: str, owner_id: str) -> bool:
        return self._try_lock(TABLES["installation"], installation_id, owner_id)

    def unlock_installation(self, installation_id: str, owner_id: str, force: bool = False) -> bool:
        return self._unlock(TABLES["installation"], installation_id, owner_id, force)

    def get_unlocked_installations_pending_work(self) -> list[Installation]:
        return self._pending(TABLES["installation"], Installation, INSTALLATION_PENDING_WORK)

    # -- cluster installations ---------------------------------------------

    def get_cluster_installation(self, ci_id: str) -> ClusterInstallation | None:
        return self._get(TABLES["cluster_installation"], ClusterInstallation, ci_id)

    def get_cluster_installations(
        self,
        installation_id: str | None = None,
        cluster_id: str | None = None,
    ) -> list[ClusterInstallation]:
        clauses, params = [], []
        if installation_id is not None:
            clauses.append(f"installation_id = {self.ph(1)}")
            params.append(installation_id)
        if cluster_id is not None:
            clauses.append(f"cluster_id = {self.ph(1)}")
            params.append(cluster_id)
        return self._list(
            TABLES["cluster_installation"],
            ClusterInstallation,
            where=" AND ".join(clauses),
            params=tuple(params),
        )

    def create_cluster_installation(self, ci: ClusterInstallation) -> ClusterInstallation:
        return self._create(TABLES["cluster_installation"], ci)

    def update_cluster_installation(self, ci: ClusterInstallation, owner_id: str | None = None) -> None:
        self._update(TABLES["cluster_installation"], ci, owner_id)

    def delete_cluster_installation(self, ci_id: str) -> None:
        self._delete(TABLES["cluster_installation"], ci_id)

    def lock_cluster_installation(self, ci_id: str, owner_id: str) -> bool:
        return self._try_lock(TABLES["cluster_installation"], ci_id, owner_id)

    def unlock_cluster_installation(self, ci_id: str, owner_id: str, force: bool = False) -> bool:
        return self._unlock(TABLES["cluster_installation"], ci_id, owner_id, force)

    def get_unlocked_cluster_installations_pending_work(self) -> list[ClusterInstallation]:
        return self._pending(
            TABLES["cluster_installation"], ClusterInstallation, CLUSTER_INSTALLATION_PENDING_WORK
        )

    # -- migrations --------------------------------------------------------

    def get_migration(self, migration_id: str) -> Migration | None:
        return self._get(TABLES["migration"], Migration, migration_id)

    def _migration_filter(
        self,
        states: Sequence[MigrationState] | None,
        cluster_installation_id: str | None,
        active_only: bool,
    ) -> tuple[str, tuple]:
        clauses, params = [], []
        if states:
            values = self._values(states)
            clauses.append(f"state IN ({self.ph(len(values))})")
            params.extend(values)
        if active_only:
            values = self._values(sorted(MIGRATION_TERMINAL_STATES))
            clauses.append(f"state NOT IN ({self.ph(len(values))})")
            params.extend(values)
        if cluster_installation_id is not None:
            clauses.append(f"cluster_installation_id = {self.ph(1)}")
            params.append(cluster_installation_id)
        return " AND ".join(clauses), tuple(params)

    def get_migrations(
        self,
        states: Sequence[MigrationState] | None = None,
        cluster_installation_id: str | None = None,
        active_only: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Migration]:
        where, params = self._migration_filter(states, cluster_installation_id, active_only)
        return self._list(TABLES["migration"], Migration, where, params, limit, offset)

    def count_migrations(
        self,
        states: Sequence[MigrationState] | None = None,
        cluster_installation_id: str | None = None,
        active_only: bool = False,
    ) -> int:
        where, params = self._migration_filter(states, cluster_installation_id, active_only)
        return self._count(TABLES["migration"], where, params)

    def create_migration(self, migration: Migration) -> Migration:
        return self._create(TABLES["migration"], migration)

    def update_migration(self, migration: Migration, owner_id: str | None = None) -> None:
        """Persist ``state``; with *owner_id*, only while that owner holds the lock."""
        self._update(TABLES["migration"], migration, owner_id)

    def delete_migration(self, migration_id: str) -> None:
        self._delete(TABLES["migration"], migration_id)

    def lock_migration(self, migration_id: str, owner_id: str) -> bool:
        return self._try_lock(TABLES["migration"], migration_id, owner_id)

    def unlock_migration(self, migration_id: str, owner_id: str, force: bool = False) -> bool:
        return self._unlock(TABLES["migration"], migration_id, owner_id, force)

    def get_unlocked_migrations_pending_work(self) -> list[Migration]:
        return self._pending(TABLES["migration"], Migration, MIGRATION_PENDING_WORK)


def _row(entity: Any) -> dict[str, Any]:
    # Booleans are stored as 0/1 integers on every backend.
    return {
        k: int(v) if isinstance(v, bool) else v
        for k, v in entity.to_dict().items()
    }


__all__ = ["SQLStore"]
