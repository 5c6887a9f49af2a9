"""Capability for database backends that cannot be migrated."""

from __future__ import annotations

from provisioner.core.errors import NotSupportedError
from provisioner.model.enums import DatabaseStatus


class UnsupportedDatabaseMigration:
    """Fails closed: every operation raises :class:`NotSupportedError`."""

    def __init__(self, backend: str) -> None:
        self.backend = backend

    def _fail(self, operation: str) -> NotSupportedError:
        return NotSupportedError(
            f"{operation} is not supported for database backend {self.backend!r}"
        ).with_context(backend=self.backend)

    def snapshot(self) -> None:
        raise self._fail("snapshot")

    def snapshot_status(self) -> DatabaseStatus:
        raise self._fail("snapshot_status")

    def restore(self) -> None:
        raise self._fail("restore")

    def database_status(self) -> DatabaseStatus:
        raise self._fail("database_status")

    def teardown(self) -> None:
        raise self._fail("teardown")
