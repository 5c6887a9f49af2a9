"""Declarative base and type-map for the provisioner ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
that maps Python built-in types to portable SA column types.

Mixins
------
* **LockableMixin**: ``state`` plus lock and lifecycle columns shared by
  every entity table.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class ProvisionerBase(DeclarativeBase):
    """Shared declarative base for every provisioner table.

    * ``str``   → ``Text``
    * ``int``   → ``BigInteger`` (millisecond timestamps)
    * ``bool``  → ``Integer``  (SQLite has no native BOOLEAN)
    """

    type_annotation_map = {
        str: Text,
        int: BigInteger,
        bool: Integer,
    }


class LockableMixin:
    """``state``, lock owner/time and create/delete stamps."""

    state: Mapped[str] = mapped_column(Text, nullable=False)
    lock_acquired_by: Mapped[str | None] = mapped_column(Text)
    lock_acquired_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    create_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    delete_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
