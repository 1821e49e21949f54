"""
Module: caja_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, portable column types for UUIDs and
    timestamps, the type annotation map, and the TrackedBase mixin.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: every ledger model inherits a uuid4-generated key.
    - Money precision: type_annotation_map maps Python Decimal to
      Numeric(18, 2), the precision of every amount in the ledger.
      NEVER use float for monetary amounts.
    - Timestamps are stored normalized to UTC and always read back
      timezone-aware, on PostgreSQL and SQLite alike.

Failure modes:
    - IntegrityError if a model attempts to INSERT a duplicate UUID.
    - ValueError if a naive datetime is bound to a UTCDateTime column.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp normalized to UTC.

    Contract:
        Accepts aware datetimes in any offset (the ledger works in GMT-3)
        and stores the UTC instant.  SQLite has no native timezone support
        and returns naive values; those are read back as UTC so ordering
        and comparison behave identically on both backends.

    Guarantees:
        - process_bind_param rejects naive datetimes.
        - process_result_value always returns an aware UTC datetime.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a uuid4-generated UUID stored as String(36) unless a
          model overrides it (catalog tables use integer keys).
        - Decimal maps to Numeric(18, 2).
        - datetime maps to UTCDateTime; date maps to Date.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: UTCDateTime(),
        date: Date(),
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with creation/modification timestamps.

    Guarantees:
        - created_at is set to server NOW() on INSERT and never changes.
        - updated_at is set on INSERT and refreshed on every UPDATE.
        - created_by_id is the caller-supplied user id (nullable; the
          identity provider is optional for system jobs).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[int | None] = mapped_column(nullable=True)


UUID = PyUUID
