"""
Module: fleet_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent column
    types, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated primary key.
    - Decimal precision: type_annotation_map maps Python Decimal to
      Numeric(38, 9).  NEVER use float for monetary amounts.
    - Timezone-aware timestamps: every datetime column round-trips as an
      aware UTC datetime, including on SQLite which stores naive values.

Failure modes:
    - ValueError from UTCDateTime when a naive datetime is bound.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
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
            return PyUUID(str(value))
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC.

    Contract:
        Only aware datetimes may be bound.  Values are converted to UTC on
        the way in and come back as aware UTC datetimes on the way out, on
        every backend.

    Guarantees:
        - Comparisons between loaded values and clock values never mix
          naive and aware datetimes.
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
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to UTCDateTime (always aware, always UTC).
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        # Financial precision: 38 digits total, 9 decimal places
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        date: Date(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    Contract:
        Every model that inherits TrackedBase records who created and last
        modified the row, and when.  Actors are free-form operator names
        supplied by the calling layer.

    Guarantees:
        - created_at is set on INSERT and never changes.
        - updated_at auto-updates on every UPDATE.
        - created_by is required; updated_by is nullable.
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

    created_by: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="system",
    )

    updated_by: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )


# Re-export UUID for convenience
UUID = PyUUID
