"""
Module: fleet_kernel.models.trip
Responsibility: ORM persistence for trips and their append-only history.
Architecture position: Kernel > Models.  May import from db/ and domain/
    value modules only.

Invariants enforced:
    - trip_number is unique.
    - trip_charges > 0 and 0 <= advance_amount <= trip_charges (check
      constraints back the service-level validation).
    - planned_start <= planned_end.
    - status only changes through the transition table in
      domain/trip_lifecycle.py (TripLifecycleService is the only writer).
    - version is bumped on every UPDATE (SQLAlchemy version_id_col); a
      writer holding a stale copy fails with StaleDataError.
    - TripEvent rows are append-only (ORM listener in db/immutability.py).

Failure modes:
    - StaleDataError on a concurrent modification (mapped to
      OptimisticLockError by the service layer).
    - ImmutabilityViolationError on any UPDATE/DELETE of a TripEvent.

Audit relevance:
    TripEvent is the structured history of every trip: who moved it, when,
    from which status to which, and why.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import Base, TrackedBase, UUIDString
from fleet_kernel.domain.trip_lifecycle import TripEventType, TripStatus


class Trip(TrackedBase):
    """
    One assignment of a truck and driver to move goods for a client.

    Contract:
        Created PLANNED by TripLifecycleService.create_trip and mutated only
        by TripLifecycleService.  Trips are never deleted once they leave
        PLANNED.

    Guarantees:
        - truck_id, driver_id and client_id are one-directional foreign
          keys; lookups go through the record store.
        - Expense fields are zero until completion.
    """

    __tablename__ = "trips"

    __table_args__ = (
        UniqueConstraint("trip_number", name="uq_trip_number"),
        CheckConstraint("trip_charges > 0", name="ck_trip_charges_positive"),
        CheckConstraint("advance_amount >= 0", name="ck_trip_advance_non_negative"),
        CheckConstraint("advance_amount <= trip_charges", name="ck_trip_advance_within_charges"),
        CheckConstraint("planned_start <= planned_end", name="ck_trip_planned_window"),
        Index("idx_trip_truck_status", "truck_id", "status"),
        Index("idx_trip_driver_status", "driver_id", "status"),
        Index("idx_trip_client", "client_id"),
    )

    trip_number: Mapped[str] = mapped_column(String(50), nullable=False)

    truck_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("trucks.id"), nullable=False)
    driver_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("drivers.id"), nullable=False)
    client_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("clients.id"), nullable=False)

    source_location: Mapped[str] = mapped_column(String(255), nullable=False)
    destination_location: Mapped[str] = mapped_column(String(255), nullable=False)

    planned_start: Mapped[datetime] = mapped_column(nullable=False)
    planned_end: Mapped[datetime] = mapped_column(nullable=False)
    actual_start: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_end: Mapped[datetime | None] = mapped_column(nullable=True)

    status: Mapped[TripStatus] = mapped_column(
        SAEnum(TripStatus, native_enum=False, length=20, name="trip_status"),
        nullable=False,
        default=TripStatus.PLANNED,
    )

    # Financials
    trip_charges: Mapped[Decimal] = mapped_column(nullable=False)
    advance_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Measurements
    distance_km: Mapped[Decimal | None] = mapped_column(Numeric(18, 3), nullable=True)
    load_weight_tons: Mapped[Decimal | None] = mapped_column(Numeric(18, 3), nullable=True)

    # Expenses, filled at completion
    fuel_consumed: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False, default=Decimal("0"))
    fuel_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    toll_charges: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    other_expenses: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Open an invoice automatically when the trip completes
    auto_invoice: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    cancellation_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_expenses(self) -> Decimal:
        return self.fuel_cost + self.toll_charges + self.other_expenses

    def __repr__(self) -> str:
        return f"<Trip {self.trip_number} [{self.status.value}]>"


class TripEvent(Base):
    """
    One immutable line of a trip's history.

    Contract:
        Appended by TripLifecycleService in the same unit of work as the
        change it records.  seq is the per-trip ordinal starting at 1.

    Guarantees:
        - (trip_id, seq) is unique; history order is seq order.
        - Never updated or deleted.
    """

    __tablename__ = "trip_events"

    __table_args__ = (
        UniqueConstraint("trip_id", "seq", name="uq_trip_event_seq"),
        Index("idx_trip_event_trip", "trip_id"),
    )

    trip_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("trips.id"), nullable=False)

    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    actor: Mapped[str] = mapped_column(String(100), nullable=False)

    event: Mapped[TripEventType] = mapped_column(
        SAEnum(TripEventType, native_enum=False, length=30, name="trip_event_type"),
        nullable=False,
    )

    from_status: Mapped[TripStatus | None] = mapped_column(
        SAEnum(TripStatus, native_enum=False, length=20, name="trip_status"),
        nullable=True,
    )
    to_status: Mapped[TripStatus] = mapped_column(
        SAEnum(TripStatus, native_enum=False, length=20, name="trip_status"),
        nullable=False,
    )

    remarks: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    # Structured detail (amounts, old/new windows, invoice number, ...)
    detail: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<TripEvent {self.trip_id}#{self.seq} {self.event.value}>"
