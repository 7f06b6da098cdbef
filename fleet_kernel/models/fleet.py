"""
Module: fleet_kernel.models.fleet
Responsibility: ORM persistence for the fleet's physical resources, trucks
    and drivers.  Trips reference both by foreign key; neither holds a
    back-reference to its trips.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - truck_number and driver_code are unique.
    - current_odometer never decreases (enforced by TripLifecycleService,
      the only writer after registration).

Failure modes:
    - IntegrityError on duplicate truck_number / driver_code.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase


class Truck(TrackedBase):
    """
    A truck that can be assigned to trips.

    Guarantees:
        - capacity_tons is the rated load; trips heavier than this are
          rejected at creation.
        - is_active False removes the truck from new assignments without
          touching existing trips.
    """

    __tablename__ = "trucks"

    __table_args__ = (
        UniqueConstraint("truck_number", name="uq_truck_number"),
        Index("idx_truck_active", "is_active"),
    )

    # Registration plate or fleet number
    truck_number: Mapped[str] = mapped_column(String(50), nullable=False)

    capacity_tons: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Kilometres; monotonically non-decreasing
    current_odometer: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False, default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<Truck {self.truck_number} ({self.capacity_tons}t)>"


class Driver(TrackedBase):
    """A driver that can be assigned to trips.  Read-only to the trip core."""

    __tablename__ = "drivers"

    __table_args__ = (
        UniqueConstraint("driver_code", name="uq_driver_code"),
        Index("idx_driver_active", "is_active"),
    )

    driver_code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Driver {self.driver_code}: {self.name}>"
