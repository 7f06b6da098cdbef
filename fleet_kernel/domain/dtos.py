"""
Data transfer objects (``fleet_kernel.domain.dtos``).

Responsibility
--------------
Frozen dataclasses that cross the kernel boundary.  Every public operation
takes plain values or one of the request DTOs below and returns one of the
info DTOs, never an ORM instance.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Conversion from
ORM rows lives in ``fleet_kernel/selectors/``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fleet_kernel.domain.ledger_rules import InvoicePaymentStatus, PaymentMode, PaymentStatus
from fleet_kernel.domain.trip_lifecycle import TripEventType, TripStatus

ZERO = Decimal("0")


class ResourceKind(str, Enum):
    """Resources the availability checker knows about."""

    TRUCK = "TRUCK"
    DRIVER = "DRIVER"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TripRequest:
    """
    Everything needed to plan a trip.

    Amounts may be Decimal, int or numeric strings; they are parsed on
    write.  ``auto_invoice=None`` takes the configured default.
    """

    truck_id: UUID
    driver_id: UUID
    client_id: UUID
    source_location: str
    destination_location: str
    planned_start: datetime
    planned_end: datetime
    trip_charges: Any
    advance_amount: Any = ZERO
    distance_km: Any = None
    load_weight_tons: Any = None
    auto_invoice: bool | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class InvoiceCharges:
    """Charge breakdown of an invoice.  The total is the sum of all parts."""

    freight_charges: Decimal
    loading_charges: Decimal = ZERO
    unloading_charges: Decimal = ZERO
    other_charges: Decimal = ZERO
    tax_amount: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return (
            self.freight_charges
            + self.loading_charges
            + self.unloading_charges
            + self.other_charges
            + self.tax_amount
        )


# ---------------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TruckInfo:
    id: UUID
    truck_number: str
    capacity_tons: Decimal
    is_active: bool
    current_odometer: Decimal


@dataclass(frozen=True)
class DriverInfo:
    id: UUID
    driver_code: str
    name: str
    is_active: bool


@dataclass(frozen=True)
class ClientInfo:
    id: UUID
    client_code: str
    name: str
    is_active: bool
    credit_limit: Decimal
    credit_days: int
    outstanding_balance: Decimal

    @property
    def available_credit(self) -> Decimal | None:
        """Headroom under the credit limit; None when no limit is set."""
        if self.credit_limit == ZERO:
            return None
        return self.credit_limit - self.outstanding_balance


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TripInfo:
    """Snapshot of a trip."""

    id: UUID
    trip_number: str
    truck_id: UUID
    driver_id: UUID
    client_id: UUID
    source_location: str
    destination_location: str
    planned_start: datetime
    planned_end: datetime
    actual_start: datetime | None
    actual_end: datetime | None
    status: TripStatus
    trip_charges: Decimal
    advance_amount: Decimal
    distance_km: Decimal | None
    load_weight_tons: Decimal | None
    fuel_consumed: Decimal
    fuel_cost: Decimal
    toll_charges: Decimal
    other_expenses: Decimal
    auto_invoice: bool
    cancellation_reason: str | None
    version: int

    @property
    def balance_due(self) -> Decimal:
        return self.trip_charges - self.advance_amount


@dataclass(frozen=True)
class TripEventInfo:
    """One line of a trip's history."""

    seq: int
    occurred_at: datetime
    actor: str
    event: TripEventType
    from_status: TripStatus | None
    to_status: TripStatus
    remarks: str | None
    detail: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TripProfitability:
    """
    Earnings of a trip against its recorded expenses.

    ``profit_margin_pct`` is net profit as a percentage of charges, rounded
    to two places.  ``fuel_efficiency`` is km per unit of fuel, None until
    both distance and fuel are known.
    """

    trip_id: UUID
    trip_number: str
    status: TripStatus
    trip_charges: Decimal
    fuel_cost: Decimal
    toll_charges: Decimal
    other_expenses: Decimal
    total_expenses: Decimal
    net_profit: Decimal
    profit_margin_pct: Decimal
    fuel_efficiency: Decimal | None


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceInfo:
    """Snapshot of an invoice."""

    id: UUID
    invoice_number: str
    trip_id: UUID | None
    client_id: UUID
    invoice_date: date
    due_date: date
    freight_charges: Decimal
    loading_charges: Decimal
    unloading_charges: Decimal
    other_charges: Decimal
    tax_amount: Decimal
    total_charges: Decimal
    advance_received: Decimal
    balance_amount: Decimal
    payment_status: InvoicePaymentStatus


@dataclass(frozen=True)
class PaymentInfo:
    """Snapshot of a payment."""

    id: UUID
    payment_number: str
    invoice_id: UUID
    client_id: UUID
    amount: Decimal
    mode: PaymentMode
    reference: str | None
    status: PaymentStatus
    received_at: datetime
    cleared_at: datetime | None
    bounced_at: datetime | None
    bounce_reason: str | None


@dataclass(frozen=True)
class ClientExposure:
    """
    A client's stored outstanding balance next to the value recomputed
    from its unpaid invoices.
    """

    client_id: UUID
    client_code: str
    credit_limit: Decimal
    stored_outstanding: Decimal
    computed_outstanding: Decimal
    open_invoice_count: int

    @property
    def is_consistent(self) -> bool:
        return self.stored_outstanding == self.computed_outstanding

    @property
    def drift(self) -> Decimal:
        return self.stored_outstanding - self.computed_outstanding
