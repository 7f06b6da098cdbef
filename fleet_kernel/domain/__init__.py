"""
Pure domain layer.

Status enums, transition tables, window overlap, ledger arithmetic and aging
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (SystemClock is the one sanctioned time source)
"""

from fleet_kernel.domain.aging import (
    AgedInvoice,
    AgingBucket,
    AgingCalculator,
    AgingReport,
    ranges_from_boundaries,
)
from fleet_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fleet_kernel.domain.ledger_rules import (
    InvoiceBalance,
    InvoicePaymentStatus,
    PaymentMode,
    PaymentStatus,
    compute_balance,
    credit_allows,
    derive_payment_status,
)
from fleet_kernel.domain.trip_lifecycle import (
    TripAction,
    TripEventType,
    TripStatus,
    next_status,
)
from fleet_kernel.domain.windows import TimeWindow, occupied_window

__all__ = [
    "AgedInvoice",
    "AgingBucket",
    "AgingCalculator",
    "AgingReport",
    "Clock",
    "DeterministicClock",
    "InvoiceBalance",
    "InvoicePaymentStatus",
    "PaymentMode",
    "PaymentStatus",
    "SystemClock",
    "TimeWindow",
    "TripAction",
    "TripEventType",
    "TripStatus",
    "compute_balance",
    "credit_allows",
    "derive_payment_status",
    "next_status",
    "occupied_window",
    "ranges_from_boundaries",
]
