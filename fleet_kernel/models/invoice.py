"""
Module: fleet_kernel.models.invoice
Responsibility: ORM persistence for invoices ("builty") raised against a
    client, usually for one completed trip.
Architecture position: Kernel > Models.  May import from db/ and domain/
    value modules only.

Invariants enforced:
    - invoice_number is unique.
    - trip_id is unique when present: a trip carries at most one invoice.
    - total_charges = freight + loading + unloading + other + tax, > 0.
    - 0 <= advance_received <= total_charges.
    - balance_amount = total_charges - advance_received.
    - payment_status is derived from advance and total (see
      domain/ledger_rules.py).  LedgerService is the only writer of
      advance_received, balance_amount and payment_status.

Failure modes:
    - IntegrityError on a duplicate invoice_number or a second invoice for
      the same trip.
    - IntegrityError from check constraints if the derived fields are
      written out of step.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Enum as SAEnum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.ledger_rules import InvoicePaymentStatus


class Invoice(TrackedBase):
    """
    Billing document for a trip.

    Contract:
        Opened by LedgerService.open_invoice (explicitly or when an
        auto-invoicing trip completes); every later change comes from a
        payment being applied, reversed or cleared.

    Guarantees:
        - The charge breakdown always sums to total_charges.
        - balance_amount and payment_status agree with advance_received.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoice_number"),
        UniqueConstraint("trip_id", name="uq_invoice_trip"),
        CheckConstraint("total_charges > 0", name="ck_invoice_total_positive"),
        CheckConstraint("advance_received >= 0", name="ck_invoice_advance_non_negative"),
        CheckConstraint(
            "advance_received <= total_charges", name="ck_invoice_advance_within_total"
        ),
        CheckConstraint("balance_amount >= 0", name="ck_invoice_balance_non_negative"),
        Index("idx_invoice_client_status", "client_id", "payment_status"),
        Index("idx_invoice_date", "invoice_date"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)

    trip_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("trips.id"), nullable=True
    )
    client_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("clients.id"), nullable=False
    )

    invoice_date: Mapped[date] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(nullable=False)

    # Charge breakdown
    freight_charges: Mapped[Decimal] = mapped_column(nullable=False)
    loading_charges: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    unloading_charges: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    other_charges: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_charges: Mapped[Decimal] = mapped_column(nullable=False)

    # Derived, written only by the ledger
    advance_received: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    balance_amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_status: Mapped[InvoicePaymentStatus] = mapped_column(
        SAEnum(InvoicePaymentStatus, native_enum=False, length=20, name="invoice_payment_status"),
        nullable=False,
        default=InvoicePaymentStatus.PENDING,
    )

    @property
    def breakdown_total(self) -> Decimal:
        return (
            self.freight_charges
            + self.loading_charges
            + self.unloading_charges
            + self.other_charges
            + self.tax_amount
        )

    @property
    def is_paid(self) -> bool:
        return self.payment_status == InvoicePaymentStatus.PAID

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} [{self.payment_status.value}] balance={self.balance_amount}>"
