"""
Module: fleet_kernel.models.payment
Responsibility: ORM persistence for the append-only log of payments
    received against invoices.
Architecture position: Kernel > Models.  May import from db/ and domain/
    value modules only.

Invariants enforced:
    - payment_number is unique.
    - amount > 0.
    - amount, invoice_id, client_id, mode and reference never change after
      insert; status only moves along PAYMENT_TRANSITIONS (ORM listener in
      db/immutability.py).
    - Payments are never deleted.  A bounced payment stays in the log with
      status BOUNCED; its effect on balances is reversed by the ledger.

Failure modes:
    - ImmutabilityViolationError on a forbidden UPDATE or any DELETE.
"""

from datetime import datetime
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
from fleet_kernel.domain.ledger_rules import PaymentMode, PaymentStatus


class Payment(TrackedBase):
    """
    One payment received against an invoice.

    Contract:
        Inserted by LedgerService.apply_payment.  reference is the caller's
        idempotency key (cheque number, UTR, ...); a retried call with the
        same reference does not insert a second row.

    Guarantees:
        - The financial fields are frozen from insert.
        - cleared_at / bounced_at are set exactly when status moves there.
    """

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("payment_number", name="uq_payment_number"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_invoice", "invoice_id"),
        Index("idx_payment_invoice_reference", "invoice_id", "reference"),
        Index("idx_payment_client", "client_id"),
    )

    payment_number: Mapped[str] = mapped_column(String(50), nullable=False)

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False
    )
    client_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("clients.id"), nullable=False
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    mode: Mapped[PaymentMode] = mapped_column(
        SAEnum(PaymentMode, native_enum=False, length=20, name="payment_mode"),
        nullable=False,
    )

    # Caller-supplied idempotency key
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, native_enum=False, length=20, name="payment_status"),
        nullable=False,
        default=PaymentStatus.RECEIVED,
    )

    received_at: Mapped[datetime] = mapped_column(nullable=False)
    cleared_at: Mapped[datetime | None] = mapped_column(nullable=True)
    bounced_at: Mapped[datetime | None] = mapped_column(nullable=True)

    bounce_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.payment_number} {self.amount} [{self.status.value}]>"
