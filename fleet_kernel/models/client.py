"""
Module: fleet_kernel.models.client
Responsibility: ORM persistence for clients billed for trips, including
    their credit controls and running outstanding balance.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - client_code is unique.
    - credit_limit >= 0; zero means no limit is configured.
    - outstanding_balance >= 0 and equals the sum of balance_amount over the
      client's non-PAID invoices.  LedgerService is the only writer.

Failure modes:
    - IntegrityError on duplicate client_code or a negative balance/limit
      (check constraints).

Audit relevance:
    outstanding_balance is a derived total.  LedgerSelector.reconcile_client
    recomputes it from invoices without writing.
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase


class Client(TrackedBase):
    """
    A customer billed for trips.

    Contract:
        credit_limit and credit_days are set through FleetRegistryService.
        outstanding_balance is written only by LedgerService.

    Non-goals:
        - This model does NOT enforce the credit limit; the ledger's credit
          check does, under the configured policy.
    """

    __tablename__ = "clients"

    __table_args__ = (
        UniqueConstraint("client_code", name="uq_client_code"),
        CheckConstraint("credit_limit >= 0", name="ck_client_credit_limit_non_negative"),
        CheckConstraint("outstanding_balance >= 0", name="ck_client_outstanding_non_negative"),
        Index("idx_client_active", "is_active"),
    )

    client_code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # 0 = no limit configured
    credit_limit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Payment terms; invoice due date = invoice date + credit_days
    credit_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)

    outstanding_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    @property
    def has_credit_limit(self) -> bool:
        return self.credit_limit > 0

    def __repr__(self) -> str:
        return f"<Client {self.client_code}: {self.name}>"
