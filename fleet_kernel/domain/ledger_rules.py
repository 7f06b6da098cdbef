"""
Ledger rules (``fleet_kernel.domain.ledger_rules``).

Responsibility
--------------
Pure arithmetic and status derivation for invoices, payments and client
credit.  The ledger service is the only writer of balances; it computes
every new value through these functions so the derivation exists once.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.

Invariants enforced
-------------------
* ``0 <= advance_received <= total_charges``
* ``balance_amount = total_charges - advance_received``
* PAID iff balance is zero; PARTIAL iff 0 < advance < total; PENDING iff
  advance is zero.
* Payments move RECEIVED -> CLEARED, RECEIVED -> BOUNCED, CLEARED -> BOUNCED
  and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from fleet_kernel.exceptions import InvalidAmountError

ZERO = Decimal("0")


class InvoicePaymentStatus(str, Enum):
    """How much of an invoice has been paid."""

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class PaymentStatus(str, Enum):
    """Lifecycle of a received payment."""

    RECEIVED = "RECEIVED"
    CLEARED = "CLEARED"
    BOUNCED = "BOUNCED"


class PaymentMode(str, Enum):
    CASH = "CASH"
    CHEQUE = "CHEQUE"
    BANK_TRANSFER = "BANK_TRANSFER"
    UPI = "UPI"
    NEFT = "NEFT"
    RTGS = "RTGS"


PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.RECEIVED: frozenset({PaymentStatus.CLEARED, PaymentStatus.BOUNCED}),
    PaymentStatus.CLEARED: frozenset({PaymentStatus.BOUNCED}),
    # Terminal
    PaymentStatus.BOUNCED: frozenset(),
}


@dataclass(frozen=True)
class InvoiceBalance:
    """The three derived fields of an invoice, always computed together."""

    advance_received: Decimal
    balance_amount: Decimal
    payment_status: InvoicePaymentStatus


def derive_payment_status(total_charges: Decimal, advance_received: Decimal) -> InvoicePaymentStatus:
    if advance_received == ZERO:
        return InvoicePaymentStatus.PENDING
    if advance_received == total_charges:
        return InvoicePaymentStatus.PAID
    return InvoicePaymentStatus.PARTIAL


def compute_balance(total_charges: Decimal, advance_received: Decimal) -> InvoiceBalance:
    """
    Derive balance and status from total and advance.

    Raises:
        InvalidAmountError: total is not positive, advance is negative, or
            advance exceeds total.
    """
    if total_charges <= ZERO:
        raise InvalidAmountError("total_charges", str(total_charges), "must be positive")
    if advance_received < ZERO:
        raise InvalidAmountError("advance_received", str(advance_received), "cannot be negative")
    if advance_received > total_charges:
        raise InvalidAmountError(
            "advance_received",
            str(advance_received),
            f"exceeds total charges {total_charges}",
        )
    return InvoiceBalance(
        advance_received=advance_received,
        balance_amount=total_charges - advance_received,
        payment_status=derive_payment_status(total_charges, advance_received),
    )


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return PaymentStatus(target) in PAYMENT_TRANSITIONS[PaymentStatus(current)]


def credit_allows(credit_limit: Decimal, outstanding_balance: Decimal, proposed_amount: Decimal) -> bool:
    """A zero limit means no limit is configured."""
    if credit_limit == ZERO:
        return True
    return outstanding_balance + proposed_amount <= credit_limit
