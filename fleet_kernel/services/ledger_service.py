"""
LedgerService -- invoices, payments and client exposure.

Responsibility:
    The single writer of every derived ledger total: an invoice's
    advance_received, balance_amount and payment_status, and a client's
    outstanding_balance.  Opens invoices, applies payments, reverses
    (bounces) and clears them, and gates new business on the client's
    credit limit.

Architecture position:
    Kernel > Services.  Called by FleetOperations and by
    TripLifecycleService when an auto-invoicing trip completes.  Every
    method flushes inside the caller's unit of work and never commits.

Invariants enforced:
    - 0 <= advance_received <= total_charges on every invoice.
    - balance_amount = total_charges - advance_received.
    - payment_status is derived (domain/ledger_rules.py), never assigned
      freely.
    - client.outstanding_balance moves by exactly the amount the invoice
      balance moves, in the same flush.
    - No overpayment: a payment larger than the balance is rejected, never
      clamped.
    - Lock order is payment -> invoice -> client, the same everywhere.

Failure modes:
    - InvalidAmountError: non-positive amount, advance above total, charge
      breakdown not matching the total.
    - ExceedsBalanceError: payment larger than the remaining balance.
    - DuplicateInvoiceError: the trip already has an invoice.
    - AlreadyReversedError: reversing a BOUNCED payment.
    - InvalidPaymentTransitionError: clearing a payment not in RECEIVED.
    - CreditLimitExceededError: only from ensure_credit() under the
      enforce policy.
    - LedgerInvariantError: a derived total would go out of range.  This
      indicates an out-of-band write.

Audit relevance:
    Every balance change is logged (invoice_opened, payment_applied,
    payment_reversed) with the before/after balance, and every payment,
    including bounced ones, stays in the append-only payments table.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from fleet_kernel.db.types import money_from_value
from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.dtos import InvoiceCharges, InvoiceInfo, PaymentInfo
from fleet_kernel.domain.ledger_rules import (
    PaymentMode,
    PaymentStatus,
    can_transition_payment,
    compute_balance,
    credit_allows,
)
from fleet_kernel.domain.policies import DEFAULT_POLICY, OperatingPolicy
from fleet_kernel.exceptions import (
    AlreadyReversedError,
    CreditLimitExceededError,
    DuplicateInvoiceError,
    ExceedsBalanceError,
    InvalidAmountError,
    InvalidPaymentTransitionError,
    LedgerInvariantError,
    ValidationError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models import Client, Invoice, Payment, Trip
from fleet_kernel.selectors.ledger_selector import invoice_info, payment_info
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")

ZERO = Decimal("0")


class LedgerService(BaseService):
    """
    Invoice and payment ledger.

    Contract:
        Every public method validates all input before its first write and
        returns a DTO.  A failure leaves nothing half-applied; the caller's
        unit of work rolls back.

    Non-goals:
        - No double-entry journal: the ledger tracks receivables per invoice
          and per client only.
        - No refunds or overpayment handling.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: OperatingPolicy = DEFAULT_POLICY,
        sequences: SequenceService | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy
        self.sequences = sequences or SequenceService(session, self.clock)

    def _next_number(self, prefix: str) -> str:
        numbering = self.policy.numbering
        return self.sequences.next_number(prefix, numbering.date_format, numbering.width)

    # -- Credit -------------------------------------------------------------

    def credit_check(self, client_id: UUID, proposed_amount) -> bool:
        """
        True iff the client has no limit, or outstanding + proposed <= limit.

        Read-only.

        Raises:
            ClientNotFoundError: unknown client.
            InvalidAmountError: negative proposed amount.
        """
        amount = money_from_value(proposed_amount, "proposed_amount")
        if amount < ZERO:
            raise InvalidAmountError("proposed_amount", str(amount), "cannot be negative")
        client = self.store.get(Client, client_id)
        return credit_allows(client.credit_limit, client.outstanding_balance, amount)

    def ensure_credit(self, client_id: UUID, proposed_amount: Decimal, context: str) -> bool:
        """
        Apply the configured credit policy to new business for a client.

        Under the advisory policy a failed check is logged as
        ``credit_limit_warning`` and the call returns False.  Under the
        enforce policy it raises.

        Raises:
            CreditLimitExceededError: check failed and the policy is enforce.
        """
        client = self.store.get(Client, client_id)
        if credit_allows(client.credit_limit, client.outstanding_balance, proposed_amount):
            return True
        if self.policy.enforces_credit_limit:
            raise CreditLimitExceededError(
                client_code=client.client_code,
                outstanding_balance=str(client.outstanding_balance),
                proposed_amount=str(proposed_amount),
                credit_limit=str(client.credit_limit),
            )
        self._warn_credit(client, proposed_amount, context)
        return False

    def _warn_credit(self, client: Client, proposed_amount: Decimal, context: str) -> None:
        logger.warning(
            "credit_limit_warning",
            extra={
                "client_id": client.id,
                "client_code": client.client_code,
                "credit_limit": client.credit_limit,
                "outstanding_balance": client.outstanding_balance,
                "proposed_amount": proposed_amount,
                "context": context,
            },
        )

    # -- Invoices -----------------------------------------------------------

    def open_invoice(
        self,
        trip_id: UUID | None,
        client_id: UUID,
        total_charges,
        advance_received=ZERO,
        charges: InvoiceCharges | None = None,
        invoice_date: date | None = None,
        actor: str = "system",
    ) -> InvoiceInfo:
        """
        Open an invoice and add its balance to the client's outstanding.

        Without a ``charges`` breakdown the whole total is booked as freight.
        The due date is the invoice date plus the client's credit days.  The
        credit check is advisory here: a client over its limit is logged,
        never blocked, because the work has already been done.

        Raises:
            InvalidAmountError: total <= 0, advance < 0, advance > total, or
                breakdown not summing to the total.
            TripNotFoundError / ClientNotFoundError: unknown ids.
            ValidationError: the trip belongs to another client.
            DuplicateInvoiceError: the trip already carries an invoice.
        """
        total = money_from_value(total_charges, "total_charges")
        advance = money_from_value(advance_received, "advance_received")
        breakdown = self._parse_breakdown(charges, total)
        balance = compute_balance(total, advance)

        trip = self.store.get(Trip, trip_id) if trip_id is not None else None
        client = self.store.get_for_update(Client, client_id)
        if trip is not None:
            if trip.client_id != client.id:
                raise ValidationError(
                    f"Trip {trip.trip_number} belongs to another client than {client.client_code}"
                )
            existing = self.store.find_one(Invoice, Invoice.trip_id == trip.id)
            if existing is not None:
                raise DuplicateInvoiceError(trip.trip_number, existing.invoice_number)

        if not credit_allows(client.credit_limit, client.outstanding_balance, balance.balance_amount):
            self._warn_credit(client, balance.balance_amount, "invoice")

        issued_on = invoice_date or self.clock.today()
        invoice = Invoice(
            invoice_number=self._next_number(self.policy.numbering.invoice_prefix),
            trip_id=trip.id if trip is not None else None,
            client_id=client.id,
            invoice_date=issued_on,
            due_date=issued_on + timedelta(days=client.credit_days),
            freight_charges=breakdown.freight_charges,
            loading_charges=breakdown.loading_charges,
            unloading_charges=breakdown.unloading_charges,
            other_charges=breakdown.other_charges,
            tax_amount=breakdown.tax_amount,
            total_charges=total,
            advance_received=balance.advance_received,
            balance_amount=balance.balance_amount,
            payment_status=balance.payment_status,
            created_by=actor,
        )
        self.store.save(invoice)

        old_outstanding = client.outstanding_balance
        client.outstanding_balance = old_outstanding + balance.balance_amount
        client.updated_by = actor
        self.store.flush()

        LogContext.set(invoice_id=invoice.id)
        logger.info(
            "invoice_opened",
            extra={
                "invoice_number": invoice.invoice_number,
                "trip_id": invoice.trip_id,
                "client_id": client.id,
                "total_charges": total,
                "advance_received": balance.advance_received,
                "balance_amount": balance.balance_amount,
                "payment_status": balance.payment_status.value,
                "outstanding_before": old_outstanding,
                "outstanding_after": client.outstanding_balance,
            },
        )
        return invoice_info(invoice)

    def _parse_breakdown(self, charges: InvoiceCharges | None, total: Decimal) -> InvoiceCharges:
        if charges is None:
            return InvoiceCharges(freight_charges=total)
        parsed = InvoiceCharges(
            freight_charges=money_from_value(charges.freight_charges, "freight_charges"),
            loading_charges=money_from_value(charges.loading_charges, "loading_charges"),
            unloading_charges=money_from_value(charges.unloading_charges, "unloading_charges"),
            other_charges=money_from_value(charges.other_charges, "other_charges"),
            tax_amount=money_from_value(charges.tax_amount, "tax_amount"),
        )
        for name in ("freight_charges", "loading_charges", "unloading_charges", "other_charges", "tax_amount"):
            value = getattr(parsed, name)
            if value < ZERO:
                raise InvalidAmountError(name, str(value), "cannot be negative")
        if parsed.total != total:
            raise InvalidAmountError(
                "total_charges",
                str(total),
                f"does not match charge breakdown {parsed.total}",
            )
        return parsed

    # -- Payments -----------------------------------------------------------

    def apply_payment(
        self,
        invoice_id: UUID,
        amount,
        mode: PaymentMode | str,
        reference: str | None = None,
        actor: str = "system",
    ) -> InvoiceInfo:
        """
        Record a payment against an invoice.

        A retried call carrying the same ``reference`` as a payment already
        recorded (and not bounced) on this invoice changes nothing and
        returns the invoice as it stands.

        Raises:
            InvalidAmountError: amount <= 0.
            ExceedsBalanceError: amount > balance_amount.
            ValidationError: unknown payment mode, or the reference was
                already used for a different amount.
            InvoiceNotFoundError: unknown invoice.
        """
        value = money_from_value(amount, "amount")
        if value <= ZERO:
            raise InvalidAmountError("amount", str(value), "must be positive")
        payment_mode = self._parse_mode(mode)

        invoice = self.store.get_for_update(Invoice, invoice_id)
        LogContext.set(invoice_id=invoice.id)

        if reference:
            previous = self.store.find_one(
                Payment,
                Payment.invoice_id == invoice.id,
                Payment.reference == reference,
                Payment.status != PaymentStatus.BOUNCED,
            )
            if previous is not None:
                if previous.amount != value:
                    raise ValidationError(
                        f"Reference {reference} was already used for payment "
                        f"{previous.payment_number} of {previous.amount}"
                    )
                logger.info(
                    "payment_duplicate_ignored",
                    extra={"payment_number": previous.payment_number, "reference": reference},
                )
                return invoice_info(invoice)

        if value > invoice.balance_amount:
            raise ExceedsBalanceError(invoice.invoice_number, str(value), str(invoice.balance_amount))

        client = self.store.get_for_update(Client, invoice.client_id)
        balance = compute_balance(invoice.total_charges, invoice.advance_received + value)
        new_outstanding = client.outstanding_balance - value
        if new_outstanding < ZERO:
            raise LedgerInvariantError(
                f"Client {client.client_code}",
                f"outstanding balance {client.outstanding_balance} is below payment {value}",
            )

        payment = Payment(
            payment_number=self._next_number(self.policy.numbering.payment_prefix),
            invoice_id=invoice.id,
            client_id=client.id,
            amount=value,
            mode=payment_mode,
            reference=reference,
            status=PaymentStatus.RECEIVED,
            received_at=self.clock.now(),
            created_by=actor,
        )
        self.store.save(payment)

        old_balance = invoice.balance_amount
        invoice.advance_received = balance.advance_received
        invoice.balance_amount = balance.balance_amount
        invoice.payment_status = balance.payment_status
        invoice.updated_by = actor
        client.outstanding_balance = new_outstanding
        client.updated_by = actor
        self.store.flush()

        logger.info(
            "payment_applied",
            extra={
                "payment_number": payment.payment_number,
                "invoice_number": invoice.invoice_number,
                "amount": value,
                "mode": payment_mode.value,
                "reference": reference,
                "balance_before": old_balance,
                "balance_after": invoice.balance_amount,
                "payment_status": invoice.payment_status.value,
                "client_outstanding": client.outstanding_balance,
            },
        )
        return invoice_info(invoice)

    def _parse_mode(self, mode: PaymentMode | str) -> PaymentMode:
        try:
            return PaymentMode(mode)
        except ValueError:
            raise ValidationError(f"Unknown payment mode: {mode}") from None

    def reverse_payment(
        self,
        payment_id: UUID,
        reason: str | None = None,
        actor: str = "system",
    ) -> InvoiceInfo:
        """
        Bounce a payment: put its amount back on the invoice and the client.

        Raises:
            AlreadyReversedError: the payment is already BOUNCED.
            PaymentNotFoundError: unknown payment.
        """
        payment = self.store.get_for_update(Payment, payment_id)
        if payment.status == PaymentStatus.BOUNCED:
            raise AlreadyReversedError(payment.payment_number)

        invoice = self.store.get_for_update(Invoice, payment.invoice_id)
        client = self.store.get_for_update(Client, payment.client_id)
        LogContext.set(invoice_id=invoice.id)

        restored_advance = invoice.advance_received - payment.amount
        if restored_advance < ZERO:
            raise LedgerInvariantError(
                f"Invoice {invoice.invoice_number}",
                f"advance {invoice.advance_received} is below bounced payment {payment.amount}",
            )
        balance = compute_balance(invoice.total_charges, restored_advance)

        old_balance = invoice.balance_amount
        invoice.advance_received = balance.advance_received
        invoice.balance_amount = balance.balance_amount
        invoice.payment_status = balance.payment_status
        invoice.updated_by = actor
        client.outstanding_balance = client.outstanding_balance + payment.amount
        client.updated_by = actor

        payment.status = PaymentStatus.BOUNCED
        payment.bounced_at = self.clock.now()
        payment.bounce_reason = reason
        payment.updated_by = actor
        self.store.flush()

        logger.info(
            "payment_reversed",
            extra={
                "payment_number": payment.payment_number,
                "invoice_number": invoice.invoice_number,
                "amount": payment.amount,
                "reason": reason,
                "balance_before": old_balance,
                "balance_after": invoice.balance_amount,
                "payment_status": invoice.payment_status.value,
                "client_outstanding": client.outstanding_balance,
            },
        )
        return invoice_info(invoice)

    def clear_payment(self, payment_id: UUID, actor: str = "system") -> PaymentInfo:
        """
        Mark a received payment as cleared by the bank.  Balances do not move.

        Raises:
            InvalidPaymentTransitionError: the payment is not RECEIVED.
            PaymentNotFoundError: unknown payment.
        """
        payment = self.store.get_for_update(Payment, payment_id)
        if not can_transition_payment(payment.status, PaymentStatus.CLEARED):
            raise InvalidPaymentTransitionError(
                payment.payment_number, payment.status.value, PaymentStatus.CLEARED.value
            )
        payment.status = PaymentStatus.CLEARED
        payment.cleared_at = self.clock.now()
        payment.updated_by = actor
        self.store.flush()
        logger.info(
            "payment_cleared",
            extra={"payment_number": payment.payment_number, "invoice_id": payment.invoice_id},
        )
        return payment_info(payment)
