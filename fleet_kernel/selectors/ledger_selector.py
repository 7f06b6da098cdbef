"""
Module: fleet_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: invoice and payment snapshots,
    aging of unpaid balances, overdue invoices, and reconciliation of a
    client's stored outstanding balance against its invoices.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Aging buckets are computed at query time from the invoice date and the
      supplied as-of date; nothing is stored.
    - reconcile_client() never writes, even when it finds drift.

Failure modes:
    - ClientNotFoundError / InvoiceNotFoundError / PaymentNotFoundError for
      unknown ids.

Audit relevance:
    reconcile_client() is the check behind the "client aggregate" invariant:
    outstanding_balance == sum(balance_amount) over non-PAID invoices.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from fleet_kernel.domain.aging import AgedInvoice, AgingCalculator, AgingReport
from fleet_kernel.domain.dtos import ClientExposure, ClientInfo, InvoiceInfo, PaymentInfo
from fleet_kernel.domain.ledger_rules import InvoicePaymentStatus
from fleet_kernel.models import Client, Invoice, Payment, Trip
from fleet_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


def invoice_info(invoice: Invoice) -> InvoiceInfo:
    """Convert an ORM Invoice to an InvoiceInfo DTO."""
    return InvoiceInfo(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        trip_id=invoice.trip_id,
        client_id=invoice.client_id,
        invoice_date=invoice.invoice_date,
        due_date=invoice.due_date,
        freight_charges=invoice.freight_charges,
        loading_charges=invoice.loading_charges,
        unloading_charges=invoice.unloading_charges,
        other_charges=invoice.other_charges,
        tax_amount=invoice.tax_amount,
        total_charges=invoice.total_charges,
        advance_received=invoice.advance_received,
        balance_amount=invoice.balance_amount,
        payment_status=InvoicePaymentStatus(invoice.payment_status),
    )


def payment_info(payment: Payment) -> PaymentInfo:
    """Convert an ORM Payment to a PaymentInfo DTO."""
    return PaymentInfo(
        id=payment.id,
        payment_number=payment.payment_number,
        invoice_id=payment.invoice_id,
        client_id=payment.client_id,
        amount=payment.amount,
        mode=payment.mode,
        reference=payment.reference,
        status=payment.status,
        received_at=payment.received_at,
        cleared_at=payment.cleared_at,
        bounced_at=payment.bounced_at,
        bounce_reason=payment.bounce_reason,
    )


def client_info(client: Client) -> ClientInfo:
    return ClientInfo(
        id=client.id,
        client_code=client.client_code,
        name=client.name,
        is_active=client.is_active,
        credit_limit=client.credit_limit,
        credit_days=client.credit_days,
        outstanding_balance=client.outstanding_balance,
    )


class LedgerSelector(BaseSelector):
    """
    Selector for invoice, payment and client-exposure queries.

    Contract:
        Every method is read-only and returns DTOs.  The aging as-of date is
        always passed in by the caller (normally the clock's today).
    """

    def __init__(self, session, calculator: AgingCalculator | None = None):
        super().__init__(session)
        self._calculator = calculator or AgingCalculator()

    # -- Snapshots ----------------------------------------------------------

    def get_invoice(self, invoice_id: UUID) -> InvoiceInfo:
        return invoice_info(self.store.get(Invoice, invoice_id))

    def get_payment(self, payment_id: UUID) -> PaymentInfo:
        return payment_info(self.store.get(Payment, payment_id))

    def get_client(self, client_id: UUID) -> ClientInfo:
        return client_info(self.store.get(Client, client_id))

    def invoice_for_trip(self, trip_id: UUID) -> InvoiceInfo | None:
        """The invoice raised for a trip, or None if it has not been invoiced."""
        self.store.get(Trip, trip_id)
        invoice = self.store.find_one(Invoice, Invoice.trip_id == trip_id)
        return invoice_info(invoice) if invoice else None

    def payments_for_invoice(self, invoice_id: UUID) -> list[PaymentInfo]:
        self.store.get(Invoice, invoice_id)
        payments = self.store.find_where(
            Payment,
            Payment.invoice_id == invoice_id,
            order_by=(Payment.received_at, Payment.payment_number),
        )
        return [payment_info(p) for p in payments]

    def open_invoices(self, client_id: UUID | None = None) -> list[InvoiceInfo]:
        """Non-PAID invoices, oldest first."""
        criteria = [Invoice.payment_status != InvoicePaymentStatus.PAID]
        if client_id is not None:
            self.store.get(Client, client_id)
            criteria.append(Invoice.client_id == client_id)
        invoices = self.store.find_where(
            Invoice, *criteria, order_by=(Invoice.invoice_date, Invoice.invoice_number)
        )
        return [invoice_info(i) for i in invoices]

    # -- Aging --------------------------------------------------------------

    def _aged(self, invoices: list[InvoiceInfo], as_of_date: date) -> list[AgedInvoice]:
        return [
            self._calculator.age_invoice(
                invoice_id=i.id,
                invoice_number=i.invoice_number,
                client_id=i.client_id,
                invoice_date=i.invoice_date,
                due_date=i.due_date,
                balance_amount=i.balance_amount,
                as_of_date=as_of_date,
            )
            for i in invoices
        ]

    def aging_report(self, as_of_date: date, client_id: UUID | None = None) -> AgingReport:
        """Bucket every non-PAID invoice by age as of ``as_of_date``."""
        items = self._aged(self.open_invoices(client_id), as_of_date)
        return self._calculator.build_report(items, as_of_date)

    def overdue_invoices(self, as_of_date: date, client_id: UUID | None = None) -> list[AgedInvoice]:
        """Non-PAID invoices past their due date, most overdue first."""
        items = [i for i in self._aged(self.open_invoices(client_id), as_of_date) if i.is_overdue]
        return sorted(items, key=lambda i: (-i.days_overdue, i.invoice_number))

    # -- Reconciliation -----------------------------------------------------

    def computed_outstanding(self, client_id: UUID) -> tuple[Decimal, int]:
        """Sum of balance_amount and count over the client's non-PAID invoices."""
        balances = self.session.execute(
            select(Invoice.balance_amount)
            .where(Invoice.client_id == client_id)
            .where(Invoice.payment_status != InvoicePaymentStatus.PAID)
        ).scalars().all()
        return sum(balances, ZERO), len(balances)

    def reconcile_client(self, client_id: UUID) -> ClientExposure:
        """Compare the stored outstanding balance with the invoices behind it."""
        client = self.store.get(Client, client_id)
        computed, count = self.computed_outstanding(client.id)
        return ClientExposure(
            client_id=client.id,
            client_code=client.client_code,
            credit_limit=client.credit_limit,
            stored_outstanding=client.outstanding_balance,
            computed_outstanding=computed,
            open_invoice_count=count,
        )
