"""
fleet_services.operations -- FleetOperations, the public operation surface.

Responsibility:
    Runs every public fleet operation as one unit of work: opens a session
    scope, builds the kernel services over it, calls the operation, and
    commits on success or rolls back on any exception.  Binds the log
    context (correlation id, actor, operation) for the duration of the call.

Architecture position:
    Services -- orchestration over the kernel.  The only layer that owns
    transaction boundaries.  Imports fleet_kernel and fleet_config; neither
    imports this package.

Invariants enforced:
    - One operation, one transaction.  A failed operation leaves no partial
      writes (a completion and the invoice it opens commit together).
    - Writes are never retried here.  A store failure during a write
      surfaces as TransientStoreError naming the operation; the caller may
      retry, reusing the same payment reference where one applies.
    - Reads are retried once on a store failure before surfacing
      TransientStoreError.
    - Every result is a frozen DTO; no ORM instance escapes a session.

Failure modes:
    - Kernel errors (FleetKernelError subclasses) propagate unchanged.
    - TransientStoreError for OperationalError / DBAPIError at the store.
    - IntegrityError propagates unchanged (a constraint, not a transient).

Usage:
    init_engine_from_url("sqlite:///fleet.db")
    create_tables()
    ops = FleetOperations.from_config()
    trip = ops.create_trip(TripRequest(...), actor="dispatcher")
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import date, datetime
from pathlib import Path
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from fleet_config import get_active_config
from fleet_config.bridges import build_operating_policy
from fleet_config.schema import FleetSettings
from fleet_kernel.db.engine import session_scope
from fleet_kernel.domain.aging import AgedInvoice, AgingCalculator, AgingReport, ranges_from_boundaries
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import (
    ClientExposure,
    ClientInfo,
    DriverInfo,
    InvoiceCharges,
    InvoiceInfo,
    PaymentInfo,
    ResourceKind,
    TripEventInfo,
    TripInfo,
    TripProfitability,
    TripRequest,
    TruckInfo,
)
from fleet_kernel.domain.ledger_rules import PaymentMode
from fleet_kernel.domain.policies import DEFAULT_POLICY, OperatingPolicy
from fleet_kernel.exceptions import TransientStoreError
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.selectors.ledger_selector import LedgerSelector
from fleet_kernel.selectors.trip_selector import TripSelector
from fleet_kernel.services.availability_service import AvailabilityService
from fleet_kernel.services.fleet_registry_service import FleetRegistryService
from fleet_kernel.services.ledger_service import LedgerService
from fleet_kernel.services.sequence_service import SequenceService
from fleet_kernel.services.trip_lifecycle_service import TripLifecycleService

logger = get_logger("services.operations")

T = TypeVar("T")

ScopeFactory = Callable[[], AbstractContextManager[Session]]


class FleetOperations:
    """Transactional facade over the fleet kernel.

    Contract:
        Each public method is one unit of work.  Arguments are plain values
        or request DTOs; results are DTOs.

    Guarantees:
        - All services of one call share the same session and clock.
        - The log context is restored after every call.

    Non-goals:
        - Does NOT initialize the engine or create tables.
        - Does NOT retry writes.
    """

    def __init__(
        self,
        policy: OperatingPolicy = DEFAULT_POLICY,
        clock: Clock | None = None,
        scope: ScopeFactory = session_scope,
    ) -> None:
        self.policy = policy
        self.clock = clock or SystemClock()
        self._scope = scope
        self._calculator = AgingCalculator(ranges_from_boundaries(policy.aging_boundaries))

    @classmethod
    def from_settings(
        cls,
        settings: FleetSettings,
        clock: Clock | None = None,
        scope: ScopeFactory = session_scope,
    ) -> FleetOperations:
        return cls(build_operating_policy(settings), clock, scope)

    @classmethod
    def from_config(
        cls,
        config_path: Path | str | None = None,
        clock: Clock | None = None,
        scope: ScopeFactory = session_scope,
    ) -> FleetOperations:
        """Load the active configuration and build the facade from it."""
        return cls.from_settings(get_active_config(config_path), clock, scope)

    # -- Units of work ------------------------------------------------------

    def _write(self, operation: str, actor: str, work: Callable[[Session], T], **context: Any) -> T:
        with LogContext.bind(
            correlation_id=uuid4(), actor_id=actor, operation=operation, **context
        ):
            try:
                with self._scope() as session:
                    return work(session)
            except IntegrityError:
                raise
            except DBAPIError as exc:
                logger.warning(
                    "transient_store_failure",
                    extra={"operation": operation, "exc_type": type(exc).__name__},
                )
                raise TransientStoreError(operation, str(exc.orig or exc)) from exc

    def _read(self, operation: str, work: Callable[[Session], T], **context: Any) -> T:
        with LogContext.bind(correlation_id=uuid4(), operation=operation, **context):
            retried = False
            while True:
                try:
                    with self._scope() as session:
                        return work(session)
                except IntegrityError:
                    raise
                except DBAPIError as exc:
                    if retried:
                        raise TransientStoreError(operation, str(exc.orig or exc)) from exc
                    retried = True
                    logger.warning(
                        "read_retry",
                        extra={"operation": operation, "exc_type": type(exc).__name__},
                    )

    def _trips(self, session: Session) -> TripLifecycleService:
        return TripLifecycleService(session, self.clock, self.policy)

    def _ledger(self, session: Session) -> LedgerService:
        return LedgerService(session, self.clock, self.policy)

    def _ledger_reads(self, session: Session) -> LedgerSelector:
        return LedgerSelector(session, self._calculator)

    def _registry(self, session: Session) -> FleetRegistryService:
        return FleetRegistryService(session, self.clock)

    # -- Trip lifecycle -----------------------------------------------------

    def create_trip(self, request: TripRequest, actor: str = "system") -> TripInfo:
        return self._write(
            "create_trip", actor, lambda s: self._trips(s).create_trip(request, actor)
        )

    def start_trip(
        self,
        trip_id: UUID,
        actual_start: datetime | None = None,
        actor: str = "system",
        remarks: str | None = None,
    ) -> TripInfo:
        return self._write(
            "start_trip",
            actor,
            lambda s: self._trips(s).start_trip(trip_id, actual_start, actor, remarks),
            trip_id=trip_id,
        )

    def complete_trip(
        self,
        trip_id: UUID,
        actual_end: datetime | None = None,
        fuel_consumed=0,
        fuel_cost=0,
        toll_charges=0,
        other_expenses=0,
        distance_km=None,
        actor: str = "system",
        remarks: str | None = None,
    ) -> TripInfo:
        return self._write(
            "complete_trip",
            actor,
            lambda s: self._trips(s).complete_trip(
                trip_id,
                actual_end=actual_end,
                fuel_consumed=fuel_consumed,
                fuel_cost=fuel_cost,
                toll_charges=toll_charges,
                other_expenses=other_expenses,
                distance_km=distance_km,
                actor=actor,
                remarks=remarks,
            ),
            trip_id=trip_id,
        )

    def cancel_trip(self, trip_id: UUID, reason: str | None = None, actor: str = "system") -> TripInfo:
        return self._write(
            "cancel_trip",
            actor,
            lambda s: self._trips(s).cancel_trip(trip_id, reason, actor),
            trip_id=trip_id,
        )

    def reschedule_trip(
        self,
        trip_id: UUID,
        planned_start: datetime,
        planned_end: datetime,
        truck_id: UUID | None = None,
        driver_id: UUID | None = None,
        actor: str = "system",
    ) -> TripInfo:
        return self._write(
            "reschedule_trip",
            actor,
            lambda s: self._trips(s).reschedule_trip(
                trip_id, planned_start, planned_end, truck_id, driver_id, actor
            ),
            trip_id=trip_id,
        )

    def update_trip_charges(
        self, trip_id: UUID, new_charges, reason: str | None = None, actor: str = "system"
    ) -> TripInfo:
        return self._write(
            "update_trip_charges",
            actor,
            lambda s: self._trips(s).update_trip_charges(trip_id, new_charges, reason, actor),
            trip_id=trip_id,
        )

    def add_trip_advance(
        self, trip_id: UUID, amount, remarks: str | None = None, actor: str = "system"
    ) -> TripInfo:
        return self._write(
            "add_trip_advance",
            actor,
            lambda s: self._trips(s).add_advance(trip_id, amount, remarks, actor),
            trip_id=trip_id,
        )

    def check_availability(
        self,
        resource_id: UUID,
        kind: ResourceKind | str,
        window_start: datetime,
        window_end: datetime,
        exclude_trip_id: UUID | None = None,
    ) -> bool:
        return self._read(
            "check_availability",
            lambda s: AvailabilityService(s, self.clock).is_available(
                resource_id, ResourceKind(kind), window_start, window_end, exclude_trip_id
            ),
        )

    def available_trucks(
        self, window_start: datetime, window_end: datetime, required_capacity=None
    ) -> list[TruckInfo]:
        return self._read(
            "available_trucks",
            lambda s: AvailabilityService(s, self.clock).available_trucks(
                window_start, window_end, required_capacity
            ),
        )

    def available_drivers(self, window_start: datetime, window_end: datetime) -> list[DriverInfo]:
        return self._read(
            "available_drivers",
            lambda s: AvailabilityService(s, self.clock).available_drivers(window_start, window_end),
        )

    def suggest_truck(
        self, window_start: datetime, window_end: datetime, load_weight
    ) -> TruckInfo | None:
        return self._read(
            "suggest_truck",
            lambda s: AvailabilityService(s, self.clock).suggest_truck(
                window_start, window_end, load_weight
            ),
        )

    def get_trip(self, trip_id: UUID) -> TripInfo:
        return self._read("get_trip", lambda s: TripSelector(s).get(trip_id), trip_id=trip_id)

    def trip_history(self, trip_id: UUID) -> list[TripEventInfo]:
        return self._read("trip_history", lambda s: TripSelector(s).history(trip_id), trip_id=trip_id)

    def trip_profitability(self, trip_id: UUID) -> TripProfitability:
        return self._read(
            "trip_profitability", lambda s: TripSelector(s).profitability(trip_id), trip_id=trip_id
        )

    # -- Ledger -------------------------------------------------------------

    def open_invoice(
        self,
        trip_id: UUID | None,
        client_id: UUID,
        total_charges,
        advance_received=0,
        charges: InvoiceCharges | None = None,
        invoice_date: date | None = None,
        actor: str = "system",
    ) -> InvoiceInfo:
        return self._write(
            "open_invoice",
            actor,
            lambda s: self._ledger(s).open_invoice(
                trip_id, client_id, total_charges, advance_received, charges, invoice_date, actor
            ),
            trip_id=trip_id,
        )

    def apply_payment(
        self,
        invoice_id: UUID,
        amount,
        mode: PaymentMode | str,
        reference: str | None = None,
        actor: str = "system",
    ) -> InvoiceInfo:
        return self._write(
            "apply_payment",
            actor,
            lambda s: self._ledger(s).apply_payment(invoice_id, amount, mode, reference, actor),
            invoice_id=invoice_id,
        )

    def reverse_payment(self, payment_id: UUID, reason: str | None = None, actor: str = "system") -> InvoiceInfo:
        return self._write(
            "reverse_payment",
            actor,
            lambda s: self._ledger(s).reverse_payment(payment_id, reason, actor),
        )

    def clear_payment(self, payment_id: UUID, actor: str = "system") -> PaymentInfo:
        return self._write(
            "clear_payment", actor, lambda s: self._ledger(s).clear_payment(payment_id, actor)
        )

    def credit_check(self, client_id: UUID, proposed_amount) -> bool:
        return self._read(
            "credit_check", lambda s: self._ledger(s).credit_check(client_id, proposed_amount)
        )

    def get_invoice(self, invoice_id: UUID) -> InvoiceInfo:
        return self._read(
            "get_invoice", lambda s: self._ledger_reads(s).get_invoice(invoice_id), invoice_id=invoice_id
        )

    def invoice_for_trip(self, trip_id: UUID) -> InvoiceInfo | None:
        return self._read(
            "invoice_for_trip", lambda s: self._ledger_reads(s).invoice_for_trip(trip_id), trip_id=trip_id
        )

    def payments_for_invoice(self, invoice_id: UUID) -> list[PaymentInfo]:
        return self._read(
            "payments_for_invoice",
            lambda s: self._ledger_reads(s).payments_for_invoice(invoice_id),
            invoice_id=invoice_id,
        )

    def aging_report(self, client_id: UUID | None = None, as_of_date: date | None = None) -> AgingReport:
        """Aging of every unpaid invoice as of ``as_of_date`` (default: the clock's today)."""
        as_of = as_of_date or self.clock.today()
        return self._read(
            "aging_report", lambda s: self._ledger_reads(s).aging_report(as_of, client_id)
        )

    def overdue_invoices(
        self, client_id: UUID | None = None, as_of_date: date | None = None
    ) -> list[AgedInvoice]:
        as_of = as_of_date or self.clock.today()
        return self._read(
            "overdue_invoices", lambda s: self._ledger_reads(s).overdue_invoices(as_of, client_id)
        )

    def reconcile_client(self, client_id: UUID) -> ClientExposure:
        """Compare a client's stored outstanding balance with its unpaid invoices."""
        exposure = self._read(
            "reconcile_client", lambda s: self._ledger_reads(s).reconcile_client(client_id)
        )
        if not exposure.is_consistent:
            logger.error(
                "client_exposure_drift",
                extra={
                    "client_id": exposure.client_id,
                    "stored_outstanding": exposure.stored_outstanding,
                    "computed_outstanding": exposure.computed_outstanding,
                    "drift": exposure.drift,
                },
            )
        return exposure

    # -- Sequences ----------------------------------------------------------

    def next_sequence_number(
        self,
        prefix: str,
        date_format: str | None = None,
        width: int | None = None,
    ) -> str:
        """Issue one number in its own transaction (committed on return)."""
        numbering = self.policy.numbering
        return self._write(
            "next_sequence_number",
            "system",
            lambda s: SequenceService(s, self.clock).next_number(
                prefix,
                date_format or numbering.date_format,
                width or numbering.width,
            ),
        )

    def next_expense_number(self) -> str:
        """Issue an expense voucher number under the configured prefix."""
        return self.next_sequence_number(self.policy.numbering.expense_prefix)

    # -- Master data --------------------------------------------------------

    def register_truck(
        self, truck_number: str, capacity_tons, current_odometer=0, actor: str = "system"
    ) -> TruckInfo:
        return self._write(
            "register_truck",
            actor,
            lambda s: self._registry(s).register_truck(truck_number, capacity_tons, current_odometer, actor),
        )

    def register_driver(self, driver_code: str, name: str, actor: str = "system") -> DriverInfo:
        return self._write(
            "register_driver", actor, lambda s: self._registry(s).register_driver(driver_code, name, actor)
        )

    def register_client(
        self,
        client_code: str,
        name: str,
        credit_limit=0,
        credit_days: int | None = None,
        actor: str = "system",
    ) -> ClientInfo:
        """Register a client; payment terms default to the configured credit days."""
        days = self.policy.default_credit_days if credit_days is None else credit_days
        return self._write(
            "register_client",
            actor,
            lambda s: self._registry(s).register_client(client_code, name, credit_limit, days, actor),
        )

    def set_active(
        self, kind: str, record_id: UUID, is_active: bool, actor: str = "system"
    ) -> TruckInfo | DriverInfo | ClientInfo:
        return self._write(
            "set_active", actor, lambda s: self._registry(s).set_active(kind, record_id, is_active, actor)
        )

    def update_credit_limit(
        self, client_id: UUID, credit_limit, credit_days: int | None = None, actor: str = "system"
    ) -> ClientInfo:
        return self._write(
            "update_credit_limit",
            actor,
            lambda s: self._registry(s).update_credit_limit(client_id, credit_limit, credit_days, actor),
        )

    def get_client(self, client_id: UUID) -> ClientInfo:
        return self._read("get_client", lambda s: self._ledger_reads(s).get_client(client_id))

    def get_truck(self, truck_id: UUID) -> TruckInfo:
        return self._read("get_truck", lambda s: self._registry(s).get_truck(truck_id))

    def get_driver(self, driver_id: UUID) -> DriverInfo:
        return self._read("get_driver", lambda s: self._registry(s).get_driver(driver_id))
