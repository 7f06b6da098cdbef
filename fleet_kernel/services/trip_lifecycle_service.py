"""
TripLifecycleService -- the trip state machine and its side effects.

Responsibility:
    Plans trips (validation, availability, numbering), moves them through
    PLANNED -> RUNNING -> COMPLETED / CANCELLED, and applies the side
    effects of each move: the truck odometer on completion and the
    auto-invoice through LedgerService.  Also reschedules planned trips and
    adjusts charges and advances while a trip is still open.

Architecture position:
    Kernel > Services.  The transition table lives in
    domain/trip_lifecycle.py; overlap rules in domain/windows.py through
    AvailabilityService; invoices through LedgerService.

Invariants enforced:
    - Every status change goes through next_status(); terminal trips never
      move again.
    - Every change appends exactly one TripEvent in the same flush.
    - The truck and driver rows are locked (truck first, then driver) before
      the availability check, so check-and-insert is atomic with respect to
      other creations and reschedules of the same resources.
    - The trip row is locked for every change and carries a version counter.
    - The odometer never decreases.
    - A completion that fails to invoice leaves the trip RUNNING; the whole
      unit of work rolls back.

Failure modes:
    - InvalidAmountError, InvalidTimeWindowError, CapacityExceededError,
      InactiveResourceError, StartTimeOutOfRangeError: rejected input.
    - ResourceUnavailableError: truck or driver already booked.
    - CreditLimitExceededError: enforce credit policy only.
    - InvalidStateTransitionError: illegal lifecycle move.
    - OptimisticLockError: the trip changed underneath a stale writer.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fleet_kernel.db.types import money_from_value
from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.dtos import ResourceKind, TripInfo, TripRequest
from fleet_kernel.domain.policies import DEFAULT_POLICY, OperatingPolicy
from fleet_kernel.domain.trip_lifecycle import (
    ACTION_EVENTS,
    EDITABLE_STATUSES,
    TripAction,
    TripEventType,
    TripStatus,
    next_status,
)
from fleet_kernel.domain.windows import TimeWindow, require_aware
from fleet_kernel.exceptions import (
    CapacityExceededError,
    InactiveResourceError,
    InvalidAmountError,
    InvalidStateTransitionError,
    StartTimeOutOfRangeError,
    ValidationError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models import Client, Driver, Invoice, Trip, TripEvent, Truck
from fleet_kernel.selectors.trip_selector import trip_info
from fleet_kernel.services.availability_service import AvailabilityService
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.ledger_service import LedgerService
from fleet_kernel.services.sequence_service import SequenceService

logger = get_logger("services.trip_lifecycle")

ZERO = Decimal("0")


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def _optional_measure(value: Any, field: str) -> Decimal | None:
    if value is None:
        return None
    parsed = money_from_value(value, field)
    if parsed < ZERO:
        raise InvalidAmountError(field, str(parsed), "cannot be negative")
    return parsed


def _non_negative(value: Any, field: str) -> Decimal:
    parsed = money_from_value(value, field)
    if parsed < ZERO:
        raise InvalidAmountError(field, str(parsed), "cannot be negative")
    return parsed


class TripLifecycleService(BaseService):
    """
    Trip lifecycle controller.

    Contract:
        Every public method locks what it changes, validates everything
        before its first write, flushes, and returns a TripInfo snapshot.

    Usage:
        service = TripLifecycleService(session, clock, policy)
        trip = service.create_trip(request, actor="dispatcher")
        service.start_trip(trip.id, actor="dispatcher")
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: OperatingPolicy = DEFAULT_POLICY,
        ledger: LedgerService | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy
        self.sequences = SequenceService(session, self.clock)
        self.availability = AvailabilityService(session, self.clock)
        self.ledger = ledger or LedgerService(session, self.clock, policy, self.sequences)

    # -- Helpers ------------------------------------------------------------

    def _append_event(
        self,
        trip: Trip,
        event: TripEventType,
        from_status: TripStatus | None,
        actor: str,
        remarks: str | None = None,
        detail: dict | None = None,
    ) -> TripEvent:
        count = self.session.execute(
            select(func.count()).select_from(TripEvent).where(TripEvent.trip_id == trip.id)
        ).scalar_one()
        entry = TripEvent(
            trip_id=trip.id,
            seq=count + 1,
            occurred_at=self.clock.now(),
            actor=actor,
            event=event,
            from_status=from_status,
            to_status=trip.status,
            remarks=remarks,
            detail={k: _json_safe(v) for k, v in (detail or {}).items()},
        )
        self.store.save(entry)
        return entry

    def _require_transition(self, trip: Trip, action: TripAction) -> TripStatus:
        target = next_status(trip.status, action)
        if target is None:
            raise InvalidStateTransitionError(trip.trip_number, trip.status.value, action.value)
        return target

    def _require_editable(self, trip: Trip, action: str) -> None:
        if trip.status not in EDITABLE_STATUSES:
            raise InvalidStateTransitionError(trip.trip_number, trip.status.value, action)

    def _lock_trip(self, trip_id: UUID) -> Trip:
        trip = self.store.get_for_update(Trip, trip_id)
        LogContext.set(trip_id=trip.id)
        return trip

    def _lock_resources(self, truck_id: UUID, driver_id: UUID) -> tuple[Truck, Driver]:
        truck = self.store.get_for_update(Truck, truck_id)
        driver = self.store.get_for_update(Driver, driver_id)
        if not truck.is_active:
            raise InactiveResourceError("Truck", truck.truck_number)
        if not driver.is_active:
            raise InactiveResourceError("Driver", driver.driver_code)
        return truck, driver

    def _check_capacity(self, truck: Truck, load_weight: Decimal | None) -> None:
        if load_weight is not None and load_weight > truck.capacity_tons:
            raise CapacityExceededError(truck.truck_number, str(load_weight), str(truck.capacity_tons))

    def _assert_free(
        self,
        truck: Truck,
        driver: Driver,
        window: TimeWindow,
        exclude_trip_id: UUID | None = None,
    ) -> None:
        self.availability.assert_available(
            truck.id, ResourceKind.TRUCK, window.start, window.end, exclude_trip_id
        )
        self.availability.assert_available(
            driver.id, ResourceKind.DRIVER, window.start, window.end, exclude_trip_id
        )

    def _log_transition(self, trip: Trip, from_status: TripStatus, actor: str, **extra: Any) -> None:
        logger.info(
            "trip_transition",
            extra={
                "trip_number": trip.trip_number,
                "from_status": from_status.value,
                "to_status": trip.status.value,
                "actor": actor,
                "version": trip.version,
                **extra,
            },
        )

    # -- Creation -----------------------------------------------------------

    def create_trip(self, request: TripRequest, actor: str = "system") -> TripInfo:
        """
        Plan a trip.

        Validation order: amounts, window, resources (existence, activity,
        capacity), availability, credit.  Only then is a number allocated
        and the PLANNED trip written.

        Raises:
            InvalidAmountError: charges <= 0, advance < 0 or advance > charges.
            InvalidTimeWindowError: planned_start > planned_end or naive times.
            TruckNotFoundError / DriverNotFoundError / ClientNotFoundError.
            InactiveResourceError: truck, driver or client inactive.
            CapacityExceededError: load above truck capacity.
            ResourceUnavailableError: truck or driver already booked.
            CreditLimitExceededError: over limit under the enforce policy.
        """
        charges = money_from_value(request.trip_charges, "trip_charges")
        advance = money_from_value(request.advance_amount, "advance_amount")
        if charges <= ZERO:
            raise InvalidAmountError("trip_charges", str(charges), "must be positive")
        if advance < ZERO:
            raise InvalidAmountError("advance_amount", str(advance), "cannot be negative")
        if advance > charges:
            raise InvalidAmountError("advance_amount", str(advance), f"exceeds trip charges {charges}")
        distance = _optional_measure(request.distance_km, "distance_km")
        load_weight = _optional_measure(request.load_weight_tons, "load_weight_tons")
        window = TimeWindow(request.planned_start, request.planned_end)

        truck, driver = self._lock_resources(request.truck_id, request.driver_id)
        client = self.store.get(Client, request.client_id)
        if not client.is_active:
            raise InactiveResourceError("Client", client.client_code)
        self._check_capacity(truck, load_weight)
        self._assert_free(truck, driver, window)
        self.ledger.ensure_credit(client.id, charges - advance, context="trip_creation")

        numbering = self.policy.numbering
        auto_invoice = (
            self.policy.auto_invoice_default if request.auto_invoice is None else request.auto_invoice
        )
        trip = Trip(
            trip_number=self.sequences.next_number(
                numbering.trip_prefix, numbering.date_format, numbering.width
            ),
            truck_id=truck.id,
            driver_id=driver.id,
            client_id=client.id,
            source_location=request.source_location,
            destination_location=request.destination_location,
            planned_start=window.start,
            planned_end=window.end,
            status=TripStatus.PLANNED,
            trip_charges=charges,
            advance_amount=advance,
            distance_km=distance,
            load_weight_tons=load_weight,
            auto_invoice=auto_invoice,
            created_by=actor,
        )
        self.store.save(trip)
        LogContext.set(trip_id=trip.id)
        self._append_event(
            trip,
            TripEventType.CREATED,
            None,
            actor,
            remarks=request.remarks,
            detail={
                "trip_charges": charges,
                "advance_amount": advance,
                "planned_start": window.start,
                "planned_end": window.end,
            },
        )

        logger.info(
            "trip_created",
            extra={
                "trip_number": trip.trip_number,
                "truck_id": truck.id,
                "driver_id": driver.id,
                "client_id": client.id,
                "planned_start": window.start,
                "planned_end": window.end,
                "trip_charges": charges,
                "advance_amount": advance,
                "actor": actor,
            },
        )
        return trip_info(trip)

    # -- Transitions --------------------------------------------------------

    def start_trip(
        self,
        trip_id: UUID,
        actual_start: datetime | None = None,
        actor: str = "system",
        remarks: str | None = None,
    ) -> TripInfo:
        """
        PLANNED -> RUNNING.

        ``actual_start`` defaults to now.  A start further in the past than
        the grace period is refused; a future start is accepted.

        Raises:
            InvalidStateTransitionError: trip not PLANNED.
            StartTimeOutOfRangeError: start older than the grace period.
        """
        trip = self._lock_trip(trip_id)
        target = self._require_transition(trip, TripAction.START)

        now = self.clock.now()
        started_at = require_aware(actual_start or now, "actual_start")
        grace = timedelta(minutes=self.policy.start_grace_minutes)
        if started_at < now - grace:
            raise StartTimeOutOfRangeError(
                trip.trip_number, started_at.isoformat(), self.policy.start_grace_minutes
            )

        from_status = trip.status
        trip.status = target
        trip.actual_start = started_at
        trip.updated_by = actor
        self.store.flush()
        self._append_event(
            trip,
            ACTION_EVENTS[TripAction.START],
            from_status,
            actor,
            remarks=remarks,
            detail={"actual_start": started_at},
        )
        self._log_transition(trip, from_status, actor, actual_start=started_at)
        return trip_info(trip)

    def complete_trip(
        self,
        trip_id: UUID,
        actual_end: datetime | None = None,
        fuel_consumed=ZERO,
        fuel_cost=ZERO,
        toll_charges=ZERO,
        other_expenses=ZERO,
        distance_km=None,
        actor: str = "system",
        remarks: str | None = None,
    ) -> TripInfo:
        """
        RUNNING -> COMPLETED, recording expenses.

        Side effects in the same unit of work: the truck odometer advances by
        the trip distance (the recorded one when ``distance_km`` is omitted),
        and an auto-invoicing trip gets its invoice opened for the trip
        charges with the advance already received.  A trip that was invoiced
        by hand beforehand is not invoiced again.

        Raises:
            InvalidStateTransitionError: trip not RUNNING.
            InvalidTimeWindowError: actual_end before actual_start.
            InvalidAmountError: negative expense or distance.
        """
        fuel_consumed = _non_negative(fuel_consumed, "fuel_consumed")
        fuel_cost = _non_negative(fuel_cost, "fuel_cost")
        toll_charges = _non_negative(toll_charges, "toll_charges")
        other_expenses = _non_negative(other_expenses, "other_expenses")
        distance = _optional_measure(distance_km, "distance_km")

        trip = self._lock_trip(trip_id)
        target = self._require_transition(trip, TripAction.COMPLETE)
        ended_at = TimeWindow(trip.actual_start, actual_end or self.clock.now()).end

        truck = self.store.get_for_update(Truck, trip.truck_id)
        if distance is None:
            distance = trip.distance_km
        old_odometer = truck.current_odometer
        if distance:
            truck.current_odometer = old_odometer + distance
            truck.updated_by = actor

        from_status = trip.status
        trip.status = target
        trip.actual_end = ended_at
        trip.fuel_consumed = fuel_consumed
        trip.fuel_cost = fuel_cost
        trip.toll_charges = toll_charges
        trip.other_expenses = other_expenses
        trip.distance_km = distance
        trip.updated_by = actor
        self.store.flush()

        invoice_number = None
        if trip.auto_invoice:
            existing = self.store.find_one(Invoice, Invoice.trip_id == trip.id)
            if existing is None:
                invoice = self.ledger.open_invoice(
                    trip.id,
                    trip.client_id,
                    trip.trip_charges,
                    trip.advance_amount,
                    actor=actor,
                )
                invoice_number = invoice.invoice_number
            else:
                logger.info(
                    "auto_invoice_skipped",
                    extra={"trip_number": trip.trip_number, "invoice_number": existing.invoice_number},
                )

        self._append_event(
            trip,
            ACTION_EVENTS[TripAction.COMPLETE],
            from_status,
            actor,
            remarks=remarks,
            detail={
                "actual_end": ended_at,
                "distance_km": distance,
                "fuel_consumed": fuel_consumed,
                "total_expenses": trip.total_expenses,
                "odometer_before": old_odometer,
                "odometer_after": truck.current_odometer,
                "invoice_number": invoice_number,
            },
        )
        self._log_transition(
            trip,
            from_status,
            actor,
            actual_end=ended_at,
            total_expenses=trip.total_expenses,
            invoice_number=invoice_number,
        )
        return trip_info(trip)

    def cancel_trip(self, trip_id: UUID, reason: str | None = None, actor: str = "system") -> TripInfo:
        """
        PLANNED or RUNNING -> CANCELLED.  Frees the truck and driver.

        Raises:
            InvalidStateTransitionError: trip already COMPLETED or CANCELLED.
        """
        trip = self._lock_trip(trip_id)
        target = self._require_transition(trip, TripAction.CANCEL)

        from_status = trip.status
        trip.status = target
        trip.cancellation_reason = reason
        trip.updated_by = actor
        self.store.flush()
        self._append_event(
            trip,
            ACTION_EVENTS[TripAction.CANCEL],
            from_status,
            actor,
            remarks=reason,
            detail={"reason": reason},
        )
        self._log_transition(trip, from_status, actor, reason=reason)
        return trip_info(trip)

    # -- Edits --------------------------------------------------------------

    def reschedule_trip(
        self,
        trip_id: UUID,
        planned_start: datetime,
        planned_end: datetime,
        truck_id: UUID | None = None,
        driver_id: UUID | None = None,
        actor: str = "system",
    ) -> TripInfo:
        """
        Move a PLANNED trip to a new window, optionally on another truck or
        driver.  Availability is re-checked ignoring the trip itself.

        Raises:
            InvalidStateTransitionError: trip not PLANNED.
            InvalidTimeWindowError, InactiveResourceError,
            CapacityExceededError, ResourceUnavailableError.
        """
        window = TimeWindow(planned_start, planned_end)
        trip = self._lock_trip(trip_id)
        if trip.status != TripStatus.PLANNED:
            raise InvalidStateTransitionError(trip.trip_number, trip.status.value, "reschedule")

        truck, driver = self._lock_resources(truck_id or trip.truck_id, driver_id or trip.driver_id)
        self._check_capacity(truck, trip.load_weight_tons)
        self._assert_free(truck, driver, window, exclude_trip_id=trip.id)

        old = {
            "old_planned_start": trip.planned_start,
            "old_planned_end": trip.planned_end,
            "old_truck_id": trip.truck_id,
            "old_driver_id": trip.driver_id,
        }
        trip.planned_start = window.start
        trip.planned_end = window.end
        trip.truck_id = truck.id
        trip.driver_id = driver.id
        trip.updated_by = actor
        self.store.flush()
        self._append_event(
            trip,
            TripEventType.RESCHEDULED,
            trip.status,
            actor,
            detail={
                **old,
                "planned_start": window.start,
                "planned_end": window.end,
                "truck_id": truck.id,
                "driver_id": driver.id,
            },
        )
        logger.info(
            "trip_rescheduled",
            extra={
                "trip_number": trip.trip_number,
                "planned_start": window.start,
                "planned_end": window.end,
                "truck_id": truck.id,
                "driver_id": driver.id,
                "actor": actor,
            },
        )
        return trip_info(trip)

    def update_trip_charges(
        self,
        trip_id: UUID,
        new_charges,
        reason: str | None = None,
        actor: str = "system",
    ) -> TripInfo:
        """
        Change the charges of an open trip.

        Raises:
            InvalidStateTransitionError: trip COMPLETED or CANCELLED.
            InvalidAmountError: charges <= 0 or below the advance taken.
            ValidationError: the trip is already invoiced.
        """
        charges = money_from_value(new_charges, "trip_charges")
        if charges <= ZERO:
            raise InvalidAmountError("trip_charges", str(charges), "must be positive")

        trip = self._lock_trip(trip_id)
        self._require_editable(trip, "update charges of")
        if charges < trip.advance_amount:
            raise InvalidAmountError(
                "trip_charges", str(charges), f"below advance already taken {trip.advance_amount}"
            )
        self._require_not_invoiced(trip)

        old_charges = trip.trip_charges
        trip.trip_charges = charges
        trip.updated_by = actor
        self.store.flush()
        self._append_event(
            trip,
            TripEventType.CHARGES_UPDATED,
            trip.status,
            actor,
            remarks=reason,
            detail={"old_charges": old_charges, "new_charges": charges},
        )
        logger.info(
            "trip_charges_updated",
            extra={
                "trip_number": trip.trip_number,
                "old_charges": old_charges,
                "new_charges": charges,
                "actor": actor,
            },
        )
        return trip_info(trip)

    def add_advance(
        self,
        trip_id: UUID,
        amount,
        remarks: str | None = None,
        actor: str = "system",
    ) -> TripInfo:
        """
        Record a further advance on an open trip.

        Raises:
            InvalidStateTransitionError: trip COMPLETED or CANCELLED.
            InvalidAmountError: amount <= 0 or cumulative advance above charges.
            ValidationError: the trip is already invoiced.
        """
        value = money_from_value(amount, "amount")
        if value <= ZERO:
            raise InvalidAmountError("amount", str(value), "must be positive")

        trip = self._lock_trip(trip_id)
        self._require_editable(trip, "add advance to")
        new_advance = trip.advance_amount + value
        if new_advance > trip.trip_charges:
            raise InvalidAmountError(
                "advance_amount", str(new_advance), f"exceeds trip charges {trip.trip_charges}"
            )
        self._require_not_invoiced(trip)

        old_advance = trip.advance_amount
        trip.advance_amount = new_advance
        trip.updated_by = actor
        self.store.flush()
        self._append_event(
            trip,
            TripEventType.ADVANCE_ADDED,
            trip.status,
            actor,
            remarks=remarks,
            detail={"amount": value, "old_advance": old_advance, "new_advance": new_advance},
        )
        logger.info(
            "trip_advance_added",
            extra={"trip_number": trip.trip_number, "amount": value, "advance_amount": new_advance},
        )
        return trip_info(trip)

    def _require_not_invoiced(self, trip: Trip) -> None:
        # Once invoiced, money moves through the ledger only
        invoice = self.store.find_one(Invoice, Invoice.trip_id == trip.id)
        if invoice is not None:
            raise ValidationError(
                f"Trip {trip.trip_number} is already invoiced as {invoice.invoice_number}"
            )
