"""
Tests for TripLifecycleService.

Tests cover:
- Trip creation: validation order, numbering, double-booking prevention
- start / complete / cancel transitions and their side effects
- Auto-invoice on completion and the odometer update
- Reschedule, charge updates and advances on open trips
- Append-only history and the trip version counter
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from fleet_kernel.domain.ledger_rules import InvoicePaymentStatus
from fleet_kernel.domain.policies import CreditPolicy, OperatingPolicy
from fleet_kernel.domain.trip_lifecycle import TripEventType, TripStatus
from fleet_kernel.exceptions import (
    CapacityExceededError,
    ClientNotFoundError,
    CreditLimitExceededError,
    InactiveResourceError,
    InvalidAmountError,
    InvalidStateTransitionError,
    InvalidTimeWindowError,
    ResourceUnavailableError,
    StartTimeOutOfRangeError,
    TripNotFoundError,
    TruckNotFoundError,
    ValidationError,
)
from fleet_kernel.selectors.ledger_selector import LedgerSelector
from fleet_kernel.selectors.trip_selector import TripSelector
from fleet_kernel.services.trip_lifecycle_service import TripLifecycleService

NOW = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)
ACTOR = "test-dispatcher"


def at(hours: float) -> datetime:
    return NOW + timedelta(hours=hours)


def history(session, trip_id):
    return TripSelector(session).history(trip_id)


class TestCreateTrip:
    """Tests for trip planning."""

    def test_creates_planned_trip(self, trips, trip_request, truck, driver, client):
        trip = trips.create_trip(trip_request(), actor=ACTOR)

        assert trip.status == TripStatus.PLANNED
        assert trip.trip_number == "TR202401150001"
        assert trip.truck_id == truck.id
        assert trip.driver_id == driver.id
        assert trip.client_id == client.id
        assert trip.trip_charges == Decimal("10000")
        assert trip.advance_amount == Decimal("0")
        assert trip.planned_start == at(2)
        assert trip.planned_end == at(10)
        assert trip.actual_start is None
        assert trip.auto_invoice is True

    def test_numbers_are_sequential(self, trips, trip_request):
        first = trips.create_trip(trip_request(start_hours=2, end_hours=4))
        second = trips.create_trip(trip_request(start_hours=5, end_hours=7))
        assert (first.trip_number, second.trip_number) == ("TR202401150001", "TR202401150002")

    def test_writes_created_event(self, session, trips, trip_request):
        trip = trips.create_trip(trip_request(remarks="fragile cargo"), actor=ACTOR)

        events = history(session, trip.id)
        assert len(events) == 1
        assert events[0].seq == 1
        assert events[0].event == TripEventType.CREATED
        assert events[0].from_status is None
        assert events[0].to_status == TripStatus.PLANNED
        assert events[0].actor == ACTOR
        assert events[0].remarks == "fragile cargo"
        assert events[0].occurred_at == NOW

    def test_auto_invoice_override(self, trips, trip_request):
        trip = trips.create_trip(trip_request(auto_invoice=False))
        assert trip.auto_invoice is False

    def test_auto_invoice_default_from_policy(self, session, clock, trip_request):
        service = TripLifecycleService(session, clock, OperatingPolicy(auto_invoice_default=False))
        assert service.create_trip(trip_request()).auto_invoice is False

    def test_accepts_amount_strings(self, trips, trip_request):
        trip = trips.create_trip(trip_request(trip_charges="15000.50", advance_amount="500"))
        assert trip.trip_charges == Decimal("15000.50")
        assert trip.balance_due == Decimal("14500.50")

    def test_emits_trip_created_log(self, trips, trip_request, captured_logs):
        trip = trips.create_trip(trip_request(), actor=ACTOR)

        created = [r for r in captured_logs() if r["message"] == "trip_created"]
        assert len(created) == 1
        assert created[0]["trip_number"] == trip.trip_number
        assert created[0]["trip_id"] == str(trip.id)
        assert created[0]["actor"] == ACTOR


class TestCreateTripValidation:
    @pytest.mark.parametrize("charges", [Decimal("0"), Decimal("-100")])
    def test_charges_must_be_positive(self, trips, trip_request, charges):
        with pytest.raises(InvalidAmountError):
            trips.create_trip(trip_request(trip_charges=charges))

    def test_negative_advance(self, trips, trip_request):
        with pytest.raises(InvalidAmountError):
            trips.create_trip(trip_request(advance_amount=Decimal("-1")))

    def test_advance_above_charges(self, trips, trip_request):
        with pytest.raises(InvalidAmountError) as exc_info:
            trips.create_trip(trip_request(advance_amount=Decimal("10000.01")))
        assert exc_info.value.field == "advance_amount"

    def test_advance_equal_to_charges_is_allowed(self, trips, trip_request):
        trip = trips.create_trip(trip_request(advance_amount=Decimal("10000")))
        assert trip.balance_due == Decimal("0")

    def test_unparseable_amount(self, trips, trip_request):
        with pytest.raises(InvalidAmountError):
            trips.create_trip(trip_request(trip_charges="ten thousand"))

    def test_inverted_window(self, trips, trip_request):
        with pytest.raises(InvalidTimeWindowError):
            trips.create_trip(trip_request(start_hours=10, end_hours=2))

    def test_naive_timestamps_rejected(self, trips, trip_request):
        with pytest.raises(InvalidTimeWindowError):
            trips.create_trip(
                trip_request(planned_start=datetime(2024, 1, 15, 10), planned_end=datetime(2024, 1, 15, 18))
            )

    def test_unknown_truck(self, trips, trip_request):
        with pytest.raises(TruckNotFoundError):
            trips.create_trip(trip_request(truck_id=uuid4()))

    def test_unknown_client(self, trips, trip_request):
        with pytest.raises(ClientNotFoundError):
            trips.create_trip(trip_request(client_id=uuid4()))

    def test_inactive_truck(self, trips, registry, trip_request, truck):
        registry.set_active("TRUCK", truck.id, False)
        with pytest.raises(InactiveResourceError) as exc_info:
            trips.create_trip(trip_request())
        assert exc_info.value.kind == "Truck"

    def test_inactive_driver(self, trips, registry, trip_request, driver):
        registry.set_active("DRIVER", driver.id, False)
        with pytest.raises(InactiveResourceError) as exc_info:
            trips.create_trip(trip_request())
        assert exc_info.value.kind == "Driver"

    def test_inactive_client(self, trips, registry, trip_request, client):
        registry.set_active("CLIENT", client.id, False)
        with pytest.raises(InactiveResourceError) as exc_info:
            trips.create_trip(trip_request())
        assert exc_info.value.kind == "Client"

    def test_load_above_capacity(self, trips, trip_request):
        with pytest.raises(CapacityExceededError):
            trips.create_trip(trip_request(load_weight_tons=Decimal("20.5")))

    def test_load_at_capacity(self, trips, trip_request):
        trip = trips.create_trip(trip_request(load_weight_tons=Decimal("20")))
        assert trip.load_weight_tons == Decimal("20")

    def test_negative_distance(self, trips, trip_request):
        with pytest.raises(InvalidAmountError):
            trips.create_trip(trip_request(distance_km=Decimal("-5")))

    def test_failed_validation_allocates_no_number(self, trips, trip_request):
        with pytest.raises(CapacityExceededError):
            trips.create_trip(trip_request(load_weight_tons=Decimal("50")))
        trip = trips.create_trip(trip_request())
        assert trip.trip_number == "TR202401150001"


class TestDoubleBooking:
    def test_overlapping_truck_rejected(self, trips, trip_request, planned_trip, make_driver):
        other_driver = make_driver()
        with pytest.raises(ResourceUnavailableError) as exc_info:
            trips.create_trip(trip_request(start_hours=6, end_hours=12, driver_id=other_driver.id))
        assert exc_info.value.kind == "TRUCK"
        assert exc_info.value.conflicting_trip_numbers == [planned_trip.trip_number]

    def test_overlapping_driver_rejected(self, trips, trip_request, planned_trip, make_truck):
        other_truck = make_truck()
        with pytest.raises(ResourceUnavailableError) as exc_info:
            trips.create_trip(trip_request(start_hours=6, end_hours=12, truck_id=other_truck.id))
        assert exc_info.value.kind == "DRIVER"

    def test_back_to_back_trips_conflict(self, trips, trip_request, planned_trip):
        with pytest.raises(ResourceUnavailableError):
            trips.create_trip(trip_request(start_hours=10, end_hours=14))

    def test_disjoint_trips_allowed(self, trips, trip_request, planned_trip):
        later = trips.create_trip(trip_request(start_hours=10.5, end_hours=14))
        assert later.status == TripStatus.PLANNED

    def test_other_resources_unaffected(self, trips, trip_request, planned_trip, make_truck, make_driver):
        trip = trips.create_trip(
            trip_request(truck_id=make_truck().id, driver_id=make_driver().id)
        )
        assert trip.status == TripStatus.PLANNED

    def test_cancelled_trip_frees_window(self, trips, trip_request, planned_trip):
        trips.cancel_trip(planned_trip.id)
        replacement = trips.create_trip(trip_request())
        assert replacement.planned_start == planned_trip.planned_start

    def test_running_trip_blocks_any_later_window(self, trips, trip_request, running_trip):
        with pytest.raises(ResourceUnavailableError):
            trips.create_trip(trip_request(start_hours=48, end_hours=60))


class TestCreditOnCreation:
    def test_advisory_policy_warns_and_creates(self, trips, trip_request, make_client, captured_logs):
        limited = make_client(credit_limit=Decimal("5000"))
        trip = trips.create_trip(trip_request(client_id=limited.id))

        assert trip.status == TripStatus.PLANNED
        warnings = [r for r in captured_logs() if r["message"] == "credit_limit_warning"]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["context"] == "trip_creation"

    def test_enforce_policy_rejects(self, session, clock, trip_request, make_client):
        service = TripLifecycleService(session, clock, OperatingPolicy(credit_policy=CreditPolicy.ENFORCE))
        limited = make_client(credit_limit=Decimal("5000"))
        with pytest.raises(CreditLimitExceededError):
            service.create_trip(trip_request(client_id=limited.id))

    def test_enforce_policy_counts_advance(self, session, clock, trip_request, make_client):
        service = TripLifecycleService(session, clock, OperatingPolicy(credit_policy=CreditPolicy.ENFORCE))
        limited = make_client(credit_limit=Decimal("5000"))
        trip = service.create_trip(
            trip_request(client_id=limited.id, advance_amount=Decimal("6000"))
        )
        assert trip.balance_due == Decimal("4000")

    def test_no_limit_never_warns(self, trips, trip_request, captured_logs):
        trips.create_trip(trip_request(trip_charges=Decimal("9999999")))
        assert not [r for r in captured_logs() if r["message"] == "credit_limit_warning"]


class TestStartTrip:
    def test_start_defaults_to_now(self, trips, planned_trip):
        trip = trips.start_trip(planned_trip.id, actor=ACTOR)
        assert trip.status == TripStatus.RUNNING
        assert trip.actual_start == NOW

    def test_start_within_grace(self, trips, planned_trip):
        trip = trips.start_trip(planned_trip.id, actual_start=NOW - timedelta(minutes=59))
        assert trip.actual_start == NOW - timedelta(minutes=59)

    def test_start_at_grace_boundary(self, trips, planned_trip):
        trip = trips.start_trip(planned_trip.id, actual_start=NOW - timedelta(minutes=60))
        assert trip.status == TripStatus.RUNNING

    def test_start_too_far_in_past(self, trips, planned_trip):
        with pytest.raises(StartTimeOutOfRangeError) as exc_info:
            trips.start_trip(planned_trip.id, actual_start=NOW - timedelta(minutes=61))
        assert exc_info.value.grace_minutes == 60

    def test_future_start_accepted(self, trips, planned_trip):
        trip = trips.start_trip(planned_trip.id, actual_start=NOW + timedelta(hours=1))
        assert trip.actual_start == NOW + timedelta(hours=1)

    def test_naive_start_rejected(self, trips, planned_trip):
        with pytest.raises(InvalidTimeWindowError):
            trips.start_trip(planned_trip.id, actual_start=datetime(2024, 1, 15, 8, 0))

    def test_cannot_start_running_trip(self, trips, running_trip):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            trips.start_trip(running_trip.id)
        assert exc_info.value.current_status == "RUNNING"
        assert exc_info.value.action == "start"

    def test_unknown_trip(self, trips):
        with pytest.raises(TripNotFoundError):
            trips.start_trip(uuid4())

    def test_start_appends_event_and_bumps_version(self, session, trips, planned_trip):
        trip = trips.start_trip(planned_trip.id, actor=ACTOR, remarks="left depot")

        assert trip.version == planned_trip.version + 1
        events = history(session, trip.id)
        assert [e.event for e in events] == [TripEventType.CREATED, TripEventType.STARTED]
        assert events[1].from_status == TripStatus.PLANNED
        assert events[1].to_status == TripStatus.RUNNING
        assert events[1].remarks == "left depot"


class TestCompleteTrip:
    def test_completes_with_expenses(self, trips, clock, running_trip):
        clock.advance(hours=6)
        trip = trips.complete_trip(
            running_trip.id,
            fuel_consumed=Decimal("40"),
            fuel_cost=Decimal("4000"),
            toll_charges=Decimal("500"),
            other_expenses=Decimal("250"),
            distance_km=Decimal("150"),
            actor=ACTOR,
        )

        assert trip.status == TripStatus.COMPLETED
        assert trip.actual_end == NOW + timedelta(hours=6)
        assert trip.fuel_cost == Decimal("4000")
        assert trip.toll_charges == Decimal("500")
        assert trip.other_expenses == Decimal("250")
        assert trip.distance_km == Decimal("150")

    def test_advances_odometer(self, trips, registry, clock, running_trip, truck):
        clock.advance(hours=6)
        trips.complete_trip(running_trip.id, distance_km=Decimal("150"))
        assert registry.get_truck(truck.id).current_odometer == Decimal("1150")

    def test_uses_recorded_distance_when_omitted(self, trips, registry, clock, trip_request, truck):
        trip = trips.create_trip(trip_request(distance_km=Decimal("80")))
        trips.start_trip(trip.id)
        clock.advance(hours=3)
        trips.complete_trip(trip.id)
        assert registry.get_truck(truck.id).current_odometer == Decimal("1080")

    def test_no_distance_leaves_odometer(self, trips, registry, clock, running_trip, truck):
        clock.advance(hours=3)
        trips.complete_trip(running_trip.id)
        assert registry.get_truck(truck.id).current_odometer == Decimal("1000")

    def test_auto_invoice_opened(self, session, trips, clock, trip_request, client):
        trip = trips.create_trip(trip_request(advance_amount=Decimal("3000")))
        trips.start_trip(trip.id)
        clock.advance(hours=5)
        trips.complete_trip(trip.id)

        selector = LedgerSelector(session)
        invoice = selector.invoice_for_trip(trip.id)
        assert invoice is not None
        assert invoice.invoice_number == "BL202401150001"
        assert invoice.total_charges == Decimal("10000")
        assert invoice.advance_received == Decimal("3000")
        assert invoice.balance_amount == Decimal("7000")
        assert invoice.payment_status == InvoicePaymentStatus.PARTIAL
        assert invoice.due_date == invoice.invoice_date + timedelta(days=30)
        assert selector.get_client(client.id).outstanding_balance == Decimal("7000")

    def test_fully_advanced_trip_invoices_as_paid(self, session, trips, clock, trip_request, client):
        trip = trips.create_trip(trip_request(advance_amount=Decimal("10000")))
        trips.start_trip(trip.id)
        clock.advance(hours=5)
        trips.complete_trip(trip.id)

        selector = LedgerSelector(session)
        assert selector.invoice_for_trip(trip.id).payment_status == InvoicePaymentStatus.PAID
        assert selector.get_client(client.id).outstanding_balance == Decimal("0")

    def test_no_auto_invoice(self, session, trips, clock, trip_request):
        trip = trips.create_trip(trip_request(auto_invoice=False))
        trips.start_trip(trip.id)
        clock.advance(hours=5)
        trips.complete_trip(trip.id)
        assert LedgerSelector(session).invoice_for_trip(trip.id) is None

    def test_manual_invoice_is_not_duplicated(self, session, trips, ledger, clock, running_trip, captured_logs):
        manual = ledger.open_invoice(running_trip.id, running_trip.client_id, Decimal("10000"))
        clock.advance(hours=5)
        trips.complete_trip(running_trip.id)

        assert LedgerSelector(session).invoice_for_trip(running_trip.id).id == manual.id
        assert any(r["message"] == "auto_invoice_skipped" for r in captured_logs())

    def test_end_before_start(self, trips, running_trip):
        with pytest.raises(InvalidTimeWindowError):
            trips.complete_trip(running_trip.id, actual_end=NOW - timedelta(minutes=1))

    def test_end_equal_to_start_allowed(self, trips, running_trip):
        trip = trips.complete_trip(running_trip.id, actual_end=NOW)
        assert trip.actual_end == NOW

    @pytest.mark.parametrize(
        "field", ["fuel_consumed", "fuel_cost", "toll_charges", "other_expenses", "distance_km"]
    )
    def test_negative_expense(self, trips, running_trip, field):
        with pytest.raises(InvalidAmountError):
            trips.complete_trip(running_trip.id, **{field: Decimal("-1")})

    def test_cannot_complete_planned_trip(self, trips, planned_trip):
        with pytest.raises(InvalidStateTransitionError):
            trips.complete_trip(planned_trip.id)

    def test_completion_event_records_odometer(self, session, trips, clock, running_trip):
        clock.advance(hours=2)
        trips.complete_trip(running_trip.id, distance_km=Decimal("120"))

        completed = history(session, running_trip.id)[-1]
        assert completed.event == TripEventType.COMPLETED
        assert Decimal(completed.detail["odometer_before"]) == Decimal("1000")
        assert Decimal(completed.detail["odometer_after"]) == Decimal("1120")
        assert completed.detail["invoice_number"] == "BL202401150001"


class TestCancelTrip:
    def test_cancel_planned(self, trips, planned_trip):
        trip = trips.cancel_trip(planned_trip.id, reason="client postponed", actor=ACTOR)
        assert trip.status == TripStatus.CANCELLED
        assert trip.cancellation_reason == "client postponed"

    def test_cancel_running(self, trips, running_trip):
        assert trips.cancel_trip(running_trip.id).status == TripStatus.CANCELLED

    def test_cancel_without_reason(self, trips, planned_trip):
        assert trips.cancel_trip(planned_trip.id).cancellation_reason is None

    def test_cannot_cancel_completed(self, trips, clock, running_trip):
        clock.advance(hours=1)
        trips.complete_trip(running_trip.id)
        with pytest.raises(InvalidStateTransitionError):
            trips.cancel_trip(running_trip.id)

    def test_cannot_cancel_twice(self, trips, planned_trip):
        trips.cancel_trip(planned_trip.id)
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            trips.cancel_trip(planned_trip.id)
        assert exc_info.value.current_status == "CANCELLED"

    def test_cancelled_trip_cannot_start(self, trips, planned_trip):
        trips.cancel_trip(planned_trip.id)
        with pytest.raises(InvalidStateTransitionError):
            trips.start_trip(planned_trip.id)

    def test_cancel_event_and_log(self, session, trips, planned_trip, captured_logs):
        trips.cancel_trip(planned_trip.id, reason="breakdown", actor=ACTOR)

        cancelled = history(session, planned_trip.id)[-1]
        assert cancelled.event == TripEventType.CANCELLED
        assert cancelled.remarks == "breakdown"
        transitions = [r for r in captured_logs() if r["message"] == "trip_transition"]
        assert transitions[-1]["from_status"] == "PLANNED"
        assert transitions[-1]["to_status"] == "CANCELLED"


class TestRescheduleTrip:
    def test_moves_window(self, trips, planned_trip):
        trip = trips.reschedule_trip(planned_trip.id, at(24), at(30), actor=ACTOR)
        assert (trip.planned_start, trip.planned_end) == (at(24), at(30))

    def test_overlap_with_itself_allowed(self, trips, planned_trip):
        trip = trips.reschedule_trip(planned_trip.id, at(4), at(12))
        assert trip.planned_start == at(4)

    def test_conflict_with_other_trip(self, trips, trip_request, planned_trip):
        later = trips.create_trip(trip_request(start_hours=20, end_hours=24))
        with pytest.raises(ResourceUnavailableError) as exc_info:
            trips.reschedule_trip(later.id, at(8), at(12))
        assert exc_info.value.conflicting_trip_numbers == [planned_trip.trip_number]

    def test_swap_truck(self, trips, planned_trip, make_truck):
        spare = make_truck()
        trip = trips.reschedule_trip(planned_trip.id, at(2), at(10), truck_id=spare.id)
        assert trip.truck_id == spare.id
        assert trip.driver_id == planned_trip.driver_id

    def test_swap_to_small_truck_checks_capacity(self, trips, trip_request, make_truck):
        trip = trips.create_trip(trip_request(load_weight_tons=Decimal("15")))
        small = make_truck(capacity_tons=Decimal("10"))
        with pytest.raises(CapacityExceededError):
            trips.reschedule_trip(trip.id, at(2), at(10), truck_id=small.id)

    def test_running_trip_cannot_be_rescheduled(self, trips, running_trip):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            trips.reschedule_trip(running_trip.id, at(24), at(30))
        assert exc_info.value.action == "reschedule"

    def test_records_old_window(self, session, trips, planned_trip):
        trips.reschedule_trip(planned_trip.id, at(24), at(30))
        event = history(session, planned_trip.id)[-1]
        assert event.event == TripEventType.RESCHEDULED
        assert event.detail["old_planned_start"] == at(2).isoformat()
        assert event.detail["planned_start"] == at(24).isoformat()


class TestChargesAndAdvances:
    def test_update_charges(self, trips, planned_trip):
        trip = trips.update_trip_charges(planned_trip.id, Decimal("12000"), reason="extra drop")
        assert trip.trip_charges == Decimal("12000")

    def test_update_charges_on_running_trip(self, trips, running_trip):
        assert trips.update_trip_charges(running_trip.id, "9000").trip_charges == Decimal("9000")

    def test_charges_below_advance_rejected(self, trips, trip_request):
        trip = trips.create_trip(trip_request(advance_amount=Decimal("5000")))
        with pytest.raises(InvalidAmountError):
            trips.update_trip_charges(trip.id, Decimal("4999"))

    def test_charges_on_completed_trip_rejected(self, trips, clock, running_trip):
        clock.advance(hours=1)
        trips.complete_trip(running_trip.id)
        with pytest.raises(InvalidStateTransitionError):
            trips.update_trip_charges(running_trip.id, Decimal("12000"))

    def test_charges_on_invoiced_trip_rejected(self, trips, ledger, planned_trip):
        ledger.open_invoice(planned_trip.id, planned_trip.client_id, Decimal("10000"))
        with pytest.raises(ValidationError):
            trips.update_trip_charges(planned_trip.id, Decimal("12000"))

    def test_add_advance(self, trips, planned_trip):
        trips.add_advance(planned_trip.id, Decimal("2000"))
        trip = trips.add_advance(planned_trip.id, Decimal("1500"), remarks="diesel")
        assert trip.advance_amount == Decimal("3500")

    def test_advance_beyond_charges_rejected(self, trips, planned_trip):
        trips.add_advance(planned_trip.id, Decimal("8000"))
        with pytest.raises(InvalidAmountError):
            trips.add_advance(planned_trip.id, Decimal("2000.01"))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    def test_advance_must_be_positive(self, trips, planned_trip, amount):
        with pytest.raises(InvalidAmountError):
            trips.add_advance(planned_trip.id, amount)

    def test_advance_on_cancelled_trip_rejected(self, trips, planned_trip):
        trips.cancel_trip(planned_trip.id)
        with pytest.raises(InvalidStateTransitionError):
            trips.add_advance(planned_trip.id, Decimal("100"))

    def test_advance_flows_into_auto_invoice(self, session, trips, clock, running_trip):
        trips.add_advance(running_trip.id, Decimal("2500"))
        clock.advance(hours=4)
        trips.complete_trip(running_trip.id)
        invoice = LedgerSelector(session).invoice_for_trip(running_trip.id)
        assert invoice.advance_received == Decimal("2500")
        assert invoice.balance_amount == Decimal("7500")


class TestHistory:
    def test_full_lifecycle_history_in_order(self, session, trips, clock, planned_trip):
        trips.update_trip_charges(planned_trip.id, Decimal("11000"))
        trips.add_advance(planned_trip.id, Decimal("1000"))
        trips.start_trip(planned_trip.id)
        clock.advance(hours=4)
        trips.complete_trip(planned_trip.id)

        events = history(session, planned_trip.id)
        assert [e.seq for e in events] == [1, 2, 3, 4, 5]
        assert [e.event for e in events] == [
            TripEventType.CREATED,
            TripEventType.CHARGES_UPDATED,
            TripEventType.ADVANCE_ADDED,
            TripEventType.STARTED,
            TripEventType.COMPLETED,
        ]

    def test_version_increases_with_each_change(self, trips, planned_trip):
        started = trips.start_trip(planned_trip.id)
        cancelled = trips.cancel_trip(planned_trip.id)
        assert planned_trip.version < started.version < cancelled.version
