"""
Tests for FleetOperations, the transactional facade.

Tests cover:
- Each call commits on success and rolls back on failure, including a
  completion whose invoice step fails
- Store failures on writes surface as TransientStoreError, never retried
- Reads retry once before surfacing TransientStoreError
- The log context is bound per call and restored afterwards
- Read operations: profitability, aging, overdue, reconciliation
- Free truck and driver lookups, expense numbering
"""

from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from fleet_kernel.db.engine import session_scope
from fleet_kernel.domain.aging import AgingBucket
from fleet_kernel.domain.dtos import ResourceKind, TripRequest
from fleet_kernel.domain.ledger_rules import InvoicePaymentStatus, PaymentMode
from fleet_kernel.domain.policies import NumberFormat, OperatingPolicy
from fleet_kernel.domain.trip_lifecycle import TripEventType, TripStatus
from fleet_kernel.exceptions import (
    ExceedsBalanceError,
    LedgerError,
    ResourceUnavailableError,
    TransientStoreError,
    TripNotFoundError,
)
from fleet_kernel.logging_config import LogContext
from fleet_kernel.models import Client
from fleet_kernel.services.ledger_service import LedgerService
from fleet_services.operations import FleetOperations

NOW = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


def at(hours: float) -> datetime:
    return NOW + timedelta(hours=hours)


@pytest.fixture
def fleet(operations):
    """A truck, a driver and a client registered through the facade."""
    truck = operations.register_truck("MH12OP0001", Decimal("20"), Decimal("5000"))
    driver = operations.register_driver("OPDRV01", "Sunil Jadhav")
    client = operations.register_client("OPCL01", "Deccan Traders")
    return truck, driver, client


@pytest.fixture
def request_for(fleet):
    truck, driver, client = fleet

    def _build(start_hours=2, end_hours=10, **overrides):
        fields = dict(
            truck_id=truck.id,
            driver_id=driver.id,
            client_id=client.id,
            source_location="Nashik",
            destination_location="Pune",
            planned_start=at(start_hours),
            planned_end=at(end_hours),
            trip_charges=Decimal("10000"),
        )
        fields.update(overrides)
        return TripRequest(**fields)

    return _build


def failing_scope(times: int):
    """A scope factory whose first ``times`` sessions fail with a store error."""
    calls = {"count": 0}

    @contextmanager
    def _scope():
        calls["count"] += 1
        if calls["count"] <= times:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        with session_scope() as session:
            yield session

    return _scope, calls


class TestUnitOfWork:
    def test_write_is_committed(self, operations, request_for):
        trip = operations.create_trip(request_for(), actor="dispatcher")
        assert operations.get_trip(trip.id).status == TripStatus.PLANNED

    def test_failed_write_leaves_nothing(self, operations, request_for):
        operations.create_trip(request_for())
        with pytest.raises(ResourceUnavailableError):
            operations.create_trip(request_for(start_hours=4, end_hours=6))
        # The rejected trip consumed no number
        third = operations.create_trip(request_for(start_hours=20, end_hours=22))
        assert third.trip_number == "TR202401150002"

    def test_completion_and_invoice_commit_together(self, operations, request_for, fleet, clock):
        _, _, client = fleet
        trip = operations.create_trip(request_for(advance_amount=Decimal("2000")))
        operations.start_trip(trip.id)
        clock.advance(hours=6)
        operations.complete_trip(trip.id, distance_km=Decimal("210"))

        invoice = operations.invoice_for_trip(trip.id)
        assert invoice.balance_amount == Decimal("8000")
        assert operations.get_client(client.id).outstanding_balance == Decimal("8000")

    def test_failed_invoice_step_undoes_completion(
        self, operations, request_for, fleet, clock, monkeypatch
    ):
        truck, _, client = fleet
        trip = operations.create_trip(request_for())
        operations.start_trip(trip.id)
        clock.advance(hours=6)

        def _refuse(self, *args, **kwargs):
            raise LedgerError("ledger unavailable")

        monkeypatch.setattr(LedgerService, "open_invoice", _refuse)
        with pytest.raises(LedgerError):
            operations.complete_trip(trip.id, distance_km=Decimal("210"))

        assert operations.get_trip(trip.id).status == TripStatus.RUNNING
        assert operations.get_truck(truck.id).current_odometer == Decimal("5000")
        events = [e.event for e in operations.trip_history(trip.id)]
        assert events == [TripEventType.CREATED, TripEventType.STARTED]
        assert operations.invoice_for_trip(trip.id) is None
        assert operations.get_client(client.id).outstanding_balance == Decimal("0")

    def test_kernel_errors_propagate_unchanged(self, operations):
        with pytest.raises(TripNotFoundError):
            operations.start_trip(uuid4())

    def test_failed_payment_rolls_back(self, operations, fleet):
        _, _, client = fleet
        invoice = operations.open_invoice(None, client.id, Decimal("1000"))
        with pytest.raises(ExceedsBalanceError):
            operations.apply_payment(invoice.id, Decimal("1500"), PaymentMode.CASH)
        assert operations.get_invoice(invoice.id).balance_amount == Decimal("1000")
        assert operations.payments_for_invoice(invoice.id) == []


class TestStoreFailures:
    def test_write_failure_is_transient_and_not_retried(self, clock, db_engine, captured_logs):
        scope, calls = failing_scope(times=1)
        ops = FleetOperations(clock=clock, scope=scope)

        with pytest.raises(TransientStoreError) as exc_info:
            ops.register_driver("DRV-X", "Nobody")

        assert exc_info.value.operation == "register_driver"
        assert exc_info.value.code == "TRANSIENT_STORE_FAILURE"
        assert calls["count"] == 1
        assert any(r["message"] == "transient_store_failure" for r in captured_logs())

    def test_read_retries_once(self, clock, db_engine, operations, fleet, captured_logs):
        _, _, client = fleet
        scope, calls = failing_scope(times=1)
        ops = FleetOperations(clock=clock, scope=scope)

        assert ops.get_client(client.id).client_code == "OPCL01"
        assert calls["count"] == 2
        assert any(r["message"] == "read_retry" for r in captured_logs())

    def test_read_gives_up_after_retry(self, clock, db_engine):
        scope, calls = failing_scope(times=2)
        ops = FleetOperations(clock=clock, scope=scope)

        with pytest.raises(TransientStoreError) as exc_info:
            ops.get_trip(uuid4())
        assert exc_info.value.operation == "get_trip"
        assert calls["count"] == 2

    def test_integrity_error_is_not_transient(self, clock, db_engine):
        @contextmanager
        def scope():
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
            yield  # pragma: no cover

        ops = FleetOperations(clock=clock, scope=scope)
        with pytest.raises(IntegrityError):
            ops.register_driver("DRV-Y", "Nobody")


class TestLogContext:
    def test_context_bound_during_call(self, operations, request_for, captured_logs):
        trip = operations.create_trip(request_for(), actor="dispatcher-7")

        created = [r for r in captured_logs() if r["message"] == "trip_created"][0]
        assert created["operation"] == "create_trip"
        assert created["actor_id"] == "dispatcher-7"
        assert created["trip_id"] == str(trip.id)
        assert created["correlation_id"]

    def test_context_restored_after_call(self, operations, request_for):
        LogContext.set(correlation_id="outer-request")
        operations.create_trip(request_for(), actor="dispatcher-7")

        assert LogContext.get_all() == {"correlation_id": "outer-request"}

    def test_each_call_gets_its_own_correlation_id(self, operations, request_for, captured_logs):
        trip = operations.create_trip(request_for())
        operations.cancel_trip(trip.id, reason="duplicate booking")

        logs = captured_logs()
        created = [r for r in logs if r["message"] == "trip_created"][0]
        cancelled = [r for r in logs if r["message"] == "trip_transition"][0]
        assert created["correlation_id"] != cancelled["correlation_id"]


class TestTripReads:
    def test_check_availability(self, operations, request_for, fleet):
        truck, driver, _ = fleet
        trip = operations.create_trip(request_for())

        assert not operations.check_availability(truck.id, ResourceKind.TRUCK, at(5), at(6))
        assert not operations.check_availability(driver.id, "DRIVER", at(5), at(6))
        assert operations.check_availability(truck.id, "TRUCK", at(11), at(12))
        assert operations.check_availability(
            truck.id, ResourceKind.TRUCK, at(5), at(6), exclude_trip_id=trip.id
        )

    def test_free_resource_lookups(self, operations, request_for, fleet):
        truck, driver, _ = fleet
        spare_truck = operations.register_truck("MH12OP0002", Decimal("30"))
        spare_driver = operations.register_driver("OPDRV02", "Ramesh Pawar")
        operations.create_trip(request_for())

        assert [t.id for t in operations.available_trucks(at(5), at(6))] == [spare_truck.id]
        assert [t.id for t in operations.available_trucks(at(11), at(12))] == [
            truck.id,
            spare_truck.id,
        ]
        assert operations.available_trucks(at(11), at(12), Decimal("25"))[0].id == spare_truck.id
        assert [d.id for d in operations.available_drivers(at(5), at(6))] == [spare_driver.id]
        assert operations.suggest_truck(at(11), at(12), Decimal("15")).id == truck.id
        assert operations.suggest_truck(at(11), at(12), Decimal("35")) is None

    def test_history(self, operations, request_for, clock):
        trip = operations.create_trip(request_for())
        operations.start_trip(trip.id)
        clock.advance(hours=3)
        operations.complete_trip(trip.id)

        events = operations.trip_history(trip.id)
        assert [e.to_status for e in events] == [
            TripStatus.PLANNED,
            TripStatus.RUNNING,
            TripStatus.COMPLETED,
        ]

    def test_profitability(self, operations, request_for, clock):
        trip = operations.create_trip(request_for())
        operations.start_trip(trip.id)
        clock.advance(hours=5)
        operations.complete_trip(
            trip.id,
            fuel_consumed=Decimal("30"),
            fuel_cost=Decimal("4000"),
            toll_charges=Decimal("500"),
            other_expenses=Decimal("500"),
            distance_km=Decimal("150"),
        )

        report = operations.trip_profitability(trip.id)
        assert report.total_expenses == Decimal("5000")
        assert report.net_profit == Decimal("5000")
        assert report.profit_margin_pct == Decimal("50.00")
        assert report.fuel_efficiency == Decimal("5.00")

    def test_profitability_without_fuel(self, operations, request_for):
        trip = operations.create_trip(request_for())
        report = operations.trip_profitability(trip.id)
        assert report.net_profit == Decimal("10000")
        assert report.fuel_efficiency is None


class TestLedgerReads:
    def test_aging_and_overdue(self, operations, fleet, clock):
        _, _, client = fleet
        old = operations.open_invoice(None, client.id, Decimal("4000"), invoice_date=date(2023, 10, 1))
        mid = operations.open_invoice(None, client.id, Decimal("3000"), invoice_date=date(2023, 12, 1))
        new = operations.open_invoice(None, client.id, Decimal("2000"), invoice_date=date(2024, 1, 10))
        paid = operations.open_invoice(None, client.id, Decimal("1000"), invoice_date=date(2023, 9, 1))
        operations.apply_payment(paid.id, Decimal("1000"), PaymentMode.CASH)

        report = operations.aging_report(client.id)
        assert report.as_of_date == date(2024, 1, 15)
        assert report.item_count == 3
        assert report.total_amount == Decimal("9000")
        assert report.totals_by_bucket[AgingBucket.DAYS_90_PLUS] == Decimal("4000")
        assert report.totals_by_bucket[AgingBucket.DAYS_30] == Decimal("3000")
        assert report.totals_by_bucket[AgingBucket.CURRENT] == Decimal("2000")

        overdue = operations.overdue_invoices(client.id)
        assert [i.invoice_id for i in overdue] == [old.id, mid.id]
        assert new.id not in {i.invoice_id for i in overdue}

    def test_aging_uses_configured_boundaries(self, db_engine, clock, fleet):
        _, _, client = fleet
        ops = FleetOperations(OperatingPolicy(aging_boundaries=(15, 30, 45)), clock)
        ops.open_invoice(None, client.id, Decimal("100"), invoice_date=date(2024, 1, 1))

        report = ops.aging_report(client.id)
        assert report.items[0].bucket == AgingBucket.CURRENT
        report = ops.aging_report(client.id, as_of_date=date(2024, 1, 20))
        assert report.items[0].bucket == AgingBucket.DAYS_30

    def test_reconcile_consistent(self, operations, fleet):
        _, _, client = fleet
        invoice = operations.open_invoice(None, client.id, Decimal("5000"))
        operations.apply_payment(invoice.id, Decimal("1200"), PaymentMode.UPI)

        exposure = operations.reconcile_client(client.id)
        assert exposure.is_consistent
        assert exposure.stored_outstanding == Decimal("3800")

    def test_reconcile_reports_drift(self, operations, fleet, captured_logs):
        _, _, client = fleet
        operations.open_invoice(None, client.id, Decimal("5000"))
        with session_scope() as session:
            session.execute(
                update(Client).where(Client.id == client.id).values(outstanding_balance=Decimal("4000"))
            )

        exposure = operations.reconcile_client(client.id)
        assert not exposure.is_consistent
        assert exposure.drift == Decimal("-1000")
        drift = [r for r in captured_logs() if r["message"] == "client_exposure_drift"]
        assert drift and drift[0]["level"] == "ERROR"

    def test_clear_and_reverse_through_facade(self, operations, fleet):
        _, _, client = fleet
        invoice = operations.open_invoice(None, client.id, Decimal("5000"))
        operations.apply_payment(invoice.id, Decimal("5000"), PaymentMode.CHEQUE, reference="CHQ-9")
        payment = operations.payments_for_invoice(invoice.id)[0]

        operations.clear_payment(payment.id)
        reopened = operations.reverse_payment(payment.id, reason="stopped by drawer")

        assert reopened.payment_status == InvoicePaymentStatus.PENDING
        assert operations.credit_check(client.id, Decimal("1"))


class TestMasterData:
    def test_register_client_uses_default_terms(self, db_engine, clock):
        ops = FleetOperations(OperatingPolicy(default_credit_days=21), clock)
        client = ops.register_client("TERMS", "Terms Co")
        assert client.credit_days == 21

    def test_explicit_terms_win(self, operations):
        assert operations.register_client("T2", "Terms Two", credit_days=7).credit_days == 7

    def test_next_sequence_number(self, operations):
        assert operations.next_sequence_number("EXP") == "EXP202401150001"
        assert operations.next_sequence_number("EXP") == "EXP202401150002"
        assert operations.next_sequence_number("GRN", "%Y%m", 3) == "GRN202401001"

    def test_expense_numbers_use_configured_prefix(self, db_engine, clock):
        ops = FleetOperations(OperatingPolicy(numbering=NumberFormat(expense_prefix="EXV")), clock)
        assert ops.next_expense_number() == "EXV202401150001"
        assert ops.next_expense_number() == "EXV202401150002"

    def test_set_active_and_credit_limit(self, operations, fleet):
        truck, _, client = fleet
        assert operations.set_active("TRUCK", truck.id, False).is_active is False
        updated = operations.update_credit_limit(client.id, Decimal("20000"), credit_days=10)
        assert (updated.credit_limit, updated.credit_days) == (Decimal("20000"), 10)
