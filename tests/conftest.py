"""
Pytest fixtures for the fleet kernel test suite.

Provides:
- A fresh SQLite file database per test (engine + tables)
- Sessions, a deterministic clock and the kernel services over them
- Data factories for trucks, drivers, clients and trips
- Structured log capture

Each test gets its own database file under tmp_path, so concurrency tests
run real multi-connection races against BEGIN IMMEDIATE locking.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from itertools import count

import pytest

from fleet_kernel.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from fleet_kernel.domain.clock import DeterministicClock
from fleet_kernel.domain.dtos import TripRequest
from fleet_kernel.domain.policies import DEFAULT_POLICY
from fleet_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fleet_kernel.services.availability_service import AvailabilityService
from fleet_kernel.services.fleet_registry_service import FleetRegistryService
from fleet_kernel.services.ledger_service import LedgerService
from fleet_kernel.services.sequence_service import SequenceService
from fleet_kernel.services.trip_lifecycle_service import TripLifecycleService
from fleet_services.operations import FleetOperations

# Default test clock time: Monday 15 January 2024, 08:00 UTC
TEST_NOW = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)

TEST_ACTOR = "test-dispatcher"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fleet_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, trips):
            trips.create_trip(...)
            logs = captured_logs()
            assert any(r["message"] == "trip_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fleet_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """A fresh SQLite file database with all tables, disposed after the test."""
    eng = init_engine_from_url(
        f"sqlite:///{tmp_path / 'fleet.db'}",
        pool_size=10,
        max_overflow=20,
        busy_timeout_seconds=30.0,
    )
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(db_engine):
    """A session for direct service tests.  The test owns commit/rollback."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def clock():
    return DeterministicClock(TEST_NOW)


# =============================================================================
# Services over the test session
# =============================================================================


@pytest.fixture
def policy():
    return DEFAULT_POLICY


@pytest.fixture
def sequences(session, clock):
    return SequenceService(session, clock)


@pytest.fixture
def availability(session, clock):
    return AvailabilityService(session, clock)


@pytest.fixture
def registry(session, clock):
    return FleetRegistryService(session, clock)


@pytest.fixture
def ledger(session, clock, policy):
    return LedgerService(session, clock, policy)


@pytest.fixture
def trips(session, clock, policy):
    return TripLifecycleService(session, clock, policy)


@pytest.fixture
def operations(db_engine, clock, policy):
    """The transactional facade over the per-test database."""
    return FleetOperations(policy, clock)


# =============================================================================
# Data factories
# =============================================================================


_codes = count(1)


@pytest.fixture
def make_truck(registry):
    def _make(capacity_tons=Decimal("20"), current_odometer=Decimal("1000"), truck_number=None):
        number = truck_number or f"MH12AB{next(_codes):04d}"
        return registry.register_truck(number, capacity_tons, current_odometer, actor=TEST_ACTOR)

    return _make


@pytest.fixture
def make_driver(registry):
    def _make(name="Test Driver", driver_code=None):
        code = driver_code or f"DRV{next(_codes):04d}"
        return registry.register_driver(code, name, actor=TEST_ACTOR)

    return _make


@pytest.fixture
def make_client(registry):
    def _make(credit_limit=Decimal("0"), credit_days=30, client_code=None, name="Test Client"):
        code = client_code or f"CL{next(_codes):04d}"
        return registry.register_client(code, name, credit_limit, credit_days, actor=TEST_ACTOR)

    return _make


@pytest.fixture
def truck(make_truck):
    return make_truck()


@pytest.fixture
def driver(make_driver):
    return make_driver()


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def trip_request(truck, driver, client):
    """Build a TripRequest for the default truck, driver and client.

    Times are hours from the test clock's now.
    """

    def _build(start_hours=2, end_hours=10, **overrides):
        fields = dict(
            truck_id=truck.id,
            driver_id=driver.id,
            client_id=client.id,
            source_location="Pune",
            destination_location="Mumbai",
            planned_start=TEST_NOW + timedelta(hours=start_hours),
            planned_end=TEST_NOW + timedelta(hours=end_hours),
            trip_charges=Decimal("10000"),
            advance_amount=Decimal("0"),
        )
        fields.update(overrides)
        return TripRequest(**fields)

    return _build


@pytest.fixture
def planned_trip(trips, trip_request):
    return trips.create_trip(trip_request(), actor=TEST_ACTOR)


@pytest.fixture
def running_trip(trips, planned_trip):
    return trips.start_trip(planned_trip.id, actor=TEST_ACTOR)
