"""
AvailabilityService -- double-booking prevention for trucks and drivers.

Responsibility:
    Decides whether a truck or driver is free across a time window, given
    every PLANNED or RUNNING trip that already holds it.

Architecture position:
    Kernel > Services.  Reads through TripSelector; the overlap rule itself
    lives in domain/windows.py.  Called by TripLifecycleService (create and
    reschedule) and by FleetOperations (check_availability and the
    available_trucks / available_drivers lookups).

Invariants enforced:
    - Closed-interval overlap: touching endpoints conflict.
    - COMPLETED and CANCELLED trips never conflict.
    - A RUNNING trip without an actual end blocks its resources indefinitely.
    - The check is read-only.  Atomicity with the insert that follows is the
      caller's job: TripLifecycleService locks the truck and driver rows
      before checking.

Failure modes:
    - TruckNotFoundError / DriverNotFoundError for an unknown resource.
    - InvalidTimeWindowError when start > end.
    - ResourceUnavailableError from assert_available().
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fleet_kernel.db.types import money_from_value
from fleet_kernel.domain.dtos import DriverInfo, ResourceKind, TripInfo, TruckInfo
from fleet_kernel.domain.windows import TimeWindow, occupied_window
from fleet_kernel.exceptions import InvalidAmountError, ResourceUnavailableError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models import Driver, Truck
from fleet_kernel.selectors.trip_selector import TripSelector
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.fleet_registry_service import driver_info, truck_info

logger = get_logger("services.availability")

ZERO = Decimal("0")


class AvailabilityService(BaseService):
    """
    Availability checker for trucks and drivers.

    Usage:
        service = AvailabilityService(session)
        if not service.is_available(truck_id, ResourceKind.TRUCK, start, end):
            ...
    """

    def find_conflicts(
        self,
        resource_id: UUID,
        kind: ResourceKind,
        window_start: datetime,
        window_end: datetime,
        exclude_trip_id: UUID | None = None,
    ) -> list[TripInfo]:
        """
        Trips that hold the resource over any part of the window.

        ``exclude_trip_id`` ignores one trip (the one being edited); a trip
        that does not hold the resource is simply not excluded from anything.
        """
        window = TimeWindow(window_start, window_end)
        return self._conflicts(resource_id, kind, window, exclude_trip_id)

    def _conflicts(
        self,
        resource_id: UUID,
        kind: ResourceKind,
        window: TimeWindow,
        exclude_trip_id: UUID | None = None,
    ) -> list[TripInfo]:
        candidates = TripSelector(self.session).active_trips_for(kind, resource_id, exclude_trip_id)
        conflicts = [
            trip
            for trip in candidates
            if window.overlaps(
                occupied_window(
                    trip.status,
                    trip.planned_start,
                    trip.planned_end,
                    trip.actual_start,
                    trip.actual_end,
                )
            )
        ]
        logger.debug(
            "availability_checked",
            extra={
                "resource_kind": ResourceKind(kind).value,
                "resource_id": str(resource_id),
                "window_start": window.start,
                "window_end": window.end,
                "candidate_count": len(candidates),
                "conflict_count": len(conflicts),
            },
        )
        return conflicts

    def is_available(
        self,
        resource_id: UUID,
        kind: ResourceKind,
        window_start: datetime,
        window_end: datetime,
        exclude_trip_id: UUID | None = None,
    ) -> bool:
        return not self.find_conflicts(resource_id, kind, window_start, window_end, exclude_trip_id)

    def assert_available(
        self,
        resource_id: UUID,
        kind: ResourceKind,
        window_start: datetime,
        window_end: datetime,
        exclude_trip_id: UUID | None = None,
    ) -> None:
        """
        Raises:
            ResourceUnavailableError: carrying the conflicting trip numbers.
        """
        conflicts = self.find_conflicts(resource_id, kind, window_start, window_end, exclude_trip_id)
        if conflicts:
            numbers = [t.trip_number for t in conflicts]
            logger.info(
                "resource_unavailable",
                extra={
                    "resource_kind": ResourceKind(kind).value,
                    "resource_id": str(resource_id),
                    "conflicting_trips": numbers,
                },
            )
            raise ResourceUnavailableError(
                kind=ResourceKind(kind).value,
                resource_id=str(resource_id),
                window_start=window_start.isoformat(),
                window_end=window_end.isoformat(),
                conflicting_trip_numbers=numbers,
            )

    def available_trucks(
        self,
        window_start: datetime,
        window_end: datetime,
        required_capacity=None,
    ) -> list[TruckInfo]:
        """
        Active trucks free across the window, smallest sufficient capacity
        first.

        Raises:
            InvalidAmountError: required capacity not positive.
        """
        window = TimeWindow(window_start, window_end)
        criteria = [Truck.is_active.is_(True)]
        if required_capacity is not None:
            capacity = money_from_value(required_capacity, "required_capacity")
            if capacity <= ZERO:
                raise InvalidAmountError("required_capacity", str(capacity), "must be positive")
            criteria.append(Truck.capacity_tons >= capacity)

        trucks = self.store.find_where(
            Truck, *criteria, order_by=(Truck.capacity_tons, Truck.truck_number)
        )
        return [
            truck_info(truck)
            for truck in trucks
            if not self._conflicts(truck.id, ResourceKind.TRUCK, window)
        ]

    def available_drivers(self, window_start: datetime, window_end: datetime) -> list[DriverInfo]:
        """Active drivers free across the window, by driver code."""
        window = TimeWindow(window_start, window_end)
        drivers = self.store.find_where(
            Driver, Driver.is_active.is_(True), order_by=Driver.driver_code
        )
        return [
            driver_info(driver)
            for driver in drivers
            if not self._conflicts(driver.id, ResourceKind.DRIVER, window)
        ]

    def suggest_truck(
        self, window_start: datetime, window_end: datetime, load_weight
    ) -> TruckInfo | None:
        """The smallest free truck that carries ``load_weight``, or None."""
        trucks = self.available_trucks(window_start, window_end, load_weight)
        return trucks[0] if trucks else None
