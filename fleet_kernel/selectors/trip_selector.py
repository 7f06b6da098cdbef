"""
Module: fleet_kernel.selectors.trip_selector
Responsibility: Read-only trip queries: trip snapshots, the trips that
    currently hold a truck or driver, trip history and trip profitability.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - History is returned in seq order, complete and untruncated.
    - Only PLANNED and RUNNING trips are returned as resource holders.
"""

from decimal import Decimal
from uuid import UUID

from fleet_kernel.db.types import round_money
from fleet_kernel.domain.dtos import (
    ResourceKind,
    TripEventInfo,
    TripInfo,
    TripProfitability,
)
from fleet_kernel.domain.trip_lifecycle import ACTIVE_STATUSES, TripStatus
from fleet_kernel.models import Driver, Trip, TripEvent, Truck
from fleet_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def trip_info(trip: Trip) -> TripInfo:
    """Convert an ORM Trip to a TripInfo DTO."""
    return TripInfo(
        id=trip.id,
        trip_number=trip.trip_number,
        truck_id=trip.truck_id,
        driver_id=trip.driver_id,
        client_id=trip.client_id,
        source_location=trip.source_location,
        destination_location=trip.destination_location,
        planned_start=trip.planned_start,
        planned_end=trip.planned_end,
        actual_start=trip.actual_start,
        actual_end=trip.actual_end,
        status=TripStatus(trip.status),
        trip_charges=trip.trip_charges,
        advance_amount=trip.advance_amount,
        distance_km=trip.distance_km,
        load_weight_tons=trip.load_weight_tons,
        fuel_consumed=trip.fuel_consumed,
        fuel_cost=trip.fuel_cost,
        toll_charges=trip.toll_charges,
        other_expenses=trip.other_expenses,
        auto_invoice=trip.auto_invoice,
        cancellation_reason=trip.cancellation_reason,
        version=trip.version,
    )


def trip_event_info(event: TripEvent) -> TripEventInfo:
    return TripEventInfo(
        seq=event.seq,
        occurred_at=event.occurred_at,
        actor=event.actor,
        event=event.event,
        from_status=event.from_status,
        to_status=event.to_status,
        remarks=event.remarks,
        detail=dict(event.detail or {}),
    )


class TripSelector(BaseSelector):
    """Selector for trip queries."""

    _RESOURCE_COLUMNS = {
        ResourceKind.TRUCK: (Truck, Trip.truck_id),
        ResourceKind.DRIVER: (Driver, Trip.driver_id),
    }

    def get(self, trip_id: UUID) -> TripInfo:
        """
        Raises:
            TripNotFoundError: If the trip does not exist.
        """
        return trip_info(self.store.get(Trip, trip_id))

    def active_trips_for(
        self,
        kind: ResourceKind,
        resource_id: UUID,
        exclude_trip_id: UUID | None = None,
    ) -> list[TripInfo]:
        """
        PLANNED and RUNNING trips holding the given truck or driver.

        Raises:
            TruckNotFoundError / DriverNotFoundError: unknown resource.
            ValueError: unknown resource kind.
        """
        model, column = self._RESOURCE_COLUMNS[ResourceKind(kind)]
        self.store.get(model, resource_id)

        criteria = [column == resource_id, Trip.status.in_(tuple(ACTIVE_STATUSES))]
        if exclude_trip_id is not None:
            criteria.append(Trip.id != exclude_trip_id)
        trips = self.store.find_where(Trip, *criteria, order_by=Trip.planned_start)
        return [trip_info(t) for t in trips]

    def history(self, trip_id: UUID) -> list[TripEventInfo]:
        """Full history of a trip, oldest first."""
        self.store.get(Trip, trip_id)
        events = self.store.find_where(
            TripEvent, TripEvent.trip_id == trip_id, order_by=TripEvent.seq
        )
        return [trip_event_info(e) for e in events]

    def profitability(self, trip_id: UUID) -> TripProfitability:
        """Charges against recorded expenses for one trip."""
        trip = self.store.get(Trip, trip_id)
        total_expenses = trip.fuel_cost + trip.toll_charges + trip.other_expenses
        net_profit = trip.trip_charges - total_expenses
        margin = round_money(net_profit / trip.trip_charges * HUNDRED)

        fuel_efficiency = None
        if trip.distance_km and trip.fuel_consumed and trip.fuel_consumed > ZERO:
            fuel_efficiency = round_money(trip.distance_km / trip.fuel_consumed)

        return TripProfitability(
            trip_id=trip.id,
            trip_number=trip.trip_number,
            status=TripStatus(trip.status),
            trip_charges=trip.trip_charges,
            fuel_cost=trip.fuel_cost,
            toll_charges=trip.toll_charges,
            other_expenses=trip.other_expenses,
            total_expenses=total_expenses,
            net_profit=net_profit,
            profit_margin_pct=margin,
            fuel_efficiency=fuel_efficiency,
        )
