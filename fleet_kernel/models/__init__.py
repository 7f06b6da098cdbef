"""ORM models for the fleet kernel."""

from fleet_kernel.models.client import Client
from fleet_kernel.models.fleet import Driver, Truck
from fleet_kernel.models.invoice import Invoice
from fleet_kernel.models.payment import Payment
from fleet_kernel.models.trip import Trip, TripEvent

__all__ = [
    "Client",
    "Driver",
    "Invoice",
    "Payment",
    "Trip",
    "TripEvent",
    "Truck",
]
