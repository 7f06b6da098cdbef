"""
Kernel services: the only writers of trips, invoices, payments and counters.

Each service receives the caller's session, flushes inside it and never
commits.  FleetOperations (fleet_services) owns the unit of work.
"""

from fleet_kernel.services.availability_service import AvailabilityService
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.fleet_registry_service import FleetRegistryService
from fleet_kernel.services.ledger_service import LedgerService
from fleet_kernel.services.sequence_service import SequenceCounter, SequenceService
from fleet_kernel.services.trip_lifecycle_service import TripLifecycleService

__all__ = [
    "AvailabilityService",
    "BaseService",
    "FleetRegistryService",
    "LedgerService",
    "SequenceCounter",
    "SequenceService",
    "TripLifecycleService",
]
