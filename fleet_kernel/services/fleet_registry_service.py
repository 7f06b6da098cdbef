"""
Service layer for fleet master data: trucks, drivers and clients.

Registration, activation and credit terms.  Returns TruckInfo, DriverInfo
and ClientInfo DTOs instead of ORM entities.

outstanding_balance is NOT writable here; only LedgerService changes it.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fleet_kernel.db.types import money_from_value
from fleet_kernel.domain.dtos import ClientInfo, DriverInfo, ResourceKind, TruckInfo
from fleet_kernel.exceptions import InvalidAmountError, ValidationError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models import Client, Driver, Truck
from fleet_kernel.selectors.ledger_selector import client_info
from fleet_kernel.services.base import BaseService

logger = get_logger("services.fleet_registry")

ZERO = Decimal("0")


def truck_info(truck: Truck) -> TruckInfo:
    return TruckInfo(
        id=truck.id,
        truck_number=truck.truck_number,
        capacity_tons=truck.capacity_tons,
        is_active=truck.is_active,
        current_odometer=truck.current_odometer,
    )


def driver_info(driver: Driver) -> DriverInfo:
    return DriverInfo(
        id=driver.id,
        driver_code=driver.driver_code,
        name=driver.name,
        is_active=driver.is_active,
    )


class FleetRegistryService(BaseService):
    """
    Service for registering and maintaining trucks, drivers and clients.

    Deactivating a resource only blocks new assignments; trips already
    planned keep their truck, driver and client.
    """

    def _require_unused(self, model, column, code: str) -> None:
        if self.store.find_one(model, column == code) is not None:
            raise ValidationError(f"{model.__name__} {code} is already registered")

    def register_truck(
        self,
        truck_number: str,
        capacity_tons,
        current_odometer=ZERO,
        actor: str = "system",
    ) -> TruckInfo:
        """
        Register a truck.

        Raises:
            InvalidAmountError: capacity not positive or odometer negative.
        """
        capacity = money_from_value(capacity_tons, "capacity_tons")
        odometer = money_from_value(current_odometer, "current_odometer")
        if capacity <= ZERO:
            raise InvalidAmountError("capacity_tons", str(capacity), "must be positive")
        if odometer < ZERO:
            raise InvalidAmountError("current_odometer", str(odometer), "cannot be negative")
        self._require_unused(Truck, Truck.truck_number, truck_number)

        truck = self.store.save(
            Truck(
                truck_number=truck_number,
                capacity_tons=capacity,
                current_odometer=odometer,
                created_by=actor,
            )
        )
        logger.info("truck_registered", extra={"truck_id": truck.id, "truck_number": truck_number})
        return truck_info(truck)

    def register_driver(self, driver_code: str, name: str, actor: str = "system") -> DriverInfo:
        self._require_unused(Driver, Driver.driver_code, driver_code)
        driver = self.store.save(Driver(driver_code=driver_code, name=name, created_by=actor))
        logger.info("driver_registered", extra={"driver_id": driver.id, "driver_code": driver_code})
        return driver_info(driver)

    def register_client(
        self,
        client_code: str,
        name: str,
        credit_limit=ZERO,
        credit_days: int = 30,
        actor: str = "system",
    ) -> ClientInfo:
        """
        Register a client with an opening balance of zero.

        Raises:
            InvalidAmountError: negative credit limit.
            ValidationError: negative credit days.
        """
        limit = money_from_value(credit_limit, "credit_limit")
        if limit < ZERO:
            raise InvalidAmountError("credit_limit", str(limit), "cannot be negative")
        if credit_days < 0:
            raise ValidationError(f"credit_days cannot be negative: {credit_days}")
        self._require_unused(Client, Client.client_code, client_code)

        client = self.store.save(
            Client(
                client_code=client_code,
                name=name,
                credit_limit=limit,
                credit_days=credit_days,
                outstanding_balance=ZERO,
                created_by=actor,
            )
        )
        logger.info("client_registered", extra={"client_id": client.id, "client_code": client_code})
        return client_info(client)

    def set_active(
        self,
        kind: str,
        record_id: UUID,
        is_active: bool,
        actor: str = "system",
    ) -> TruckInfo | DriverInfo | ClientInfo:
        """
        Activate or deactivate a truck, driver or client.

        ``kind`` is "TRUCK", "DRIVER" or "CLIENT".
        """
        models = {
            ResourceKind.TRUCK.value: (Truck, truck_info),
            ResourceKind.DRIVER.value: (Driver, driver_info),
            "CLIENT": (Client, client_info),
        }
        try:
            model, to_dto = models[str(getattr(kind, "value", kind)).upper()]
        except KeyError:
            raise ValidationError(f"Unknown record kind: {kind}") from None

        record = self.store.get_for_update(model, record_id)
        record.is_active = is_active
        record.updated_by = actor
        self.store.flush()
        logger.info(
            "record_activation_changed",
            extra={"kind": model.__name__, "record_id": record.id, "is_active": is_active},
        )
        return to_dto(record)

    def update_credit_limit(
        self,
        client_id: UUID,
        credit_limit,
        credit_days: int | None = None,
        actor: str = "system",
    ) -> ClientInfo:
        """
        Change a client's credit limit (and optionally its payment terms).

        Lowering the limit below the current outstanding balance is allowed;
        it only affects future credit checks.
        """
        limit = money_from_value(credit_limit, "credit_limit")
        if limit < ZERO:
            raise InvalidAmountError("credit_limit", str(limit), "cannot be negative")
        if credit_days is not None and credit_days < 0:
            raise ValidationError(f"credit_days cannot be negative: {credit_days}")

        client = self.store.get_for_update(Client, client_id)
        old_limit = client.credit_limit
        client.credit_limit = limit
        if credit_days is not None:
            client.credit_days = credit_days
        client.updated_by = actor
        self.store.flush()
        logger.info(
            "client_credit_terms_updated",
            extra={
                "client_id": client.id,
                "old_credit_limit": old_limit,
                "new_credit_limit": limit,
                "credit_days": client.credit_days,
            },
        )
        return client_info(client)

    def get_truck(self, truck_id: UUID) -> TruckInfo:
        return truck_info(self.store.get(Truck, truck_id))

    def get_driver(self, driver_id: UUID) -> DriverInfo:
        return driver_info(self.store.get(Driver, driver_id))

    def get_client(self, client_id: UUID) -> ClientInfo:
        return client_info(self.store.get(Client, client_id))
