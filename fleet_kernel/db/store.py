"""
Module: fleet_kernel.db.store
Responsibility: Generic record store over a SQLAlchemy session: get by id,
    get with a row lock, save, and filtered finds.  Services reach every
    related record (truck of a trip, client of an invoice) through this
    store by foreign key; models keep no back-references.
Architecture position: Kernel > DB.  May import from db/base.py, models/
    and exceptions.  Used by services/ and selectors/.

Invariants enforced:
    - get() never returns None: a missing record raises the model's
      NotFoundError subclass.
    - get_for_update() always re-reads the row from the database
      (populate_existing) so a locked record is never a stale identity-map
      copy.
    - The store takes no lock on its own.  Services call get_for_update()
      in a fixed order per operation (truck before driver on creation;
      trip, truck, then client on completion; invoice before client on
      payment; payment, invoice, then client on reversal), so concurrent
      units of work cannot deadlock.
    - save() flushes but never commits.

Failure modes:
    - *NotFoundError for a missing id.
    - OptimisticLockError when a versioned row was changed underneath
      (StaleDataError on flush).
"""

from typing import Any, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fleet_kernel.db.base import Base
from fleet_kernel.exceptions import (
    ClientNotFoundError,
    DriverNotFoundError,
    InvoiceNotFoundError,
    NotFoundError,
    OptimisticLockError,
    PaymentNotFoundError,
    TripNotFoundError,
    TruckNotFoundError,
)
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models import Client, Driver, Invoice, Payment, Trip, Truck

logger = get_logger("db.store")

ModelType = TypeVar("ModelType", bound=Base)

_NOT_FOUND: dict[type, type[NotFoundError]] = {
    Truck: TruckNotFoundError,
    Driver: DriverNotFoundError,
    Client: ClientNotFoundError,
    Trip: TripNotFoundError,
    Invoice: InvoiceNotFoundError,
    Payment: PaymentNotFoundError,
}


def _as_uuid(record_id: UUID | str) -> UUID:
    return record_id if isinstance(record_id, UUID) else UUID(str(record_id))


class RecordStore:
    """
    Record access for one unit of work.

    Contract:
        Wraps the caller's session.  The caller owns commit and rollback
        (see db.engine.session_scope).
    """

    def __init__(self, session: Session):
        self.session = session

    def _missing(self, model: type, record_id: Any) -> NotFoundError:
        error_cls = _NOT_FOUND.get(model, NotFoundError)
        return error_cls(str(record_id))

    def get(self, model: type[ModelType], record_id: UUID | str) -> ModelType:
        """
        Get a record by id.

        Raises:
            NotFoundError subclass for the model if the id is unknown or
            not a valid UUID.
        """
        try:
            key = _as_uuid(record_id)
        except ValueError:
            raise self._missing(model, record_id) from None
        record = self.session.get(model, key)
        if record is None:
            raise self._missing(model, record_id)
        return record

    def get_for_update(self, model: type[ModelType], record_id: UUID | str) -> ModelType:
        """Get a record and hold a row lock on it until the unit of work ends."""
        try:
            key = _as_uuid(record_id)
        except ValueError:
            raise self._missing(model, record_id) from None
        record = self.session.execute(
            select(model)
            .where(model.id == key)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise self._missing(model, record_id)
        return record

    def save(self, record: ModelType) -> ModelType:
        """
        Insert or update a record and flush it.

        An inserted record gets its id (uuid4) on flush.

        Raises:
            OptimisticLockError: The row's version moved since it was read.
        """
        self.session.add(record)
        self.flush()
        return record

    def flush(self) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning("optimistic_lock_conflict", extra={"detail": str(exc)})
            # Flush failures leave the session unusable; the unit of work must roll back
            entity = self._stale_entity()
            raise OptimisticLockError(*entity) from exc

    def _stale_entity(self) -> tuple[str, str]:
        for obj in self.session.dirty:
            if isinstance(obj, Trip):
                return "Trip", str(obj.id)
        return "record", "unknown"

    def find_where(
        self,
        model: type[ModelType],
        *criteria: Any,
        order_by: Sequence[Any] | Any | None = None,
    ) -> list[ModelType]:
        """Return all records of ``model`` matching every criterion."""
        stmt = select(model).where(*criteria)
        if order_by is not None:
            if isinstance(order_by, (list, tuple)):
                stmt = stmt.order_by(*order_by)
            else:
                stmt = stmt.order_by(order_by)
        return list(self.session.execute(stmt).scalars().all())

    def find_one(self, model: type[ModelType], *criteria: Any) -> ModelType | None:
        """Return the single record matching the criteria, or None."""
        return self.session.execute(select(model).where(*criteria)).scalar_one_or_none()
