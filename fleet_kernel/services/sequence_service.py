"""
SequenceService -- date-scoped document numbers via locked counter rows.

Responsibility:
    Issues human-readable identifiers such as ``TR202401150001``: a prefix,
    today's date and a zero-padded counter that restarts every day.  Used for
    trip, invoice, payment and expense numbers.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by TripLifecycleService and LedgerService, and directly by
    FleetOperations.next_sequence_number.

Invariants enforced:
    - Uniqueness: one counter row per stem (prefix + date), incremented under
      a row lock (``SELECT ... FOR UPDATE``; BEGIN IMMEDIATE on SQLite).  Two
      concurrent callers never receive the same value.
    - No collisions with numbers issued before the counter existed: on first
      use of a stem the counter is seeded from the highest numeric suffix
      already stored under that stem in the registered number columns.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
    - ValueError: empty prefix or non-positive width.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import Base
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models import Invoice, Payment, Trip
from fleet_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row holds the last value issued for one stem (e.g. "TR20240115").
    """

    __tablename__ = "sequence_counters"

    stem: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService(BaseService):
    """
    Service for generating date-scoped sequence numbers.

    Guarantees:
        - ``next_number(p)`` called N times on one day returns N distinct
          values, 0001 upwards on an empty day.
        - Never calls ``session.commit()``.

    Usage:
        with session_scope() as session:
            number = SequenceService(session, clock).next_number("TR")
    """

    TRIP = "TR"
    INVOICE = "BL"
    PAYMENT = "PAY"

    # Columns holding numbers already issued under each prefix
    NUMBER_COLUMNS = {
        TRIP: (Trip.trip_number,),
        INVOICE: (Invoice.invoice_number,),
        PAYMENT: (Payment.payment_number,),
    }

    def next_number(self, prefix: str, date_format: str = "%Y%m%d", width: int = 4) -> str:
        """
        Issue the next number for today's stem.

        Preconditions:
            - The caller is within an active database transaction.

        Args:
            prefix: Document prefix, e.g. "TR".
            date_format: strftime format for the date part.
            width: Minimum digits of the counter part (zero-padded).

        Returns:
            ``prefix + today.strftime(date_format) + zero-padded counter``.
        """
        if not prefix:
            raise ValueError("Sequence prefix must not be empty")
        if width <= 0:
            raise ValueError("Sequence width must be positive")

        stem = f"{prefix}{self.clock.today().strftime(date_format)}"
        value = self._next_value(prefix, stem)
        number = f"{stem}{value:0{width}d}"
        logger.debug(
            "sequence_allocated",
            extra={"stem": stem, "value": value, "number": number},
        )
        return number

    def current_value(self, stem: str) -> int | None:
        """Last value issued for ``stem`` without incrementing, or None."""
        counter = self.session.execute(
            select(SequenceCounter).where(SequenceCounter.stem == stem)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def _lock_counter(self, stem: str) -> SequenceCounter | None:
        return self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.stem == stem)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _next_value(self, prefix: str, stem: str) -> int:
        counter = self._lock_counter(stem)

        if counter is None:
            # First use of this stem.  A concurrent caller may create the row
            # first; the savepoint keeps the rest of the transaction intact.
            savepoint = self.session.begin_nested()
            try:
                counter = SequenceCounter(stem=stem, current_value=self._highest_issued(prefix, stem))
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                logger.debug("sequence_counter_race_retry", extra={"stem": stem})
                savepoint.rollback()
                counter = self._lock_counter(stem)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()
        return counter.current_value

    def _highest_issued(self, prefix: str, stem: str) -> int:
        """Highest numeric suffix among stored numbers that start with ``stem``."""
        highest = 0
        for column in self.NUMBER_COLUMNS.get(prefix, ()):
            issued = self.session.execute(
                select(column).where(column.like(f"{stem}%"))
            ).scalars()
            for number in issued:
                suffix = number[len(stem):]
                if suffix.isdigit():
                    highest = max(highest, int(suffix))
        if highest:
            logger.info(
                "sequence_counter_seeded",
                extra={"stem": stem, "seed_value": highest},
            )
        return highest
