"""
Module: fleet_kernel.domain.aging
Responsibility:
    Classify unpaid invoice balances into aging buckets by elapsed days
    since the invoice date, and summarize them per bucket.

Architecture position:
    Kernel > Domain -- pure calculation layer, zero I/O.  The as-of date is
    always passed in; this module never reads a clock.

Invariants enforced:
    - Buckets are computed on demand and never stored.
    - Decimal-only arithmetic for all amounts.
    - Deterministic classification for identical inputs.

Failure modes:
    - ValueError when bucket boundaries are not three strictly increasing
      positive integers.

Usage:
    from fleet_kernel.domain.aging import AgingCalculator, AgingBucket
    from datetime import date

    calculator = AgingCalculator()
    age = calculator.calculate_age(date(2024, 1, 15), date(2024, 2, 15))  # 31
    calculator.classify(age)  # AgingBucket.DAYS_30
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Sequence
from uuid import UUID

from fleet_kernel.logging_config import get_logger

logger = get_logger("domain.aging")

ZERO = Decimal("0")


class AgingBucket(str, Enum):
    CURRENT = "CURRENT"
    DAYS_30 = "DAYS_30"
    DAYS_60 = "DAYS_60"
    DAYS_90_PLUS = "DAYS_90_PLUS"


@dataclass(frozen=True)
class AgeRange:
    """
    Inclusive day range mapped to a bucket.

    Guarantees:
        - min_days >= 0.
        - max_days >= min_days (when bounded).
    """

    bucket: AgingBucket
    min_days: int
    max_days: int | None  # None = unbounded

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        return self.max_days is None or age_days <= self.max_days


def ranges_from_boundaries(boundaries: Sequence[int] = (30, 60, 90)) -> tuple[AgeRange, ...]:
    """
    Build the four bucket ranges from three upper boundaries.

    ``(30, 60, 90)`` gives CURRENT 0-30, DAYS_30 31-60, DAYS_60 61-90 and
    DAYS_90_PLUS 91 and over.
    """
    bounds = tuple(boundaries)
    if len(bounds) != 3 or any(b <= 0 for b in bounds) or list(bounds) != sorted(set(bounds)):
        raise ValueError(
            f"Aging boundaries must be three strictly increasing positive integers, got {bounds}"
        )
    first, second, third = bounds
    return (
        AgeRange(AgingBucket.CURRENT, 0, first),
        AgeRange(AgingBucket.DAYS_30, first + 1, second),
        AgeRange(AgingBucket.DAYS_60, second + 1, third),
        AgeRange(AgingBucket.DAYS_90_PLUS, third + 1, None),
    )


STANDARD_RANGES: tuple[AgeRange, ...] = ranges_from_boundaries()


@dataclass(frozen=True)
class AgedInvoice:
    """An unpaid invoice balance with its age classification."""

    invoice_id: UUID
    invoice_number: str
    client_id: UUID
    invoice_date: date
    due_date: date | None
    balance_amount: Decimal
    age_days: int
    bucket: AgingBucket

    @property
    def days_overdue(self) -> int:
        """Days past the due date, 0 if not yet due or no due date."""
        if self.due_date is None:
            return 0
        return max(0, self.age_days - (self.due_date - self.invoice_date).days)

    @property
    def is_overdue(self) -> bool:
        return self.days_overdue > 0


@dataclass(frozen=True)
class AgingReport:
    """
    Aging snapshot as of a date.

    Guarantees:
        - ``total_amount`` equals the sum of all item balances.
        - ``totals_by_bucket`` has an entry for every bucket, zero if empty.
    """

    as_of_date: date
    items: tuple[AgedInvoice, ...]

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def total_amount(self) -> Decimal:
        return sum((i.balance_amount for i in self.items), ZERO)

    @property
    def totals_by_bucket(self) -> dict[AgingBucket, Decimal]:
        totals = {bucket: ZERO for bucket in AgingBucket}
        for item in self.items:
            totals[item.bucket] += item.balance_amount
        return totals

    def items_in_bucket(self, bucket: AgingBucket) -> tuple[AgedInvoice, ...]:
        return tuple(i for i in self.items if i.bucket == bucket)

    def overdue_items(self) -> tuple[AgedInvoice, ...]:
        return tuple(i for i in self.items if i.is_overdue)


class AgingCalculator:
    """
    Calculate aging for invoices.

    Contract:
        Pure functions -- no I/O, no database access.
    """

    def __init__(self, ranges: Sequence[AgeRange] = STANDARD_RANGES):
        self._ranges = tuple(ranges)

    def calculate_age(self, invoice_date: date, as_of_date: date) -> int:
        """Age in days; negative when the invoice is dated in the future."""
        return (as_of_date - invoice_date).days

    def classify(self, age_days: int) -> AgingBucket:
        """
        Map an age to its bucket.  Negative ages fall into CURRENT.

        Raises:
            ValueError: If the configured ranges leave a gap.
        """
        if age_days < 0:
            return self._ranges[0].bucket
        for age_range in self._ranges:
            if age_range.contains(age_days):
                return age_range.bucket
        logger.warning("age_classification_no_bucket", extra={"age_days": age_days})
        raise ValueError(f"Age {age_days} does not fit any bucket")

    def age_invoice(
        self,
        invoice_id: UUID,
        invoice_number: str,
        client_id: UUID,
        invoice_date: date,
        due_date: date | None,
        balance_amount: Decimal,
        as_of_date: date,
    ) -> AgedInvoice:
        age_days = self.calculate_age(invoice_date, as_of_date)
        return AgedInvoice(
            invoice_id=invoice_id,
            invoice_number=invoice_number,
            client_id=client_id,
            invoice_date=invoice_date,
            due_date=due_date,
            balance_amount=balance_amount,
            age_days=age_days,
            bucket=self.classify(age_days),
        )

    def build_report(self, items: Sequence[AgedInvoice], as_of_date: date) -> AgingReport:
        report = AgingReport(
            as_of_date=as_of_date,
            items=tuple(sorted(items, key=lambda i: (i.invoice_date, i.invoice_number))),
        )
        logger.debug(
            "aging_report_built",
            extra={"as_of_date": as_of_date, "item_count": report.item_count},
        )
        return report
