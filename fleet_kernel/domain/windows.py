"""
Availability windows (``fleet_kernel.domain.windows``).

Responsibility
--------------
The time interval a trip occupies its truck and driver, and the overlap
test used to prevent double-booking.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Windows are closed intervals: ``[a, b]`` and ``[c, d]`` overlap iff
  ``a <= d and c <= b``.  A trip ending exactly when another starts
  conflicts with it.
* ``start <= end``.  A zero-length window is valid.
* An open-ended window (end is None) extends to +infinity.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from fleet_kernel.domain.trip_lifecycle import TripStatus
from fleet_kernel.exceptions import InvalidTimeWindowError


def require_aware(value: datetime, field: str) -> datetime:
    """Return ``value`` unchanged if it carries a timezone."""
    if value.tzinfo is None:
        raise InvalidTimeWindowError(str(value), "", f"{field} must be timezone-aware")
    return value


@dataclass(frozen=True)
class TimeWindow:
    """Closed time interval; ``end=None`` means open-ended."""

    start: datetime
    end: datetime | None

    def __post_init__(self) -> None:
        require_aware(self.start, "start")
        if self.end is not None:
            require_aware(self.end, "end")
        if self.end is not None and self.start > self.end:
            raise InvalidTimeWindowError(
                self.start.isoformat(), self.end.isoformat(), "start is after end"
            )

    @property
    def is_open_ended(self) -> bool:
        return self.end is None

    def overlaps(self, other: TimeWindow) -> bool:
        """Closed-interval overlap; touching endpoints count as overlapping."""
        starts_before_other_ends = other.end is None or self.start <= other.end
        other_starts_before_end = self.end is None or other.start <= self.end
        return starts_before_other_ends and other_starts_before_end


def occupied_window(
    status: TripStatus,
    planned_start: datetime,
    planned_end: datetime,
    actual_start: datetime | None,
    actual_end: datetime | None,
) -> TimeWindow:
    """
    The window a trip holds its truck and driver for.

    Actual times win over planned ones.  A RUNNING trip without an actual
    end is open-ended: a running truck is never free.
    """
    start = actual_start if actual_start is not None else planned_start
    if actual_end is not None:
        end: datetime | None = actual_end
    elif TripStatus(status) == TripStatus.RUNNING:
        end = None
    else:
        end = planned_end
    # A late start can push past the planned end; the window still begins at start
    if end is not None and end < start:
        end = start
    return TimeWindow(start, end)
