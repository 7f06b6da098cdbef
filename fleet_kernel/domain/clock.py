"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that domain and service code
    never call ``datetime.now()`` or ``date.today()`` directly.  The start
    grace period, sequence stems, invoice dates and aging all read "now"
    through this interface.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Failure modes:
    - None.  DeterministicClock never raises.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time must receive a Clock instance
        via constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``today()`` is the UTC calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...

    def today(self) -> date:
        """Get the current UTC calendar date."""
        return self.now().date()


class SystemClock(Clock):
    """Production clock that returns actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        fixed_time = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        if fixed_time.tzinfo is None:
            raise ValueError("DeterministicClock requires an aware datetime")
        self._fixed_time = fixed_time.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._fixed_time

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        if time.tzinfo is None:
            raise ValueError("DeterministicClock requires an aware datetime")
        self._fixed_time = time.astimezone(timezone.utc)

    def advance(self, seconds: int = 0, *, minutes: int = 0, hours: int = 0, days: int = 0) -> datetime:
        """Advance the clock and return the new time."""
        self._fixed_time += timedelta(seconds=seconds, minutes=minutes, hours=hours, days=days)
        return self._fixed_time
