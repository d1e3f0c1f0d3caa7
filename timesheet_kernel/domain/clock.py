"""
Clock -- injectable time source.

Responsibility:
    Services never call ``datetime.now()`` or ``date.today()`` directly.
    They receive a Clock and ask it for the current instant or for "today"
    as a calendar date in the system's reference timezone.

Architecture position:
    Kernel > Domain -- pure, zero I/O (except SystemClock, the one sanctioned
    read of wall-clock time).

Invariants enforced:
    - "Today" is always computed in an explicit timezone.  Date windows and
      daily caps compare calendar days, never instants.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone, tzinfo

from timesheet_kernel.domain.calendar_date import CalendarDate


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``today(tz)`` returns the calendar date of ``now()`` in ``tz``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time (timezone-aware, UTC)."""
        ...

    def today(self, tz: tzinfo = timezone.utc) -> CalendarDate:
        """Current calendar date in ``tz``."""
        return CalendarDate.from_date(self.now().astimezone(tz).date())


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value until ``advance()`` or
          ``set_time()`` is called.
        - ``advance_days()`` moves the clock by whole days.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 7, 4, 12, 0, 0, tzinfo=timezone.utc
        )
        if self._fixed_time.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware datetime")
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return (self._fixed_time + self._offset).astimezone(timezone.utc)

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: int = 1) -> None:
        self._offset += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._offset += timedelta(days=days)

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
