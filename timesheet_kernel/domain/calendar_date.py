"""
CalendarDate -- a day on the calendar with no time-of-day and no timezone.

Responsibility:
    Time entries and periods are keyed by calendar day.  Callers supply the
    day as separate (year, month, day) integers; this type validates them
    and is the only date representation the core reasons about.  Conversion
    to ``datetime.date`` happens at the storage boundary.

Architecture position:
    Kernel > Domain -- pure value object, zero I/O.

Failure modes:
    - InvalidCalendarDateError for non-integer components or days that do
      not exist (2025-02-29, month 13, day 0).
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from timesheet_kernel.exceptions import InvalidCalendarDateError


@dataclass(frozen=True, order=True)
class CalendarDate:
    """Validated (year, month, day) triple.  Ordered chronologically."""

    year: int
    month: int
    day: int

    def __post_init__(self) -> None:
        for part in (self.year, self.month, self.day):
            if isinstance(part, bool) or not isinstance(part, int):
                raise InvalidCalendarDateError(self.year, self.month, self.day)
        try:
            date(self.year, self.month, self.day)
        except ValueError as exc:
            raise InvalidCalendarDateError(self.year, self.month, self.day) from exc

    @classmethod
    def of(cls, year: int, month: int, day: int) -> "CalendarDate":
        return cls(year, month, day)

    @classmethod
    def from_date(cls, value: date) -> "CalendarDate":
        return cls(value.year, value.month, value.day)

    @classmethod
    def from_iso(cls, value: str) -> "CalendarDate":
        """Parse ``YYYY-MM-DD``."""
        try:
            parsed = date.fromisoformat(value)
        except (TypeError, ValueError) as exc:
            raise InvalidCalendarDateError(value, "", "") from exc
        return cls.from_date(parsed)

    def to_date(self) -> date:
        return date(self.year, self.month, self.day)

    def isoformat(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    def __str__(self) -> str:
        return self.isoformat()

    def days_until(self, other: "CalendarDate") -> int:
        """Whole days from self to ``other`` (negative when ``other`` is earlier)."""
        return (other.to_date() - self.to_date()).days

    def add_days(self, days: int) -> "CalendarDate":
        return CalendarDate.from_date(self.to_date() + timedelta(days=days))

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    def last_of_month(self) -> "CalendarDate":
        return CalendarDate(self.year, self.month, self.days_in_month)
