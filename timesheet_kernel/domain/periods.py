"""
PeriodResolver -- half-month time period buckets.

Responsibility:
    Maps a calendar date to the bi-weekly period that contains it: days
    1-15 are period 1, day 16 through the last day of the month is period 2.
    Also derives a period's type from its span and enumerates the periods
    of a year.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  Find-or-create of the
    persisted TimePeriod row lives in the store and TimePeriodService.

Invariants enforced:
    - period_number == 1  <=>  day <= 15.
    - Period 2 ends on the true last day of the month (28/29/30/31).
    - A period's dates are a function of (year, month, period_number) only.
"""

from dataclasses import dataclass
from enum import Enum

from timesheet_kernel.domain.calendar_date import CalendarDate

FIRST_PERIOD_LAST_DAY = 15

# Spans longer than this many days are bi-weekly.
WEEKLY_MAX_SPAN_DAYS = 10


class PeriodType(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"


@dataclass(frozen=True)
class ResolvedPeriod:
    """The bucket a date falls in.  Identified by (year, month, period_number)."""

    year: int
    month: int
    period_number: int
    start_date: CalendarDate
    end_date: CalendarDate

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.year, self.month, self.period_number)

    @property
    def period_type(self) -> PeriodType:
        return derive_period_type(self.start_date, self.end_date)

    def contains(self, value: CalendarDate) -> bool:
        return self.start_date <= value <= self.end_date

    @property
    def label(self) -> str:
        return f"{self.year}-{self.month:02d} P{self.period_number}"


def period_bounds(year: int, month: int, period_number: int) -> ResolvedPeriod:
    """Compute the dates of period ``period_number`` (1 or 2) of a month.

    Raises:
        ValueError: period_number is not 1 or 2.
        InvalidCalendarDateError: year/month do not form a valid month.
    """
    if period_number == 1:
        start = CalendarDate(year, month, 1)
        end = CalendarDate(year, month, FIRST_PERIOD_LAST_DAY)
    elif period_number == 2:
        start = CalendarDate(year, month, FIRST_PERIOD_LAST_DAY + 1)
        end = start.last_of_month()
    else:
        raise ValueError(f"period_number must be 1 or 2, got {period_number!r}")
    return ResolvedPeriod(year, month, period_number, start, end)


def resolve_period(value: CalendarDate) -> ResolvedPeriod:
    """Return the half-month period containing ``value``."""
    period_number = 1 if value.day <= FIRST_PERIOD_LAST_DAY else 2
    return period_bounds(value.year, value.month, period_number)


def derive_period_type(start: CalendarDate, end: CalendarDate) -> PeriodType:
    if start.days_until(end) > WEEKLY_MAX_SPAN_DAYS:
        return PeriodType.BIWEEKLY
    return PeriodType.WEEKLY


def periods_for_year(year: int) -> tuple[ResolvedPeriod, ...]:
    """All 24 bi-weekly periods of ``year`` in chronological order."""
    return tuple(
        period_bounds(year, month, number)
        for month in range(1, 13)
        for number in (1, 2)
    )
