"""
Time entry validators -- date windows, hour bounds, daily caps.

Responsibility:
    Pure checks applied to a time entry before it is written:

    * DateWindowValidator (``check_date_window``): is the target day within
      the configured number of days before/after today?
    * Hour bounds (``check_hours_bounds``): is a single entry's hours value
      within [minimum, maximum]?
    * DailyHoursValidator (``check_daily_hours``): would the user's total for
      the day stay at or under the cap?

    Every check returns a frozen result object carrying the numbers it used
    and, when rejected, a reason enum plus a display message.  Nothing here
    raises for a rejected value; services translate rejections into the
    exception taxonomy.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  The inputs that come from
    the database (existing hours for the day) and from SystemConfig are
    fetched by services and passed in.

Invariants enforced:
    - Window boundaries are inclusive: exactly ``future_days_allowed`` days
      ahead is accepted, one more is rejected.  Same for the past window.
    - ``enabled=False`` bypasses the date window entirely.
    - A single entry never exceeds ABSOLUTE_MAX_HOURS_PER_ENTRY (24).
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from timesheet_kernel.domain.calendar_date import CalendarDate

ABSOLUTE_MAX_HOURS_PER_ENTRY = Decimal("24")
MAX_DESCRIPTION_LENGTH = 1000


@dataclass(frozen=True)
class DateRestrictionConfig:
    enabled: bool = True
    future_days_allowed: int = 7
    past_days_allowed: int = 30


@dataclass(frozen=True)
class HoursLimits:
    max_hours_per_day: Decimal = Decimal("24")
    min_hours_per_entry: Decimal = Decimal("0.25")

    @property
    def max_hours_per_entry(self) -> Decimal:
        return min(self.max_hours_per_day, ABSOLUTE_MAX_HOURS_PER_ENTRY)


# ---------------------------------------------------------------------------
# Date window
# ---------------------------------------------------------------------------


class WindowRejection(str, Enum):
    FUTURE_WINDOW_EXCEEDED = "future_window_exceeded"
    PAST_WINDOW_EXCEEDED = "past_window_exceeded"


@dataclass(frozen=True)
class WindowCheck:
    is_valid: bool
    diff_days: int
    reason: WindowRejection | None = None
    message: str | None = None
    days_allowed: int | None = None


def check_date_window(
    target: CalendarDate,
    today: CalendarDate,
    config: DateRestrictionConfig,
) -> WindowCheck:
    """Apply the configured past/future windows to ``target``.

    ``diff_days`` is the signed whole-day distance from today to target.
    Both dates are calendar days, so the distance is already an integer.
    """
    diff_days = today.days_until(target)
    if not config.enabled:
        return WindowCheck(is_valid=True, diff_days=diff_days)

    if diff_days > config.future_days_allowed:
        return WindowCheck(
            is_valid=False,
            diff_days=diff_days,
            reason=WindowRejection.FUTURE_WINDOW_EXCEEDED,
            message=(
                f"Cannot record time more than {config.future_days_allowed} "
                "days in the future"
            ),
            days_allowed=config.future_days_allowed,
        )
    if diff_days < -config.past_days_allowed:
        return WindowCheck(
            is_valid=False,
            diff_days=diff_days,
            reason=WindowRejection.PAST_WINDOW_EXCEEDED,
            message=(
                f"Cannot record time more than {config.past_days_allowed} "
                "days in the past"
            ),
            days_allowed=config.past_days_allowed,
        )
    return WindowCheck(is_valid=True, diff_days=diff_days)


# ---------------------------------------------------------------------------
# Hour bounds
# ---------------------------------------------------------------------------


class HoursRejection(str, Enum):
    BELOW_MINIMUM = "below_minimum"
    ABOVE_MAXIMUM = "above_maximum"


@dataclass(frozen=True)
class HoursBoundsCheck:
    is_valid: bool
    hours: Decimal
    reason: HoursRejection | None = None
    limit: Decimal | None = None


def check_hours_bounds(hours: Decimal, limits: HoursLimits) -> HoursBoundsCheck:
    # Zero and negatives always fail, whatever the configured minimum.
    minimum = max(limits.min_hours_per_entry, Decimal("0"))
    if hours <= 0 or hours < minimum:
        return HoursBoundsCheck(
            is_valid=False,
            hours=hours,
            reason=HoursRejection.BELOW_MINIMUM,
            limit=minimum,
        )
    maximum = limits.max_hours_per_entry
    if hours > maximum:
        return HoursBoundsCheck(
            is_valid=False,
            hours=hours,
            reason=HoursRejection.ABOVE_MAXIMUM,
            limit=maximum,
        )
    return HoursBoundsCheck(is_valid=True, hours=hours)


# ---------------------------------------------------------------------------
# Daily cap
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DailyHoursCheck:
    current_hours: Decimal
    new_hours: Decimal
    total_hours: Decimal
    max_hours: Decimal
    is_valid: bool

    @property
    def remaining_hours(self) -> Decimal:
        return max(self.max_hours - self.current_hours, Decimal("0"))


def check_daily_hours(
    current_hours: Decimal,
    new_hours: Decimal,
    max_hours: Decimal,
) -> DailyHoursCheck:
    """``current_hours`` must already exclude the entry being replaced."""
    total = current_hours + new_hours
    return DailyHoursCheck(
        current_hours=current_hours,
        new_hours=new_hours,
        total_hours=total,
        max_hours=max_hours,
        is_valid=total <= max_hours,
    )
