"""
Tests for the half-month period resolver (``timesheet_kernel.domain.periods``).

Invariants tested:
- Days 1-15 belong to period 1, day 16 onward to period 2.
- Period 2 ends on the true last day of the month.
- Every date of a year lands in exactly one of its 24 periods.
"""

from datetime import date

import pytest
from hypothesis import given
from hypothesis import strategies as st

from timesheet_kernel.domain.calendar_date import CalendarDate
from timesheet_kernel.domain.periods import (
    PeriodType,
    derive_period_type,
    period_bounds,
    periods_for_year,
    resolve_period,
)


class TestResolvePeriod:
    @pytest.mark.parametrize(
        "day, expected_number",
        [(1, 1), (14, 1), (15, 1), (16, 2), (28, 2)],
    )
    def test_boundary_days(self, day, expected_number):
        assert resolve_period(CalendarDate(2025, 2, day)).period_number == expected_number

    def test_first_half_bounds(self):
        p = resolve_period(CalendarDate(2025, 3, 7))
        assert p.start_date == CalendarDate(2025, 3, 1)
        assert p.end_date == CalendarDate(2025, 3, 15)
        assert p.period_type is PeriodType.BIWEEKLY

    @pytest.mark.parametrize(
        "year, month, last_day",
        [(2025, 2, 28), (2024, 2, 29), (2025, 4, 30), (2025, 1, 31)],
    )
    def test_second_half_ends_on_last_day(self, year, month, last_day):
        p = resolve_period(CalendarDate(year, month, 20))
        assert p.start_date == CalendarDate(year, month, 16)
        assert p.end_date == CalendarDate(year, month, last_day)

    def test_label(self):
        assert resolve_period(CalendarDate(2025, 7, 4)).label == "2025-07 P1"

    @given(st.dates(min_value=date(1990, 1, 1), max_value=date(2100, 12, 31)))
    def test_resolved_period_contains_date(self, value):
        d = CalendarDate.from_date(value)
        p = resolve_period(d)
        assert p.contains(d)
        assert (p.period_number == 1) == (d.day <= 15)
        assert p.key == (d.year, d.month, p.period_number)


class TestPeriodBounds:
    def test_rejects_unknown_period_number(self):
        with pytest.raises(ValueError):
            period_bounds(2025, 7, 3)

    def test_dates_depend_only_on_key(self):
        assert period_bounds(2025, 7, 2) == resolve_period(CalendarDate(2025, 7, 31))


class TestDerivePeriodType:
    def test_short_span_is_weekly(self):
        assert derive_period_type(CalendarDate(2025, 7, 1), CalendarDate(2025, 7, 7)) is PeriodType.WEEKLY

    def test_ten_day_span_is_weekly(self):
        assert derive_period_type(CalendarDate(2025, 7, 1), CalendarDate(2025, 7, 11)) is PeriodType.WEEKLY

    def test_longer_span_is_biweekly(self):
        assert derive_period_type(CalendarDate(2025, 7, 1), CalendarDate(2025, 7, 12)) is PeriodType.BIWEEKLY


class TestPeriodsForYear:
    def test_twenty_four_periods_in_order(self):
        periods = periods_for_year(2025)
        assert len(periods) == 24
        assert periods[0].start_date == CalendarDate(2025, 1, 1)
        assert periods[-1].end_date == CalendarDate(2025, 12, 31)
        for earlier, later in zip(periods, periods[1:]):
            assert earlier.end_date.add_days(1) == later.start_date

    @given(st.integers(min_value=1990, max_value=2100))
    def test_periods_cover_every_day_once(self, year):
        periods = periods_for_year(year)
        covered = sum(p.start_date.days_until(p.end_date) + 1 for p in periods)
        days_in_year = (date(year + 1, 1, 1) - date(year, 1, 1)).days
        assert covered == days_in_year
