"""
TimePeriodSelector -- period listing and per-period hour aggregates.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from timesheet_kernel.db.types import ZERO_HOURS, round_hours, to_hours
from timesheet_kernel.domain.dtos import TimePeriodInfo
from timesheet_kernel.models import Project, TimeEntry, TimePeriod
from timesheet_kernel.selectors.base import BaseSelector
from timesheet_kernel.store.sql_store import period_to_dto


@dataclass(frozen=True)
class PeriodTotals:
    """Raw hour aggregates of one period, split by general vs client work."""

    total_hours: Decimal
    total_entries: int
    unique_users: int
    general_hours: Decimal
    client_hours: Decimal


class TimePeriodSelector(BaseSelector):
    def list_periods(self, year: int | None = None, month: int | None = None) -> list[TimePeriodInfo]:
        query = select(TimePeriod)
        if year is not None:
            query = query.where(TimePeriod.year == year)
        if month is not None:
            query = query.where(TimePeriod.month == month)
        rows = self.session.execute(
            query.order_by(TimePeriod.year, TimePeriod.month, TimePeriod.period_number)
        ).scalars()
        return [period_to_dto(p) for p in rows]

    def period_totals(self, period_id: UUID, user_id: UUID | None = None) -> PeriodTotals:
        query = (
            select(TimeEntry.user_id, TimeEntry.hours, Project.is_general)
            .join(Project, TimeEntry.project_id == Project.id)
            .where(TimeEntry.time_period_id == period_id)
        )
        if user_id is not None:
            query = query.where(TimeEntry.user_id == user_id)

        general = ZERO_HOURS
        client = ZERO_HOURS
        users: set[UUID] = set()
        count = 0
        for entry_user_id, hours, is_general in self.session.execute(query):
            hours = to_hours(hours)
            if is_general:
                general += hours
            else:
                client += hours
            users.add(entry_user_id)
            count += 1

        return PeriodTotals(
            total_hours=round_hours(general + client),
            total_entries=count,
            unique_users=len(users),
            general_hours=round_hours(general),
            client_hours=round_hours(client),
        )
