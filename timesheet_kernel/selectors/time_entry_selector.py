"""
Module: timesheet_kernel.selectors.time_entry_selector
Responsibility: Read side of time entries: scoped, filtered, paginated
    listing and the per-user, per-project and overall hour summaries.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every query joins Project, so the caller's ListScope applies to every
      read.  Collaborator scopes restrict to the collaborator's own
      entries; coordinator scopes to the coordinator's area.
    - Hour totals are accumulated as Decimal in Python from Numeric
      columns and rounded once with ``round_hours``.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.sql import Select

from timesheet_kernel.db.types import ZERO_HOURS, round_hours, to_hours
from timesheet_kernel.domain.access_policy import UNRESTRICTED, ListScope
from timesheet_kernel.domain.calendar_date import CalendarDate
from timesheet_kernel.domain.dtos import (
    Page,
    ProjectTimeReport,
    TimeEntryFilters,
    TimeEntryInfo,
    TimeStats,
    UserTimeSummary,
)
from timesheet_kernel.models import Project, TimeEntry
from timesheet_kernel.selectors.base import BaseSelector, normalize_page, scope_clause
from timesheet_kernel.store.sql_store import entry_to_dto


def _sum(values: dict) -> dict:
    return {key: round_hours(total) for key, total in values.items()}


class TimeEntrySelector(BaseSelector):
    """Scoped reads over time entries."""

    def _scoped(self, query: Select, scope: ListScope) -> Select:
        query = query.join(Project, TimeEntry.project_id == Project.id)
        return self._apply_scope(
            query,
            scope_clause(
                scope,
                project_id_column=TimeEntry.project_id,
                user_column=TimeEntry.user_id,
            ),
        )

    @staticmethod
    def _date_range(
        query: Select,
        start: CalendarDate | None,
        end: CalendarDate | None,
    ) -> Select:
        if start is not None:
            query = query.where(TimeEntry.entry_date >= start.to_date())
        if end is not None:
            query = query.where(TimeEntry.entry_date <= end.to_date())
        return query

    def list_entries(
        self,
        scope: ListScope,
        filters: TimeEntryFilters | None = None,
        page: int | None = 1,
        page_size: int | None = None,
    ) -> Page[TimeEntryInfo]:
        """Entries visible under ``scope``, most recent day first."""
        page, page_size = normalize_page(page, page_size)
        filters = filters or TimeEntryFilters()

        query = self._scoped(select(TimeEntry, Project.area_id), scope)
        if filters.user_id is not None:
            query = query.where(TimeEntry.user_id == filters.user_id)
        if filters.project_id is not None:
            query = query.where(TimeEntry.project_id == filters.project_id)
        if filters.task_id is not None:
            query = query.where(TimeEntry.task_id == filters.task_id)
        if filters.time_period_id is not None:
            query = query.where(TimeEntry.time_period_id == filters.time_period_id)
        if filters.is_approved is not None:
            query = query.where(TimeEntry.is_approved.is_(filters.is_approved))
        query = self._date_range(query, filters.start_date, filters.end_date)

        total = self._count(query)
        rows = self.session.execute(
            query.order_by(TimeEntry.entry_date.desc(), TimeEntry.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return Page(
            items=tuple(entry_to_dto(entry, area_id) for entry, area_id in rows),
            total=total,
            page=page,
            page_size=page_size,
        )

    def user_summary(
        self,
        user_id: UUID,
        start: CalendarDate,
        end: CalendarDate,
        scope: ListScope = UNRESTRICTED,
    ) -> UserTimeSummary:
        query = self._scoped(
            select(TimeEntry.entry_date, TimeEntry.project_id, TimeEntry.hours), scope
        ).where(TimeEntry.user_id == user_id)
        query = self._date_range(query, start, end)

        total = ZERO_HOURS
        count = 0
        by_project: dict[UUID, Decimal] = defaultdict(Decimal)
        by_day: dict[CalendarDate, Decimal] = defaultdict(Decimal)
        for entry_date, project_id, hours in self.session.execute(query):
            hours = to_hours(hours)
            total += hours
            count += 1
            by_project[project_id] += hours
            by_day[CalendarDate.from_date(entry_date)] += hours

        return UserTimeSummary(
            user_id=user_id,
            start_date=start,
            end_date=end,
            total_hours=round_hours(total),
            total_entries=count,
            hours_by_project=_sum(by_project),
            hours_by_day=dict(sorted(_sum(by_day).items())),
        )

    def project_report(
        self,
        project_id: UUID,
        start: CalendarDate | None = None,
        end: CalendarDate | None = None,
    ) -> ProjectTimeReport:
        query = select(TimeEntry.user_id, TimeEntry.task_id, TimeEntry.hours).where(
            TimeEntry.project_id == project_id
        )
        query = self._date_range(query, start, end)

        total = ZERO_HOURS
        count = 0
        by_user: dict[UUID, Decimal] = defaultdict(Decimal)
        by_task: dict[UUID, Decimal] = defaultdict(Decimal)
        for user_id, task_id, hours in self.session.execute(query):
            hours = to_hours(hours)
            total += hours
            count += 1
            by_user[user_id] += hours
            by_task[task_id] += hours

        return ProjectTimeReport(
            project_id=project_id,
            start_date=start,
            end_date=end,
            total_hours=round_hours(total),
            total_entries=count,
            hours_by_user=_sum(by_user),
            hours_by_task=_sum(by_task),
        )

    def time_stats(
        self,
        scope: ListScope,
        start: CalendarDate | None = None,
        end: CalendarDate | None = None,
    ) -> TimeStats:
        query = self._scoped(
            select(TimeEntry.user_id, TimeEntry.hours, TimeEntry.is_approved), scope
        )
        query = self._date_range(query, start, end)

        approved = ZERO_HOURS
        pending = ZERO_HOURS
        users: set[UUID] = set()
        count = 0
        for user_id, hours, is_approved in self.session.execute(query):
            hours = to_hours(hours)
            if is_approved:
                approved += hours
            else:
                pending += hours
            users.add(user_id)
            count += 1

        return TimeStats(
            total_hours=round_hours(approved + pending),
            total_entries=count,
            unique_users=len(users),
            approved_hours=round_hours(approved),
            pending_hours=round_hours(pending),
        )
