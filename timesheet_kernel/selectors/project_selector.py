"""
ProjectSelector -- scoped project listing and project statistics.
"""

from decimal import Decimal

from sqlalchemy import func, select

from timesheet_kernel.db.types import ZERO_HOURS, round_hours, to_hours
from timesheet_kernel.domain.access_policy import ListScope
from timesheet_kernel.domain.dtos import Page, ProjectFilters, ProjectInfo, ProjectStats
from timesheet_kernel.domain.values import TaskStatus
from timesheet_kernel.models import Project, ProjectAssignment, Task, TimeEntry
from timesheet_kernel.selectors.base import BaseSelector, normalize_page, scope_clause
from timesheet_kernel.store.sql_store import project_to_dto


class ProjectSelector(BaseSelector):
    def list_projects(
        self,
        scope: ListScope,
        filters: ProjectFilters | None = None,
        page: int | None = 1,
        page_size: int | None = None,
    ) -> Page[ProjectInfo]:
        """Active projects visible under ``scope``, newest first."""
        page, page_size = normalize_page(page, page_size)
        filters = filters or ProjectFilters()

        query = select(Project).where(Project.is_active.is_(True))
        query = self._apply_scope(query, scope_clause(scope, project_id_column=Project.id))
        if filters.status is not None:
            query = query.where(Project.status == filters.status.value)
        if filters.priority is not None:
            query = query.where(Project.priority == filters.priority.value)
        if filters.area_id is not None:
            query = query.where(Project.area_id == filters.area_id)
        if filters.is_general is not None:
            query = query.where(Project.is_general.is_(filters.is_general))
        if filters.search:
            query = query.where(Project.name.ilike(f"%{filters.search.strip()}%"))

        total = self._count(query)
        rows = self.session.execute(
            query.order_by(Project.created_at.desc(), Project.name)
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars()
        return Page(
            items=tuple(project_to_dto(p) for p in rows),
            total=total,
            page=page,
            page_size=page_size,
        )

    def project_stats(self, project: ProjectInfo) -> ProjectStats:
        """Hours and task counters for one project."""
        actual = self.session.execute(
            select(func.coalesce(func.sum(TimeEntry.hours), 0)).where(
                TimeEntry.project_id == project.id
            )
        ).scalar_one()

        by_status: dict[str, int] = {s.value: 0 for s in TaskStatus}
        for status, count in self.session.execute(
            select(Task.status, func.count(Task.id))
            .where(Task.project_id == project.id, Task.is_active.is_(True))
            .group_by(Task.status)
        ):
            by_status[status] = count

        total_tasks = sum(by_status.values())
        completed = by_status[TaskStatus.DONE.value]
        completion_rate = (
            round_hours(Decimal(completed) * 100 / Decimal(total_tasks))
            if total_tasks
            else ZERO_HOURS
        )

        assigned_users = self.session.execute(
            select(func.count(ProjectAssignment.id)).where(
                ProjectAssignment.project_id == project.id,
                ProjectAssignment.is_active.is_(True),
            )
        ).scalar_one()

        return ProjectStats(
            project_id=project.id,
            estimated_hours=project.estimated_hours or ZERO_HOURS,
            actual_hours=round_hours(to_hours(actual)),
            total_tasks=total_tasks,
            completed_tasks=completed,
            completion_rate=completion_rate,
            assigned_users=assigned_users,
            tasks_by_status=by_status,
        )
