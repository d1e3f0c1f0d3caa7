"""
TaskSelector -- scoped task listing.

Collaborator scopes combine "assigned to me" with "in my area", so the
user criterion maps onto ``Task.assigned_to_id``.
"""

from sqlalchemy import select

from timesheet_kernel.domain.access_policy import ListScope
from timesheet_kernel.domain.dtos import Page, TaskFilters, TaskInfo
from timesheet_kernel.models import Project, Task
from timesheet_kernel.selectors.base import BaseSelector, normalize_page, scope_clause
from timesheet_kernel.store.sql_store import task_to_dto


class TaskSelector(BaseSelector):
    def list_tasks(
        self,
        scope: ListScope,
        filters: TaskFilters | None = None,
        page: int | None = 1,
        page_size: int | None = None,
    ) -> Page[TaskInfo]:
        page, page_size = normalize_page(page, page_size)
        filters = filters or TaskFilters()

        query = (
            select(Task, Project.area_id)
            .join(Project, Task.project_id == Project.id)
            .where(Task.is_active.is_(True), Project.is_active.is_(True))
        )
        query = self._apply_scope(
            query,
            scope_clause(
                scope,
                project_id_column=Task.project_id,
                user_column=Task.assigned_to_id,
            ),
        )
        if filters.project_id is not None:
            query = query.where(Task.project_id == filters.project_id)
        if filters.status is not None:
            query = query.where(Task.status == filters.status.value)
        if filters.priority is not None:
            query = query.where(Task.priority == filters.priority.value)
        if filters.assigned_to_id is not None:
            query = query.where(Task.assigned_to_id == filters.assigned_to_id)
        if filters.search:
            query = query.where(Task.title.ilike(f"%{filters.search.strip()}%"))

        total = self._count(query)
        rows = self.session.execute(
            query.order_by(Task.created_at.desc(), Task.title)
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return Page(
            items=tuple(task_to_dto(task, area_id) for task, area_id in rows),
            total=total,
            page=page,
            page_size=page_size,
        )
