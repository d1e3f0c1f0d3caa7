"""
TaskService -- task lifecycle and assignment.

Responsibility:
    Create, read, update, status change, assignment and soft delete of
    tasks.

Architecture position:
    Kernel > Services -- imperative shell.  Authorization is delegated to
    AccessPolicy; status changes go through TASK_WORKFLOW.

Invariants enforced:
    - due_date is not before today (reference timezone) and not after the
      project's end_date.
    - New tasks start TODO; status then only moves along TASK_WORKFLOW
      transitions.  completed_at is stamped when a task enters DONE and
      cleared when it leaves.
    - A task referenced by time entries is never deleted.

Failure modes:
    - TaskNotFoundError, ProjectNotFoundError, UserNotFoundError.
    - ForbiddenError, InvalidDueDateError, InvalidStatusTransitionError.
    - InvalidInitialStatusError, TaskHasTimeEntriesError.
"""

from collections.abc import Iterable, Mapping
from datetime import date, timezone, tzinfo
from typing import Any
from uuid import UUID

from timesheet_kernel.domain.access_policy import AccessPolicy
from timesheet_kernel.domain.clock import Clock
from timesheet_kernel.domain.dtos import (
    BulkError,
    BulkResult,
    Page,
    ProjectInfo,
    TaskFilters,
    TaskInfo,
)
from timesheet_kernel.domain.principal import Principal
from timesheet_kernel.domain.values import Priority, TaskStatus
from timesheet_kernel.domain.workflow import TASK_WORKFLOW, require_initial_state, require_transition
from timesheet_kernel.exceptions import (
    InternalError,
    InvalidDueDateError,
    ProjectNotFoundError,
    TaskHasTimeEntriesError,
    TaskNotFoundError,
    TimesheetKernelError,
    UnsupportedFieldError,
    UserNotFoundError,
    ValidationError,
)
from timesheet_kernel.logging_config import get_logger
from timesheet_kernel.selectors.task_selector import TaskSelector
from timesheet_kernel.services.base import (
    BaseService,
    coerce_enum,
    parse_optional_date,
    parse_optional_hours,
)
from timesheet_kernel.store.base import Store

logger = get_logger("services.task")

_UPDATABLE_FIELDS = frozenset(
    {"title", "description", "status", "priority", "due_date", "estimated_hours", "assigned_to_id"}
)


def _title(value: Any) -> str:
    title = str(value or "").strip()
    if not title:
        raise ValidationError("Task title is required")
    return title


class TaskService(BaseService):
    def __init__(
        self,
        store: Store,
        selector: TaskSelector | None = None,
        policy: AccessPolicy | None = None,
        clock: Clock | None = None,
        reference_tz: tzinfo = timezone.utc,
    ):
        super().__init__(store, policy, clock, reference_tz)
        self.selector = selector

    # -- Helpers ------------------------------------------------------------

    def _task(self, task_id: UUID) -> TaskInfo:
        task = self.store.find_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _project(self, project_id: UUID) -> ProjectInfo:
        project = self.store.find_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def _check_due_date(self, due_date: date | None, project: ProjectInfo) -> None:
        if due_date is None:
            return
        today = self.today().to_date()
        if due_date < today:
            raise InvalidDueDateError(due_date, f"cannot be before today ({today.isoformat()})")
        if project.end_date is not None and due_date > project.end_date:
            raise InvalidDueDateError(
                due_date, f"cannot be after the project end date ({project.end_date.isoformat()})"
            )

    def _check_assignee(self, user_id: UUID | None) -> None:
        if user_id is not None and self.store.find_user(user_id) is None:
            raise UserNotFoundError(user_id)

    def _status_fields(self, status: TaskStatus) -> dict[str, Any]:
        return {
            "status": status,
            "completed_at": self.clock.now() if status is TaskStatus.DONE else None,
        }

    # -- Reads --------------------------------------------------------------

    def get_task(self, task_id: UUID, principal: Principal) -> TaskInfo:
        task = self._task(task_id)
        self.require(
            self.policy.can_access_task(principal, task),
            principal, "read", "Task", task_id,
        )
        return task

    def list_tasks(
        self,
        principal: Principal,
        filters: TaskFilters | None = None,
        page: int | None = 1,
        page_size: int | None = None,
    ) -> Page[TaskInfo]:
        if self.selector is None:
            raise InternalError("list_tasks", "no TaskSelector configured")
        return self.selector.list_tasks(
            self.policy.task_list_scope(principal), filters, page, page_size
        )

    # -- Writes -------------------------------------------------------------

    def create_task(self, data: Mapping[str, Any], principal: Principal) -> TaskInfo:
        project_id = data.get("project_id")
        if project_id is None:
            raise ValidationError("Task project is required")
        project = self._project(project_id)
        self.require(
            self.policy.can_create_task(principal, project),
            principal, "create", "Task",
        )

        due_date = parse_optional_date(data.get("due_date"))
        self._check_due_date(due_date, project)
        assigned_to_id = data.get("assigned_to_id")
        self._check_assignee(assigned_to_id)
        status = coerce_enum(TaskStatus, data.get("status", TaskStatus.TODO))
        require_initial_state(TASK_WORKFLOW, status)

        task = self.store.create_task(
            {
                "title": _title(data.get("title")),
                "description": data.get("description"),
                "project_id": project.id,
                "assigned_to_id": assigned_to_id,
                "priority": coerce_enum(Priority, data.get("priority", Priority.MEDIUM)),
                "due_date": due_date,
                "estimated_hours": parse_optional_hours(data.get("estimated_hours")),
                **self._status_fields(status),
            },
            principal.user_id,
        )
        logger.info(
            "task_created",
            extra={
                "task_id": str(task.id),
                "project_id": str(project.id),
                "actor_id": str(principal.user_id),
            },
        )
        return task

    def update_task(
        self,
        task_id: UUID,
        changes: Mapping[str, Any],
        principal: Principal,
    ) -> TaskInfo:
        task = self._task(task_id)
        self.require(
            self.policy.can_update_task(principal, task),
            principal, "update", "Task", task_id,
        )
        unsupported = tuple(sorted(set(changes) - _UPDATABLE_FIELDS))
        if unsupported:
            raise UnsupportedFieldError("Task", unsupported)

        fields: dict[str, Any] = {}
        if "title" in changes:
            fields["title"] = _title(changes["title"])
        if "description" in changes:
            fields["description"] = changes["description"]
        if "priority" in changes:
            fields["priority"] = coerce_enum(Priority, changes["priority"])
        if "estimated_hours" in changes:
            fields["estimated_hours"] = parse_optional_hours(changes["estimated_hours"])
        if "due_date" in changes:
            due_date = parse_optional_date(changes["due_date"])
            if due_date != task.due_date:
                self._check_due_date(due_date, self._project(task.project_id))
            fields["due_date"] = due_date
        if "assigned_to_id" in changes and changes["assigned_to_id"] != task.assigned_to_id:
            self.require(
                self.policy.can_assign_task(principal, task),
                principal, "assign", "Task", task_id,
            )
            self._check_assignee(changes["assigned_to_id"])
            fields["assigned_to_id"] = changes["assigned_to_id"]
        if "status" in changes:
            status = coerce_enum(TaskStatus, changes["status"])
            if status != task.status:
                require_transition(TASK_WORKFLOW, task.status, status)
                fields.update(self._status_fields(status))

        if not fields:
            return task
        updated = self.store.update_task(task_id, fields, principal.user_id)
        logger.info(
            "task_updated",
            extra={
                "task_id": str(task_id),
                "fields": sorted(fields),
                "actor_id": str(principal.user_id),
            },
        )
        return updated

    def change_status(
        self,
        task_id: UUID,
        new_status: TaskStatus,
        principal: Principal,
    ) -> TaskInfo:
        task = self._task(task_id)
        self.require(
            self.policy.can_update_task(principal, task),
            principal, "change_status", "Task", task_id,
        )
        new_status = coerce_enum(TaskStatus, new_status)
        transition = require_transition(TASK_WORKFLOW, task.status, new_status)
        updated = self.store.update_task(
            task_id, self._status_fields(new_status), principal.user_id
        )
        logger.info(
            "task_status_changed",
            extra={
                "task_id": str(task_id),
                "from_status": task.status.value,
                "to_status": new_status.value,
                "action": transition.action,
                "actor_id": str(principal.user_id),
            },
        )
        return updated

    def _assign(self, task: TaskInfo, user_id: UUID | None, principal: Principal) -> TaskInfo:
        self.require(
            self.policy.can_assign_task(principal, task),
            principal, "assign", "Task", task.id,
        )
        self._check_assignee(user_id)
        updated = self.store.update_task(task.id, {"assigned_to_id": user_id}, principal.user_id)
        logger.info(
            "task_assigned",
            extra={
                "task_id": str(task.id),
                "user_id": str(user_id) if user_id is not None else None,
                "actor_id": str(principal.user_id),
            },
        )
        return updated

    def assign_task(self, task_id: UUID, user_id: UUID | None, principal: Principal) -> TaskInfo:
        """Assign to ``user_id``; None unassigns."""
        return self._assign(self._task(task_id), user_id, principal)

    def bulk_assign_tasks(
        self,
        task_ids: Iterable[UUID],
        user_id: UUID | None,
        principal: Principal,
    ) -> BulkResult[TaskInfo]:
        updated: list[TaskInfo] = []
        errors: list[BulkError] = []
        for index, task_id in enumerate(task_ids):
            try:
                with self.store.savepoint():
                    updated.append(self._assign(self._task(task_id), user_id, principal))
            except InternalError:
                raise
            except TimesheetKernelError as exc:
                errors.append(BulkError(index, exc.code, str(exc)))
        return BulkResult(created=tuple(updated), errors=tuple(errors))

    def delete_task(self, task_id: UUID, principal: Principal) -> None:
        """Soft delete.  Refused while time entries reference the task."""
        task = self._task(task_id)
        self.require(
            self.policy.can_delete_task(principal, task),
            principal, "delete", "Task", task_id,
        )
        entries = self.store.count_time_entries_for_task(task_id)
        if entries:
            raise TaskHasTimeEntriesError(task_id, entries)
        self.store.update_task(task_id, {"is_active": False}, principal.user_id)
        logger.info(
            "task_deleted",
            extra={"task_id": str(task_id), "actor_id": str(principal.user_id)},
        )
