"""
ProjectService -- project lifecycle, membership and statistics.

Responsibility:
    Create, read, update, status change and soft delete of projects;
    membership (ProjectAssignment) management; the per-area general
    project; project statistics.

Architecture position:
    Kernel > Services -- imperative shell.  Authorization is delegated to
    AccessPolicy; status changes go through PROJECT_WORKFLOW.

Invariants enforced:
    - start_date < end_date whenever both are set.
    - New projects start ACTIVE; status then only moves along
      PROJECT_WORKFLOW transitions.
    - At most one active assignment per (project, user).
    - Only administrators delete, and never while open tasks remain.
    - One general project per area.

Failure modes:
    - ProjectNotFoundError, AreaNotFoundError, UserNotFoundError,
      AssignmentNotFoundError.
    - ForbiddenError, InvalidDateRangeError, InvalidStatusTransitionError.
    - DuplicateAssignmentError, GeneralProjectExistsError,
      ProjectHasActiveTasksError.
    - InvalidInitialStatusError: a new project that does not start ACTIVE.
"""

from collections.abc import Iterable, Mapping
from datetime import date, timezone, tzinfo
from typing import Any
from uuid import UUID

from timesheet_kernel.domain.access_policy import AccessPolicy
from timesheet_kernel.domain.clock import Clock
from timesheet_kernel.domain.dtos import (
    AssignmentInfo,
    BulkError,
    BulkResult,
    BulkSkip,
    Page,
    ProjectFilters,
    ProjectInfo,
    ProjectStats,
)
from timesheet_kernel.domain.principal import Principal
from timesheet_kernel.domain.values import Priority, ProjectStatus
from timesheet_kernel.domain.workflow import PROJECT_WORKFLOW, require_initial_state, require_transition
from timesheet_kernel.exceptions import (
    AreaNotFoundError,
    AssignmentNotFoundError,
    DuplicateAssignmentError,
    GeneralProjectExistsError,
    GeneralProjectNotFoundError,
    InternalError,
    InvalidDateRangeError,
    ProjectHasActiveTasksError,
    ProjectNotFoundError,
    TimesheetKernelError,
    UnsupportedFieldError,
    UserNotFoundError,
    ValidationError,
)
from timesheet_kernel.logging_config import get_logger
from timesheet_kernel.selectors.project_selector import ProjectSelector
from timesheet_kernel.services.base import (
    BaseService,
    coerce_enum,
    parse_optional_date,
    parse_optional_hours,
)
from timesheet_kernel.store.base import Store

logger = get_logger("services.project")

GENERAL_PROJECT_NAME_PREFIX = "Actividades generales del área: "

_UPDATABLE_FIELDS = frozenset(
    {"name", "description", "status", "priority", "start_date", "end_date", "estimated_hours"}
)


def _check_range(start: date | None, end: date | None) -> None:
    if start is not None and end is not None and start >= end:
        raise InvalidDateRangeError(start, end)


def _name(value: Any) -> str:
    name = str(value or "").strip()
    if not name:
        raise ValidationError("Project name is required")
    return name


class ProjectService(BaseService):
    def __init__(
        self,
        store: Store,
        selector: ProjectSelector | None = None,
        policy: AccessPolicy | None = None,
        clock: Clock | None = None,
        reference_tz: tzinfo = timezone.utc,
    ):
        super().__init__(store, policy, clock, reference_tz)
        self.selector = selector

    # -- Lookups ------------------------------------------------------------

    def _project(self, project_id: UUID) -> ProjectInfo:
        project = self.store.find_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def _selector(self) -> ProjectSelector:
        if self.selector is None:
            raise InternalError("project_reporting", "no ProjectSelector configured")
        return self.selector

    def get_project(self, project_id: UUID, principal: Principal) -> ProjectInfo:
        project = self._project(project_id)
        is_member = self.store.is_project_member(project_id, principal.user_id)
        self.require(
            self.policy.can_access_project(principal, project, is_member),
            principal, "read", "Project", project_id,
        )
        return project

    def list_projects(
        self,
        principal: Principal,
        filters: ProjectFilters | None = None,
        page: int | None = 1,
        page_size: int | None = None,
    ) -> Page[ProjectInfo]:
        return self._selector().list_projects(
            self.policy.project_list_scope(principal), filters, page, page_size
        )

    # -- Create / update ----------------------------------------------------

    def create_project(self, data: Mapping[str, Any], principal: Principal) -> ProjectInfo:
        area_id = data.get("area_id") or principal.area_id
        if area_id is None:
            raise ValidationError("Project area is required")
        self.require(
            self.policy.can_create_project(principal, area_id),
            principal, "create", "Project",
        )
        if self.store.find_area(area_id) is None:
            raise AreaNotFoundError(area_id)

        start = parse_optional_date(data.get("start_date"))
        end = parse_optional_date(data.get("end_date"))
        _check_range(start, end)
        status = coerce_enum(ProjectStatus, data.get("status", ProjectStatus.ACTIVE))
        require_initial_state(PROJECT_WORKFLOW, status)

        is_general = bool(data.get("is_general", False))
        if is_general:
            existing = self.store.find_general_project(area_id)
            if existing is not None:
                raise GeneralProjectExistsError(area_id, existing.id)

        project = self.store.create_project(
            {
                "name": _name(data.get("name")),
                "description": data.get("description"),
                "area_id": area_id,
                "status": status,
                "priority": coerce_enum(Priority, data.get("priority", Priority.MEDIUM)),
                "start_date": start,
                "end_date": end,
                "estimated_hours": parse_optional_hours(data.get("estimated_hours")),
                "is_general": is_general,
            },
            principal.user_id,
        )
        logger.info(
            "project_created",
            extra={
                "project_id": str(project.id),
                "area_id": str(area_id),
                "actor_id": str(principal.user_id),
            },
        )
        return project

    def update_project(
        self,
        project_id: UUID,
        changes: Mapping[str, Any],
        principal: Principal,
    ) -> ProjectInfo:
        project = self._project(project_id)
        self.require(
            self.policy.can_update_project(principal, project),
            principal, "update", "Project", project_id,
        )
        unsupported = tuple(sorted(set(changes) - _UPDATABLE_FIELDS))
        if unsupported:
            raise UnsupportedFieldError("Project", unsupported)

        fields: dict[str, Any] = {}
        if "name" in changes:
            fields["name"] = _name(changes["name"])
        if "description" in changes:
            fields["description"] = changes["description"]
        if "priority" in changes:
            fields["priority"] = coerce_enum(Priority, changes["priority"])
        if "estimated_hours" in changes:
            fields["estimated_hours"] = parse_optional_hours(changes["estimated_hours"])
        if "status" in changes:
            status = coerce_enum(ProjectStatus, changes["status"])
            if status != project.status:
                require_transition(PROJECT_WORKFLOW, project.status, status)
                fields["status"] = status

        start = parse_optional_date(changes["start_date"]) if "start_date" in changes else project.start_date
        end = parse_optional_date(changes["end_date"]) if "end_date" in changes else project.end_date
        _check_range(start, end)
        if "start_date" in changes:
            fields["start_date"] = start
        if "end_date" in changes:
            fields["end_date"] = end

        if not fields:
            return project
        updated = self.store.update_project(project_id, fields, principal.user_id)
        logger.info(
            "project_updated",
            extra={
                "project_id": str(project_id),
                "fields": sorted(fields),
                "actor_id": str(principal.user_id),
            },
        )
        return updated

    def change_status(
        self,
        project_id: UUID,
        new_status: ProjectStatus,
        principal: Principal,
    ) -> ProjectInfo:
        project = self._project(project_id)
        self.require(
            self.policy.can_update_project(principal, project),
            principal, "change_status", "Project", project_id,
        )
        new_status = coerce_enum(ProjectStatus, new_status)
        transition = require_transition(PROJECT_WORKFLOW, project.status, new_status)
        updated = self.store.update_project(project_id, {"status": new_status}, principal.user_id)
        logger.info(
            "project_status_changed",
            extra={
                "project_id": str(project_id),
                "from_status": project.status.value,
                "to_status": new_status.value,
                "action": transition.action,
                "actor_id": str(principal.user_id),
            },
        )
        return updated

    def delete_project(self, project_id: UUID, principal: Principal) -> None:
        """Soft delete.  Refused while tasks that are not DONE remain."""
        project = self._project(project_id)
        self.require(
            self.policy.can_delete_project(principal, project),
            principal, "delete", "Project", project_id,
        )
        open_tasks = self.store.count_open_tasks(project_id)
        if open_tasks:
            raise ProjectHasActiveTasksError(project_id, open_tasks)
        self.store.update_project(project_id, {"is_active": False}, principal.user_id)
        logger.info(
            "project_deleted",
            extra={"project_id": str(project_id), "actor_id": str(principal.user_id)},
        )

    # -- Membership ---------------------------------------------------------

    def _require_manage_members(self, project: ProjectInfo, principal: Principal, action: str) -> None:
        self.require(
            self.policy.can_manage_project_members(principal, project),
            principal, action, "ProjectAssignment", project.id,
        )

    def _assign(self, project: ProjectInfo, user_id: UUID, principal: Principal) -> AssignmentInfo:
        if self.store.find_user(user_id) is None:
            raise UserNotFoundError(user_id)
        existing = self.store.find_assignment(project.id, user_id)
        if existing is not None and existing.is_active:
            raise DuplicateAssignmentError(project.id, user_id)
        if existing is not None:
            assignment = self.store.set_assignment_active(existing.id, True, principal.user_id)
            event = "project_member_reactivated"
        else:
            assignment = self.store.create_assignment(project.id, user_id, principal.user_id)
            event = "project_member_assigned"
        logger.info(
            event,
            extra={
                "project_id": str(project.id),
                "user_id": str(user_id),
                "actor_id": str(principal.user_id),
            },
        )
        return assignment

    def assign_member(self, project_id: UUID, user_id: UUID, principal: Principal) -> AssignmentInfo:
        project = self._project(project_id)
        self._require_manage_members(project, principal, "assign")
        return self._assign(project, user_id, principal)

    def bulk_assign_members(
        self,
        project_id: UUID,
        user_ids: Iterable[UUID],
        principal: Principal,
    ) -> BulkResult[AssignmentInfo]:
        project = self._project(project_id)
        self._require_manage_members(project, principal, "assign")

        created: list[AssignmentInfo] = []
        skipped: list[BulkSkip] = []
        errors: list[BulkError] = []
        for index, user_id in enumerate(user_ids):
            try:
                with self.store.savepoint():
                    created.append(self._assign(project, user_id, principal))
            except DuplicateAssignmentError:
                skipped.append(BulkSkip(index, "Already assigned"))
            except InternalError:
                raise
            except TimesheetKernelError as exc:
                errors.append(BulkError(index, exc.code, str(exc)))
        return BulkResult(tuple(created), tuple(skipped), tuple(errors))

    def remove_member(self, project_id: UUID, user_id: UUID, principal: Principal) -> AssignmentInfo:
        project = self._project(project_id)
        self._require_manage_members(project, principal, "remove")
        existing = self.store.find_assignment(project_id, user_id)
        if existing is None or not existing.is_active:
            raise AssignmentNotFoundError(project_id, user_id)
        assignment = self.store.set_assignment_active(existing.id, False)
        logger.info(
            "project_member_removed",
            extra={
                "project_id": str(project_id),
                "user_id": str(user_id),
                "actor_id": str(principal.user_id),
            },
        )
        return assignment

    def list_members(self, project_id: UUID, principal: Principal) -> list[AssignmentInfo]:
        project = self.get_project(project_id, principal)
        return self.store.list_assignments(project.id)

    # -- General project and statistics -------------------------------------

    def get_general_project(self, area_id: UUID, principal: Principal) -> ProjectInfo:
        project = self.store.find_general_project(area_id)
        if project is None:
            raise GeneralProjectNotFoundError(area_id)
        self.require(
            self.policy.can_access_project(principal, project),
            principal, "read", "Project", project.id,
        )
        return project

    def get_or_create_general_project(self, area_id: UUID, principal: Principal) -> ProjectInfo:
        """The area's catch-all project, created on first request."""
        existing = self.store.find_general_project(area_id)
        if existing is not None:
            self.require(
                self.policy.can_access_project(principal, existing),
                principal, "read", "Project", existing.id,
            )
            return existing

        area = self.store.find_area(area_id)
        if area is None:
            raise AreaNotFoundError(area_id)
        return self.create_project(
            {
                "name": f"{GENERAL_PROJECT_NAME_PREFIX}{area.name}",
                "description": f"General activities of area {area.name}",
                "area_id": area_id,
                "priority": Priority.LOW,
                "is_general": True,
            },
            principal,
        )

    def project_stats(self, project_id: UUID, principal: Principal) -> ProjectStats:
        project = self.get_project(project_id, principal)
        return self._selector().project_stats(project)
