"""
AccessPolicy -- role-scoped authorization predicates.

Responsibility:
    One pure predicate per (resource, operation) deciding whether a principal
    may create/read/update/delete/assign a Project, Task or TimeEntry, plus
    the ListScope each role gets on list queries.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  Services fetch the resource
    (and, for strict project visibility, the membership flag) and call these.

Invariants enforced:
    - ADMINISTRADOR is allowed everything.
    - COORDINADOR is confined to its own area.  A coordinator without an
      area matches no area-scoped resource.
    - COLABORADOR acts only for itself and sees its area or its assigned
      tasks.  A collaborator without an area reaches only tasks assigned
      to it.
    - Every predicate branches on all Role members; an unrecognized role
      fails the type check and raises at runtime.
    - List scopes mirror the single-record predicates.

Project visibility:
    ``ProjectVisibility.AREA`` (broad): a collaborator sees every project of
    its area.  ``ProjectVisibility.ASSIGNMENT`` (strict): a collaborator
    sees projects it is actively assigned to plus its area's general
    project.  Coordinators always see their whole area.
"""

from dataclasses import dataclass
from enum import Enum
from typing import assert_never
from uuid import UUID

from timesheet_kernel.domain.dtos import ProjectInfo, TaskInfo, TimeEntryInfo
from timesheet_kernel.domain.principal import Principal, Role


class ProjectVisibility(str, Enum):
    AREA = "area"
    ASSIGNMENT = "assignment"


@dataclass(frozen=True)
class ListScope:
    """
    Row filter for list queries.

    A row is visible when ``unrestricted`` is set or when it matches ANY of
    the non-None criteria.  A scope with no criteria matches nothing.

    Criteria (each selector maps them onto its own columns):
        area_id          -- the row's project belongs to this area
        user_id          -- the row is owned by / assigned to this user
        member_user_id   -- the project has an active assignment for this user
        general_area_id  -- the project is the general project of this area
    """

    unrestricted: bool = False
    area_id: UUID | None = None
    user_id: UUID | None = None
    member_user_id: UUID | None = None
    general_area_id: UUID | None = None

    @property
    def matches_nothing(self) -> bool:
        return not self.unrestricted and all(
            v is None
            for v in (self.area_id, self.user_id, self.member_user_id, self.general_area_id)
        )


UNRESTRICTED = ListScope(unrestricted=True)


class AccessPolicy:
    """
    Role-scoped predicates.

    Contract:
        Stateless apart from the configured project visibility.  Every
        method returns a bool and has no side effects.

    Non-goals:
        Does not fetch anything, log, or raise for a denial.  Services
        translate a False into ForbiddenError.
    """

    def __init__(self, project_visibility: ProjectVisibility = ProjectVisibility.AREA):
        self.project_visibility = ProjectVisibility(project_visibility)

    # -- Projects -----------------------------------------------------------

    def can_create_project(self, principal: Principal, area_id: UUID) -> bool:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(area_id)
        if role is Role.COLABORADOR:
            return False
        assert_never(role)

    def can_access_project(
        self,
        principal: Principal,
        project: ProjectInfo,
        is_member: bool = False,
    ) -> bool:
        """``is_member``: principal holds an active assignment on the project."""
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(project.area_id)
        if role is Role.COLABORADOR:
            if self.project_visibility is ProjectVisibility.ASSIGNMENT:
                return is_member or (project.is_general and principal.in_area(project.area_id))
            return principal.in_area(project.area_id) or (
                principal.area_id is None and is_member
            )
        assert_never(role)

    def can_update_project(self, principal: Principal, project: ProjectInfo) -> bool:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(project.area_id)
        if role is Role.COLABORADOR:
            return False
        assert_never(role)

    def can_delete_project(self, principal: Principal, project: ProjectInfo) -> bool:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR or role is Role.COLABORADOR:
            return False
        assert_never(role)

    def can_manage_project_members(self, principal: Principal, project: ProjectInfo) -> bool:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(project.area_id)
        if role is Role.COLABORADOR:
            return False
        assert_never(role)

    # -- Tasks --------------------------------------------------------------

    def can_create_task(self, principal: Principal, project: ProjectInfo) -> bool:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(project.area_id)
        if role is Role.COLABORADOR:
            return False
        assert_never(role)

    def can_access_task(self, principal: Principal, task: TaskInfo) -> bool:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(task.project_area_id)
        if role is Role.COLABORADOR:
            return task.assigned_to_id == principal.user_id or principal.in_area(
                task.project_area_id
            )
        assert_never(role)

    def can_update_task(self, principal: Principal, task: TaskInfo) -> bool:
        """Also governs status changes."""
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(task.project_area_id)
        if role is Role.COLABORADOR:
            return task.assigned_to_id == principal.user_id
        assert_never(role)

    def can_delete_task(self, principal: Principal, task: TaskInfo) -> bool:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(task.project_area_id)
        if role is Role.COLABORADOR:
            return False
        assert_never(role)

    def can_assign_task(self, principal: Principal, task: TaskInfo) -> bool:
        return self.can_delete_task(principal, task)

    # -- Time entries -------------------------------------------------------

    def can_create_time_entry(
        self,
        principal: Principal,
        task: TaskInfo,
        target_user_id: UUID,
    ) -> bool:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(task.project_area_id)
        if role is Role.COLABORADOR:
            if target_user_id != principal.user_id:
                return False
            # in_area is False without an area, leaving only the assignment.
            return principal.in_area(task.project_area_id) or (
                task.assigned_to_id == principal.user_id
            )
        assert_never(role)

    def can_access_time_entry(self, principal: Principal, entry: TimeEntryInfo) -> bool:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(entry.project_area_id)
        if role is Role.COLABORADOR:
            return entry.user_id == principal.user_id
        assert_never(role)

    def can_update_time_entry(self, principal: Principal, entry: TimeEntryInfo) -> bool:
        return self.can_access_time_entry(principal, entry)

    def can_delete_time_entry(self, principal: Principal, entry: TimeEntryInfo) -> bool:
        return self.can_access_time_entry(principal, entry)

    def can_view_user_time_entries(self, principal: Principal, user_id: UUID) -> bool:
        """Coordinators pass here; their list queries are still area-scoped."""
        role = principal.role
        if role is Role.ADMINISTRADOR or role is Role.COORDINADOR:
            return True
        if role is Role.COLABORADOR:
            return user_id == principal.user_id
        assert_never(role)

    def can_approve_time_entry(self, principal: Principal, entry: TimeEntryInfo) -> bool:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return True
        if role is Role.COORDINADOR:
            return principal.in_area(entry.project_area_id)
        if role is Role.COLABORADOR:
            return False
        assert_never(role)

    # -- Administration -----------------------------------------------------

    def can_manage_system_config(self, principal: Principal) -> bool:
        return principal.role is Role.ADMINISTRADOR

    def can_manage_time_periods(self, principal: Principal) -> bool:
        return principal.role is Role.ADMINISTRADOR

    # -- List scopes --------------------------------------------------------

    def project_list_scope(self, principal: Principal) -> ListScope:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return UNRESTRICTED
        if role is Role.COORDINADOR:
            return ListScope(area_id=principal.area_id)
        if role is Role.COLABORADOR:
            if self.project_visibility is ProjectVisibility.ASSIGNMENT:
                return ListScope(
                    member_user_id=principal.user_id,
                    general_area_id=principal.area_id,
                )
            if principal.area_id is None:
                return ListScope(member_user_id=principal.user_id)
            return ListScope(area_id=principal.area_id)
        assert_never(role)

    def task_list_scope(self, principal: Principal) -> ListScope:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return UNRESTRICTED
        if role is Role.COORDINADOR:
            return ListScope(area_id=principal.area_id)
        if role is Role.COLABORADOR:
            return ListScope(area_id=principal.area_id, user_id=principal.user_id)
        assert_never(role)

    def time_entry_list_scope(self, principal: Principal) -> ListScope:
        role = principal.role
        if role is Role.ADMINISTRADOR:
            return UNRESTRICTED
        if role is Role.COORDINADOR:
            return ListScope(area_id=principal.area_id)
        if role is Role.COLABORADOR:
            return ListScope(user_id=principal.user_id)
        assert_never(role)
