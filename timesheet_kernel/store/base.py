"""
Store -- the persistence contract the timesheet core depends on.

Responsibility:
    Declares, as a ``typing.Protocol``, every read and write the services
    need.  Services receive a Store instance through their constructor;
    nothing in the kernel reaches for a module-level database client.

Architecture position:
    Kernel > Store.  May import from domain/ (DTOs, value types).  The SQL
    implementation lives in store/sql_store.py; tests may substitute any
    object that satisfies this protocol.

Contract:
    - Every method takes and returns DTOs and CalendarDate values, never ORM
      instances or ``datetime`` instants.
    - ``create_time_entry`` and ``create_time_period`` are insert-if-absent:
      they return None when a row with the same identity already exists
      (including one inserted concurrently), leaving the caller's
      transaction usable.
    - Writers flush; they never commit.
    - Config writes stay visible through ``pending_config_keys`` until the
      outermost transaction ends, so shared caches can skip them.
"""

from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from timesheet_kernel.domain.calendar_date import CalendarDate
from timesheet_kernel.domain.dtos import (
    AreaInfo,
    AssignmentInfo,
    ProjectInfo,
    SystemConfigInfo,
    TaskInfo,
    TimeEntryInfo,
    TimePeriodInfo,
    UserInfo,
)
from timesheet_kernel.domain.principal import Role


class Store(Protocol):
    def savepoint(self) -> AbstractContextManager[None]:
        """Scope whose writes are undone if the block raises."""
        ...

    # -- Reference data -----------------------------------------------------

    def find_area(self, area_id: UUID) -> AreaInfo | None: ...

    def create_area(self, name: str, description: str | None = None) -> AreaInfo: ...

    def find_user(self, user_id: UUID) -> UserInfo | None: ...

    def create_user(
        self,
        email: str,
        name: str,
        role: Role,
        area_id: UUID | None = None,
    ) -> UserInfo: ...

    # -- Projects -----------------------------------------------------------

    def find_project(self, project_id: UUID, include_inactive: bool = False) -> ProjectInfo | None: ...

    def find_general_project(self, area_id: UUID) -> ProjectInfo | None: ...

    def create_project(self, fields: Mapping[str, Any], actor_id: UUID) -> ProjectInfo: ...

    def update_project(self, project_id: UUID, fields: Mapping[str, Any], actor_id: UUID) -> ProjectInfo: ...

    def count_open_tasks(self, project_id: UUID) -> int: ...

    # -- Assignments --------------------------------------------------------

    def find_assignment(self, project_id: UUID, user_id: UUID) -> AssignmentInfo | None: ...

    def create_assignment(self, project_id: UUID, user_id: UUID, assigned_by_id: UUID) -> AssignmentInfo: ...

    def set_assignment_active(
        self,
        assignment_id: UUID,
        is_active: bool,
        assigned_by_id: UUID | None = None,
    ) -> AssignmentInfo: ...

    def list_assignments(self, project_id: UUID, active_only: bool = True) -> list[AssignmentInfo]: ...

    def is_project_member(self, project_id: UUID, user_id: UUID) -> bool: ...

    # -- Tasks --------------------------------------------------------------

    def find_task(self, task_id: UUID, include_inactive: bool = False) -> TaskInfo | None: ...

    def create_task(self, fields: Mapping[str, Any], actor_id: UUID) -> TaskInfo: ...

    def update_task(self, task_id: UUID, fields: Mapping[str, Any], actor_id: UUID) -> TaskInfo: ...

    def count_time_entries_for_task(self, task_id: UUID) -> int: ...

    # -- Time periods -------------------------------------------------------

    def find_time_period(self, year: int, month: int, period_number: int) -> TimePeriodInfo | None: ...

    def find_time_period_by_id(self, period_id: UUID) -> TimePeriodInfo | None: ...

    def create_time_period(self, fields: Mapping[str, Any], actor_id: UUID) -> TimePeriodInfo | None: ...

    def update_time_period(self, period_id: UUID, fields: Mapping[str, Any], actor_id: UUID) -> TimePeriodInfo: ...

    # -- Time entries -------------------------------------------------------

    def find_time_entry(
        self,
        user_id: UUID,
        project_id: UUID,
        task_id: UUID,
        entry_date: CalendarDate,
        for_update: bool = False,
    ) -> TimeEntryInfo | None: ...

    def find_time_entry_by_id(self, entry_id: UUID) -> TimeEntryInfo | None: ...

    def create_time_entry(self, fields: Mapping[str, Any]) -> TimeEntryInfo | None: ...

    def update_time_entry(self, entry_id: UUID, fields: Mapping[str, Any]) -> TimeEntryInfo: ...

    def delete_time_entry(self, entry_id: UUID) -> None: ...

    def sum_hours_for_user_and_date(
        self,
        user_id: UUID,
        entry_date: CalendarDate,
        exclude_entry_id: UUID | None = None,
    ) -> Decimal: ...

    # -- System configuration -----------------------------------------------

    def find_config(self, key: str) -> SystemConfigInfo | None: ...

    def list_configs(self) -> list[SystemConfigInfo]: ...

    def upsert_config(
        self,
        key: str,
        value: str,
        description: str | None,
        actor_id: UUID | None,
    ) -> SystemConfigInfo: ...

    def delete_config(self, key: str) -> bool: ...

    def pending_config_keys(self) -> frozenset[str]:
        """Config keys written in the current transaction and not yet committed."""
        ...

    def on_transaction_end(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` as each enclosing transaction or savepoint ends.

        The callback is dropped once the outermost transaction commits or
        rolls back.
        """
        ...
