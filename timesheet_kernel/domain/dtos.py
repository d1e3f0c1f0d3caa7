"""
Data Transfer Objects for the timesheet kernel.

Responsibility:
    Frozen dataclasses that carry data between the store, the services and
    callers.  Services and selectors return these, never ORM instances.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - All DTOs are frozen.
    - Hours are Decimal; calendar days are CalendarDate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

from timesheet_kernel.domain.calendar_date import CalendarDate
from timesheet_kernel.domain.periods import PeriodType
from timesheet_kernel.domain.principal import Role
from timesheet_kernel.domain.values import Priority, ProjectStatus, TaskStatus

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AreaInfo:
    id: UUID
    name: str
    description: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class UserInfo:
    id: UUID
    email: str
    name: str
    role: Role
    area_id: UUID | None = None
    is_active: bool = True


# ---------------------------------------------------------------------------
# Projects and tasks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectInfo:
    id: UUID
    name: str
    area_id: UUID
    status: ProjectStatus = ProjectStatus.ACTIVE
    priority: Priority = Priority.MEDIUM
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    estimated_hours: Decimal | None = None
    is_general: bool = False
    is_active: bool = True
    created_by_id: UUID | None = None


@dataclass(frozen=True)
class AssignmentInfo:
    id: UUID
    project_id: UUID
    user_id: UUID
    is_active: bool = True
    assigned_by_id: UUID | None = None


@dataclass(frozen=True)
class TaskInfo:
    """A task plus the area of its project (needed by every access check)."""

    id: UUID
    title: str
    project_id: UUID
    project_area_id: UUID
    status: TaskStatus = TaskStatus.TODO
    priority: Priority = Priority.MEDIUM
    assigned_to_id: UUID | None = None
    description: str | None = None
    due_date: date | None = None
    estimated_hours: Decimal | None = None
    completed_at: datetime | None = None
    is_active: bool = True


# ---------------------------------------------------------------------------
# Periods and time entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimePeriodInfo:
    id: UUID
    year: int
    month: int
    period_number: int
    start_date: CalendarDate
    end_date: CalendarDate
    period_type: PeriodType
    reference_hours: Decimal | None = None


@dataclass(frozen=True)
class TimeEntryInfo:
    id: UUID
    user_id: UUID
    project_id: UUID
    task_id: UUID
    entry_date: CalendarDate
    hours: Decimal
    description: str
    time_period_id: UUID
    project_area_id: UUID
    is_approved: bool = False
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None


@dataclass(frozen=True)
class TimeEntryCandidate:
    """
    A submitted time entry before validation.

    The day arrives as separate (year, month, day) integers and is never
    parsed from a combined string.  ``hours`` may be any numeric input; it
    is converted to Decimal by the service.
    """

    task_id: UUID
    year: int
    month: int
    day: int
    hours: Decimal | int | str
    description: str = ""
    project_id: UUID | None = None
    user_id: UUID | None = None

    @property
    def entry_date(self) -> CalendarDate:
        return CalendarDate(self.year, self.month, self.day)


class ReconcileAction(str, Enum):
    INSERTED = "inserted"
    MERGED = "merged"


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of create-or-merge: the stored entry and which path wrote it."""

    action: ReconcileAction
    entry: TimeEntryInfo
    previous_hours: Decimal | None = None

    @property
    def is_inserted(self) -> bool:
        return self.action == ReconcileAction.INSERTED

    @property
    def is_merged(self) -> bool:
        return self.action == ReconcileAction.MERGED


# ---------------------------------------------------------------------------
# Bulk results and pagination
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BulkSkip:
    index: int
    reason: str
    existing_id: UUID | None = None


@dataclass(frozen=True)
class BulkError:
    index: int
    code: str
    message: str


@dataclass(frozen=True)
class BulkResult(Generic[T]):
    """Partial-success report: every input lands in exactly one bucket."""

    created: tuple[T, ...] = ()
    skipped: tuple[BulkSkip, ...] = ()
    errors: tuple[BulkError, ...] = ()

    @property
    def total(self) -> int:
        return len(self.created) + len(self.skipped) + len(self.errors)


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SystemConfigInfo:
    key: str
    value: str
    description: str | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectStats:
    project_id: UUID
    estimated_hours: Decimal
    actual_hours: Decimal
    total_tasks: int
    completed_tasks: int
    completion_rate: Decimal
    assigned_users: int
    tasks_by_status: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class PeriodStatistics:
    period_id: UUID
    total_hours: Decimal
    total_entries: int
    average_hours_per_entry: Decimal
    unique_users: int
    reference_hours: Decimal | None
    completion_percentage: Decimal


@dataclass(frozen=True)
class PeriodComparison:
    period_id: UUID
    reference_hours: Decimal
    actual_hours: Decimal
    general_hours: Decimal
    client_hours: Decimal
    difference: Decimal
    percentage: Decimal
    status: str


@dataclass(frozen=True)
class UserTimeSummary:
    user_id: UUID
    start_date: CalendarDate
    end_date: CalendarDate
    total_hours: Decimal
    total_entries: int
    hours_by_project: dict[UUID, Decimal] = field(default_factory=dict)
    hours_by_day: dict[CalendarDate, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class ProjectTimeReport:
    project_id: UUID
    start_date: CalendarDate | None
    end_date: CalendarDate | None
    total_hours: Decimal
    total_entries: int
    hours_by_user: dict[UUID, Decimal] = field(default_factory=dict)
    hours_by_task: dict[UUID, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class TimeStats:
    total_hours: Decimal
    total_entries: int
    unique_users: int
    approved_hours: Decimal
    pending_hours: Decimal


# ---------------------------------------------------------------------------
# List filters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectFilters:
    status: ProjectStatus | None = None
    priority: Priority | None = None
    area_id: UUID | None = None
    is_general: bool | None = None
    search: str | None = None


@dataclass(frozen=True)
class TaskFilters:
    project_id: UUID | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None
    assigned_to_id: UUID | None = None
    search: str | None = None


@dataclass(frozen=True)
class TimeEntryFilters:
    user_id: UUID | None = None
    project_id: UUID | None = None
    task_id: UUID | None = None
    time_period_id: UUID | None = None
    start_date: CalendarDate | None = None
    end_date: CalendarDate | None = None
    is_approved: bool | None = None
