"""Read-only queries.  Every list applies the caller's ListScope."""

from timesheet_kernel.selectors.base import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    BaseSelector,
    normalize_page,
)
from timesheet_kernel.selectors.project_selector import ProjectSelector
from timesheet_kernel.selectors.task_selector import TaskSelector
from timesheet_kernel.selectors.time_entry_selector import TimeEntrySelector
from timesheet_kernel.selectors.time_period_selector import PeriodTotals, TimePeriodSelector

__all__ = [
    "BaseSelector",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "PeriodTotals",
    "ProjectSelector",
    "TaskSelector",
    "TimeEntrySelector",
    "TimePeriodSelector",
    "normalize_page",
]
