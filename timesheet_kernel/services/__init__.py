"""Kernel services: orchestration of domain rules around Store calls."""

from timesheet_kernel.services.base import BaseService
from timesheet_kernel.services.project_service import ProjectService
from timesheet_kernel.services.system_config_service import (
    DEFAULT_CONFIGS,
    ConfigCache,
    SystemConfigService,
)
from timesheet_kernel.services.task_service import TaskService
from timesheet_kernel.services.time_entry_service import TimeEntryService
from timesheet_kernel.services.time_period_service import PeriodSpec, TimePeriodService

__all__ = [
    "BaseService",
    "ConfigCache",
    "DEFAULT_CONFIGS",
    "PeriodSpec",
    "ProjectService",
    "SystemConfigService",
    "TaskService",
    "TimeEntryService",
    "TimePeriodService",
]
