"""SQLAlchemy ORM models for the timesheet kernel."""

from timesheet_kernel.models.area import Area
from timesheet_kernel.models.project import Project, ProjectAssignment
from timesheet_kernel.models.system_config import SystemConfig
from timesheet_kernel.models.task import Task
from timesheet_kernel.models.time_entry import TimeEntry
from timesheet_kernel.models.time_period import TimePeriod
from timesheet_kernel.models.user import User

__all__ = [
    "Area",
    "Project",
    "ProjectAssignment",
    "SystemConfig",
    "Task",
    "TimeEntry",
    "TimePeriod",
    "User",
]
