"""
Typed Exception Hierarchy for the Timesheet Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers at the boundary (HTTP handlers, batch jobs) must map every failure
to a status code and a message that can be shown to the user as-is.  Parsing
message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Every exception has an HTTP_STATUS attribute (boundary mapping)
  4. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.create_or_merge(candidate, principal)
    except DailyHoursExceededError as e:
        log.warning("cap", extra={"total": e.total_hours})
        return error_response(e), e.http_status

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TimesheetKernelError (base)
    |
    +-- NotFoundError                        404
    |   +-- AreaNotFoundError
    |   +-- UserNotFoundError
    |   +-- ProjectNotFoundError
    |   +-- TaskNotFoundError
    |   +-- TimeEntryNotFoundError
    |   +-- TimePeriodNotFoundError
    |   +-- AssignmentNotFoundError
    |   +-- GeneralProjectNotFoundError
    |   +-- ConfigNotFoundError
    |
    +-- ForbiddenError                       403
    |
    +-- ValidationError                      400
    |   +-- HoursBelowMinimumError
    |   +-- HoursAboveMaximumError
    |   +-- DateOutsideFutureWindowError
    |   +-- DateOutsidePastWindowError
    |   +-- DailyHoursExceededError
    |   +-- DuplicateTimeEntryError
    |   +-- InvalidStatusTransitionError
    |   +-- InvalidDateRangeError
    |   +-- InvalidDueDateError
    |   +-- InvalidCalendarDateError
    |   +-- ImmutableFieldError
    |   +-- UnsupportedFieldError
    |   +-- TaskProjectMismatchError
    |   +-- DescriptionTooLongError
    |   +-- InvalidConfigValueError
    |
    +-- ConflictError                        409
    |   +-- DuplicateAssignmentError
    |   +-- ProjectHasActiveTasksError
    |   +-- TaskHasTimeEntriesError
    |   +-- TimePeriodExistsError
    |
    +-- InternalError                        500

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                         | When Raised
------------|------------------------------|------------------------------------
NotFound    | TASK_NOT_FOUND               | Task id doesn't exist (or deleted)
            | TIME_ENTRY_NOT_FOUND         | Time entry id doesn't exist
            | PROJECT_NOT_FOUND            | Project id doesn't exist
------------|------------------------------|------------------------------------
Forbidden   | FORBIDDEN                    | AccessPolicy predicate returned False
------------|------------------------------|------------------------------------
Validation  | HOURS_BELOW_MINIMUM          | hours < TIME_ENTRY_MIN_HOURS
            | HOURS_ABOVE_MAXIMUM          | hours > per-entry maximum
            | DATE_OUTSIDE_FUTURE_WINDOW   | more than N days ahead of today
            | DATE_OUTSIDE_PAST_WINDOW     | more than N days before today
            | DAILY_HOURS_EXCEEDED         | (user, date) total over the cap
            | DUPLICATE_TIME_ENTRY         | insert path found an existing entry
            | INVALID_STATUS_TRANSITION    | state machine rejects the move
            | IMMUTABLE_FIELD              | update touches an identity field
------------|------------------------------|------------------------------------
Conflict    | DUPLICATE_ASSIGNMENT         | user already actively assigned
            | PROJECT_HAS_ACTIVE_TASKS     | project delete with open tasks
            | TASK_HAS_TIME_ENTRIES        | task delete with logged time
------------|------------------------------|------------------------------------
Internal    | INTERNAL_ERROR               | unexpected store failure
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from timesheet_kernel.domain.calendar_date import CalendarDate


class TimesheetKernelError(Exception):
    """
    Base exception for all timesheet kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification and an `http_status` for boundary mapping.
    """

    code: str = "INTERNAL_ERROR"
    http_status: int = 500


# Not-found exceptions


class NotFoundError(TimesheetKernelError):
    """Base exception for missing referenced records."""

    code: str = "NOT_FOUND"
    http_status: int = 404

    resource_type: str = "Resource"

    def __init__(self, resource_id: Any):
        self.resource_id = str(resource_id)
        super().__init__(f"{self.resource_type} not found: {resource_id}")


class AreaNotFoundError(NotFoundError):
    code: str = "AREA_NOT_FOUND"
    resource_type = "Area"


class UserNotFoundError(NotFoundError):
    code: str = "USER_NOT_FOUND"
    resource_type = "User"


class ProjectNotFoundError(NotFoundError):
    code: str = "PROJECT_NOT_FOUND"
    resource_type = "Project"


class TaskNotFoundError(NotFoundError):
    code: str = "TASK_NOT_FOUND"
    resource_type = "Task"


class TimeEntryNotFoundError(NotFoundError):
    code: str = "TIME_ENTRY_NOT_FOUND"
    resource_type = "Time entry"


class TimePeriodNotFoundError(NotFoundError):
    code: str = "TIME_PERIOD_NOT_FOUND"
    resource_type = "Time period"


class ConfigNotFoundError(NotFoundError):
    code: str = "CONFIG_NOT_FOUND"
    resource_type = "Configuration"


class AssignmentNotFoundError(NotFoundError):
    """User has no active assignment on the project."""

    code: str = "ASSIGNMENT_NOT_FOUND"

    def __init__(self, project_id: Any, user_id: Any):
        self.project_id = str(project_id)
        self.user_id = str(user_id)
        self.resource_id = self.user_id
        Exception.__init__(
            self,
            f"User {user_id} is not assigned to project {project_id}",
        )


class GeneralProjectNotFoundError(NotFoundError):
    """Area has no general (catch-all) project yet."""

    code: str = "GENERAL_PROJECT_NOT_FOUND"

    def __init__(self, area_id: Any):
        self.area_id = str(area_id)
        self.resource_id = self.area_id
        Exception.__init__(self, f"No general project exists for area {area_id}")


# Authorization


class ForbiddenError(TimesheetKernelError):
    """
    AccessPolicy vetoed the operation.

    Carries the attempted action and resource type so the boundary can log
    the denial without re-deriving it.
    """

    code: str = "FORBIDDEN"
    http_status: int = 403

    def __init__(self, action: str, resource_type: str, resource_id: Any = None):
        self.action = action
        self.resource_type = resource_type
        self.resource_id = str(resource_id) if resource_id is not None else None
        super().__init__(
            f"You do not have permission to {action} this {resource_type.lower()}"
        )


# Validation exceptions


class ValidationError(TimesheetKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class HoursBelowMinimumError(ValidationError):
    code: str = "HOURS_BELOW_MINIMUM"

    def __init__(self, hours: Decimal, minimum: Decimal):
        self.hours = hours
        self.minimum = minimum
        super().__init__(f"Hours must be at least {minimum} (got {hours})")


class HoursAboveMaximumError(ValidationError):
    code: str = "HOURS_ABOVE_MAXIMUM"

    def __init__(self, hours: Decimal, maximum: Decimal):
        self.hours = hours
        self.maximum = maximum
        super().__init__(f"Hours cannot exceed {maximum} (got {hours})")


class DateOutsideFutureWindowError(ValidationError):
    """Target date is further ahead than TIME_ENTRY_FUTURE_DAYS allows."""

    code: str = "DATE_OUTSIDE_FUTURE_WINDOW"

    def __init__(self, target_date: "CalendarDate", days_allowed: int):
        self.target_date = target_date
        self.days_allowed = days_allowed
        super().__init__(
            f"Cannot record time more than {days_allowed} days in the future"
        )


class DateOutsidePastWindowError(ValidationError):
    """Target date is further back than TIME_ENTRY_PAST_DAYS allows."""

    code: str = "DATE_OUTSIDE_PAST_WINDOW"

    def __init__(self, target_date: "CalendarDate", days_allowed: int):
        self.target_date = target_date
        self.days_allowed = days_allowed
        super().__init__(
            f"Cannot record time more than {days_allowed} days in the past"
        )


class DailyHoursExceededError(ValidationError):
    """Sum of hours for (user, date) would exceed the configured cap."""

    code: str = "DAILY_HOURS_EXCEEDED"

    def __init__(
        self,
        user_id: Any,
        entry_date: "CalendarDate",
        current_hours: Decimal,
        new_hours: Decimal,
        max_hours: Decimal,
    ):
        self.user_id = str(user_id)
        self.entry_date = entry_date
        self.current_hours = current_hours
        self.new_hours = new_hours
        self.total_hours = current_hours + new_hours
        self.max_hours = max_hours
        super().__init__(
            f"Daily limit of {max_hours} hours exceeded: {current_hours} already "
            f"recorded on {entry_date.isoformat()}, {new_hours} more requested"
        )


class DuplicateTimeEntryError(ValidationError):
    """An entry already exists for (user, project, task, date)."""

    code: str = "DUPLICATE_TIME_ENTRY"

    def __init__(self, existing_entry_id: Any, entry_date: "CalendarDate"):
        self.existing_entry_id = str(existing_entry_id)
        self.entry_date = entry_date
        super().__init__(
            f"A time entry already exists for this task on {entry_date.isoformat()}"
        )


class InvalidStatusTransitionError(ValidationError):
    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, resource_type: str, from_status: str, to_status: str):
        self.resource_type = resource_type
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid {resource_type.lower()} status transition: "
            f"{from_status} -> {to_status}"
        )


class InvalidInitialStatusError(ValidationError):
    code: str = "INVALID_INITIAL_STATUS"

    def __init__(self, resource_type: str, status: str, initial_status: str):
        self.resource_type = resource_type
        self.status = status
        self.initial_status = initial_status
        super().__init__(
            f"A new {resource_type.lower()} must start as {initial_status}, not {status}"
        )


class InvalidDateRangeError(ValidationError):
    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start_date: date, end_date: date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Start date {start_date.isoformat()} must be before "
            f"end date {end_date.isoformat()}"
        )


class InvalidDueDateError(ValidationError):
    """Task due date before today or after the project's end date."""

    code: str = "INVALID_DUE_DATE"

    def __init__(self, due_date: date, reason: str):
        self.due_date = due_date
        self.reason = reason
        super().__init__(f"Due date {due_date.isoformat()} {reason}")


class InvalidCalendarDateError(ValidationError):
    code: str = "INVALID_CALENDAR_DATE"

    def __init__(self, year: Any, month: Any, day: Any):
        self.year = year
        self.month = month
        self.day = day
        super().__init__(f"Invalid calendar date: {year}-{month}-{day}")


class ImmutableFieldError(ValidationError):
    """
    Update attempted to change a field that is part of a record's identity.

    The only way to change a time entry's date, project or task is to delete
    it and create a new one.
    """

    code: str = "IMMUTABLE_FIELD"

    def __init__(self, resource_type: str, fields: tuple[str, ...]):
        self.resource_type = resource_type
        self.fields = fields
        super().__init__(
            f"Cannot change {', '.join(fields)} on an existing "
            f"{resource_type.lower()}; delete it and create a new one instead"
        )


class UnsupportedFieldError(ValidationError):
    code: str = "UNSUPPORTED_FIELD"

    def __init__(self, resource_type: str, fields: tuple[str, ...]):
        self.resource_type = resource_type
        self.fields = fields
        super().__init__(
            f"Unsupported fields for {resource_type.lower()} update: "
            f"{', '.join(fields)}"
        )


class TaskProjectMismatchError(ValidationError):
    code: str = "TASK_PROJECT_MISMATCH"

    def __init__(self, task_id: Any, project_id: Any):
        self.task_id = str(task_id)
        self.project_id = str(project_id)
        super().__init__(f"Task {task_id} does not belong to project {project_id}")


class DescriptionTooLongError(ValidationError):
    code: str = "DESCRIPTION_TOO_LONG"

    def __init__(self, length: int, max_length: int):
        self.length = length
        self.max_length = max_length
        super().__init__(
            f"Description cannot exceed {max_length} characters (got {length})"
        )


class InvalidConfigValueError(ValidationError):
    code: str = "INVALID_CONFIG_VALUE"

    def __init__(self, key: str, value: Any, reason: str):
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value for {key}: {reason}")


# Conflict exceptions


class ConflictError(TimesheetKernelError):
    """Base exception for requests that conflict with current state."""

    code: str = "CONFLICT"
    http_status: int = 409


class DuplicateAssignmentError(ConflictError):
    code: str = "DUPLICATE_ASSIGNMENT"

    def __init__(self, project_id: Any, user_id: Any):
        self.project_id = str(project_id)
        self.user_id = str(user_id)
        super().__init__("The user is already assigned to this project")


class ProjectHasActiveTasksError(ConflictError):
    code: str = "PROJECT_HAS_ACTIVE_TASKS"

    def __init__(self, project_id: Any, active_task_count: int):
        self.project_id = str(project_id)
        self.active_task_count = active_task_count
        super().__init__(
            f"Cannot delete a project with active tasks ({active_task_count} open)"
        )


class TaskHasTimeEntriesError(ConflictError):
    code: str = "TASK_HAS_TIME_ENTRIES"

    def __init__(self, task_id: Any, entry_count: int):
        self.task_id = str(task_id)
        self.entry_count = entry_count
        super().__init__(
            f"Cannot delete a task with recorded time ({entry_count} entries)"
        )


class GeneralProjectExistsError(ConflictError):
    code: str = "GENERAL_PROJECT_EXISTS"

    def __init__(self, area_id: Any, existing_project_id: Any):
        self.area_id = str(area_id)
        self.existing_project_id = str(existing_project_id)
        super().__init__(f"Area {area_id} already has a general project")


class TimePeriodExistsError(ConflictError):
    code: str = "TIME_PERIOD_EXISTS"

    def __init__(self, year: int, month: int, period_number: int):
        self.year = year
        self.month = month
        self.period_number = period_number
        super().__init__(
            f"Time period {year}-{month:02d} #{period_number} already exists"
        )


# Internal


class InternalError(TimesheetKernelError):
    """Unexpected persistence failure surfaced to the boundary."""

    code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Internal error during {operation}")


# Boundary envelope

_GENERIC_MESSAGE = "Internal server error"


def error_response(exc: BaseException) -> dict[str, Any]:
    """Build the ``{success, message, error}`` envelope for a raised error.

    Kernel errors expose their own message and code.  Anything else is
    reported as INTERNAL_ERROR without leaking its message.
    """
    if isinstance(exc, TimesheetKernelError) and not isinstance(exc, InternalError):
        return {"success": False, "message": str(exc), "error": exc.code}
    return {"success": False, "message": _GENERIC_MESSAGE, "error": InternalError.code}


def http_status_for(exc: BaseException) -> int:
    """HTTP status a boundary should answer with for ``exc``."""
    if isinstance(exc, TimesheetKernelError):
        return exc.http_status
    return 500
