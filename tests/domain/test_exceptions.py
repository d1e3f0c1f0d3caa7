"""Tests for the exception taxonomy and the boundary envelope."""

from decimal import Decimal
from uuid import uuid4

import pytest

from timesheet_kernel.domain.calendar_date import CalendarDate
from timesheet_kernel.exceptions import (
    ConflictError,
    DailyHoursExceededError,
    DuplicateAssignmentError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    TaskNotFoundError,
    TimesheetKernelError,
    ValidationError,
    error_response,
    http_status_for,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc, base, status",
        [
            (TaskNotFoundError(uuid4()), NotFoundError, 404),
            (ForbiddenError("update", "Task"), TimesheetKernelError, 403),
            (ValidationError("bad"), TimesheetKernelError, 400),
            (DuplicateAssignmentError(uuid4(), uuid4()), ConflictError, 409),
            (InternalError("op"), TimesheetKernelError, 500),
        ],
    )
    def test_status_by_category(self, exc, base, status):
        assert isinstance(exc, base)
        assert exc.http_status == status
        assert http_status_for(exc) == status

    def test_forbidden_message_names_action(self):
        exc = ForbiddenError("delete", "TimeEntry", uuid4())
        assert str(exc) == "You do not have permission to delete this timeentry"

    def test_daily_cap_carries_numbers(self):
        exc = DailyHoursExceededError(
            uuid4(), CalendarDate(2025, 7, 4), Decimal("22"), Decimal("3"), Decimal("24")
        )
        assert exc.total_hours == Decimal("25")
        assert "2025-07-04" in str(exc)


class TestErrorResponse:
    def test_kernel_error_exposes_code_and_message(self):
        exc = TaskNotFoundError("abc")
        assert error_response(exc) == {
            "success": False,
            "message": "Task not found: abc",
            "error": "TASK_NOT_FOUND",
        }

    def test_internal_error_is_masked(self):
        body = error_response(InternalError("create_time_entry", "connection reset"))
        assert body["message"] == "Internal server error"
        assert body["error"] == "INTERNAL_ERROR"

    def test_foreign_exception_is_masked(self):
        body = error_response(RuntimeError("secret detail"))
        assert "secret" not in body["message"]
        assert http_status_for(RuntimeError()) == 500
