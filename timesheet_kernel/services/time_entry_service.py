"""
TimeEntryService -- validation and create-or-merge of time entries.

Responsibility:
    The write path for recorded hours.  ``create_or_merge`` is the
    reconciler: a submission for an existing (user, project, task, date)
    corrects that entry in place instead of failing as a duplicate.  Also
    owns update, delete, approval and bulk import, and the scoped reads
    that go with them.

Architecture position:
    Kernel > Services -- imperative shell.  Validation rules are the pure
    functions in domain/validation.py; this service fetches their inputs
    (configuration, today's date, the day's running total) and translates
    rejections into typed exceptions.

Invariants enforced:
    - At most one entry per (user_id, project_id, task_id, date).  The
      lookup takes a row lock and the insert is insert-if-absent, so a
      concurrent duplicate turns into a merge instead of a second row.
    - The sum of a user's hours on a calendar day never exceeds the
      configured daily cap.  On merge and update the entry's own previous
      hours are excluded from the running total.
    - Dates are CalendarDate values built from (year, month, day); "today"
      is taken from the injected Clock in the reference timezone.
    - An entry's identity (date, project, task, user, period) never changes
      after creation.  Updates that try raise ImmutableFieldError.
    - Interactive submissions merge duplicates; create_many skips them.

Failure modes:
    - TaskNotFoundError / TimeEntryNotFoundError / UserNotFoundError.
    - ForbiddenError: AccessPolicy veto.
    - HoursBelowMinimumError / HoursAboveMaximumError.
    - DateOutsideFutureWindowError / DateOutsidePastWindowError.
    - DailyHoursExceededError.
    - DuplicateTimeEntryError: bulk import only.
    - ImmutableFieldError / UnsupportedFieldError: update only.

Audit relevance:
    Every create, merge, update, delete and approval decision is logged
    with the entry id and the acting user.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timezone, tzinfo
from decimal import Decimal
from typing import Any
from uuid import UUID

from timesheet_kernel.db.types import round_hours, to_hours
from timesheet_kernel.domain.access_policy import AccessPolicy
from timesheet_kernel.domain.calendar_date import CalendarDate
from timesheet_kernel.domain.clock import Clock
from timesheet_kernel.domain.dtos import (
    BulkError,
    BulkResult,
    BulkSkip,
    Page,
    ProjectTimeReport,
    ReconcileAction,
    ReconcileOutcome,
    TaskInfo,
    TimeEntryCandidate,
    TimeEntryFilters,
    TimeEntryInfo,
    TimeStats,
    UserTimeSummary,
)
from timesheet_kernel.domain.principal import Principal
from timesheet_kernel.domain.validation import (
    MAX_DESCRIPTION_LENGTH,
    DailyHoursCheck,
    HoursRejection,
    WindowCheck,
    WindowRejection,
    check_daily_hours,
    check_date_window,
    check_hours_bounds,
)
from timesheet_kernel.exceptions import (
    DailyHoursExceededError,
    DateOutsideFutureWindowError,
    DateOutsidePastWindowError,
    DescriptionTooLongError,
    DuplicateTimeEntryError,
    HoursAboveMaximumError,
    HoursBelowMinimumError,
    ImmutableFieldError,
    InternalError,
    ProjectNotFoundError,
    TaskNotFoundError,
    TaskProjectMismatchError,
    TimeEntryNotFoundError,
    TimesheetKernelError,
    UnsupportedFieldError,
    UserNotFoundError,
    ValidationError,
)
from timesheet_kernel.logging_config import LogContext, get_logger
from timesheet_kernel.selectors.time_entry_selector import TimeEntrySelector
from timesheet_kernel.services.base import BaseService
from timesheet_kernel.services.system_config_service import SystemConfigService
from timesheet_kernel.services.time_period_service import TimePeriodService
from timesheet_kernel.store.base import Store

logger = get_logger("services.time_entry")

DUPLICATE_ENTRY_REASON = "Duplicate entry"

MUTABLE_FIELDS = frozenset({"hours", "description"})
IMMUTABLE_FIELDS = frozenset(
    {"date", "year", "month", "day", "project_id", "task_id", "user_id", "time_period_id"}
)


@dataclass(frozen=True)
class _PreparedEntry:
    """A candidate after authorization and parsing, before rule checks."""

    task: TaskInfo
    user_id: UUID
    entry_date: CalendarDate
    hours: Decimal
    description: str


def _parse_hours(value: Any) -> Decimal:
    try:
        return round_hours(to_hours(value))
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _check_description(value: Any) -> str:
    description = "" if value is None else str(value)
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise DescriptionTooLongError(len(description), MAX_DESCRIPTION_LENGTH)
    return description


def _as_calendar_date(value: Any) -> CalendarDate | None:
    if isinstance(value, CalendarDate):
        return value
    if isinstance(value, date):
        return CalendarDate.from_date(value)
    if isinstance(value, str):
        try:
            return CalendarDate.from_iso(value)
        except ValidationError:
            return None
    return None


def _identity_changed(entry: TimeEntryInfo, field: str, value: Any) -> bool:
    if field == "date":
        return _as_calendar_date(value) != entry.entry_date
    if field in ("year", "month", "day"):
        return value != getattr(entry.entry_date, field)
    return str(value) != str(getattr(entry, field))


class TimeEntryService(BaseService):
    """
    Time entry write path and scoped reads.

    Contract:
        Every public method takes the acting Principal.  Nothing is
        committed here; the Store flushes into the caller's transaction.

    Guarantees:
        - create_or_merge returns INSERTED or MERGED, never both, and never
          leaves two rows for one identity.
        - create_many reports every input in exactly one of created,
          skipped or errors; one item failing never undoes another.
    """

    def __init__(
        self,
        store: Store,
        config: SystemConfigService,
        periods: TimePeriodService,
        selector: TimeEntrySelector | None = None,
        policy: AccessPolicy | None = None,
        clock: Clock | None = None,
        reference_tz: tzinfo = timezone.utc,
    ):
        super().__init__(store, policy, clock, reference_tz)
        self.config = config
        self.periods = periods
        self.selector = selector

    # -- Validation ---------------------------------------------------------

    def validate_date(self, entry_date: CalendarDate) -> WindowCheck:
        """Apply the configured date window relative to today."""
        return check_date_window(
            entry_date, self.today(), self.config.get_date_restriction_configs()
        )

    def check_daily_hours(
        self,
        user_id: UUID,
        entry_date: CalendarDate,
        new_hours: Decimal,
        exclude_entry_id: UUID | None = None,
    ) -> DailyHoursCheck:
        current = self.store.sum_hours_for_user_and_date(user_id, entry_date, exclude_entry_id)
        return check_daily_hours(
            current, new_hours, self.config.get_hours_limits().max_hours_per_day
        )

    def _validate(
        self,
        user_id: UUID,
        entry_date: CalendarDate,
        hours: Decimal,
        exclude_entry_id: UUID | None = None,
    ) -> None:
        """Hours bounds, then date window, then daily cap."""
        bounds = check_hours_bounds(hours, self.config.get_hours_limits())
        if not bounds.is_valid:
            if bounds.reason is HoursRejection.BELOW_MINIMUM:
                raise HoursBelowMinimumError(hours, bounds.limit)
            raise HoursAboveMaximumError(hours, bounds.limit)

        window = self.validate_date(entry_date)
        if not window.is_valid:
            if window.reason is WindowRejection.FUTURE_WINDOW_EXCEEDED:
                raise DateOutsideFutureWindowError(entry_date, window.days_allowed)
            raise DateOutsidePastWindowError(entry_date, window.days_allowed)

        daily = self.check_daily_hours(user_id, entry_date, hours, exclude_entry_id)
        if not daily.is_valid:
            logger.info(
                "daily_hours_exceeded",
                extra={
                    "user_id": str(user_id),
                    "entry_date": entry_date.isoformat(),
                    "current_hours": daily.current_hours,
                    "new_hours": hours,
                    "max_hours": daily.max_hours,
                },
            )
            raise DailyHoursExceededError(
                user_id, entry_date, daily.current_hours, hours, daily.max_hours
            )

    # -- Create / merge -----------------------------------------------------

    def _prepare(self, candidate: TimeEntryCandidate, principal: Principal) -> _PreparedEntry:
        task = self.store.find_task(candidate.task_id)
        if task is None:
            raise TaskNotFoundError(candidate.task_id)
        if candidate.project_id is not None and candidate.project_id != task.project_id:
            raise TaskProjectMismatchError(task.id, candidate.project_id)

        target_user_id = candidate.user_id or principal.user_id
        self.require(
            self.policy.can_create_time_entry(principal, task, target_user_id),
            principal, "create", "TimeEntry", task.id,
        )
        if target_user_id != principal.user_id and self.store.find_user(target_user_id) is None:
            raise UserNotFoundError(target_user_id)

        return _PreparedEntry(
            task=task,
            user_id=target_user_id,
            entry_date=candidate.entry_date,
            hours=_parse_hours(candidate.hours),
            description=_check_description(candidate.description),
        )

    def _find_existing(self, prepared: _PreparedEntry) -> TimeEntryInfo | None:
        return self.store.find_time_entry(
            prepared.user_id,
            prepared.task.project_id,
            prepared.task.id,
            prepared.entry_date,
            for_update=True,
        )

    def _insert(self, prepared: _PreparedEntry, principal: Principal) -> TimeEntryInfo | None:
        period = self.periods.get_or_create_for_date(prepared.entry_date, principal.user_id)
        return self.store.create_time_entry(
            {
                "user_id": prepared.user_id,
                "project_id": prepared.task.project_id,
                "task_id": prepared.task.id,
                "entry_date": prepared.entry_date,
                "hours": prepared.hours,
                "description": prepared.description,
                "time_period_id": period.id,
                "is_approved": False,
            }
        )

    def _merge(
        self,
        existing: TimeEntryInfo,
        prepared: _PreparedEntry,
        principal: Principal,
    ) -> ReconcileOutcome:
        self._validate(
            existing.user_id, existing.entry_date, prepared.hours, exclude_entry_id=existing.id
        )
        updated = self.store.update_time_entry(
            existing.id,
            {"hours": prepared.hours, "description": prepared.description},
        )
        logger.info(
            "time_entry_merged",
            extra={
                "entry_id": str(updated.id),
                "actor_id": str(principal.user_id),
                "previous_hours": existing.hours,
                "hours": updated.hours,
            },
        )
        return ReconcileOutcome(ReconcileAction.MERGED, updated, previous_hours=existing.hours)

    def create_or_merge(
        self,
        candidate: TimeEntryCandidate,
        principal: Principal,
    ) -> ReconcileOutcome:
        """
        Record hours for (user, project, task, day).

        If an entry already exists for that identity its hours and
        description are replaced (merge), validated against the daily cap
        without counting its own previous hours.  Otherwise a new entry is
        inserted into the period that contains the day, creating the
        period if needed.  An insert that collides with a concurrent one
        falls through to the merge path.
        """
        prepared = self._prepare(candidate, principal)

        existing = self._find_existing(prepared)
        if existing is not None:
            return self._merge(existing, prepared, principal)

        self._validate(prepared.user_id, prepared.entry_date, prepared.hours)
        created = self._insert(prepared, principal)
        if created is None:
            existing = self._find_existing(prepared)
            if existing is None:
                raise InternalError("create_time_entry", "conflicting entry vanished")
            return self._merge(existing, prepared, principal)

        logger.info(
            "time_entry_created",
            extra={
                "entry_id": str(created.id),
                "actor_id": str(principal.user_id),
                "user_id": str(created.user_id),
                "entry_date": created.entry_date.isoformat(),
                "hours": created.hours,
            },
        )
        return ReconcileOutcome(ReconcileAction.INSERTED, created)

    def _create_strict(self, candidate: TimeEntryCandidate, principal: Principal) -> TimeEntryInfo:
        prepared = self._prepare(candidate, principal)
        existing = self._find_existing(prepared)
        if existing is not None:
            raise DuplicateTimeEntryError(existing.id, prepared.entry_date)
        self._validate(prepared.user_id, prepared.entry_date, prepared.hours)
        created = self._insert(prepared, principal)
        if created is None:
            existing = self._find_existing(prepared)
            if existing is None:
                raise InternalError("create_time_entry", "conflicting entry vanished")
            raise DuplicateTimeEntryError(existing.id, prepared.entry_date)
        return created

    def create_many(
        self,
        candidates: Iterable[TimeEntryCandidate],
        principal: Principal,
    ) -> BulkResult[TimeEntryInfo]:
        """
        Bulk import.  Duplicates are skipped, not merged; any other
        rejection is recorded with its error code.  Each item runs in its
        own savepoint.
        """
        created: list[TimeEntryInfo] = []
        skipped: list[BulkSkip] = []
        errors: list[BulkError] = []

        for index, candidate in enumerate(candidates):
            try:
                with self.store.savepoint():
                    created.append(self._create_strict(candidate, principal))
            except DuplicateTimeEntryError as exc:
                skipped.append(
                    BulkSkip(index, DUPLICATE_ENTRY_REASON, UUID(exc.existing_entry_id))
                )
            except InternalError:
                raise
            except TimesheetKernelError as exc:
                errors.append(BulkError(index, exc.code, str(exc)))

        logger.info(
            "time_entries_bulk_created",
            extra={
                "actor_id": str(principal.user_id),
                "created_count": len(created),
                "skipped_count": len(skipped),
                "error_count": len(errors),
            },
        )
        return BulkResult(tuple(created), tuple(skipped), tuple(errors))

    # -- Single-entry operations -------------------------------------------

    def _entry(self, entry_id: UUID) -> TimeEntryInfo:
        entry = self.store.find_time_entry_by_id(entry_id)
        if entry is None:
            raise TimeEntryNotFoundError(entry_id)
        return entry

    def get(self, entry_id: UUID, principal: Principal) -> TimeEntryInfo:
        entry = self._entry(entry_id)
        self.require(
            self.policy.can_access_time_entry(principal, entry),
            principal, "read", "TimeEntry", entry_id,
        )
        return entry

    def update(
        self,
        entry_id: UUID,
        changes: Mapping[str, Any],
        principal: Principal,
    ) -> TimeEntryInfo:
        """Change hours and/or description.  Identity fields are rejected."""
        entry = self._entry(entry_id)
        self.require(
            self.policy.can_update_time_entry(principal, entry),
            principal, "update", "TimeEntry", entry_id,
        )

        immutable = tuple(
            sorted(
                name
                for name in changes
                if name in IMMUTABLE_FIELDS and _identity_changed(entry, name, changes[name])
            )
        )
        if immutable:
            raise ImmutableFieldError("TimeEntry", immutable)
        unsupported = tuple(sorted(set(changes) - MUTABLE_FIELDS - IMMUTABLE_FIELDS))
        if unsupported:
            raise UnsupportedFieldError("TimeEntry", unsupported)

        fields: dict[str, Any] = {}
        if "description" in changes:
            description = _check_description(changes["description"])
            if description != entry.description:
                fields["description"] = description
        if "hours" in changes:
            hours = _parse_hours(changes["hours"])
            if hours != entry.hours:
                self._validate(entry.user_id, entry.entry_date, hours, exclude_entry_id=entry.id)
                fields["hours"] = hours

        if not fields:
            return entry

        with LogContext.bind(entry_id=str(entry_id)):
            updated = self.store.update_time_entry(entry_id, fields)
            logger.info(
                "time_entry_updated",
                extra={
                    "actor_id": str(principal.user_id),
                    "fields": sorted(fields),
                    "previous_hours": entry.hours,
                    "hours": updated.hours,
                },
            )
        return updated

    def delete(self, entry_id: UUID, principal: Principal) -> None:
        entry = self._entry(entry_id)
        self.require(
            self.policy.can_delete_time_entry(principal, entry),
            principal, "delete", "TimeEntry", entry_id,
        )
        self.store.delete_time_entry(entry_id)
        logger.info(
            "time_entry_deleted",
            extra={
                "entry_id": str(entry_id),
                "actor_id": str(principal.user_id),
                "user_id": str(entry.user_id),
                "hours": entry.hours,
            },
        )

    def approve(self, entry_id: UUID, principal: Principal) -> TimeEntryInfo:
        entry = self._entry(entry_id)
        self.require(
            self.policy.can_approve_time_entry(principal, entry),
            principal, "approve", "TimeEntry", entry_id,
        )
        updated = self.store.update_time_entry(
            entry_id,
            {
                "is_approved": True,
                "approved_by_id": principal.user_id,
                "approved_at": self.clock.now(),
            },
        )
        logger.info(
            "time_entry_approved",
            extra={"entry_id": str(entry_id), "actor_id": str(principal.user_id)},
        )
        return updated

    def reject(self, entry_id: UUID, principal: Principal) -> TimeEntryInfo:
        """Withdraw approval."""
        entry = self._entry(entry_id)
        self.require(
            self.policy.can_approve_time_entry(principal, entry),
            principal, "reject", "TimeEntry", entry_id,
        )
        updated = self.store.update_time_entry(
            entry_id,
            {"is_approved": False, "approved_by_id": None, "approved_at": None},
        )
        logger.info(
            "time_entry_rejected",
            extra={"entry_id": str(entry_id), "actor_id": str(principal.user_id)},
        )
        return updated

    # -- Scoped reads -------------------------------------------------------

    def _selector(self) -> TimeEntrySelector:
        if self.selector is None:
            raise InternalError("time_entry_reporting", "no TimeEntrySelector configured")
        return self.selector

    def list_entries(
        self,
        principal: Principal,
        filters: TimeEntryFilters | None = None,
        page: int | None = 1,
        page_size: int | None = None,
    ) -> Page[TimeEntryInfo]:
        if filters is not None and filters.user_id is not None:
            self.require(
                self.policy.can_view_user_time_entries(principal, filters.user_id),
                principal, "list", "TimeEntry", filters.user_id,
            )
        return self._selector().list_entries(
            self.policy.time_entry_list_scope(principal), filters, page, page_size
        )

    def user_summary(
        self,
        user_id: UUID,
        start: CalendarDate,
        end: CalendarDate,
        principal: Principal,
    ) -> UserTimeSummary:
        self.require(
            self.policy.can_view_user_time_entries(principal, user_id),
            principal, "summarize", "TimeEntry", user_id,
        )
        return self._selector().user_summary(
            user_id, start, end, self.policy.time_entry_list_scope(principal)
        )

    def project_report(
        self,
        project_id: UUID,
        principal: Principal,
        start: CalendarDate | None = None,
        end: CalendarDate | None = None,
    ) -> ProjectTimeReport:
        project = self.store.find_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        self.require(
            self.policy.can_update_project(principal, project),
            principal, "report", "Project", project_id,
        )
        return self._selector().project_report(project_id, start, end)

    def time_stats(
        self,
        principal: Principal,
        start: CalendarDate | None = None,
        end: CalendarDate | None = None,
    ) -> TimeStats:
        return self._selector().time_stats(
            self.policy.time_entry_list_scope(principal), start, end
        )
