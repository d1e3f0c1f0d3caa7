"""
Tests for TimeEntryService (``timesheet_kernel.services.time_entry_service``).

Covers the create-or-merge reconciler, the date window, the daily cap,
role enforcement on every write, identity immutability on update, bulk
import with duplicates, approval, and the scoped reads.

All tests run with "today" fixed at 2025-07-04 (UTC) and the default
configuration: 7 days ahead, 30 days back, 24 hours per day, 0.25 minimum.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from timesheet_kernel.domain.calendar_date import CalendarDate
from timesheet_kernel.domain.dtos import ReconcileAction, TimeEntryCandidate, TimeEntryFilters
from timesheet_kernel.domain.principal import Role
from timesheet_kernel.exceptions import (
    DailyHoursExceededError,
    DateOutsideFutureWindowError,
    DateOutsidePastWindowError,
    DescriptionTooLongError,
    ForbiddenError,
    HoursAboveMaximumError,
    HoursBelowMinimumError,
    ImmutableFieldError,
    TaskNotFoundError,
    TaskProjectMismatchError,
    TimeEntryNotFoundError,
    UnsupportedFieldError,
    ValidationError,
)
from timesheet_kernel.selectors import TimeEntrySelector
from timesheet_kernel.services import TimeEntryService


def _candidate(task, day=(2025, 7, 4), hours="2", description="", **kwargs) -> TimeEntryCandidate:
    year, month, d = day
    return TimeEntryCandidate(
        task_id=task.id,
        year=year,
        month=month,
        day=d,
        hours=hours,
        description=description,
        **kwargs,
    )


@pytest.fixture
def second_task(create_task, project, collaborator):
    return create_task(project.id, "Write copy", assigned_to_id=collaborator.user_id)


class _LateLookupStore:
    """Store whose first identity lookup misses, as if a concurrent insert
    committed between the lookup and this request's INSERT."""

    def __init__(self, store):
        self._store = store
        self.missed_lookups = 0

    def __getattr__(self, name):
        return getattr(self._store, name)

    def find_time_entry(self, *args, **kwargs):
        if self.missed_lookups == 0:
            self.missed_lookups += 1
            return None
        return self._store.find_time_entry(*args, **kwargs)


@pytest.fixture
def racing_service(session, store, config_service, period_service, policy, deterministic_clock):
    return TimeEntryService(
        _LateLookupStore(store),
        config_service,
        period_service,
        TimeEntrySelector(session),
        policy=policy,
        clock=deterministic_clock,
    )


class TestCreateOrMerge:
    def test_first_submission_inserts(self, time_entry_service, task, collaborator):
        outcome = time_entry_service.create_or_merge(
            _candidate(task, hours="3", description="draft"), collaborator
        )

        assert outcome.action is ReconcileAction.INSERTED
        assert outcome.is_inserted
        entry = outcome.entry
        assert entry.user_id == collaborator.user_id
        assert entry.project_id == task.project_id
        assert entry.entry_date == CalendarDate(2025, 7, 4)
        assert entry.hours == Decimal("3.00")
        assert entry.description == "draft"
        assert entry.is_approved is False

    def test_entry_assigned_to_containing_period(self, time_entry_service, period_service, task, collaborator):
        outcome = time_entry_service.create_or_merge(_candidate(task, day=(2025, 6, 20)), collaborator)

        period = period_service.get(outcome.entry.time_period_id)
        assert (period.year, period.month, period.period_number) == (2025, 6, 2)
        assert period.start_date == CalendarDate(2025, 6, 16)
        assert period.end_date == CalendarDate(2025, 6, 30)

    def test_entries_in_same_half_share_period(self, time_entry_service, task, second_task, collaborator):
        first = time_entry_service.create_or_merge(_candidate(task, day=(2025, 7, 1)), collaborator)
        second = time_entry_service.create_or_merge(_candidate(second_task, day=(2025, 7, 4)), collaborator)
        assert first.entry.time_period_id == second.entry.time_period_id

    def test_resubmission_merges_in_place(self, time_entry_service, task, collaborator, admin):
        first = time_entry_service.create_or_merge(
            _candidate(task, hours="3", description="draft"), collaborator
        )
        second = time_entry_service.create_or_merge(
            _candidate(task, hours="5", description="final"), collaborator
        )

        assert second.action is ReconcileAction.MERGED
        assert second.entry.id == first.entry.id
        assert second.entry.hours == Decimal("5.00")
        assert second.entry.description == "final"
        assert second.previous_hours == Decimal("3.00")
        page = time_entry_service.list_entries(admin)
        assert page.total == 1

    def test_merge_excludes_own_previous_hours_from_cap(self, time_entry_service, task, collaborator):
        time_entry_service.create_or_merge(_candidate(task, hours="20"), collaborator)
        outcome = time_entry_service.create_or_merge(_candidate(task, hours="24"), collaborator)
        assert outcome.is_merged
        assert outcome.entry.hours == Decimal("24.00")

    def test_merge_still_enforces_cap_with_other_entries(
        self, time_entry_service, task, second_task, collaborator
    ):
        time_entry_service.create_or_merge(_candidate(task, hours="20"), collaborator)
        time_entry_service.create_or_merge(_candidate(second_task, hours="2"), collaborator)
        with pytest.raises(DailyHoursExceededError):
            time_entry_service.create_or_merge(_candidate(second_task, hours="5"), collaborator)

    def test_hours_rounded_to_two_places(self, time_entry_service, task, collaborator):
        outcome = time_entry_service.create_or_merge(_candidate(task, hours="1.255"), collaborator)
        assert outcome.entry.hours == Decimal("1.26")

    def test_logs_creation_and_merge(self, time_entry_service, task, collaborator, captured_logs):
        time_entry_service.create_or_merge(_candidate(task, hours="3"), collaborator)
        time_entry_service.create_or_merge(_candidate(task, hours="4"), collaborator)

        messages = [r["message"] for r in captured_logs()]
        assert "time_period_created" in messages
        assert "time_entry_created" in messages
        merged = next(r for r in captured_logs() if r["message"] == "time_entry_merged")
        assert merged["previous_hours"] == "3.00"
        assert merged["hours"] == "4.00"

    def test_lost_insert_race_merges(
        self, time_entry_service, racing_service, store, task, collaborator, captured_logs
    ):
        winner = time_entry_service.create_or_merge(
            _candidate(task, hours="3", description="first tab"), collaborator
        )

        outcome = racing_service.create_or_merge(
            _candidate(task, hours="5", description="second tab"), collaborator
        )

        assert racing_service.store.missed_lookups == 1
        assert outcome.action is ReconcileAction.MERGED
        assert outcome.entry.id == winner.entry.id
        assert outcome.previous_hours == Decimal("3.00")
        assert outcome.entry.hours == Decimal("5.00")
        assert outcome.entry.description == "second tab"
        day = CalendarDate(2025, 7, 4)
        assert store.sum_hours_for_user_and_date(collaborator.user_id, day) == Decimal("5.00")
        messages = [r["message"] for r in captured_logs()]
        assert messages.index("time_entry_insert_conflict") < messages.index("time_entry_merged")

    def test_lost_insert_race_in_bulk_is_skipped(
        self, time_entry_service, racing_service, task, collaborator
    ):
        winner = time_entry_service.create_or_merge(_candidate(task, hours="3"), collaborator)

        result = racing_service.create_many([_candidate(task, hours="5")], collaborator)

        assert result.created == ()
        assert [(s.reason, s.existing_id) for s in result.skipped] == [("Duplicate entry", winner.entry.id)]
        assert time_entry_service.get(winner.entry.id, collaborator).hours == Decimal("3.00")


class TestDailyCap:
    def test_over_cap_rejected(self, time_entry_service, task, second_task, collaborator):
        time_entry_service.create_or_merge(_candidate(task, hours="22"), collaborator)

        with pytest.raises(DailyHoursExceededError) as exc_info:
            time_entry_service.create_or_merge(_candidate(second_task, hours="3"), collaborator)

        exc = exc_info.value
        assert exc.current_hours == Decimal("22.00")
        assert exc.new_hours == Decimal("3.00")
        assert exc.total_hours == Decimal("25.00")
        assert exc.max_hours == Decimal("24")

    def test_exactly_at_cap_accepted(self, time_entry_service, task, second_task, collaborator):
        time_entry_service.create_or_merge(_candidate(task, hours="22"), collaborator)
        outcome = time_entry_service.create_or_merge(_candidate(second_task, hours="2"), collaborator)
        assert outcome.is_inserted

    def test_cap_is_per_user(self, time_entry_service, task, collaborator, coordinator, create_principal, area):
        colleague = create_principal(Role.COLABORADOR, area.id)
        time_entry_service.create_or_merge(_candidate(task, hours="22"), collaborator)
        outcome = time_entry_service.create_or_merge(_candidate(task, hours="10"), colleague)
        assert outcome.entry.user_id == colleague.user_id

    def test_cap_is_per_day(self, time_entry_service, task, collaborator):
        time_entry_service.create_or_merge(_candidate(task, day=(2025, 7, 3), hours="22"), collaborator)
        outcome = time_entry_service.create_or_merge(_candidate(task, hours="22"), collaborator)
        assert outcome.is_inserted

    def test_configured_cap_applies(self, time_entry_service, config_service, task, second_task, collaborator, admin):
        config_service.set_config("TIME_ENTRY_MAX_HOURS_PER_DAY", "8", admin)
        time_entry_service.create_or_merge(_candidate(task, hours="6"), collaborator)
        with pytest.raises(DailyHoursExceededError):
            time_entry_service.create_or_merge(_candidate(second_task, hours="3"), collaborator)

    def test_check_daily_hours_reports_remaining(self, time_entry_service, task, collaborator):
        time_entry_service.create_or_merge(_candidate(task, hours="10"), collaborator)
        check = time_entry_service.check_daily_hours(
            collaborator.user_id, CalendarDate(2025, 7, 4), Decimal("4")
        )
        assert check.is_valid
        assert check.current_hours == Decimal("10.00")
        assert check.remaining_hours == Decimal("14.00")


class TestDateWindow:
    def test_future_limit_inclusive(self, time_entry_service, task, collaborator):
        assert time_entry_service.create_or_merge(_candidate(task, day=(2025, 7, 11)), collaborator).is_inserted

    def test_beyond_future_limit_rejected(self, time_entry_service, task, collaborator):
        with pytest.raises(DateOutsideFutureWindowError) as exc_info:
            time_entry_service.create_or_merge(_candidate(task, day=(2025, 7, 12)), collaborator)
        assert str(exc_info.value) == "Cannot record time more than 7 days in the future"

    def test_past_limit_inclusive(self, time_entry_service, task, collaborator):
        assert time_entry_service.create_or_merge(_candidate(task, day=(2025, 6, 4)), collaborator).is_inserted

    def test_beyond_past_limit_rejected(self, time_entry_service, task, collaborator):
        with pytest.raises(DateOutsidePastWindowError) as exc_info:
            time_entry_service.create_or_merge(_candidate(task, day=(2025, 6, 3)), collaborator)
        assert exc_info.value.days_allowed == 30

    def test_disabled_restrictions_accept_old_dates(
        self, time_entry_service, config_service, task, collaborator, admin
    ):
        config_service.set_config("TIME_ENTRY_DATE_RESTRICTIONS_ENABLED", False, admin)
        outcome = time_entry_service.create_or_merge(_candidate(task, day=(2024, 1, 10)), collaborator)
        assert outcome.entry.entry_date == CalendarDate(2024, 1, 10)

    def test_validate_date_follows_clock(self, time_entry_service, deterministic_clock):
        target = CalendarDate(2025, 7, 12)
        assert not time_entry_service.validate_date(target).is_valid
        deterministic_clock.advance_days(1)
        assert time_entry_service.validate_date(target).is_valid


class TestInputValidation:
    @pytest.mark.parametrize("hours", ["0", "-2", "0.1"])
    def test_below_minimum(self, time_entry_service, task, collaborator, hours):
        with pytest.raises(HoursBelowMinimumError):
            time_entry_service.create_or_merge(_candidate(task, hours=hours), collaborator)

    def test_above_maximum(self, time_entry_service, task, collaborator):
        with pytest.raises(HoursAboveMaximumError):
            time_entry_service.create_or_merge(_candidate(task, hours="24.5"), collaborator)

    def test_non_numeric_hours(self, time_entry_service, task, collaborator):
        with pytest.raises(ValidationError):
            time_entry_service.create_or_merge(_candidate(task, hours="lots"), collaborator)

    def test_description_too_long(self, time_entry_service, task, collaborator):
        with pytest.raises(DescriptionTooLongError):
            time_entry_service.create_or_merge(_candidate(task, description="x" * 1001), collaborator)

    def test_unknown_task(self, time_entry_service, collaborator):
        candidate = TimeEntryCandidate(task_id=uuid4(), year=2025, month=7, day=4, hours="2")
        with pytest.raises(TaskNotFoundError):
            time_entry_service.create_or_merge(candidate, collaborator)

    def test_task_from_other_project(self, time_entry_service, task, collaborator, create_project, area):
        other = create_project(area.id)
        with pytest.raises(TaskProjectMismatchError):
            time_entry_service.create_or_merge(_candidate(task, project_id=other.id), collaborator)


class TestCreateAuthorization:
    def test_collaborator_outside_area_forbidden(self, time_entry_service, task, outsider, captured_logs):
        with pytest.raises(ForbiddenError):
            time_entry_service.create_or_merge(_candidate(task), outsider)

        denial = next(r for r in captured_logs() if r["message"] == "access_denied")
        assert denial["actor_id"] == str(outsider.user_id)
        assert denial["resource_type"] == "TimeEntry"

    def test_collaborator_cannot_record_for_someone_else(
        self, time_entry_service, task, collaborator, create_principal, area
    ):
        colleague = create_principal(Role.COLABORADOR, area.id)
        with pytest.raises(ForbiddenError):
            time_entry_service.create_or_merge(_candidate(task, user_id=colleague.user_id), collaborator)

    def test_coordinator_records_for_collaborator(self, time_entry_service, task, coordinator, collaborator):
        outcome = time_entry_service.create_or_merge(
            _candidate(task, user_id=collaborator.user_id), coordinator
        )
        assert outcome.entry.user_id == collaborator.user_id

    def test_coordinator_outside_area_forbidden(self, time_entry_service, task, create_principal, other_area):
        foreign = create_principal(Role.COORDINADOR, other_area.id)
        with pytest.raises(ForbiddenError):
            time_entry_service.create_or_merge(_candidate(task), foreign)

    def test_admin_records_anywhere(self, time_entry_service, task, admin):
        assert time_entry_service.create_or_merge(_candidate(task), admin).is_inserted

    def test_assigned_task_in_other_area(
        self, time_entry_service, create_project, create_task, other_area, collaborator
    ):
        foreign_project = create_project(other_area.id)
        foreign_task = create_task(foreign_project.id, assigned_to_id=collaborator.user_id)
        assert time_entry_service.create_or_merge(_candidate(foreign_task), collaborator).is_inserted


class TestUpdate:
    @pytest.fixture
    def entry(self, time_entry_service, task, collaborator):
        return time_entry_service.create_or_merge(
            _candidate(task, hours="3", description="draft"), collaborator
        ).entry

    def test_hours_and_description(self, time_entry_service, entry, collaborator, captured_logs):
        updated = time_entry_service.update(entry.id, {"hours": "4.5", "description": "done"}, collaborator)
        assert updated.hours == Decimal("4.50")
        assert updated.description == "done"
        log = next(r for r in captured_logs() if r["message"] == "time_entry_updated")
        assert log["entry_id"] == str(entry.id)
        assert log["fields"] == ["description", "hours"]

    @pytest.mark.parametrize(
        "changes, field",
        [
            ({"date": "2025-07-03"}, "date"),
            ({"day": 3}, "day"),
            ({"task_id": uuid4()}, "task_id"),
            ({"user_id": uuid4()}, "user_id"),
        ],
    )
    def test_identity_change_rejected(self, time_entry_service, entry, collaborator, changes, field):
        with pytest.raises(ImmutableFieldError) as exc_info:
            time_entry_service.update(entry.id, changes, collaborator)
        assert exc_info.value.fields == (field,)

    def test_unchanged_identity_value_allowed(self, time_entry_service, entry, collaborator):
        updated = time_entry_service.update(
            entry.id, {"project_id": entry.project_id, "date": "2025-07-04", "hours": "5"}, collaborator
        )
        assert updated.hours == Decimal("5.00")

    def test_unsupported_field(self, time_entry_service, entry, collaborator):
        with pytest.raises(UnsupportedFieldError):
            time_entry_service.update(entry.id, {"is_approved": True}, collaborator)

    def test_noop_returns_entry(self, time_entry_service, entry, collaborator):
        assert time_entry_service.update(entry.id, {"hours": "3"}, collaborator) == entry

    def test_update_respects_cap(self, time_entry_service, entry, second_task, collaborator):
        time_entry_service.create_or_merge(_candidate(second_task, hours="20"), collaborator)
        with pytest.raises(DailyHoursExceededError):
            time_entry_service.update(entry.id, {"hours": "5"}, collaborator)

    def test_other_collaborator_forbidden(self, time_entry_service, entry, create_principal, area):
        colleague = create_principal(Role.COLABORADOR, area.id)
        with pytest.raises(ForbiddenError):
            time_entry_service.update(entry.id, {"hours": "1"}, colleague)

    def test_missing_entry(self, time_entry_service, collaborator):
        with pytest.raises(TimeEntryNotFoundError):
            time_entry_service.update(uuid4(), {"hours": "1"}, collaborator)


class TestDeleteAndApproval:
    @pytest.fixture
    def entry(self, time_entry_service, task, collaborator):
        return time_entry_service.create_or_merge(_candidate(task, hours="3"), collaborator).entry

    def test_owner_deletes(self, time_entry_service, entry, collaborator):
        time_entry_service.delete(entry.id, collaborator)
        with pytest.raises(TimeEntryNotFoundError):
            time_entry_service.get(entry.id, collaborator)

    def test_outsider_cannot_delete(self, time_entry_service, entry, outsider):
        with pytest.raises(ForbiddenError):
            time_entry_service.delete(entry.id, outsider)

    def test_coordinator_approves_and_rejects(
        self, time_entry_service, entry, coordinator, deterministic_clock
    ):
        approved = time_entry_service.approve(entry.id, coordinator)
        assert approved.is_approved
        assert approved.approved_by_id == coordinator.user_id
        assert approved.approved_at == deterministic_clock.now()

        rejected = time_entry_service.reject(entry.id, coordinator)
        assert not rejected.is_approved
        assert rejected.approved_by_id is None
        assert rejected.approved_at is None

    def test_collaborator_cannot_approve(self, time_entry_service, entry, collaborator):
        with pytest.raises(ForbiddenError):
            time_entry_service.approve(entry.id, collaborator)


class TestCreateMany:
    def test_duplicates_skipped_and_errors_collected(self, time_entry_service, task, second_task, collaborator):
        existing = time_entry_service.create_or_merge(_candidate(task, hours="3"), collaborator).entry

        result = time_entry_service.create_many(
            [
                _candidate(second_task, hours="2"),
                _candidate(task, hours="8"),
                _candidate(second_task, day=(2025, 7, 3), hours="0"),
            ],
            collaborator,
        )

        assert result.total == 3
        assert len(result.created) == 1
        assert result.created[0].task_id == second_task.id
        assert len(result.skipped) == 1
        assert result.skipped[0].index == 1
        assert result.skipped[0].reason == "Duplicate entry"
        assert result.skipped[0].existing_id == existing.id
        assert [(e.index, e.code) for e in result.errors] == [(2, "HOURS_BELOW_MINIMUM")]

    def test_duplicate_not_merged(self, time_entry_service, task, collaborator):
        existing = time_entry_service.create_or_merge(_candidate(task, hours="3"), collaborator).entry
        time_entry_service.create_many([_candidate(task, hours="8")], collaborator)
        assert time_entry_service.get(existing.id, collaborator).hours == Decimal("3.00")

    def test_duplicate_within_batch(self, time_entry_service, task, collaborator):
        result = time_entry_service.create_many(
            [_candidate(task, hours="2"), _candidate(task, hours="4")], collaborator
        )
        assert len(result.created) == 1
        assert result.skipped[0].existing_id == result.created[0].id

    def test_failed_item_does_not_undo_others(self, time_entry_service, task, outsider, collaborator, admin):
        result = time_entry_service.create_many(
            [_candidate(task, day=(2025, 7, 1)), _candidate(task, day=(2025, 7, 2))], outsider
        )
        assert [e.code for e in result.errors] == ["FORBIDDEN", "FORBIDDEN"]

        result = time_entry_service.create_many(
            [_candidate(task, day=(2025, 7, 1)), _candidate(task, day=(2025, 9, 1))], collaborator
        )
        assert len(result.created) == 1
        assert result.errors[0].code == "DATE_OUTSIDE_FUTURE_WINDOW"
        assert time_entry_service.list_entries(admin).total == 1


class TestScopedReads:
    @pytest.fixture
    def entries(self, time_entry_service, task, second_task, collaborator, create_project, create_task, create_principal, other_area):
        foreign = create_principal(Role.COLABORADOR, other_area.id)
        foreign_task = create_task(create_project(other_area.id).id)
        mine = [
            time_entry_service.create_or_merge(_candidate(task, day=(2025, 7, 1), hours="3"), collaborator).entry,
            time_entry_service.create_or_merge(_candidate(second_task, day=(2025, 7, 2), hours="5"), collaborator).entry,
        ]
        theirs = time_entry_service.create_or_merge(_candidate(foreign_task, hours="4"), foreign).entry
        return mine, theirs, foreign

    def test_collaborator_sees_only_own(self, time_entry_service, entries, collaborator):
        mine, _, _ = entries
        page = time_entry_service.list_entries(collaborator)
        assert {e.id for e in page.items} == {e.id for e in mine}
        assert [e.entry_date for e in page.items] == [CalendarDate(2025, 7, 2), CalendarDate(2025, 7, 1)]

    def test_coordinator_sees_area(self, time_entry_service, entries, coordinator):
        mine, theirs, _ = entries
        ids = {e.id for e in time_entry_service.list_entries(coordinator).items}
        assert ids == {e.id for e in mine}
        assert theirs.id not in ids

    def test_admin_sees_all(self, time_entry_service, entries, admin):
        assert time_entry_service.list_entries(admin).total == 3

    def test_collaborator_cannot_filter_other_user(self, time_entry_service, entries, collaborator):
        _, _, foreign = entries
        with pytest.raises(ForbiddenError):
            time_entry_service.list_entries(collaborator, TimeEntryFilters(user_id=foreign.user_id))

    def test_date_filter_and_paging(self, time_entry_service, entries, admin):
        page = time_entry_service.list_entries(
            admin, TimeEntryFilters(start_date=CalendarDate(2025, 7, 2)), page=1, page_size=1
        )
        assert page.total == 2
        assert len(page.items) == 1
        assert page.total_pages == 2

    def test_user_summary(self, time_entry_service, entries, collaborator, task):
        summary = time_entry_service.user_summary(
            collaborator.user_id, CalendarDate(2025, 7, 1), CalendarDate(2025, 7, 31), collaborator
        )
        assert summary.total_hours == Decimal("8.00")
        assert summary.total_entries == 2
        assert summary.hours_by_project == {task.project_id: Decimal("8.00")}
        assert summary.hours_by_day == {
            CalendarDate(2025, 7, 1): Decimal("3.00"),
            CalendarDate(2025, 7, 2): Decimal("5.00"),
        }

    def test_project_report_requires_manager(self, time_entry_service, entries, project, coordinator, collaborator):
        report = time_entry_service.project_report(project.id, coordinator)
        assert report.total_hours == Decimal("8.00")
        assert report.hours_by_user == {collaborator.user_id: Decimal("8.00")}
        with pytest.raises(ForbiddenError):
            time_entry_service.project_report(project.id, collaborator)

    def test_time_stats_split_by_approval(self, time_entry_service, entries, coordinator):
        mine, _, _ = entries
        time_entry_service.approve(mine[0].id, coordinator)
        stats = time_entry_service.time_stats(coordinator)
        assert stats.total_hours == Decimal("8.00")
        assert stats.approved_hours == Decimal("3.00")
        assert stats.pending_hours == Decimal("5.00")
        assert stats.unique_users == 1
