"""
TimePeriodService -- find-or-create and administration of half-month periods.

Responsibility:
    Resolves the persisted TimePeriod that owns a calendar date, creating it
    on first use, and exposes the administrative operations on periods:
    explicit creation, bulk creation, whole-year generation, reference
    hours and reporting.

Architecture position:
    Kernel > Services -- imperative shell around the pure PeriodResolver in
    domain/periods.py.

Invariants enforced:
    - One row per (year, month, period_number).  Lookup happens before
      create, and a concurrent insert of the same key is absorbed by the
      store and resolved by re-reading.
    - A period's dates are fixed at creation.  Only reference_hours may be
      updated afterwards.
    - Period type is derived from the span, never supplied by the caller.

Failure modes:
    - ForbiddenError: administrative operation by a non-administrator.
    - TimePeriodExistsError: explicit create of an existing key.
    - TimePeriodNotFoundError: unknown period id.
    - ValidationError: period_number outside {1, 2} or reference hours <= 0.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timezone, tzinfo
from decimal import Decimal
from uuid import UUID

from timesheet_kernel.db.types import ZERO_HOURS, round_hours, to_hours
from timesheet_kernel.domain.access_policy import AccessPolicy
from timesheet_kernel.domain.calendar_date import CalendarDate
from timesheet_kernel.domain.clock import Clock
from timesheet_kernel.domain.dtos import (
    BulkError,
    BulkResult,
    BulkSkip,
    PeriodComparison,
    PeriodStatistics,
    TimePeriodInfo,
)
from timesheet_kernel.domain.periods import ResolvedPeriod, period_bounds, periods_for_year, resolve_period
from timesheet_kernel.domain.principal import Principal
from timesheet_kernel.exceptions import (
    InternalError,
    TimePeriodExistsError,
    TimePeriodNotFoundError,
    TimesheetKernelError,
    ValidationError,
)
from timesheet_kernel.logging_config import get_logger
from timesheet_kernel.selectors.time_period_selector import TimePeriodSelector
from timesheet_kernel.services.base import BaseService
from timesheet_kernel.store.base import Store

logger = get_logger("services.time_period")

STATUS_ABOVE = "above"
STATUS_BELOW = "below"
STATUS_ON_TARGET = "on_target"


@dataclass(frozen=True)
class PeriodSpec:
    """One period requested through create_many."""

    year: int
    month: int
    period_number: int
    reference_hours: Decimal | None = None


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO_HOURS
    return round_hours(part * 100 / whole)


class TimePeriodService(BaseService):
    """
    Persisted half-month periods.

    Contract:
        ``get_or_create_for_date`` is what the time entry path calls; it
        needs no principal because periods are created as a side effect of
        recording time.  Everything else administrative is admin-only.
    """

    def __init__(
        self,
        store: Store,
        selector: TimePeriodSelector | None = None,
        policy: AccessPolicy | None = None,
        clock: Clock | None = None,
        reference_tz: tzinfo = timezone.utc,
    ):
        super().__init__(store, policy, clock, reference_tz)
        self.selector = selector

    # -- Resolution ---------------------------------------------------------

    def get_or_create_for_date(self, value: CalendarDate, actor_id: UUID) -> TimePeriodInfo:
        """Return the period containing ``value``, creating it when absent."""
        resolved = resolve_period(value)
        existing = self.store.find_time_period(*resolved.key)
        if existing is not None:
            return existing
        return self._insert(resolved, actor_id, reference_hours=None, strict=False)

    def _insert(
        self,
        resolved: ResolvedPeriod,
        actor_id: UUID,
        reference_hours: Decimal | None,
        strict: bool,
    ) -> TimePeriodInfo:
        created = self.store.create_time_period(
            {
                "year": resolved.year,
                "month": resolved.month,
                "period_number": resolved.period_number,
                "start_date": resolved.start_date,
                "end_date": resolved.end_date,
                "period_type": resolved.period_type,
                "reference_hours": reference_hours,
            },
            actor_id,
        )
        if created is None:
            if strict:
                raise TimePeriodExistsError(*resolved.key)
            # Lost the race; the winner's row is now visible.
            existing = self.store.find_time_period(*resolved.key)
            if existing is None:
                raise InternalError("get_or_create_time_period", resolved.label)
            return existing

        logger.info(
            "time_period_created",
            extra={
                "period_id": str(created.id),
                "year": created.year,
                "month": created.month,
                "period_number": created.period_number,
                "period_type": created.period_type.value,
            },
        )
        return created

    # -- Administration -----------------------------------------------------

    def _require_admin(self, principal: Principal, action: str, resource_id=None) -> None:
        self.require(
            self.policy.can_manage_time_periods(principal),
            principal, action, "TimePeriod", resource_id,
        )

    @staticmethod
    def _resolve_spec(year: int, month: int, period_number: int) -> ResolvedPeriod:
        try:
            return period_bounds(year, month, period_number)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    @staticmethod
    def _reference_hours(value) -> Decimal | None:
        if value is None:
            return None
        try:
            hours = to_hours(value)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if hours <= 0:
            raise ValidationError(f"Reference hours must be positive, got {hours}")
        return round_hours(hours)

    def create_period(
        self,
        year: int,
        month: int,
        period_number: int,
        principal: Principal,
        reference_hours: Decimal | None = None,
    ) -> TimePeriodInfo:
        self._require_admin(principal, "create")
        resolved = self._resolve_spec(year, month, period_number)
        hours = self._reference_hours(reference_hours)
        if self.store.find_time_period(*resolved.key) is not None:
            raise TimePeriodExistsError(*resolved.key)
        return self._insert(resolved, principal.user_id, hours, strict=True)

    def create_many(
        self,
        specs: Iterable[PeriodSpec],
        principal: Principal,
    ) -> BulkResult[TimePeriodInfo]:
        """Create each requested period; existing ones are skipped, bad ones recorded."""
        self._require_admin(principal, "create")
        created: list[TimePeriodInfo] = []
        skipped: list[BulkSkip] = []
        errors: list[BulkError] = []
        for index, spec in enumerate(specs):
            try:
                resolved = self._resolve_spec(spec.year, spec.month, spec.period_number)
                hours = self._reference_hours(spec.reference_hours)
                existing = self.store.find_time_period(*resolved.key)
                if existing is not None:
                    skipped.append(BulkSkip(index, "Period already exists", existing.id))
                    continue
                created.append(self._insert(resolved, principal.user_id, hours, strict=True))
            except TimePeriodExistsError as exc:
                skipped.append(BulkSkip(index, str(exc)))
            except InternalError:
                raise
            except TimesheetKernelError as exc:
                errors.append(BulkError(index, exc.code, str(exc)))

        logger.info(
            "time_periods_bulk_created",
            extra={"created_count": len(created), "skipped_count": len(skipped), "error_count": len(errors)},
        )
        return BulkResult(tuple(created), tuple(skipped), tuple(errors))

    def generate_year(self, year: int, principal: Principal) -> BulkResult[TimePeriodInfo]:
        """Create all 24 periods of ``year``; existing ones are skipped."""
        return self.create_many(
            (PeriodSpec(p.year, p.month, p.period_number) for p in periods_for_year(year)),
            principal,
        )

    def update_reference_hours(
        self,
        period_id: UUID,
        reference_hours: Decimal | None,
        principal: Principal,
    ) -> TimePeriodInfo:
        self._require_admin(principal, "update", period_id)
        self.get(period_id)
        hours = self._reference_hours(reference_hours)
        updated = self.store.update_time_period(
            period_id, {"reference_hours": hours}, principal.user_id
        )
        logger.info(
            "time_period_reference_hours_updated",
            extra={"period_id": str(period_id), "reference_hours": hours},
        )
        return updated

    # -- Reads --------------------------------------------------------------

    def get(self, period_id: UUID) -> TimePeriodInfo:
        period = self.store.find_time_period_by_id(period_id)
        if period is None:
            raise TimePeriodNotFoundError(period_id)
        return period

    def get_current_period(self) -> TimePeriodInfo | None:
        """The stored period containing today, or None if not created yet."""
        return self.store.find_time_period(*resolve_period(self.today()).key)

    def _selector(self) -> TimePeriodSelector:
        if self.selector is None:
            raise InternalError("time_period_reporting", "no TimePeriodSelector configured")
        return self.selector

    def list_periods(self, year: int | None = None, month: int | None = None) -> list[TimePeriodInfo]:
        return self._selector().list_periods(year, month)

    def period_statistics(self, period_id: UUID) -> PeriodStatistics:
        period = self.get(period_id)
        totals = self._selector().period_totals(period_id)

        average = (
            round_hours(totals.total_hours / totals.total_entries)
            if totals.total_entries
            else ZERO_HOURS
        )
        completion = ZERO_HOURS
        if period.reference_hours and totals.unique_users:
            completion = _percent(
                totals.total_hours, period.reference_hours * totals.unique_users
            )

        return PeriodStatistics(
            period_id=period_id,
            total_hours=totals.total_hours,
            total_entries=totals.total_entries,
            average_hours_per_entry=average,
            unique_users=totals.unique_users,
            reference_hours=period.reference_hours,
            completion_percentage=completion,
        )

    def compare_period_hours(self, period_id: UUID, user_id: UUID | None = None) -> PeriodComparison:
        """
        Compare recorded hours against the period's reference hours.

        For a single user the reference is the period's reference hours;
        across all users it is scaled by the number of users who recorded
        time.  Status is ``on_target`` when the actual hours equal the
        reference exactly.
        """
        period = self.get(period_id)
        totals = self._selector().period_totals(period_id, user_id)

        reference = period.reference_hours or ZERO_HOURS
        if user_id is None and totals.unique_users:
            reference = round_hours(reference * totals.unique_users)

        difference = round_hours(totals.total_hours - reference)
        if difference > 0:
            status = STATUS_ABOVE
        elif difference < 0:
            status = STATUS_BELOW
        else:
            status = STATUS_ON_TARGET

        return PeriodComparison(
            period_id=period_id,
            reference_hours=reference,
            actual_hours=totals.total_hours,
            general_hours=totals.general_hours,
            client_hours=totals.client_hours,
            difference=difference,
            percentage=_percent(totals.total_hours, reference),
            status=status,
        )
