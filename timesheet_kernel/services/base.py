"""
BaseService -- common constructor and guard helpers for kernel services.

Responsibility:
    Holds the collaborators every service needs (Store, AccessPolicy, Clock,
    reference timezone) and turns a False AccessPolicy verdict into a logged
    ForbiddenError.

Architecture position:
    Kernel > Services -- imperative shell.  Services orchestrate domain
    predicates and validators around Store calls.

Invariants enforced:
    - Services never commit or roll back.  The Store flushes inside the
      caller's transaction; the caller owns the boundary.
    - Every denial is logged as ``access_denied`` before it is raised.
"""

from abc import ABC
from datetime import date, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from timesheet_kernel.db.types import round_hours, to_hours
from timesheet_kernel.domain.access_policy import AccessPolicy
from timesheet_kernel.domain.calendar_date import CalendarDate
from timesheet_kernel.domain.clock import Clock, SystemClock
from timesheet_kernel.domain.principal import Principal
from timesheet_kernel.exceptions import ForbiddenError, ValidationError
from timesheet_kernel.logging_config import get_logger
from timesheet_kernel.store.base import Store

logger = get_logger("services.access")

E = TypeVar("E", bound=Enum)


def coerce_enum(enum_cls: type[E], value: Any) -> E:
    """Convert caller input to ``enum_cls`` or raise ValidationError."""
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {enum_cls.__name__}: {value!r}") from exc


def parse_optional_date(value: Any) -> date | None:
    """Accept None, a date, a CalendarDate or an ISO string."""
    if value is None or isinstance(value, date):
        return value
    if isinstance(value, CalendarDate):
        return value.to_date()
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value!r}") from exc


def parse_optional_hours(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        hours = to_hours(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if hours < 0:
        raise ValidationError(f"Hours cannot be negative, got {hours}")
    return round_hours(hours)


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Receives every collaborator explicitly.  No service reaches for a
        global session, clock or configuration.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(
        self,
        store: Store,
        policy: AccessPolicy | None = None,
        clock: Clock | None = None,
        reference_tz: tzinfo = timezone.utc,
    ):
        self.store = store
        self.policy = policy or AccessPolicy()
        self.clock = clock or SystemClock()
        self.reference_tz = reference_tz

    def today(self) -> CalendarDate:
        """Today in the reference timezone."""
        return self.clock.today(self.reference_tz)

    def require(
        self,
        allowed: bool,
        principal: Principal,
        action: str,
        resource_type: str,
        resource_id: Any = None,
    ) -> None:
        """Raise ForbiddenError unless ``allowed``."""
        if allowed:
            return
        logger.warning(
            "access_denied",
            extra={
                "actor_id": str(principal.user_id),
                "role": principal.role.value,
                "action": action,
                "resource_type": resource_type,
                "resource_id": str(resource_id) if resource_id is not None else None,
            },
        )
        raise ForbiddenError(action, resource_type, resource_id)
