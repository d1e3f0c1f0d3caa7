"""
SqlStore -- SQLAlchemy implementation of the Store protocol.

Responsibility:
    Translates Store calls into ORM queries against a caller-owned Session
    and converts rows into frozen DTOs.

Architecture position:
    Kernel > Store.  May import from db/, models/, domain/.  MUST NOT import
    from services/ or selectors/.

Invariants enforced:
    - Flush only.  The caller owns commit/rollback.
    - Insert-if-absent for time entries and time periods: the INSERT runs in
      a savepoint; an IntegrityError rolls back only the savepoint, the
      existing row is re-read, and None is returned so the caller can take
      the merge / reuse path.  Together with uq_time_entry_identity this
      closes the check-then-insert race.
    - Enum and CalendarDate values are converted to column values here and
      nowhere else.
    - Config keys written in a transaction are reported by
      pending_config_keys() until the outermost transaction ends.

Failure modes:
    - InternalError for any SQLAlchemyError that is not a handled
      uniqueness conflict.
    - NotFound errors when an update targets a missing row.
"""

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import and_, event, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, SessionTransaction

from timesheet_kernel.db.types import ZERO_HOURS, round_hours
from timesheet_kernel.domain.calendar_date import CalendarDate
from timesheet_kernel.domain.dtos import (
    AreaInfo,
    AssignmentInfo,
    ProjectInfo,
    SystemConfigInfo,
    TaskInfo,
    TimeEntryInfo,
    TimePeriodInfo,
    UserInfo,
)
from timesheet_kernel.domain.periods import PeriodType
from timesheet_kernel.domain.principal import Role
from timesheet_kernel.domain.values import Priority, ProjectStatus, TaskStatus
from timesheet_kernel.exceptions import (
    InternalError,
    ProjectNotFoundError,
    TaskNotFoundError,
    TimeEntryNotFoundError,
    TimePeriodNotFoundError,
    TimesheetKernelError,
)
from timesheet_kernel.logging_config import get_logger
from timesheet_kernel.models import (
    Area,
    Project,
    ProjectAssignment,
    SystemConfig,
    Task,
    TimeEntry,
    TimePeriod,
    User,
)

logger = get_logger("store.sql")


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, CalendarDate):
        return value.to_date()
    return value


def _hours(value: Any) -> Decimal:
    if value is None:
        return ZERO_HOURS
    return round_hours(value if isinstance(value, Decimal) else Decimal(str(value)))


def _optional_hours(value: Any) -> Decimal | None:
    return None if value is None else _hours(value)


# Keys under Session.info shared by every SqlStore bound to the session
_PENDING_CONFIG_KEYS = "timesheet.pending_config_keys"
_TRANSACTION_END_CALLBACKS = "timesheet.transaction_end_callbacks"


def _run_transaction_end_callbacks(session: Session, transaction: SessionTransaction) -> None:
    callbacks = list(session.info.get(_TRANSACTION_END_CALLBACKS, ()))
    if transaction.parent is None:
        session.info.pop(_PENDING_CONFIG_KEYS, None)
        session.info[_TRANSACTION_END_CALLBACKS] = []
    for callback in callbacks:
        callback()


# ---------------------------------------------------------------------------
# Row -> DTO
# ---------------------------------------------------------------------------


def _area_to_dto(area: Area) -> AreaInfo:
    return AreaInfo(
        id=area.id,
        name=area.name,
        description=area.description,
        is_active=area.is_active,
    )


def _user_to_dto(user: User) -> UserInfo:
    return UserInfo(
        id=user.id,
        email=user.email,
        name=user.name,
        role=Role(user.role),
        area_id=user.area_id,
        is_active=user.is_active,
    )


def project_to_dto(project: Project) -> ProjectInfo:
    return ProjectInfo(
        id=project.id,
        name=project.name,
        area_id=project.area_id,
        status=ProjectStatus(project.status),
        priority=Priority(project.priority),
        description=project.description,
        start_date=project.start_date,
        end_date=project.end_date,
        estimated_hours=_optional_hours(project.estimated_hours),
        is_general=project.is_general,
        is_active=project.is_active,
        created_by_id=project.created_by_id,
    )


def _assignment_to_dto(assignment: ProjectAssignment) -> AssignmentInfo:
    return AssignmentInfo(
        id=assignment.id,
        project_id=assignment.project_id,
        user_id=assignment.user_id,
        is_active=assignment.is_active,
        assigned_by_id=assignment.assigned_by_id,
    )


def task_to_dto(task: Task, project_area_id: UUID) -> TaskInfo:
    return TaskInfo(
        id=task.id,
        title=task.title,
        project_id=task.project_id,
        project_area_id=project_area_id,
        status=TaskStatus(task.status),
        priority=Priority(task.priority),
        assigned_to_id=task.assigned_to_id,
        description=task.description,
        due_date=task.due_date,
        estimated_hours=_optional_hours(task.estimated_hours),
        completed_at=task.completed_at,
        is_active=task.is_active,
    )


def period_to_dto(period: TimePeriod) -> TimePeriodInfo:
    return TimePeriodInfo(
        id=period.id,
        year=period.year,
        month=period.month,
        period_number=period.period_number,
        start_date=CalendarDate.from_date(period.start_date),
        end_date=CalendarDate.from_date(period.end_date),
        period_type=PeriodType(period.period_type),
        reference_hours=_optional_hours(period.reference_hours),
    )


def entry_to_dto(entry: TimeEntry, project_area_id: UUID) -> TimeEntryInfo:
    return TimeEntryInfo(
        id=entry.id,
        user_id=entry.user_id,
        project_id=entry.project_id,
        task_id=entry.task_id,
        entry_date=CalendarDate.from_date(entry.entry_date),
        hours=_hours(entry.hours),
        description=entry.description or "",
        time_period_id=entry.time_period_id,
        project_area_id=project_area_id,
        is_approved=entry.is_approved,
        approved_by_id=entry.approved_by_id,
        approved_at=entry.approved_at,
    )


def _config_to_dto(row: SystemConfig) -> SystemConfigInfo:
    return SystemConfigInfo(
        key=row.key,
        value=row.value,
        description=row.description,
        updated_at=row.updated_at,
    )


class SqlStore:
    """
    Store backed by a SQLAlchemy Session.

    Contract:
        Constructed per unit of work with the caller's session.  Satisfies
        ``timesheet_kernel.store.base.Store``.

    Non-goals:
        Does not check permissions or validate business rules.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except TimesheetKernelError:
            raise
        except SQLAlchemyError as exc:
            logger.error(
                "store_operation_failed",
                extra={"operation": operation},
                exc_info=True,
            )
            raise InternalError(operation, str(exc)) from exc

    def _apply(self, row: Any, fields: Mapping[str, Any]) -> None:
        for name, value in fields.items():
            if not hasattr(type(row), name):
                raise ValueError(f"{type(row).__name__} has no column {name!r}")
            setattr(row, name, _column_value(value))

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        with self.session.begin_nested():
            yield

    # -- Reference data -----------------------------------------------------

    def find_area(self, area_id: UUID) -> AreaInfo | None:
        with self._translate_errors("find_area"):
            area = self.session.get(Area, area_id)
            return _area_to_dto(area) if area is not None else None

    def create_area(self, name: str, description: str | None = None) -> AreaInfo:
        with self._translate_errors("create_area"):
            area = Area(name=name, description=description, is_active=True)
            self.session.add(area)
            self.session.flush()
            return _area_to_dto(area)

    def find_user(self, user_id: UUID) -> UserInfo | None:
        with self._translate_errors("find_user"):
            user = self.session.get(User, user_id)
            return _user_to_dto(user) if user is not None else None

    def create_user(
        self,
        email: str,
        name: str,
        role: Role,
        area_id: UUID | None = None,
    ) -> UserInfo:
        with self._translate_errors("create_user"):
            user = User(
                email=email,
                name=name,
                role=_column_value(Role(role)),
                area_id=area_id,
                is_active=True,
            )
            self.session.add(user)
            self.session.flush()
            return _user_to_dto(user)

    # -- Projects -----------------------------------------------------------

    def _project_row(self, project_id: UUID) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def find_project(self, project_id: UUID, include_inactive: bool = False) -> ProjectInfo | None:
        with self._translate_errors("find_project"):
            project = self.session.get(Project, project_id)
            if project is None or (not project.is_active and not include_inactive):
                return None
            return project_to_dto(project)

    def find_general_project(self, area_id: UUID) -> ProjectInfo | None:
        with self._translate_errors("find_general_project"):
            project = self.session.execute(
                select(Project)
                .where(
                    Project.area_id == area_id,
                    Project.is_general.is_(True),
                    Project.is_active.is_(True),
                )
                .order_by(Project.created_at)
                .limit(1)
            ).scalar_one_or_none()
            return project_to_dto(project) if project is not None else None

    def create_project(self, fields: Mapping[str, Any], actor_id: UUID) -> ProjectInfo:
        with self._translate_errors("create_project"):
            project = Project(created_by_id=actor_id, is_active=True)
            self._apply(project, fields)
            self.session.add(project)
            self.session.flush()
            return project_to_dto(project)

    def update_project(self, project_id: UUID, fields: Mapping[str, Any], actor_id: UUID) -> ProjectInfo:
        with self._translate_errors("update_project"):
            project = self._project_row(project_id)
            self._apply(project, fields)
            project.updated_by_id = actor_id
            self.session.flush()
            return project_to_dto(project)

    def count_open_tasks(self, project_id: UUID) -> int:
        with self._translate_errors("count_open_tasks"):
            return self.session.execute(
                select(func.count(Task.id)).where(
                    Task.project_id == project_id,
                    Task.is_active.is_(True),
                    Task.status != TaskStatus.DONE.value,
                )
            ).scalar_one()

    # -- Assignments --------------------------------------------------------

    def find_assignment(self, project_id: UUID, user_id: UUID) -> AssignmentInfo | None:
        with self._translate_errors("find_assignment"):
            row = self.session.execute(
                select(ProjectAssignment).where(
                    ProjectAssignment.project_id == project_id,
                    ProjectAssignment.user_id == user_id,
                )
            ).scalar_one_or_none()
            return _assignment_to_dto(row) if row is not None else None

    def create_assignment(self, project_id: UUID, user_id: UUID, assigned_by_id: UUID) -> AssignmentInfo:
        with self._translate_errors("create_assignment"):
            row = ProjectAssignment(
                project_id=project_id,
                user_id=user_id,
                assigned_by_id=assigned_by_id,
                is_active=True,
            )
            self.session.add(row)
            self.session.flush()
            return _assignment_to_dto(row)

    def set_assignment_active(
        self,
        assignment_id: UUID,
        is_active: bool,
        assigned_by_id: UUID | None = None,
    ) -> AssignmentInfo:
        with self._translate_errors("set_assignment_active"):
            row = self.session.get(ProjectAssignment, assignment_id)
            if row is None:
                raise InternalError("set_assignment_active", f"missing assignment {assignment_id}")
            row.is_active = is_active
            if assigned_by_id is not None:
                row.assigned_by_id = assigned_by_id
            self.session.flush()
            return _assignment_to_dto(row)

    def list_assignments(self, project_id: UUID, active_only: bool = True) -> list[AssignmentInfo]:
        with self._translate_errors("list_assignments"):
            query = select(ProjectAssignment).where(ProjectAssignment.project_id == project_id)
            if active_only:
                query = query.where(ProjectAssignment.is_active.is_(True))
            rows = self.session.execute(query.order_by(ProjectAssignment.created_at)).scalars()
            return [_assignment_to_dto(r) for r in rows]

    def is_project_member(self, project_id: UUID, user_id: UUID) -> bool:
        with self._translate_errors("is_project_member"):
            return self.session.execute(
                select(func.count(ProjectAssignment.id)).where(
                    ProjectAssignment.project_id == project_id,
                    ProjectAssignment.user_id == user_id,
                    ProjectAssignment.is_active.is_(True),
                )
            ).scalar_one() > 0

    # -- Tasks --------------------------------------------------------------

    def find_task(self, task_id: UUID, include_inactive: bool = False) -> TaskInfo | None:
        with self._translate_errors("find_task"):
            row = self.session.execute(
                select(Task, Project.area_id)
                .join(Project, Task.project_id == Project.id)
                .where(Task.id == task_id)
            ).one_or_none()
            if row is None:
                return None
            task, area_id = row
            if not task.is_active and not include_inactive:
                return None
            return task_to_dto(task, area_id)

    def create_task(self, fields: Mapping[str, Any], actor_id: UUID) -> TaskInfo:
        with self._translate_errors("create_task"):
            task = Task(created_by_id=actor_id, is_active=True)
            self._apply(task, fields)
            self.session.add(task)
            self.session.flush()
            project = self._project_row(task.project_id)
            return task_to_dto(task, project.area_id)

    def update_task(self, task_id: UUID, fields: Mapping[str, Any], actor_id: UUID) -> TaskInfo:
        with self._translate_errors("update_task"):
            task = self.session.get(Task, task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            self._apply(task, fields)
            task.updated_by_id = actor_id
            self.session.flush()
            project = self._project_row(task.project_id)
            return task_to_dto(task, project.area_id)

    def count_time_entries_for_task(self, task_id: UUID) -> int:
        with self._translate_errors("count_time_entries_for_task"):
            return self.session.execute(
                select(func.count(TimeEntry.id)).where(TimeEntry.task_id == task_id)
            ).scalar_one()

    # -- Time periods -------------------------------------------------------

    def find_time_period(self, year: int, month: int, period_number: int) -> TimePeriodInfo | None:
        with self._translate_errors("find_time_period"):
            period = self.session.execute(
                select(TimePeriod).where(
                    TimePeriod.year == year,
                    TimePeriod.month == month,
                    TimePeriod.period_number == period_number,
                )
            ).scalar_one_or_none()
            return period_to_dto(period) if period is not None else None

    def find_time_period_by_id(self, period_id: UUID) -> TimePeriodInfo | None:
        with self._translate_errors("find_time_period_by_id"):
            period = self.session.get(TimePeriod, period_id)
            return period_to_dto(period) if period is not None else None

    def create_time_period(self, fields: Mapping[str, Any], actor_id: UUID) -> TimePeriodInfo | None:
        """Insert a period; None when (year, month, period_number) already exists."""
        with self._translate_errors("create_time_period"):
            period = TimePeriod(created_by_id=actor_id)
            self._apply(period, fields)
            key = (period.year, period.month, period.period_number)
            savepoint = self.session.begin_nested()
            try:
                self.session.add(period)
                self.session.flush()
            except IntegrityError:
                savepoint.rollback()
                existing = self.find_time_period(*key)
                if existing is None:
                    raise
                logger.debug(
                    "time_period_insert_conflict",
                    extra={"year": key[0], "month": key[1], "period_number": key[2]},
                )
                return None
            savepoint.commit()
            return period_to_dto(period)

    def update_time_period(self, period_id: UUID, fields: Mapping[str, Any], actor_id: UUID) -> TimePeriodInfo:
        with self._translate_errors("update_time_period"):
            period = self.session.get(TimePeriod, period_id)
            if period is None:
                raise TimePeriodNotFoundError(period_id)
            self._apply(period, fields)
            period.updated_by_id = actor_id
            self.session.flush()
            return period_to_dto(period)

    # -- Time entries -------------------------------------------------------

    def _entry_query(self):
        return select(TimeEntry, Project.area_id).join(Project, TimeEntry.project_id == Project.id)

    def find_time_entry(
        self,
        user_id: UUID,
        project_id: UUID,
        task_id: UUID,
        entry_date: CalendarDate,
        for_update: bool = False,
    ) -> TimeEntryInfo | None:
        with self._translate_errors("find_time_entry"):
            query = self._entry_query().where(
                and_(
                    TimeEntry.user_id == user_id,
                    TimeEntry.project_id == project_id,
                    TimeEntry.task_id == task_id,
                    TimeEntry.entry_date == entry_date.to_date(),
                )
            )
            if for_update:
                query = query.with_for_update(of=TimeEntry)
            row = self.session.execute(
                query.execution_options(populate_existing=True)
            ).one_or_none()
            return entry_to_dto(*row) if row is not None else None

    def find_time_entry_by_id(self, entry_id: UUID) -> TimeEntryInfo | None:
        with self._translate_errors("find_time_entry_by_id"):
            row = self.session.execute(
                self._entry_query().where(TimeEntry.id == entry_id)
            ).one_or_none()
            return entry_to_dto(*row) if row is not None else None

    def create_time_entry(self, fields: Mapping[str, Any]) -> TimeEntryInfo | None:
        """Insert an entry; None when (user, project, task, date) already exists."""
        with self._translate_errors("create_time_entry"):
            entry = TimeEntry()
            self._apply(entry, fields)
            identity = (entry.user_id, entry.project_id, entry.task_id, entry.entry_date)
            savepoint = self.session.begin_nested()
            try:
                self.session.add(entry)
                self.session.flush()
            except IntegrityError:
                savepoint.rollback()
                user_id, project_id, task_id, entry_date = identity
                existing = self.find_time_entry(
                    user_id, project_id, task_id, CalendarDate.from_date(entry_date)
                )
                if existing is None:
                    raise
                logger.info(
                    "time_entry_insert_conflict",
                    extra={"existing_entry_id": str(existing.id)},
                )
                return None
            savepoint.commit()
            project = self._project_row(entry.project_id)
            return entry_to_dto(entry, project.area_id)

    def update_time_entry(self, entry_id: UUID, fields: Mapping[str, Any]) -> TimeEntryInfo:
        with self._translate_errors("update_time_entry"):
            entry = self.session.get(TimeEntry, entry_id)
            if entry is None:
                raise TimeEntryNotFoundError(entry_id)
            self._apply(entry, fields)
            self.session.flush()
            project = self._project_row(entry.project_id)
            return entry_to_dto(entry, project.area_id)

    def delete_time_entry(self, entry_id: UUID) -> None:
        with self._translate_errors("delete_time_entry"):
            entry = self.session.get(TimeEntry, entry_id)
            if entry is None:
                raise TimeEntryNotFoundError(entry_id)
            self.session.delete(entry)
            self.session.flush()

    def sum_hours_for_user_and_date(
        self,
        user_id: UUID,
        entry_date: CalendarDate,
        exclude_entry_id: UUID | None = None,
    ) -> Decimal:
        with self._translate_errors("sum_hours_for_user_and_date"):
            query = select(func.coalesce(func.sum(TimeEntry.hours), 0)).where(
                TimeEntry.user_id == user_id,
                TimeEntry.entry_date == entry_date.to_date(),
            )
            if exclude_entry_id is not None:
                query = query.where(TimeEntry.id != exclude_entry_id)
            return _hours(self.session.execute(query).scalar_one())

    # -- System configuration -----------------------------------------------

    def _config_row(self, key: str) -> SystemConfig | None:
        return self.session.execute(
            select(SystemConfig).where(SystemConfig.key == key)
        ).scalar_one_or_none()

    def find_config(self, key: str) -> SystemConfigInfo | None:
        with self._translate_errors("find_config"):
            row = self._config_row(key)
            return _config_to_dto(row) if row is not None else None

    def list_configs(self) -> list[SystemConfigInfo]:
        with self._translate_errors("list_configs"):
            rows = self.session.execute(select(SystemConfig).order_by(SystemConfig.key)).scalars()
            return [_config_to_dto(r) for r in rows]

    def upsert_config(
        self,
        key: str,
        value: str,
        description: str | None,
        actor_id: UUID | None,
    ) -> SystemConfigInfo:
        with self._translate_errors("upsert_config"):
            row = self._config_row(key)
            if row is None:
                row = SystemConfig(
                    key=key,
                    value=value,
                    description=description,
                    created_by_id=actor_id,
                )
                self.session.add(row)
            else:
                row.value = value
                if description is not None:
                    row.description = description
                row.updated_by_id = actor_id
            self.session.flush()
            self._mark_config_pending(key)
            return _config_to_dto(row)

    def delete_config(self, key: str) -> bool:
        with self._translate_errors("delete_config"):
            row = self._config_row(key)
            if row is None:
                return False
            self.session.delete(row)
            self._mark_config_pending(key)
            self.session.flush()
            return True

    def _transaction_end_callbacks(self) -> list[Callable[[], None]]:
        info = self.session.info
        if _TRANSACTION_END_CALLBACKS not in info:
            info[_TRANSACTION_END_CALLBACKS] = []
            event.listen(self.session, "after_transaction_end", _run_transaction_end_callbacks)
        return info[_TRANSACTION_END_CALLBACKS]

    def _mark_config_pending(self, key: str) -> None:
        self._transaction_end_callbacks()
        self.session.info.setdefault(_PENDING_CONFIG_KEYS, set()).add(key)

    def pending_config_keys(self) -> frozenset[str]:
        return frozenset(self.session.info.get(_PENDING_CONFIG_KEYS, ()))

    def on_transaction_end(self, callback: Callable[[], None]) -> None:
        self._transaction_end_callbacks().append(callback)
