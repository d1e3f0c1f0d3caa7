"""
Pytest fixtures for the timesheet kernel test suite.

Provides:
- Database sessions with per-test rollback isolation
- Services wired to a DeterministicClock
- Factories for areas, users/principals, projects and tasks

Environment Variables:
- DATABASE_URL: SQLAlchemy URL of the test database.  Defaults to an
  in-memory SQLite database; set a postgresql:// URL to run the suite
  against PostgreSQL.
"""

import json
import logging
import os
from collections.abc import Callable, Generator
from datetime import datetime, timezone
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from timesheet_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from timesheet_kernel.domain.access_policy import AccessPolicy
from timesheet_kernel.domain.clock import DeterministicClock
from timesheet_kernel.domain.dtos import AreaInfo, ProjectInfo, TaskInfo
from timesheet_kernel.domain.principal import Principal, Role
from timesheet_kernel.domain.values import Priority, ProjectStatus, TaskStatus
from timesheet_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from timesheet_kernel.selectors import (
    ProjectSelector,
    TaskSelector,
    TimeEntrySelector,
    TimePeriodSelector,
)
from timesheet_kernel.services import (
    ProjectService,
    SystemConfigService,
    TaskService,
    TimeEntryService,
    TimePeriodService,
)
from timesheet_kernel.store.sql_store import SqlStore

# Actor id for setup writes that are not made by a test principal
TEST_ACTOR_ID = uuid4()

# "Today" for every service under test: 2025-07-04 in UTC
FIXED_NOW = datetime(2025, 7, 4, 12, 0, 0, tzinfo=timezone.utc)

DEFAULT_DATABASE_URL = "sqlite:///:memory:"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture timesheet_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, time_entry_service):
            time_entry_service.create_or_merge(...)
            logs = captured_logs()
            assert any(r["message"] == "time_entry_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("timesheet_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    yield
    drop_tables()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection.
    ``session.commit()`` inside a test only releases a savepoint; the outer
    transaction is rolled back at teardown, undoing every change.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def policy() -> AccessPolicy:
    return AccessPolicy()


@pytest.fixture
def store(session) -> SqlStore:
    return SqlStore(session)


@pytest.fixture
def config_service(store, policy) -> SystemConfigService:
    return SystemConfigService(store, policy=policy)


@pytest.fixture
def period_service(session, store, policy, deterministic_clock) -> TimePeriodService:
    return TimePeriodService(
        store, TimePeriodSelector(session), policy=policy, clock=deterministic_clock
    )


@pytest.fixture
def time_entry_service(
    session, store, config_service, period_service, policy, deterministic_clock
) -> TimeEntryService:
    return TimeEntryService(
        store,
        config_service,
        period_service,
        TimeEntrySelector(session),
        policy=policy,
        clock=deterministic_clock,
    )


@pytest.fixture
def project_service(session, store, policy, deterministic_clock) -> ProjectService:
    return ProjectService(
        store, ProjectSelector(session), policy=policy, clock=deterministic_clock
    )


@pytest.fixture
def task_service(session, store, policy, deterministic_clock) -> TaskService:
    return TaskService(store, TaskSelector(session), policy=policy, clock=deterministic_clock)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def create_area(store) -> Callable[..., AreaInfo]:
    def _create(name: str | None = None) -> AreaInfo:
        return store.create_area(name or f"Area {uuid4().hex[:8]}")

    return _create


@pytest.fixture
def area(create_area) -> AreaInfo:
    return create_area("Engineering")


@pytest.fixture
def other_area(create_area) -> AreaInfo:
    return create_area("Marketing")


@pytest.fixture
def create_principal(store) -> Callable[..., Principal]:
    """Create a persisted user and return the Principal acting as them."""

    def _create(role: Role, area_id=None, name: str | None = None) -> Principal:
        suffix = uuid4().hex[:8]
        user = store.create_user(
            email=f"{role.value.lower()}.{suffix}@example.com",
            name=name or f"{role.value.title()} {suffix}",
            role=role,
            area_id=area_id,
        )
        return Principal(user_id=user.id, role=user.role, area_id=user.area_id, email=user.email)

    return _create


@pytest.fixture
def admin(create_principal) -> Principal:
    return create_principal(Role.ADMINISTRADOR)


@pytest.fixture
def coordinator(create_principal, area) -> Principal:
    return create_principal(Role.COORDINADOR, area.id)


@pytest.fixture
def collaborator(create_principal, area) -> Principal:
    return create_principal(Role.COLABORADOR, area.id)


@pytest.fixture
def outsider(create_principal, other_area) -> Principal:
    """A collaborator in a different area."""
    return create_principal(Role.COLABORADOR, other_area.id)


@pytest.fixture
def create_project(store, test_actor_id) -> Callable[..., ProjectInfo]:
    def _create(area_id, name: str | None = None, **fields) -> ProjectInfo:
        data = {
            "name": name or f"Project {uuid4().hex[:8]}",
            "area_id": area_id,
            "status": ProjectStatus.ACTIVE,
            "priority": Priority.MEDIUM,
        }
        data.update(fields)
        return store.create_project(data, test_actor_id)

    return _create


@pytest.fixture
def project(create_project, area) -> ProjectInfo:
    return create_project(area.id, "Website redesign")


@pytest.fixture
def create_task(store, test_actor_id) -> Callable[..., TaskInfo]:
    def _create(project_id, title: str | None = None, **fields) -> TaskInfo:
        data = {
            "title": title or f"Task {uuid4().hex[:8]}",
            "project_id": project_id,
            "status": TaskStatus.TODO,
            "priority": Priority.MEDIUM,
        }
        data.update(fields)
        return store.create_task(data, test_actor_id)

    return _create


@pytest.fixture
def task(create_task, project, collaborator) -> TaskInfo:
    return create_task(project.id, "Build landing page", assigned_to_id=collaborator.user_id)
