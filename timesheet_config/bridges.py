"""
Settings -> Kernel Bridges.

Functions that turn TimesheetSettings into kernel inputs.  They live here
because the kernel must never import timesheet_config.

Usage:
    settings = get_active_settings()
    configure_logging_from_settings(settings)
    engine = build_engine(settings)
    policy = build_access_policy(settings)
    tz = build_reference_timezone(settings)
    config = build_system_config_service(settings, SqlStore(session), cache)
"""

from __future__ import annotations

from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy.engine import Engine

from timesheet_config.schema import TimesheetSettings
from timesheet_kernel.db.engine import init_engine_from_url
from timesheet_kernel.domain.access_policy import AccessPolicy, ProjectVisibility
from timesheet_kernel.logging_config import configure_logging
from timesheet_kernel.services.system_config_service import ConfigCache, SystemConfigService
from timesheet_kernel.store.base import Store


def build_access_policy(settings: TimesheetSettings) -> AccessPolicy:
    return AccessPolicy(ProjectVisibility(settings.project_visibility))


def build_reference_timezone(settings: TimesheetSettings) -> ZoneInfo:
    """The timezone in which calendar days (and "today") are evaluated."""
    return ZoneInfo(settings.reference_timezone)


def build_engine(settings: TimesheetSettings, **engine_kwargs: Any) -> Engine:
    """Initialize the kernel's module-level engine from ``database_url``."""
    return init_engine_from_url(settings.database_url, **engine_kwargs)


def configure_logging_from_settings(settings: TimesheetSettings, **kwargs: Any) -> None:
    """Configure kernel logging at the deployment's ``log_level``.

    ``kwargs`` (stream, handler) pass through to configure_logging.
    """
    configure_logging(level=settings.log_level, **kwargs)


def build_system_config_service(
    settings: TimesheetSettings,
    store: Store,
    cache: ConfigCache | None = None,
) -> SystemConfigService:
    """SystemConfigService whose fallbacks are the deployment's config_defaults."""
    return SystemConfigService(
        store,
        cache=cache,
        policy=build_access_policy(settings),
        defaults=settings.config_defaults,
    )
