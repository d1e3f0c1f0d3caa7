"""
timesheet_config -- single public entrypoint for deployment settings.

Responsibility:
    ``get_active_settings()`` is the only way runtime code obtains
    deployment settings.  Nothing else reads the settings file or the
    TIMESHEET_* environment variables.

Architecture position:
    Configuration -- sits above ``timesheet_kernel``.  The kernel MUST NEVER
    import from ``timesheet_config``; bridges in this package translate
    settings into kernel inputs (engine, logging, AccessPolicy, reference
    timezone, SystemConfig defaults).

Failure modes:
    - ``FileNotFoundError`` -- explicit path does not exist.
    - ``ValueError`` -- invalid or unknown setting.
"""

from __future__ import annotations

import logging
from pathlib import Path

from timesheet_config.bridges import (
    build_access_policy,
    build_engine,
    build_reference_timezone,
    build_system_config_service,
    configure_logging_from_settings,
)
from timesheet_config.loader import load_settings
from timesheet_config.schema import TimesheetSettings

_logger = logging.getLogger("timesheet_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_settings(path: Path | None = None) -> TimesheetSettings:
    """Load settings from ``path`` (default: the packaged defaults.yaml)."""
    settings = load_settings(path or DEFAULT_SETTINGS_PATH)
    _logger.info(
        "timesheet_settings_loaded",
        extra={
            "settings_path": str(path or DEFAULT_SETTINGS_PATH),
            "reference_timezone": settings.reference_timezone,
            "project_visibility": settings.project_visibility,
            "log_level": settings.log_level,
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "TimesheetSettings",
    "build_access_policy",
    "build_engine",
    "build_reference_timezone",
    "build_system_config_service",
    "configure_logging_from_settings",
    "get_active_settings",
]
