"""
Deployment settings schema (``timesheet_config.schema``).

Frozen dataclasses describing one deployment: where the database lives,
which timezone defines "today", which project visibility rule applies to
collaborators, the log level, and overrides for the SystemConfig defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

DEFAULT_DATABASE_URL = "sqlite:///:memory:"
DEFAULT_REFERENCE_TIMEZONE = "America/Mexico_City"
DEFAULT_PROJECT_VISIBILITY = "area"
DEFAULT_LOG_LEVEL = "INFO"

PROJECT_VISIBILITY_CHOICES = ("area", "assignment")
LOG_LEVEL_CHOICES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class TimesheetSettings:
    database_url: str = DEFAULT_DATABASE_URL
    reference_timezone: str = DEFAULT_REFERENCE_TIMEZONE
    project_visibility: str = DEFAULT_PROJECT_VISIBILITY
    log_level: str = DEFAULT_LOG_LEVEL
    # SystemConfig key -> default string value used when the key is unset
    config_defaults: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )
