"""
Settings loader (``timesheet_config.loader``).

Responsibility
--------------
Reads a YAML settings file with ``yaml.safe_load``, applies environment
variable overrides, validates every value and returns a frozen
``TimesheetSettings``.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from timesheet_config.schema import (
    DEFAULT_DATABASE_URL,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PROJECT_VISIBILITY,
    DEFAULT_REFERENCE_TIMEZONE,
    LOG_LEVEL_CHOICES,
    PROJECT_VISIBILITY_CHOICES,
    TimesheetSettings,
)

ENV_OVERRIDES = {
    "database_url": "TIMESHEET_DATABASE_URL",
    "reference_timezone": "TIMESHEET_REFERENCE_TIMEZONE",
    "project_visibility": "TIMESHEET_PROJECT_VISIBILITY",
    "log_level": "TIMESHEET_LOG_LEVEL",
}

_KNOWN_KEYS = frozenset(ENV_OVERRIDES) | {"config_defaults"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load ``path`` and return its top-level mapping (empty for an empty file)."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _parse_config_defaults(raw: Any) -> Mapping[str, str]:
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, dict):
        raise ValueError("config_defaults must be a mapping of key to value")
    parsed: dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, bool):
            parsed[str(key)] = "true" if value else "false"
        else:
            parsed[str(key)] = str(value)
    return MappingProxyType(parsed)


def parse_settings(
    data: Mapping[str, Any],
    environ: Mapping[str, str] | None = None,
) -> TimesheetSettings:
    """Build settings from a parsed mapping, then apply env overrides."""
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise ValueError(f"Unknown settings keys: {', '.join(unknown)}")

    environ = os.environ if environ is None else environ
    values: dict[str, str] = {
        "database_url": str(data.get("database_url", DEFAULT_DATABASE_URL)),
        "reference_timezone": str(data.get("reference_timezone", DEFAULT_REFERENCE_TIMEZONE)),
        "project_visibility": str(data.get("project_visibility", DEFAULT_PROJECT_VISIBILITY)),
        "log_level": str(data.get("log_level", DEFAULT_LOG_LEVEL)),
    }
    for name, env_var in ENV_OVERRIDES.items():
        override = environ.get(env_var)
        if override:
            values[name] = override

    visibility = values["project_visibility"].strip().lower()
    if visibility not in PROJECT_VISIBILITY_CHOICES:
        raise ValueError(
            f"project_visibility must be one of {PROJECT_VISIBILITY_CHOICES}, "
            f"got {values['project_visibility']!r}"
        )

    log_level = values["log_level"].strip().upper()
    if log_level not in LOG_LEVEL_CHOICES:
        raise ValueError(f"log_level must be one of {LOG_LEVEL_CHOICES}, got {values['log_level']!r}")

    tz_name = values["reference_timezone"].strip()
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown reference_timezone {tz_name!r}") from exc

    return TimesheetSettings(
        database_url=values["database_url"],
        reference_timezone=tz_name,
        project_visibility=visibility,
        log_level=log_level,
        config_defaults=_parse_config_defaults(data.get("config_defaults")),
    )


def load_settings(
    path: Path | None,
    environ: Mapping[str, str] | None = None,
) -> TimesheetSettings:
    """Load settings from ``path`` (or defaults only when None)."""
    data = load_yaml_file(path) if path is not None else {}
    return parse_settings(data, environ)
