"""
SystemConfigService -- runtime tunables for time entry validation.

Responsibility:
    Key/value configuration stored in the system_configs table: the date
    windows, the daily hour cap and the per-entry minimum.  Implements the
    ConfigSource contract (``get_config_value``) and parses raw strings
    into the typed settings the validators consume.

Architecture position:
    Kernel > Services -- imperative shell.  Consulted by TimeEntryService
    on every validation; written only by administrators.

Invariants enforced:
    - Unset or unparsable values fall back to documented defaults; a read
      never fails because of a bad stored value.
    - Writes are validated for the known keys before they are stored.
    - The shared ConfigCache never holds an uncommitted value: keys written
      in the current transaction bypass it, and every write invalidates it
      again when the transaction commits or rolls back.
    - initialize_default_configs() only inserts missing keys.

Failure modes:
    - ForbiddenError: non-administrator write.
    - InvalidConfigValueError: malformed value for a known key.
    - ConfigNotFoundError: delete/get of an unknown key.
"""

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Protocol

from timesheet_kernel.domain.access_policy import AccessPolicy
from timesheet_kernel.domain.dtos import SystemConfigInfo
from timesheet_kernel.domain.principal import Principal
from timesheet_kernel.domain.validation import (
    ABSOLUTE_MAX_HOURS_PER_ENTRY,
    DateRestrictionConfig,
    HoursLimits,
)
from timesheet_kernel.exceptions import ConfigNotFoundError, InvalidConfigValueError
from timesheet_kernel.logging_config import get_logger
from timesheet_kernel.services.base import BaseService
from timesheet_kernel.store.base import Store

logger = get_logger("services.system_config")

TIME_ENTRY_FUTURE_DAYS = "TIME_ENTRY_FUTURE_DAYS"
TIME_ENTRY_PAST_DAYS = "TIME_ENTRY_PAST_DAYS"
TIME_ENTRY_DATE_RESTRICTIONS_ENABLED = "TIME_ENTRY_DATE_RESTRICTIONS_ENABLED"
TIME_ENTRY_MAX_HOURS_PER_DAY = "TIME_ENTRY_MAX_HOURS_PER_DAY"
TIME_ENTRY_MIN_HOURS = "TIME_ENTRY_MIN_HOURS"


@dataclass(frozen=True)
class ConfigDefault:
    value: str
    description: str


DEFAULT_CONFIGS: dict[str, ConfigDefault] = {
    TIME_ENTRY_FUTURE_DAYS: ConfigDefault(
        "7", "Number of days in the future allowed for time entries"
    ),
    TIME_ENTRY_PAST_DAYS: ConfigDefault(
        "30", "Number of days in the past allowed for time entries"
    ),
    TIME_ENTRY_DATE_RESTRICTIONS_ENABLED: ConfigDefault(
        "true", "Enable date restrictions for time entries"
    ),
    TIME_ENTRY_MAX_HOURS_PER_DAY: ConfigDefault(
        "24", "Maximum hours a user may record per day"
    ),
    TIME_ENTRY_MIN_HOURS: ConfigDefault(
        "0.25", "Minimum hours for a single time entry"
    ),
}

_INT_KEYS = frozenset({TIME_ENTRY_FUTURE_DAYS, TIME_ENTRY_PAST_DAYS})
_BOOL_KEYS = frozenset({TIME_ENTRY_DATE_RESTRICTIONS_ENABLED})
_HOURS_KEYS = frozenset({TIME_ENTRY_MAX_HOURS_PER_DAY, TIME_ENTRY_MIN_HOURS})


class ConfigSource(Protocol):
    def get_config_value(self, key: str, default: str) -> str: ...


class ConfigCache:
    """
    Process-wide read-through cache of raw config values.

    Absent keys are cached too (as None) so repeated reads of an unset key
    do not hit the database.  Safe to share between threads.
    """

    _MISSING = object()

    def __init__(self) -> None:
        self._values: dict[str, str | None] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[bool, str | None]:
        with self._lock:
            value = self._values.get(key, self._MISSING)
        if value is self._MISSING:
            return False, None
        return True, value

    def put(self, key: str, value: str | None) -> None:
        with self._lock:
            self._values[key] = value

    def invalidate(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._values.clear()
            else:
                self._values.pop(key, None)


def _parse_int(raw: str, default: int) -> int:
    # Unparsable and zero both fall back to the default.
    try:
        value = int(raw.strip())
    except (AttributeError, ValueError):
        return default
    return value or default


def _parse_hours(raw: str, default: Decimal) -> Decimal:
    try:
        value = Decimal(raw.strip())
    except (AttributeError, InvalidOperation):
        return default
    if not value.is_finite() or value <= 0:
        return default
    return value


class SystemConfigService(BaseService):
    """
    Typed access to runtime configuration.

    Contract:
        Reads go through the shared ConfigCache unless the key was written
        in the current transaction; writes go to the Store and
        invalidate the cache entry now and at transaction end.

    Guarantees:
        - get_date_restriction_configs() and get_hours_limits() always
          return usable values.
    """

    def __init__(
        self,
        store: Store,
        cache: ConfigCache | None = None,
        policy: AccessPolicy | None = None,
        defaults: Mapping[str, str] | None = None,
    ):
        super().__init__(store, policy)
        self.cache = cache or ConfigCache()
        # Deployment overrides for the built-in defaults
        self._defaults = {k: d.value for k, d in DEFAULT_CONFIGS.items()}
        if defaults:
            self._defaults.update(defaults)

    # -- ConfigSource -------------------------------------------------------

    def get_config_value(self, key: str, default: str | None = None) -> str:
        if key in self.store.pending_config_keys():
            # Uncommitted in this transaction; never shared through the cache
            row = self.store.find_config(key)
            value = row.value if row is not None else None
        else:
            hit, value = self.cache.get(key)
            if not hit:
                row = self.store.find_config(key)
                value = row.value if row is not None else None
                self.cache.put(key, value)
        if value is not None:
            return value
        if default is not None:
            return default
        return self._defaults.get(key, "")

    # -- Typed views --------------------------------------------------------

    def _default(self, key: str) -> str:
        return self._defaults[key]

    def get_date_restriction_configs(self) -> DateRestrictionConfig:
        enabled_raw = self.get_config_value(
            TIME_ENTRY_DATE_RESTRICTIONS_ENABLED,
            self._default(TIME_ENTRY_DATE_RESTRICTIONS_ENABLED),
        )
        future_default = _parse_int(self._default(TIME_ENTRY_FUTURE_DAYS), 7)
        past_default = _parse_int(self._default(TIME_ENTRY_PAST_DAYS), 30)
        return DateRestrictionConfig(
            enabled=enabled_raw.strip().lower() == "true",
            future_days_allowed=_parse_int(
                self.get_config_value(TIME_ENTRY_FUTURE_DAYS, str(future_default)),
                future_default,
            ),
            past_days_allowed=_parse_int(
                self.get_config_value(TIME_ENTRY_PAST_DAYS, str(past_default)),
                past_default,
            ),
        )

    def get_hours_limits(self) -> HoursLimits:
        max_default = _parse_hours(self._default(TIME_ENTRY_MAX_HOURS_PER_DAY), Decimal("24"))
        min_default = _parse_hours(self._default(TIME_ENTRY_MIN_HOURS), Decimal("0.25"))
        return HoursLimits(
            max_hours_per_day=_parse_hours(
                self.get_config_value(TIME_ENTRY_MAX_HOURS_PER_DAY, str(max_default)),
                max_default,
            ),
            min_hours_per_entry=_parse_hours(
                self.get_config_value(TIME_ENTRY_MIN_HOURS, str(min_default)),
                min_default,
            ),
        )

    # -- Administration -----------------------------------------------------

    def get_config(self, key: str) -> SystemConfigInfo:
        row = self.store.find_config(key)
        if row is None:
            raise ConfigNotFoundError(key)
        return row

    def get_all_configs(self) -> list[SystemConfigInfo]:
        return self.store.list_configs()

    def set_config(
        self,
        key: str,
        value: str,
        principal: Principal,
        description: str | None = None,
    ) -> SystemConfigInfo:
        """Create or update ``key`` (administrators only)."""
        self.require(
            self.policy.can_manage_system_config(principal),
            principal, "update", "SystemConfig", key,
        )
        value = self._validate_value(key, value)
        if description is None and key in DEFAULT_CONFIGS and self.store.find_config(key) is None:
            description = DEFAULT_CONFIGS[key].description
        row = self.store.upsert_config(key, value, description, principal.user_id)
        self._invalidate(key)
        logger.info(
            "system_config_updated",
            extra={"key": key, "value": value, "actor_id": str(principal.user_id)},
        )
        return row

    def delete_config(self, key: str, principal: Principal) -> None:
        self.require(
            self.policy.can_manage_system_config(principal),
            principal, "delete", "SystemConfig", key,
        )
        if not self.store.delete_config(key):
            raise ConfigNotFoundError(key)
        self._invalidate(key)
        logger.info("system_config_deleted", extra={"key": key})

    def initialize_default_configs(self, principal: Principal) -> list[str]:
        """Insert every default key that is not yet stored.  Returns inserted keys."""
        self.require(
            self.policy.can_manage_system_config(principal),
            principal, "initialize", "SystemConfig",
        )
        inserted: list[str] = []
        for key, default in DEFAULT_CONFIGS.items():
            if self.store.find_config(key) is not None:
                continue
            self.store.upsert_config(
                key, self._defaults[key], default.description, principal.user_id
            )
            inserted.append(key)
        self._invalidate(*inserted)
        logger.info("system_config_defaults_initialized", extra={"inserted": inserted})
        return inserted

    def _invalidate(self, *keys: str) -> None:
        """Drop ``keys`` now and again when the writing transaction ends."""
        def drop() -> None:
            for key in keys:
                self.cache.invalidate(key)

        drop()
        self.store.on_transaction_end(drop)

    def _validate_value(self, key: str, value: object) -> str:
        if isinstance(value, bool):
            if key in _BOOL_KEYS:
                return "true" if value else "false"
            raise InvalidConfigValueError(key, value, "boolean not accepted for this key")
        raw = str(value).strip()
        if key in _INT_KEYS:
            if not raw.isdigit():
                raise InvalidConfigValueError(key, value, "must be a non-negative whole number of days")
        elif key in _BOOL_KEYS:
            if raw.lower() not in ("true", "false"):
                raise InvalidConfigValueError(key, value, "must be 'true' or 'false'")
            raw = raw.lower()
        elif key in _HOURS_KEYS:
            try:
                hours = Decimal(raw)
            except InvalidOperation as exc:
                raise InvalidConfigValueError(key, value, "must be a number of hours") from exc
            if not hours.is_finite() or hours <= 0 or hours > ABSOLUTE_MAX_HOURS_PER_ENTRY:
                raise InvalidConfigValueError(
                    key, value, f"must be greater than 0 and at most {ABSOLUTE_MAX_HOURS_PER_ENTRY}"
                )
        return raw
