"""
Configuration Loader (``claimant_config.loader``).

Responsibility
--------------
Reads the message processor YAML file, applies environment overrides and
returns a validated ``MessageProcessorSettings``.

File layout
-----------
::

    message-processor:
      default-schedule: "*/30 * * * * *"
      offset-schedule: "5/30 * * * * *"
      default-min-lock-time: PT5S
      default-max-lock-time: PT10M
      message-limit: 100
      maximum-attempts: 10
      backoff: {initial-delay: PT30S, multiplier: 2, maximum-delay: PT1H}
      types:
        SEND_EMAIL: {schedule: "*/10 * * * * *", maximum-attempts: 5}
    database:
      url: postgresql://...

Every key is optional.  ``CLAIMANT_QUEUE_CONFIG`` names the file when no
path is passed; with neither, defaults apply.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad ISO-8601 duration  -> ``InvalidDurationError``.
* Unknown keys, bad types, invalid cron, inconsistent bounds
  -> ``ConfigurationError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import timedelta
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from claimant_kernel.exceptions import ConfigurationError, InvalidCronExpressionError
from claimant_kernel.logging_config import get_logger

from claimant_config.schema import (
    BackoffSettings,
    MessageProcessorSettings,
    MessageTypeSettings,
    ScheduleGroup,
)
from claimant_messaging.domain.schedule import parse_cron, parse_iso_duration
from claimant_messaging.domain.types import MessageType

logger = get_logger("config.loader")

CONFIG_PATH_ENV = "CLAIMANT_QUEUE_CONFIG"

_ENV_OVERRIDES = {
    "MESSAGE_PROCESSOR_DEFAULT_SCHEDULE": "default-schedule",
    "MESSAGE_PROCESSOR_OFFSET_SCHEDULE": "offset-schedule",
    "MESSAGE_PROCESSOR_MIN_LOCK_TIME": "default-min-lock-time",
    "MESSAGE_PROCESSOR_MAX_LOCK_TIME": "default-max-lock-time",
    "MESSAGE_PROCESSOR_MESSAGE_LIMIT": "message-limit",
    "MESSAGE_PROCESSOR_MAXIMUM_ATTEMPTS": "maximum-attempts",
}

_PROCESSOR_KEYS = frozenset(
    {
        "default-schedule",
        "offset-schedule",
        "default-min-lock-time",
        "default-max-lock-time",
        "message-limit",
        "maximum-attempts",
        "backoff",
        "types",
        "instance-id",
    }
)
_BACKOFF_KEYS = frozenset({"initial-delay", "multiplier", "maximum-delay"})
_TYPE_KEYS = frozenset({"schedule-group", "schedule", "maximum-attempts", "enabled"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def load_settings(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> MessageProcessorSettings:
    """Load, override and validate message processor settings."""
    env = os.environ if env is None else env
    if path is None and env.get(CONFIG_PATH_ENV):
        path = env[CONFIG_PATH_ENV]

    raw: dict[str, Any] = load_yaml_file(Path(path)) if path is not None else {}
    settings = parse_settings(raw, env)

    logger.info(
        "message_processor_config_loaded",
        extra={
            "config_path": str(path) if path is not None else None,
            "message_limit": settings.message_limit,
            "maximum_attempts": settings.maximum_attempts,
            "type_overrides": sorted(t.value for t in settings.types),
        },
    )
    return settings


def parse_settings(
    raw: Mapping[str, Any],
    env: Mapping[str, str] | None = None,
) -> MessageProcessorSettings:
    """Build settings from an already-loaded document plus env overrides."""
    env = env or {}
    section = dict(_mapping(raw.get("message-processor"), "message-processor"))
    _reject_unknown(section, _PROCESSOR_KEYS, "message-processor")

    for env_name, key in _ENV_OVERRIDES.items():
        if env.get(env_name) not in (None, ""):
            section[key] = _env_value(key, env[env_name])

    database = _mapping(raw.get("database"), "database")
    database_url = env.get("DATABASE_URL") or database.get("url")

    defaults = MessageProcessorSettings()
    settings = MessageProcessorSettings(
        default_schedule=_cron(section, "default-schedule", defaults.default_schedule),
        offset_schedule=_cron(section, "offset-schedule", defaults.offset_schedule),
        min_lock_time=_duration(section, "default-min-lock-time", defaults.min_lock_time),
        max_lock_time=_duration(section, "default-max-lock-time", defaults.max_lock_time),
        message_limit=_positive_int(section, "message-limit", defaults.message_limit),
        maximum_attempts=_attempts(section, "maximum-attempts", defaults.maximum_attempts),
        backoff=_backoff(section.get("backoff")),
        types=MappingProxyType(_types(section.get("types"))),
        database_url=database_url,
        instance_id=section.get("instance-id"),
    )

    if settings.min_lock_time > settings.max_lock_time:
        raise ConfigurationError(
            "default-min-lock-time",
            f"{settings.min_lock_time} exceeds default-max-lock-time "
            f"{settings.max_lock_time}",
        )
    return settings


# =============================================================================
# Field parsers
# =============================================================================


def _mapping(value: Any, setting: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(setting, "expected a mapping")
    return value


def _reject_unknown(section: Mapping[str, Any], allowed: frozenset[str], setting: str) -> None:
    unknown = sorted(set(section) - allowed)
    if unknown:
        raise ConfigurationError(setting, f"unknown keys {unknown}")


def _env_value(key: str, text: str) -> Any:
    if key == "message-limit":
        try:
            return int(text)
        except ValueError:
            raise ConfigurationError(key, f"expected an integer, got '{text}'") from None
    if key == "maximum-attempts":
        if text.strip().lower() in ("none", "null", "unlimited"):
            return None
        try:
            return int(text)
        except ValueError:
            raise ConfigurationError(key, f"expected an integer, got '{text}'") from None
    return text


def _cron(section: Mapping[str, Any], key: str, default: str) -> str:
    expression = section.get(key, default)
    if not isinstance(expression, str):
        raise ConfigurationError(key, "cron expression must be a string")
    try:
        parse_cron(expression)
    except InvalidCronExpressionError as exc:
        raise ConfigurationError(key, exc.reason) from None
    return expression


def _duration(section: Mapping[str, Any], key: str, default: timedelta) -> timedelta:
    if key not in section:
        return default
    value = parse_iso_duration(section[key])
    if value < timedelta(0):
        raise ConfigurationError(key, "duration must not be negative")
    return value


def _positive_int(section: Mapping[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(key, f"expected a positive integer, got {value!r}")
    return value


def _attempts(section: Mapping[str, Any], key: str, default: int | None) -> int | None:
    if key not in section:
        return default
    if section[key] is None:
        return None
    return _positive_int(section, key, 1)


def _backoff(value: Any) -> BackoffSettings:
    section = _mapping(value, "backoff")
    _reject_unknown(section, _BACKOFF_KEYS, "backoff")
    defaults = BackoffSettings()

    multiplier = section.get("multiplier", defaults.multiplier)
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
        raise ConfigurationError("backoff.multiplier", f"expected a number, got {multiplier!r}")

    settings = BackoffSettings(
        initial_delay=_duration(section, "initial-delay", defaults.initial_delay),
        multiplier=float(multiplier),
        maximum_delay=_duration(section, "maximum-delay", defaults.maximum_delay),
    )
    try:
        settings.to_policy()
    except ValueError as exc:
        raise ConfigurationError("backoff", str(exc)) from None
    return settings


def _types(value: Any) -> dict[MessageType, MessageTypeSettings]:
    section = _mapping(value, "types")
    result: dict[MessageType, MessageTypeSettings] = {}

    for name, overrides in section.items():
        try:
            message_type = MessageType(name)
        except ValueError:
            raise ConfigurationError(
                f"types.{name}", f"unknown message type; known: {list(MessageType.values())}",
            ) from None

        entry = _mapping(overrides, f"types.{name}")
        _reject_unknown(entry, _TYPE_KEYS, f"types.{name}")

        default_group = (
            ScheduleGroup.OFFSET if message_type.is_reporting else ScheduleGroup.DEFAULT
        )
        try:
            group = ScheduleGroup(entry.get("schedule-group", default_group))
        except ValueError:
            raise ConfigurationError(
                f"types.{name}.schedule-group",
                f"expected one of {[g.value for g in ScheduleGroup]}",
            ) from None

        schedule = (
            _cron(entry, "schedule", "")
            if entry.get("schedule") is not None
            else None
        )

        enabled = entry.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigurationError(f"types.{name}.enabled", "expected true or false")

        result[message_type] = MessageTypeSettings(
            message_type=message_type,
            schedule_group=group,
            schedule=schedule,
            maximum_attempts=_attempts(entry, "maximum-attempts", None),
            inherit_maximum_attempts="maximum-attempts" not in entry,
            enabled=enabled,
        )
    return result
