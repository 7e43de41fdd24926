"""
claimant_config -- message processor configuration.

``load_settings()`` is the single entry point: YAML file (optional) plus
environment overrides, validated into a frozen ``MessageProcessorSettings``.
"""

from claimant_config.loader import load_settings, parse_settings
from claimant_config.schema import (
    DEFAULT_SCHEDULE,
    OFFSET_SCHEDULE,
    BackoffSettings,
    MessageProcessorSettings,
    MessageTypeSettings,
    ScheduleGroup,
)

__all__ = [
    "DEFAULT_SCHEDULE",
    "OFFSET_SCHEDULE",
    "BackoffSettings",
    "MessageProcessorSettings",
    "MessageTypeSettings",
    "ScheduleGroup",
    "load_settings",
    "parse_settings",
]
