"""
Configuration schema (``claimant_config.schema``).

Responsibility
--------------
Frozen dataclasses describing message processor configuration after
parsing.  Durations are ``timedelta``; cron expressions are kept as text
and validated by the loader.

Architecture position
---------------------
**Config layer**.  Depends only on ``claimant_messaging.domain`` for
``MessageType``, ``MessageTrigger`` and ``BackoffPolicy``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from claimant_messaging.domain.schedule import BackoffPolicy
from claimant_messaging.domain.types import MessageTrigger, MessageType

DEFAULT_SCHEDULE = "*/30 * * * * *"
OFFSET_SCHEDULE = "5/30 * * * * *"


class ScheduleGroup(str, Enum):
    DEFAULT = "default"
    OFFSET = "offset"


@dataclass(frozen=True)
class BackoffSettings:
    initial_delay: timedelta = timedelta(seconds=30)
    multiplier: float = 2.0
    maximum_delay: timedelta = timedelta(hours=1)

    def to_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            initial_delay=self.initial_delay,
            multiplier=self.multiplier,
            maximum_delay=self.maximum_delay,
        )


@dataclass(frozen=True)
class MessageTypeSettings:
    """Per-type overrides.

    ``maximum_attempts`` is ``None`` for unlimited retry; ``inherit`` is
    True when the type uses the processor-wide limit.
    """

    message_type: MessageType
    schedule_group: ScheduleGroup = ScheduleGroup.DEFAULT
    schedule: str | None = None
    maximum_attempts: int | None = None
    inherit_maximum_attempts: bool = True
    enabled: bool = True


@dataclass(frozen=True)
class MessageProcessorSettings:
    """Everything the orchestrator needs to build the processing stack."""

    default_schedule: str = DEFAULT_SCHEDULE
    offset_schedule: str = OFFSET_SCHEDULE
    min_lock_time: timedelta = timedelta(seconds=5)
    max_lock_time: timedelta = timedelta(minutes=10)
    message_limit: int = 100
    maximum_attempts: int | None = 10
    backoff: BackoffSettings = field(default_factory=BackoffSettings)
    types: Mapping[MessageType, MessageTypeSettings] = field(
        default_factory=lambda: MappingProxyType({}),
    )
    database_url: str | None = None
    instance_id: str | None = None

    def settings_for(self, message_type: MessageType) -> MessageTypeSettings:
        if message_type in self.types:
            return self.types[message_type]
        return MessageTypeSettings(
            message_type=message_type,
            schedule_group=(
                ScheduleGroup.OFFSET if message_type.is_reporting else ScheduleGroup.DEFAULT
            ),
        )

    def schedule_for(self, message_type: MessageType) -> str:
        type_settings = self.settings_for(message_type)
        if type_settings.schedule:
            return type_settings.schedule
        if type_settings.schedule_group is ScheduleGroup.OFFSET:
            return self.offset_schedule
        return self.default_schedule

    def maximum_attempts_by_type(self) -> dict[MessageType, int | None]:
        """Only types that override the processor-wide limit."""
        return {
            t: s.maximum_attempts
            for t, s in self.types.items()
            if not s.inherit_maximum_attempts
        }

    def trigger_for(self, message_type: MessageType) -> MessageTrigger:
        return MessageTrigger(
            message_type=message_type,
            cron_expression=self.schedule_for(message_type),
            min_lock_hold=self.min_lock_time,
            max_lock_hold=self.max_lock_time,
        )

    def enabled_types(self) -> tuple[MessageType, ...]:
        return tuple(t for t in MessageType if self.settings_for(t).enabled)
