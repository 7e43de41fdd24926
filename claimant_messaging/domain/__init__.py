"""
claimant_messaging.domain -- Pure types and schedule maths for the message queue.

ZERO I/O.  All types are frozen dataclasses or enums.
"""

from claimant_messaging.domain.schedule import (
    BackoffPolicy,
    CronSpec,
    matches_cron,
    next_fire_time,
    parse_cron,
    parse_iso_duration,
)
from claimant_messaging.domain.types import (
    FailureReport,
    MessageDispatchResult,
    MessageOutcome,
    MessageStatus,
    MessageTrigger,
    MessageType,
    OutcomeKind,
    ProcessingRunResult,
    QueuedMessage,
)

__all__ = [
    "BackoffPolicy",
    "CronSpec",
    "FailureReport",
    "MessageDispatchResult",
    "MessageOutcome",
    "MessageStatus",
    "MessageTrigger",
    "MessageType",
    "OutcomeKind",
    "ProcessingRunResult",
    "QueuedMessage",
    "matches_cron",
    "next_fire_time",
    "parse_cron",
    "parse_iso_duration",
]
