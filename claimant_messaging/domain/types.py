"""
claimant_messaging.domain.types -- Pure frozen dataclasses for the message queue.

ZERO I/O.  Enum status fields, frozen dataclasses, tuples for immutable
collections.

Invariants enforced:
    - A message's type is fixed at creation: QueuedMessage is frozen, and
      the ORM listeners in claimant_kernel.db.immutability reject any
      UPDATE of message_type.
    - Status transitions only PENDING -> {PENDING, COMPLETED, FAILED}
      (``MessageStatus.is_terminal``); the same listeners freeze a
      terminal row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID


# =============================================================================
# Enums
# =============================================================================


class MessageType(str, Enum):
    """Closed set of work categories.  Each type has exactly one handler."""

    REQUEST_NEW_CARD = "REQUEST_NEW_CARD"
    COMPLETE_NEW_CARD_PROCESS = "COMPLETE_NEW_CARD_PROCESS"
    DETERMINE_ENTITLEMENT = "DETERMINE_ENTITLEMENT"
    MAKE_PAYMENT = "MAKE_PAYMENT"
    REQUEST_PAYMENT = "REQUEST_PAYMENT"
    COMPLETE_PAYMENT = "COMPLETE_PAYMENT"
    ADDITIONAL_PREGNANCY_PAYMENT = "ADDITIONAL_PREGNANCY_PAYMENT"
    SEND_EMAIL = "SEND_EMAIL"
    SEND_LETTER = "SEND_LETTER"
    REPORT_CLAIM = "REPORT_CLAIM"
    REPORT_PAYMENT = "REPORT_PAYMENT"

    @property
    def is_reporting(self) -> bool:
        """Low-urgency types scheduled on the offset group."""
        return self in (MessageType.REPORT_CLAIM, MessageType.REPORT_PAYMENT)

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(member.value for member in cls)


class MessageStatus(str, Enum):
    """Message lifecycle status."""

    PENDING = "PENDING"  # Eligible once process_after has passed
    COMPLETED = "COMPLETED"  # Terminal: handler succeeded
    FAILED = "FAILED"  # Terminal: fatal failure or attempts exhausted

    @property
    def is_terminal(self) -> bool:
        return self is not MessageStatus.PENDING


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"


# =============================================================================
# Handler outcome
# =============================================================================


@dataclass(frozen=True)
class MessageOutcome:
    """Result of one handler invocation.

    Use the ``success()``, ``retryable()`` and ``fatal()`` constructors.
    """

    kind: OutcomeKind
    reason: str | None = None

    @classmethod
    def success(cls) -> MessageOutcome:
        return cls(kind=OutcomeKind.SUCCESS)

    @classmethod
    def retryable(cls, reason: str) -> MessageOutcome:
        return cls(kind=OutcomeKind.RETRYABLE_FAILURE, reason=reason)

    @classmethod
    def fatal(cls, reason: str) -> MessageOutcome:
        return cls(kind=OutcomeKind.FATAL_FAILURE, reason=reason)

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def is_retryable(self) -> bool:
        return self.kind is OutcomeKind.RETRYABLE_FAILURE

    @property
    def is_fatal(self) -> bool:
        return self.kind is OutcomeKind.FATAL_FAILURE


# =============================================================================
# Message DTOs
# =============================================================================


@dataclass(frozen=True)
class QueuedMessage:
    """Immutable snapshot of a queued message, handed to handlers.

    Handlers derive idempotency keys for remote calls from ``message_id``.
    """

    message_id: UUID
    message_type: MessageType
    payload: str
    status: MessageStatus = MessageStatus.PENDING
    attempt_count: int = 0
    created_at: datetime | None = None
    process_after: datetime | None = None
    last_error: str | None = None

    @property
    def idempotency_key(self) -> str:
        return f"{self.message_type.value}:{self.message_id}"


@dataclass(frozen=True)
class FailureReport:
    """Structured record of a message that reached FAILED.

    References the message by identity only.
    """

    message_id: UUID
    message_type: MessageType
    attempt_count: int
    reason: str
    reported_at: datetime
    report_id: UUID | None = None


@dataclass(frozen=True)
class MessageDispatchResult:
    """What happened to one message during a processing run."""

    message_id: UUID
    outcome: MessageOutcome
    status: MessageStatus
    attempt_count: int
    process_after: datetime | None = None


@dataclass(frozen=True)
class ProcessingRunResult:
    """Immutable result of one ``process_messages_of_type()`` run."""

    message_type: MessageType
    selected: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    dispatches: tuple[MessageDispatchResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0


# =============================================================================
# Scheduling
# =============================================================================


@dataclass(frozen=True)
class MessageTrigger:
    """Periodic trigger for one message type.

    Each trigger has its own cadence and lock hold bounds; triggers for
    different types are independent.
    """

    message_type: MessageType
    cron_expression: str
    min_lock_hold: timedelta = timedelta(seconds=5)
    max_lock_hold: timedelta = timedelta(minutes=10)

    @property
    def lock_name(self) -> str:
        return f"Process {self.message_type.value} messages"

    @property
    def session_id(self) -> str:
        return f"MessageProcessor:{self.message_type.value}"
