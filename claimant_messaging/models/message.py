"""
ORM models for the message queue and its failure reports.

Contract:
    MessageModel persists one unit of deferred work; MessageFailureModel
    persists the audit record written when a message reaches FAILED.  Each
    has a ``to_dto()`` method; MessageModel also has ``from_dto()``.

Architecture: claimant_messaging/models. Imports from claimant_kernel.db.base only.

Invariants enforced:
    - ``message_type`` is written on INSERT only, and a COMPLETED or FAILED
      row is never updated (before_update listeners registered by
      claimant_kernel.db.immutability).
    - MessageFailureModel rows are append-only (same listeners).
    - Failure reports reference messages by ``message_id`` only: no foreign
      key relationship and no back-pointer from the message row.
    - Rows are never deleted by the queue.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from claimant_kernel.db.base import Base, TimestampedBase, UUIDString

if TYPE_CHECKING:
    from claimant_messaging.domain.types import FailureReport, QueuedMessage


class MessageModel(TimestampedBase):
    """Persistent message record (the queue store)."""

    __tablename__ = "message_queue"

    __table_args__ = (
        # Selection: WHERE message_type=? AND status=? AND process_after<=?
        # ORDER BY created_at
        Index(
            "ix_message_queue_selection",
            "message_type", "status", "process_after", "created_at",
        ),
        Index("ix_message_queue_status", "status"),
    )

    message_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    process_after: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> QueuedMessage:
        from claimant_messaging.domain.types import (
            MessageStatus,
            MessageType,
            QueuedMessage,
        )

        return QueuedMessage(
            message_id=self.id,
            message_type=MessageType(self.message_type),
            payload=self.payload,
            status=MessageStatus(self.status),
            attempt_count=self.attempt_count,
            created_at=self.created_at,
            process_after=self.process_after,
            last_error=self.last_error,
        )

    @classmethod
    def from_dto(cls, dto: QueuedMessage) -> MessageModel:
        return cls(
            id=dto.message_id,
            message_type=dto.message_type.value,
            status=dto.status.value,
            payload=dto.payload,
            attempt_count=dto.attempt_count,
            created_at=dto.created_at,
            updated_at=dto.created_at,
            process_after=dto.process_after,
            last_error=dto.last_error,
        )


class MessageFailureModel(Base):
    """Audit record for a message that reached FAILED (append-only)."""

    __tablename__ = "message_failures"

    __table_args__ = (
        Index("ix_message_failures_message_id", "message_id"),
        Index("ix_message_failures_reported_at", "reported_at"),
    )

    message_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    message_type: Mapped[str] = mapped_column(String(50), nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    reported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def to_dto(self) -> FailureReport:
        from claimant_messaging.domain.types import FailureReport, MessageType

        return FailureReport(
            report_id=self.id,
            message_id=self.message_id,
            message_type=MessageType(self.message_type),
            attempt_count=self.attempt_count,
            reason=self.reason,
            reported_at=self.reported_at,
        )
