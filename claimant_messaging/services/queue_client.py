"""
MessageQueueClient -- enqueue side of the message queue.

Contract:
    ``enqueue()`` persists one PENDING message in the caller's session and
    returns its id.  The caller's transaction decides whether the message
    exists: the client flushes but never commits, so a message enqueued
    alongside a claim update commits or rolls back with it.

Architecture: claimant_messaging/services.  Imports from
    claimant_messaging.domain, claimant_messaging.models, the payload codec
    and kernel utilities.

Failure modes:
    - InvalidMessageTypeError if the type is not a known MessageType.
    - MessageSerializationError if the payload cannot be encoded.
    - MessageNotFoundError from ``get_message()``.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from claimant_kernel.domain.clock import Clock, SystemClock
from claimant_kernel.exceptions import (
    InvalidMessageTypeError,
    MessageNotFoundError,
    MessageSerializationError,
)
from claimant_kernel.logging_config import get_logger

from claimant_messaging.domain.types import MessageStatus, MessageType, QueuedMessage
from claimant_messaging.models.message import MessageModel
from claimant_messaging.payloads import encode_payload

logger = get_logger("messaging.queue_client")


class MessageQueueClient:
    """Writes messages into the queue store within the caller's session.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT deduplicate payloads; every call creates a new message.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def enqueue(
        self,
        message_type: MessageType | str,
        payload: Any,
        process_after: datetime | None = None,
        created_at: datetime | None = None,
    ) -> UUID:
        """Create a PENDING message with zero attempts.

        Args:
            message_type: A MessageType member or its string value.
            payload: Payload dataclass, mapping, JSON text or UTF-8 bytes.
            process_after: Earliest processing time; defaults to now.
            created_at: Enqueue time; defaults to the client's clock.
                Handlers pass the dispatch time so follow-up messages are
                stamped by the processor's clock.

        Returns:
            The new message's id.
        """
        resolved_type = _resolve_type(message_type)
        try:
            body = encode_payload(payload)
        except (TypeError, ValueError) as exc:
            raise MessageSerializationError(resolved_type.value, str(exc)) from None

        now = created_at or self._clock.now()
        message = QueuedMessage(
            message_id=uuid4(),
            message_type=resolved_type,
            payload=body,
            status=MessageStatus.PENDING,
            attempt_count=0,
            created_at=now,
            process_after=process_after or now,
        )
        self._session.add(MessageModel.from_dto(message))
        self._session.flush()

        logger.info(
            "message_enqueued",
            extra={
                "message_id": str(message.message_id),
                "message_type": resolved_type.value,
                "process_after": message.process_after,
            },
        )
        return message.message_id

    def send_message(self, payload: Any, message_type: MessageType | str) -> UUID:
        """Enqueue for immediate processing (payload-first argument order)."""
        return self.enqueue(message_type, payload)

    def send_message_with_delay(
        self,
        payload: Any,
        message_type: MessageType | str,
        delay_seconds: float,
    ) -> UUID:
        """Enqueue a message that becomes eligible ``delay_seconds`` from now."""
        if delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0: {delay_seconds}")
        return self.enqueue(
            message_type,
            payload,
            process_after=self._clock.now() + timedelta(seconds=delay_seconds),
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_message(self, message_id: UUID) -> QueuedMessage:
        model = self._session.get(MessageModel, message_id)
        if model is None:
            raise MessageNotFoundError(str(message_id))
        return model.to_dto()

    def count_by_status(
        self, message_type: MessageType | str | None = None,
    ) -> dict[MessageStatus, int]:
        """Message counts per status, optionally for one type.

        Every status appears in the result, zero when absent.
        """
        stmt = select(MessageModel.status, func.count()).group_by(MessageModel.status)
        if message_type is not None:
            stmt = stmt.where(
                MessageModel.message_type == _resolve_type(message_type).value,
            )
        counts = {status: 0 for status in MessageStatus}
        for status, count in self._session.execute(stmt).all():
            counts[MessageStatus(status)] = count
        return counts


def _resolve_type(message_type: MessageType | str) -> MessageType:
    try:
        return MessageType(message_type)
    except ValueError:
        raise InvalidMessageTypeError(message_type, MessageType.values()) from None
