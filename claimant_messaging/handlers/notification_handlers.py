"""Email and letter handlers backed by the notification service."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from claimant_kernel.logging_config import get_logger

from claimant_messaging.domain.types import MessageType, QueuedMessage
from claimant_messaging.handlers.base import RemoteCallHandler
from claimant_messaging.handlers.clients import NotificationClient
from claimant_messaging.payloads import EmailMessagePayload, LetterMessagePayload

logger = get_logger("messaging.handlers.notification")


class SendEmailHandler(RemoteCallHandler):
    message_type = MessageType.SEND_EMAIL

    def __init__(self, notification_client: NotificationClient):
        self._client = notification_client

    def call(self, message: QueuedMessage, session: Session, as_of: datetime) -> None:
        payload = EmailMessagePayload.from_json(message.payload)
        self._client.send_email(
            payload.claim_id,
            payload.email_type.value,
            payload.email_personalisation,
            idempotency_key=message.idempotency_key,
        )
        logger.info(
            "email_sent",
            extra={
                "claim_id": str(payload.claim_id),
                "email_type": payload.email_type.value,
            },
        )


class SendLetterHandler(RemoteCallHandler):
    message_type = MessageType.SEND_LETTER

    def __init__(self, notification_client: NotificationClient):
        self._client = notification_client

    def call(self, message: QueuedMessage, session: Session, as_of: datetime) -> None:
        payload = LetterMessagePayload.from_json(message.payload)
        self._client.send_letter(
            payload.claim_id,
            payload.letter_type.value,
            payload.personalisation,
            idempotency_key=message.idempotency_key,
        )
        logger.info(
            "letter_sent",
            extra={
                "claim_id": str(payload.claim_id),
                "letter_type": payload.letter_type.value,
            },
        )
