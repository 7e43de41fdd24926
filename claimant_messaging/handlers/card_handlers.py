"""
Card provider handlers: new card requests and payments onto cards.

RequestNewCardHandler asks the card provider for a card and, in the same
transaction as the message's completion, enqueues the follow-up
COMPLETE_NEW_CARD_PROCESS message.  MakePaymentHandler loads one payment
cycle's entitlement onto the claimant's card.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from claimant_kernel.logging_config import get_logger

from claimant_messaging.domain.types import MessageType, QueuedMessage
from claimant_messaging.handlers.base import RemoteCallHandler
from claimant_messaging.handlers.clients import CardClient
from claimant_messaging.payloads import (
    CompleteNewCardMessagePayload,
    MakePaymentMessagePayload,
    NewCardRequestMessagePayload,
)
from claimant_messaging.services.queue_client import MessageQueueClient

logger = get_logger("messaging.handlers.card")


class RequestNewCardHandler(RemoteCallHandler):
    message_type = MessageType.REQUEST_NEW_CARD

    def __init__(self, card_client: CardClient):
        self._card_client = card_client

    def call(self, message: QueuedMessage, session: Session, as_of: datetime) -> None:
        payload = NewCardRequestMessagePayload.from_json(message.payload)
        card_account_id = self._card_client.request_new_card(
            payload.claim_id, idempotency_key=message.idempotency_key,
        )
        follow_up_id = MessageQueueClient(session).enqueue(
            MessageType.COMPLETE_NEW_CARD_PROCESS,
            CompleteNewCardMessagePayload(
                claim_id=payload.claim_id,
                card_account_id=card_account_id,
                voucher_entitlement=payload.voucher_entitlement,
            ),
            process_after=as_of,
            created_at=as_of,
        )
        logger.info(
            "new_card_requested",
            extra={
                "claim_id": str(payload.claim_id),
                "follow_up_message_id": str(follow_up_id),
            },
        )


class MakePaymentHandler(RemoteCallHandler):
    message_type = MessageType.MAKE_PAYMENT

    def __init__(self, card_client: CardClient):
        self._card_client = card_client

    def call(self, message: QueuedMessage, session: Session, as_of: datetime) -> None:
        payload = MakePaymentMessagePayload.from_json(message.payload)
        reference = self._card_client.transfer_funds(
            payload.card_account_id,
            payload.amount_in_pence,
            reference=str(payload.payment_cycle_id),
            idempotency_key=message.idempotency_key,
        )
        logger.info(
            "payment_made",
            extra={
                "claim_id": str(payload.claim_id),
                "payment_cycle_id": str(payload.payment_cycle_id),
                "amount_in_pence": payload.amount_in_pence,
                "transfer_reference": reference,
            },
        )
