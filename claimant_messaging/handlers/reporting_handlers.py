"""
Reporting handlers: claim and payment events for the analytics service.

These run on the offset schedule group.  Event properties are flat
key/value pairs; amounts stay in pence.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from claimant_kernel.logging_config import get_logger

from claimant_messaging.domain.types import MessageType, QueuedMessage
from claimant_messaging.handlers.base import RemoteCallHandler
from claimant_messaging.handlers.clients import ReportingClient
from claimant_messaging.payloads import (
    ReportClaimMessagePayload,
    ReportPaymentMessagePayload,
)

logger = get_logger("messaging.handlers.reporting")


class ReportClaimHandler(RemoteCallHandler):
    message_type = MessageType.REPORT_CLAIM

    def __init__(self, reporting_client: ReportingClient):
        self._client = reporting_client

    def call(self, message: QueuedMessage, session: Session, as_of: datetime) -> None:
        payload = ReportClaimMessagePayload.from_json(message.payload)
        self._client.report_event(
            "CLAIM",
            {
                "claim_id": str(payload.claim_id),
                "claim_action": payload.claim_action.value,
                "timestamp": payload.timestamp.isoformat(),
            },
            idempotency_key=message.idempotency_key,
        )
        logger.debug("claim_reported", extra={"claim_id": str(payload.claim_id)})


class ReportPaymentHandler(RemoteCallHandler):
    message_type = MessageType.REPORT_PAYMENT

    def __init__(self, reporting_client: ReportingClient):
        self._client = reporting_client

    def call(self, message: QueuedMessage, session: Session, as_of: datetime) -> None:
        payload = ReportPaymentMessagePayload.from_json(message.payload)
        self._client.report_event(
            "PAYMENT",
            {
                "claim_id": str(payload.claim_id),
                "payment_cycle_id": str(payload.payment_cycle_id),
                "payment_action": payload.payment_action.value,
                "timestamp": payload.timestamp.isoformat(),
                "payment_for_pregnancy": payload.payment_for_pregnancy,
                "payment_for_children_under_one": payload.payment_for_children_under_one,
                "payment_for_children_between_one_and_four": (
                    payload.payment_for_children_between_one_and_four
                ),
                "payment_for_backdated_vouchers": payload.payment_for_backdated_vouchers,
                "total_payment": payload.total_payment,
            },
            idempotency_key=message.idempotency_key,
        )
        logger.debug(
            "payment_reported",
            extra={
                "claim_id": str(payload.claim_id),
                "payment_cycle_id": str(payload.payment_cycle_id),
            },
        )
