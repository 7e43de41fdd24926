"""
ReportPaymentMessageSender -- producer helper for REPORT_PAYMENT messages.

Builds the payment report payload from a payment cycle's voucher
entitlement and enqueues it through the caller's MessageQueueClient, so
the report commits with the payment it describes.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from claimant_kernel.domain.clock import Clock, SystemClock

from claimant_messaging.domain.types import MessageType
from claimant_messaging.payloads import PaymentAction, ReportPaymentMessagePayload
from claimant_messaging.services.queue_client import MessageQueueClient


@dataclass(frozen=True)
class VoucherEntitlement:
    """Voucher counts for one payment cycle; values in pence."""

    vouchers_for_children_under_one: int = 0
    vouchers_for_children_between_one_and_four: int = 0
    vouchers_for_pregnancy: int = 0
    single_voucher_value_in_pence: int = 0
    backdated_vouchers_value_in_pence: int = 0


class ReportPaymentMessageSender:
    def __init__(self, queue_client: MessageQueueClient, clock: Clock | None = None):
        self._queue_client = queue_client
        self._clock = clock or SystemClock()

    def send_report_payment_message(
        self,
        claim_id: UUID,
        payment_cycle_id: UUID,
        entitlement: VoucherEntitlement,
        payment_action: PaymentAction,
    ) -> UUID:
        """Report a cycle payment with amounts derived from its entitlement."""
        value = entitlement.single_voucher_value_in_pence
        payload = ReportPaymentMessagePayload(
            claim_id=claim_id,
            payment_cycle_id=payment_cycle_id,
            payment_action=payment_action,
            timestamp=self._clock.now(),
            payment_for_pregnancy=entitlement.vouchers_for_pregnancy * value,
            payment_for_children_under_one=(
                entitlement.vouchers_for_children_under_one * value
            ),
            payment_for_children_between_one_and_four=(
                entitlement.vouchers_for_children_between_one_and_four * value
            ),
            payment_for_backdated_vouchers=entitlement.backdated_vouchers_value_in_pence,
        )
        return self._queue_client.send_message(payload, MessageType.REPORT_PAYMENT)

    def send_report_pregnancy_top_up_payment_message(
        self,
        claim_id: UUID,
        payment_cycle_id: UUID,
        payment_for_pregnancy_in_pence: int,
    ) -> UUID:
        """Report an additional pregnancy payment as a TOP_UP_PAYMENT."""
        payload = ReportPaymentMessagePayload(
            claim_id=claim_id,
            payment_cycle_id=payment_cycle_id,
            payment_action=PaymentAction.TOP_UP_PAYMENT,
            timestamp=self._clock.now(),
            payment_for_pregnancy=payment_for_pregnancy_in_pence,
        )
        return self._queue_client.send_message(payload, MessageType.REPORT_PAYMENT)
