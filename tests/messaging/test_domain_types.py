"""Tests for claimant_messaging.domain.types -- enums and frozen DTOs."""

from dataclasses import FrozenInstanceError
from datetime import timedelta
from uuid import uuid4

import pytest

from claimant_messaging.domain.types import (
    MessageOutcome,
    MessageStatus,
    MessageTrigger,
    MessageType,
    OutcomeKind,
    QueuedMessage,
)


class TestMessageType:
    def test_reporting_types(self):
        reporting = {t for t in MessageType if t.is_reporting}
        assert reporting == {MessageType.REPORT_CLAIM, MessageType.REPORT_PAYMENT}

    def test_values_in_declaration_order(self):
        values = MessageType.values()
        assert values[0] == "REQUEST_NEW_CARD"
        assert "MAKE_PAYMENT" in values
        assert len(values) == len(MessageType)

    def test_string_value_round_trip(self):
        assert MessageType("SEND_EMAIL") is MessageType.SEND_EMAIL


class TestMessageStatus:
    def test_only_pending_is_non_terminal(self):
        assert not MessageStatus.PENDING.is_terminal
        assert MessageStatus.COMPLETED.is_terminal
        assert MessageStatus.FAILED.is_terminal


class TestMessageOutcome:
    def test_success(self):
        outcome = MessageOutcome.success()
        assert outcome.kind is OutcomeKind.SUCCESS
        assert outcome.is_success
        assert outcome.reason is None

    def test_retryable_carries_reason(self):
        outcome = MessageOutcome.retryable("card service timed out")
        assert outcome.is_retryable
        assert not outcome.is_fatal
        assert outcome.reason == "card service timed out"

    def test_fatal_carries_reason(self):
        outcome = MessageOutcome.fatal("card account closed")
        assert outcome.is_fatal
        assert outcome.reason == "card account closed"

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            MessageOutcome.success().reason = "x"  # type: ignore[misc]


class TestQueuedMessage:
    def test_defaults(self):
        message = QueuedMessage(
            message_id=uuid4(), message_type=MessageType.SEND_LETTER, payload="{}",
        )
        assert message.status is MessageStatus.PENDING
        assert message.attempt_count == 0
        assert message.last_error is None

    def test_idempotency_key_is_stable_per_message(self):
        message_id = uuid4()
        first = QueuedMessage(message_id=message_id, message_type=MessageType.MAKE_PAYMENT, payload="{}")
        retried = QueuedMessage(
            message_id=message_id,
            message_type=MessageType.MAKE_PAYMENT,
            payload="{}",
            attempt_count=3,
        )
        assert first.idempotency_key == retried.idempotency_key == f"MAKE_PAYMENT:{message_id}"

    def test_type_cannot_change(self):
        message = QueuedMessage(message_id=uuid4(), message_type=MessageType.SEND_EMAIL, payload="{}")
        with pytest.raises(FrozenInstanceError):
            message.message_type = MessageType.SEND_LETTER  # type: ignore[misc]


class TestMessageTrigger:
    def test_lock_name_per_type(self):
        trigger = MessageTrigger(MessageType.MAKE_PAYMENT, "*/30 * * * * *")
        assert trigger.lock_name == "Process MAKE_PAYMENT messages"
        assert trigger.session_id == "MessageProcessor:MAKE_PAYMENT"

    def test_default_lock_holds(self):
        trigger = MessageTrigger(MessageType.SEND_EMAIL, "*/30 * * * * *")
        assert trigger.min_lock_hold == timedelta(seconds=5)
        assert trigger.max_lock_hold == timedelta(minutes=10)
