"""
Tests for claimant_kernel.db.immutability -- ORM listeners on queue rows.

A message's type is fixed, a COMPLETED or FAILED message is frozen, and
failure reports are append-only.  PENDING messages stay writable so the
processor can record retries.
"""

import pytest
from sqlalchemy import event, select

from claimant_kernel.db.engine import init_engine_from_url, reset_engine
from claimant_kernel.db.immutability import (
    _check_message_immutability,
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from claimant_kernel.exceptions import ImmutabilityViolationError

from claimant_messaging.domain.types import MessageOutcome, MessageStatus, MessageType
from claimant_messaging.handlers.base import HandlerRegistry
from claimant_messaging.models.message import MessageFailureModel, MessageModel
from claimant_messaging.services.processor import MessageProcessor


@pytest.fixture
def settle(session_factory, clock, scripted_handler):
    """Process MAKE_PAYMENT messages with the given outcome."""

    def _settle(outcome):
        registry = HandlerRegistry()
        registry.register(scripted_handler(MessageType.MAKE_PAYMENT, [outcome]))
        MessageProcessor(session_factory, registry, clock=clock).process_messages_of_type(
            MessageType.MAKE_PAYMENT,
        )

    return _settle


def _update(session_factory, model_cls, row_id, **changes):
    session = session_factory()
    try:
        row = session.get(model_cls, row_id)
        for field, value in changes.items():
            setattr(row, field, value)
        session.commit()
    finally:
        session.close()


class TestMessageImmutability:
    def test_completed_message_cannot_return_to_pending(self, session_factory, enqueue, settle, load_message):
        message_id = enqueue()
        settle(MessageOutcome.success())

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            _update(session_factory, MessageModel, message_id, status=MessageStatus.PENDING.value)

        assert exc_info.value.entity_type == "MessageModel"
        assert load_message(message_id).status is MessageStatus.COMPLETED

    def test_failed_message_is_frozen(self, session_factory, enqueue, settle, load_message):
        message_id = enqueue()
        settle(MessageOutcome.fatal("card closed"))

        with pytest.raises(ImmutabilityViolationError):
            _update(session_factory, MessageModel, message_id, last_error="rewritten")

        assert load_message(message_id).last_error == "card closed"

    def test_type_fixed_on_pending_message(self, session_factory, enqueue, load_message):
        message_id = enqueue()

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            _update(session_factory, MessageModel, message_id, message_type=MessageType.SEND_EMAIL.value)

        assert "type" in exc_info.value.reason
        assert load_message(message_id).message_type is MessageType.MAKE_PAYMENT

    def test_type_and_status_change_together_rejected(self, session_factory, enqueue, settle, load_message):
        message_id = enqueue()
        settle(MessageOutcome.success())

        with pytest.raises(ImmutabilityViolationError):
            _update(
                session_factory, MessageModel, message_id,
                status=MessageStatus.PENDING.value,
                message_type=MessageType.SEND_EMAIL.value,
            )

        message = load_message(message_id)
        assert message.status is MessageStatus.COMPLETED
        assert message.message_type is MessageType.MAKE_PAYMENT

    def test_pending_message_stays_writable(self, session_factory, enqueue, clock, load_message):
        message_id = enqueue()

        _update(
            session_factory, MessageModel, message_id,
            attempt_count=3, last_error="busy", process_after=clock.advance(60),
        )

        message = load_message(message_id)
        assert message.attempt_count == 3
        assert message.status is MessageStatus.PENDING

    def test_violation_logged(self, session_factory, enqueue, settle, captured_logs):
        message_id = enqueue()
        settle(MessageOutcome.success())

        with pytest.raises(ImmutabilityViolationError):
            _update(session_factory, MessageModel, message_id, status=MessageStatus.FAILED.value)

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["entity_id"] == str(message_id)
        assert blocked[0]["field"] == "status"


class TestFailureReportImmutability:
    def test_report_is_append_only(self, session_factory, enqueue, settle):
        enqueue()
        settle(MessageOutcome.fatal("no such template"))
        session = session_factory()
        try:
            report_id = session.execute(select(MessageFailureModel.id)).scalar_one()
        finally:
            session.close()

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            _update(session_factory, MessageFailureModel, report_id, reason="edited")

        assert exc_info.value.entity_type == "MessageFailureModel"


class TestRegistration:
    def test_register_is_idempotent(self):
        register_immutability_listeners()
        register_immutability_listeners()
        assert event.contains(MessageModel, "before_update", _check_message_immutability)

    def test_unregister_lifts_the_guard(self, session_factory, enqueue, settle, load_message):
        message_id = enqueue()
        settle(MessageOutcome.success())

        unregister_immutability_listeners()
        try:
            _update(session_factory, MessageModel, message_id, status=MessageStatus.PENDING.value)
        finally:
            register_immutability_listeners()

        assert load_message(message_id).status is MessageStatus.PENDING

    def test_engine_init_registers(self, tmp_path):
        unregister_immutability_listeners()
        try:
            init_engine_from_url(f"sqlite:///{tmp_path / 'guarded.db'}")
            assert event.contains(MessageModel, "before_update", _check_message_immutability)
        finally:
            reset_engine()
            register_immutability_listeners()
