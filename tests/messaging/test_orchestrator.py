"""
Tests for claimant_messaging.orchestrator -- MessagingOrchestrator DI container.

Validates that the orchestrator wires settings into the processor, lock
coordinator and scheduler, and that producers and the processor share
one queue end to end.
"""

from datetime import timedelta

import pytest

from claimant_config import parse_settings

from claimant_messaging.domain.types import MessageOutcome, MessageStatus, MessageType
from claimant_messaging.orchestrator import MessagingOrchestrator


@pytest.fixture
def settings():
    return parse_settings({
        "message-processor": {
            "message-limit": 2,
            "maximum-attempts": 3,
            "instance-id": "claimant-worker-1",
            "default-min-lock-time": "PT1S",
            "types": {
                "REPORT_CLAIM": {"maximum-attempts": None},
                "SEND_LETTER": {"enabled": False},
            },
        },
    })


class TestWiring:
    def test_processor_uses_settings(self, settings, session_factory, clock, registry_with, scripted_handler):
        orchestrator = MessagingOrchestrator.from_settings(
            settings, session_factory, registry_with(scripted_handler(MessageType.SEND_EMAIL)), clock,
        )
        processor = orchestrator.create_processor()

        assert processor.batch_size == 2
        assert processor.maximum_attempts_for(MessageType.SEND_EMAIL) == 3
        assert processor.maximum_attempts_for(MessageType.REPORT_CLAIM) is None

    def test_lock_coordinator_uses_instance_id(self, settings, session_factory, registry_with):
        orchestrator = MessagingOrchestrator(settings, session_factory, registry_with())
        assert orchestrator.create_lock_coordinator().instance_id == "claimant-worker-1"

    def test_triggers_cover_enabled_types_with_handlers(
        self, settings, session_factory, registry_with, scripted_handler, captured_logs,
    ):
        registry = registry_with(
            scripted_handler(MessageType.MAKE_PAYMENT),
            scripted_handler(MessageType.SEND_LETTER),
            scripted_handler(MessageType.REPORT_CLAIM),
        )
        orchestrator = MessagingOrchestrator(settings, session_factory, registry)

        triggers = {t.message_type: t for t in orchestrator.triggers()}

        assert set(triggers) == {MessageType.MAKE_PAYMENT, MessageType.REPORT_CLAIM}
        assert triggers[MessageType.MAKE_PAYMENT].cron_expression == "*/30 * * * * *"
        assert triggers[MessageType.REPORT_CLAIM].cron_expression == "5/30 * * * * *"
        assert triggers[MessageType.MAKE_PAYMENT].min_lock_hold == timedelta(seconds=1)

        warning = [r for r in captured_logs() if r["message"] == "message_types_without_handler"]
        assert "SEND_EMAIL" in warning[0]["message_types"]
        assert "SEND_LETTER" not in warning[0]["message_types"]

    def test_shared_clock(self, settings, session_factory, clock, registry_with):
        orchestrator = MessagingOrchestrator(settings, session_factory, registry_with(), clock)
        assert orchestrator.clock is clock


class TestEndToEnd:
    def test_enqueue_then_scheduled_run(self, settings, session_factory, clock, registry_with, scripted_handler, load_message):
        handler = scripted_handler(
            MessageType.MAKE_PAYMENT,
            [MessageOutcome.retryable("card service busy"), MessageOutcome.success()],
        )
        failures = []
        orchestrator = MessagingOrchestrator.from_settings(
            settings, session_factory, registry_with(handler), clock, failure_sinks=(failures.append,),
        )

        session = session_factory()
        try:
            message_id = orchestrator.create_queue_client(session).send_message(
                {"amount_in_pence": 1240}, MessageType.MAKE_PAYMENT,
            )
            session.commit()
        finally:
            session.close()

        scheduler = orchestrator.create_scheduler()
        first = scheduler.process_messages(MessageType.MAKE_PAYMENT)
        assert first.retried == 1

        clock.advance(timedelta(seconds=30))
        second = scheduler.process_messages(MessageType.MAKE_PAYMENT)
        assert second.completed == 1

        message = load_message(message_id)
        assert message.status is MessageStatus.COMPLETED
        assert message.attempt_count == 2
        assert failures == []

    def test_failure_reaches_sink_and_audit(self, settings, session_factory, clock, registry_with, scripted_handler, enqueue):
        failures = []
        orchestrator = MessagingOrchestrator.from_settings(
            settings,
            session_factory,
            registry_with(scripted_handler(MessageType.SEND_EMAIL, [MessageOutcome.fatal("no such template")])),
            clock,
            failure_sinks=(failures.append,),
        )
        message_id = enqueue(MessageType.SEND_EMAIL)

        orchestrator.create_scheduler().process_messages(MessageType.SEND_EMAIL)

        assert [f.message_id for f in failures] == [message_id]
        (audit,) = orchestrator.failure_reporter.recent_failures()
        assert audit.reason == "no such template"
