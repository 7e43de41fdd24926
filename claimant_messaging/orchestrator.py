"""
MessagingOrchestrator -- DI container for the message queue.

Contract:
    Composes the processor, lock coordinator, failure reporter and
    scheduler from ``MessageProcessorSettings``.  Single place where all
    message queue dependencies are wired together.

Architecture: claimant_messaging (top-level).  The application supplies
    the session factory and a HandlerRegistry populated with its handlers.

Invariants enforced:
    - Every service receives the same Clock; handlers stamp follow-up
      messages with the dispatch time the processor hands them.
    - Immutability listeners are registered before any session is used.
    - Only message types that are enabled AND have a handler get a trigger.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.orm import Session

from claimant_config.schema import MessageProcessorSettings
from claimant_kernel.db.immutability import register_immutability_listeners
from claimant_kernel.domain.clock import Clock, SystemClock
from claimant_kernel.logging_config import get_logger

from claimant_messaging.domain.types import MessageTrigger
from claimant_messaging.handlers.base import HandlerRegistry
from claimant_messaging.services.failure_reporter import FailureReporter, FailureSink
from claimant_messaging.services.lock_coordinator import LockCoordinator
from claimant_messaging.services.processor import MessageProcessor
from claimant_messaging.services.queue_client import MessageQueueClient
from claimant_messaging.services.scheduler import MessageProcessorScheduler

logger = get_logger("messaging.orchestrator")


class MessagingOrchestrator:
    """DI container for the message queue.

    Contract:
        - ``from_settings()`` factory creates a fully wired orchestrator.
        - ``create_queue_client()`` for producers, bound to their session.
        - ``create_scheduler()`` for background processing.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
        - Does NOT own the engine; the caller supplies the session factory.
    """

    def __init__(
        self,
        settings: MessageProcessorSettings,
        session_factory: Callable[[], Session],
        handler_registry: HandlerRegistry,
        clock: Clock | None = None,
        failure_sinks: tuple[FailureSink, ...] = (),
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory
        self._handler_registry = handler_registry
        self._clock = clock or SystemClock()
        self._failure_reporter = FailureReporter(session_factory, failure_sinks)
        register_immutability_listeners()

    @classmethod
    def from_settings(
        cls,
        settings: MessageProcessorSettings,
        session_factory: Callable[[], Session],
        handler_registry: HandlerRegistry,
        clock: Clock | None = None,
        failure_sinks: tuple[FailureSink, ...] = (),
    ) -> MessagingOrchestrator:
        orchestrator = cls(
            settings=settings,
            session_factory=session_factory,
            handler_registry=handler_registry,
            clock=clock,
            failure_sinks=failure_sinks,
        )
        logger.info(
            "messaging_orchestrator_created",
            extra={
                "registered_types": [t.value for t in handler_registry.registered_types()],
                "scheduled_types": [t.message_type.value for t in orchestrator.triggers()],
            },
        )
        return orchestrator

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> MessageProcessorSettings:
        return self._settings

    @property
    def handler_registry(self) -> HandlerRegistry:
        return self._handler_registry

    @property
    def failure_reporter(self) -> FailureReporter:
        return self._failure_reporter

    @property
    def clock(self) -> Clock:
        return self._clock

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    def triggers(self) -> tuple[MessageTrigger, ...]:
        """One trigger per enabled type that has a handler."""
        unscheduled = [
            t.value for t in self._settings.enabled_types()
            if t not in self._handler_registry
        ]
        if unscheduled:
            logger.warning(
                "message_types_without_handler",
                extra={"message_types": unscheduled},
            )
        return tuple(
            self._settings.trigger_for(t)
            for t in self._settings.enabled_types()
            if t in self._handler_registry
        )

    def create_queue_client(self, session: Session) -> MessageQueueClient:
        return MessageQueueClient(session, self._clock)

    def create_processor(self) -> MessageProcessor:
        return MessageProcessor(
            session_factory=self._session_factory,
            handler_registry=self._handler_registry,
            clock=self._clock,
            failure_reporter=self._failure_reporter,
            batch_size=self._settings.message_limit,
            backoff=self._settings.backoff.to_policy(),
            maximum_attempts=self._settings.maximum_attempts,
            maximum_attempts_by_type=self._settings.maximum_attempts_by_type(),
        )

    def create_lock_coordinator(self) -> LockCoordinator:
        return LockCoordinator(
            session_factory=self._session_factory,
            clock=self._clock,
            instance_id=self._settings.instance_id,
        )

    def create_scheduler(self) -> MessageProcessorScheduler:
        return MessageProcessorScheduler(
            processor=self.create_processor(),
            lock_coordinator=self.create_lock_coordinator(),
            triggers=self.triggers(),
            clock=self._clock,
        )
