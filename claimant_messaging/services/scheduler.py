"""
MessageProcessorScheduler -- per-type periodic triggers under fleet-wide locks.

Contract:
    Each MessageTrigger fires on its own cron schedule.  A firing takes the
    trigger's lock ("Process <TYPE> messages") and, if it wins, runs one
    processor batch for that type.  Losing the lock is a normal no-op.

Architecture: claimant_messaging/services.  Uses claimant_messaging.domain
    for cron evaluation, LockCoordinator for exclusion and MessageProcessor
    for the work.

Invariants enforced:
    - One trigger per message type; each has its own thread, so different
      types run concurrently while one type is always sequential on an
      instance.
    - Triggers are stateless: a skipped firing is not re-queued.
    - A store outage aborts only the current firing.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from claimant_kernel.domain.clock import Clock, SystemClock
from claimant_kernel.exceptions import ClaimantServiceError
from claimant_kernel.logging_config import LogContext, get_logger

from claimant_messaging.domain.schedule import CronSpec, next_fire_time, parse_cron
from claimant_messaging.domain.types import (
    MessageTrigger,
    MessageType,
    ProcessingRunResult,
)
from claimant_messaging.services.lock_coordinator import LockCoordinator
from claimant_messaging.services.processor import MessageProcessor

logger = get_logger("messaging.scheduler")


class MessageProcessorScheduler:
    """In-process cron scheduler for the message processor.

    Contract:
        - ``process_messages()`` fires one trigger immediately (public for
          testing and for manual runs).
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - Does NOT catch up on missed firings.
        - Does NOT cancel an in-flight batch on ``stop()``; the current
          batch finishes first.
    """

    def __init__(
        self,
        processor: MessageProcessor,
        lock_coordinator: LockCoordinator,
        triggers: Iterable[MessageTrigger],
        clock: Clock | None = None,
    ):
        self._processor = processor
        self._locks = lock_coordinator
        self._clock = clock or SystemClock()
        self._triggers: dict[MessageType, MessageTrigger] = {}
        self._cron: dict[MessageType, CronSpec] = {}

        for trigger in triggers:
            if trigger.message_type in self._triggers:
                raise ValueError(
                    f"Duplicate trigger for message type '{trigger.message_type.value}'"
                )
            self._cron[trigger.message_type] = parse_cron(trigger.cron_expression)
            self._triggers[trigger.message_type] = trigger

        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def triggers(self) -> tuple[MessageTrigger, ...]:
        return tuple(self._triggers.values())

    def next_fire_time_for(self, message_type: MessageType, after: datetime) -> datetime:
        return next_fire_time(self._cron[MessageType(message_type)], after)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def process_messages(
        self, message_type: MessageType | str,
    ) -> ProcessingRunResult | None:
        """Fire the trigger for ``message_type`` now.

        Returns the run result, or None if another instance held the lock
        or the run was aborted.

        Raises:
            KeyError: If no trigger is configured for the type.
        """
        trigger = self._triggers[MessageType(message_type)]
        results: list[ProcessingRunResult] = []

        def run_batch() -> None:
            results.append(self._processor.process_messages_of_type(trigger.message_type))

        with LogContext.bind(
            session_id=trigger.session_id,
            correlation_id=str(uuid4()),
            instance_id=self._locks.instance_id,
        ):
            try:
                acquired = self._locks.with_lock(
                    trigger.lock_name,
                    run_batch,
                    min_hold=trigger.min_lock_hold,
                    max_hold=trigger.max_lock_hold,
                )
            except (ClaimantServiceError, SQLAlchemyError):
                logger.exception(
                    "scheduled_run_failed",
                    extra={"lock_name": trigger.lock_name},
                )
                return None

            if not acquired:
                logger.debug(
                    "scheduled_run_skipped",
                    extra={"lock_name": trigger.lock_name},
                )
                return None
            return results[0]

    def start(self) -> None:
        """Start one background thread per trigger."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._threads = [
            threading.Thread(
                target=self._run_loop,
                args=(trigger,),
                name=f"message-processor-{trigger.message_type.value.lower()}",
                daemon=True,
            )
            for trigger in self._triggers.values()
        ]
        for thread in self._threads:
            thread.start()
        logger.info(
            "scheduler_started",
            extra={"triggers": [t.message_type.value for t in self._triggers.values()]},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for in-flight batches to finish.

        Args:
            timeout: Max seconds to wait for each thread.
        """
        self._stop_event.set()
        for thread in self._threads:
            if thread.is_alive():
                thread.join(timeout=timeout)
        self._threads = []
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self, trigger: MessageTrigger) -> None:
        """Sleep until the next firing, fire, repeat until stopped."""
        spec = self._cron[trigger.message_type]
        while not self._stop_event.is_set():
            now = self._clock.now()
            fire_at = next_fire_time(spec, now)
            if self._stop_event.wait(timeout=(fire_at - now).total_seconds()):
                break
            try:
                self.process_messages(trigger.message_type)
            except Exception:
                logger.exception(
                    "scheduler_trigger_exception",
                    extra={"lock_name": trigger.lock_name},
                )
