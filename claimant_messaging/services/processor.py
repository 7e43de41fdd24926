"""
MessageProcessor -- fetch / dispatch / retry for one message type.

Contract:
    ``process_messages_of_type(type)`` selects up to ``batch_size`` PENDING
    messages of that type whose ``process_after`` has passed, oldest first,
    dispatches each to its handler and records the outcome before moving
    on to the next one.

Architecture: claimant_messaging/services.  Imports from
    claimant_messaging.domain, claimant_messaging.models,
    claimant_messaging.handlers.base and kernel utilities.

Invariants enforced:
    - FIFO within a type: ORDER BY created_at, id.
    - Terminal messages are never selected (status filter).
    - Handler side effects run in a SAVEPOINT; a handler exception rolls
      back its writes and counts as a retryable failure, as does a
      handler that returns something other than a MessageOutcome.
    - attempt_count increases by exactly one per dispatch.
    - Each message's new state commits before the next message starts;
      a failed commit leaves the message PENDING with its previous
      attempt count, so it is selected again on a later run.
    - A FAILED transition stages its failure report in the same
      transaction and publishes it only after the commit.

Failure modes:
    - HandlerNotRegisteredError if no handler covers the type.
    - QueueStoreUnavailableError if selection or an outcome commit fails;
      the run stops and the next scheduled firing retries.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from claimant_kernel.domain.clock import Clock, SystemClock
from claimant_kernel.exceptions import QueueStoreUnavailableError
from claimant_kernel.logging_config import LogContext, get_logger

from claimant_messaging.domain.schedule import BackoffPolicy
from claimant_messaging.domain.types import (
    FailureReport,
    MessageDispatchResult,
    MessageOutcome,
    MessageStatus,
    MessageType,
    ProcessingRunResult,
)
from claimant_messaging.handlers.base import HandlerRegistry, MessageHandler
from claimant_messaging.models.message import MessageModel
from claimant_messaging.services.failure_reporter import FailureReporter

logger = get_logger("messaging.processor")

DEFAULT_BATCH_SIZE = 100
DEFAULT_MAXIMUM_ATTEMPTS = 10


class MessageProcessor:
    """Processes due messages of one type per call.

    Contract:
        - ``process_messages_of_type()`` is safe to call repeatedly; it
          only ever touches PENDING rows.
        - ``maximum_attempts`` of None means retry without limit.

    Non-goals:
        - Does NOT take the fleet-wide lock -- the scheduler does.
        - Does NOT loop until the queue is drained; leftover messages wait
          for the next run.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        handler_registry: HandlerRegistry,
        clock: Clock | None = None,
        failure_reporter: FailureReporter | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        backoff: BackoffPolicy | None = None,
        maximum_attempts: int | None = DEFAULT_MAXIMUM_ATTEMPTS,
        maximum_attempts_by_type: Mapping[MessageType, int | None] | None = None,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1: {batch_size}")
        if maximum_attempts is not None and maximum_attempts < 1:
            raise ValueError(f"maximum_attempts must be >= 1: {maximum_attempts}")

        self._session_factory = session_factory
        self._handlers = handler_registry
        self._clock = clock or SystemClock()
        self._failure_reporter = failure_reporter or FailureReporter(session_factory)
        self._batch_size = batch_size
        self._backoff = backoff or BackoffPolicy()
        self._maximum_attempts = maximum_attempts
        self._maximum_attempts_by_type = dict(maximum_attempts_by_type or {})

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def maximum_attempts_for(self, message_type: MessageType) -> int | None:
        if message_type in self._maximum_attempts_by_type:
            return self._maximum_attempts_by_type[message_type]
        return self._maximum_attempts

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def process_messages_of_type(
        self, message_type: MessageType | str,
    ) -> ProcessingRunResult:
        """Run one batch for ``message_type``.

        Raises:
            HandlerNotRegisteredError: If no handler covers the type.
            QueueStoreUnavailableError: If the store cannot be read or an
                outcome cannot be committed.
        """
        message_type = MessageType(message_type)
        handler = self._handlers.get(message_type)

        start_time = time.monotonic()
        started_at = self._clock.now()

        session = self._session_factory()
        try:
            message_ids = self._select_due(session, message_type, started_at)

            logger.info(
                "message_batch_selected",
                extra={
                    "message_type": message_type.value,
                    "selected": len(message_ids),
                    "batch_size": self._batch_size,
                },
            )

            dispatches: list[MessageDispatchResult] = []
            for message_id in message_ids:
                dispatch = self._process_one(session, handler, message_type, message_id)
                if dispatch is not None:
                    dispatches.append(dispatch)
        finally:
            session.close()

        completed_at = self._clock.now()
        result = ProcessingRunResult(
            message_type=message_type,
            selected=len(message_ids),
            completed=sum(1 for d in dispatches if d.status is MessageStatus.COMPLETED),
            retried=sum(1 for d in dispatches if d.status is MessageStatus.PENDING),
            failed=sum(1 for d in dispatches if d.status is MessageStatus.FAILED),
            dispatches=tuple(dispatches),
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )

        if result.selected:
            logger.info(
                "message_batch_processed",
                extra={
                    "message_type": message_type.value,
                    "selected": result.selected,
                    "completed": result.completed,
                    "retried": result.retried,
                    "failed": result.failed,
                    "duration_ms": result.duration_ms,
                },
            )
        return result

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _select_due(
        self,
        session: Session,
        message_type: MessageType,
        now: datetime,
    ) -> list:
        try:
            return list(
                session.execute(
                    select(MessageModel.id)
                    .where(
                        MessageModel.message_type == message_type.value,
                        MessageModel.status == MessageStatus.PENDING.value,
                        MessageModel.process_after <= now,
                    )
                    .order_by(MessageModel.created_at, MessageModel.id)
                    .limit(self._batch_size)
                ).scalars()
            )
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "message_selection_failed",
                extra={"message_type": message_type.value, "error": str(exc)},
            )
            raise QueueStoreUnavailableError(
                message_type.value, "select", str(exc),
            ) from exc

    def _process_one(
        self,
        session: Session,
        handler: MessageHandler,
        message_type: MessageType,
        message_id,
    ) -> MessageDispatchResult | None:
        with LogContext.bind(message_id=str(message_id), message_type=message_type.value):
            try:
                model = session.execute(
                    select(MessageModel)
                    .where(
                        MessageModel.id == message_id,
                        MessageModel.status == MessageStatus.PENDING.value,
                    )
                    .with_for_update()
                ).scalar_one_or_none()
            except SQLAlchemyError as exc:
                session.rollback()
                raise QueueStoreUnavailableError(
                    message_type.value, "load", str(exc),
                ) from exc

            if model is None:
                # Settled by another run since selection
                session.rollback()
                return None

            as_of = self._clock.now()
            outcome = self._dispatch(session, handler, model, as_of)
            report = self._apply_outcome(session, model, outcome, as_of)

            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error(
                    "message_outcome_not_recorded",
                    extra={"outcome": outcome.kind.value, "error": str(exc)},
                )
                raise QueueStoreUnavailableError(
                    message_type.value, "record_outcome", str(exc),
                ) from exc

            if report is not None:
                self._failure_reporter.publish(report)

            return MessageDispatchResult(
                message_id=model.id,
                outcome=outcome,
                status=MessageStatus(model.status),
                attempt_count=model.attempt_count,
                process_after=model.process_after,
            )

    def _dispatch(
        self,
        session: Session,
        handler: MessageHandler,
        model: MessageModel,
        as_of: datetime,
    ) -> MessageOutcome:
        message = model.to_dto()
        savepoint = session.begin_nested()
        try:
            outcome = handler.handle(message, session, as_of)
        except Exception as exc:
            savepoint.rollback()
            logger.warning(
                "message_handler_raised",
                extra={"exc_type": type(exc).__name__, "error": str(exc)},
                exc_info=True,
            )
            return MessageOutcome.retryable(f"{type(exc).__name__}: {exc}")

        if not isinstance(outcome, MessageOutcome):
            savepoint.rollback()
            logger.warning(
                "message_handler_invalid_result",
                extra={"result_type": type(outcome).__name__},
            )
            return MessageOutcome.retryable(
                f"Handler returned {type(outcome).__name__}, not a MessageOutcome"
            )

        if outcome.is_success:
            savepoint.commit()
        else:
            savepoint.rollback()
        return outcome

    def _apply_outcome(
        self,
        session: Session,
        model: MessageModel,
        outcome: MessageOutcome,
        as_of: datetime,
    ) -> FailureReport | None:
        """Mutate the row for ``outcome``; return the report to publish, if any."""
        message_type = MessageType(model.message_type)
        model.attempt_count += 1
        attempts = model.attempt_count

        if outcome.is_success:
            model.status = MessageStatus.COMPLETED.value
            model.last_error = None
            logger.info("message_completed", extra={"attempt_count": attempts})
            return None

        reason = outcome.reason or outcome.kind.value
        if outcome.is_retryable:
            cap = self.maximum_attempts_for(message_type)
            if cap is None or attempts < cap:
                model.process_after = self._backoff.next_attempt_at(as_of, attempts)
                model.last_error = reason
                logger.warning(
                    "message_retry_scheduled",
                    extra={
                        "attempt_count": attempts,
                        "process_after": model.process_after,
                        "reason": reason,
                    },
                )
                return None
            reason = f"Retry attempts exhausted after {attempts} attempts: {reason}"

        model.status = MessageStatus.FAILED.value
        model.last_error = reason
        report = FailureReport(
            message_id=model.id,
            message_type=message_type,
            attempt_count=attempts,
            reason=reason,
            reported_at=as_of,
        )
        self._failure_reporter.record(session, report)
        return report
