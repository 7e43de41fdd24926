"""
FailureReporter -- records and publishes messages that reached FAILED.

Contract:
    ``record()`` adds the audit row to the processor's session so it commits
    atomically with the FAILED status.  ``publish()`` is called once, after
    that commit succeeds: it logs the report at ERROR and hands it to any
    registered sinks.  A report therefore goes out exactly once per failed
    message; a rolled-back transition publishes nothing.

Architecture: claimant_messaging/services.

Failure modes:
    - A sink that raises is logged and skipped; the message is already
      FAILED and the audit row already committed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from claimant_kernel.logging_config import get_logger

from claimant_messaging.domain.types import FailureReport, MessageType
from claimant_messaging.models.message import MessageFailureModel

logger = get_logger("messaging.failure_reporter")

FailureSink = Callable[[FailureReport], None]


class FailureReporter:
    """Persists failure reports and fans them out to sinks."""

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        sinks: Iterable[FailureSink] = (),
    ):
        self._session_factory = session_factory
        self._sinks: list[FailureSink] = list(sinks)

    def add_sink(self, sink: FailureSink) -> None:
        self._sinks.append(sink)

    def record(self, session: Session, report: FailureReport) -> None:
        """Stage the audit row in the caller's transaction (no commit)."""
        session.add(
            MessageFailureModel(
                message_id=report.message_id,
                message_type=report.message_type.value,
                attempt_count=report.attempt_count,
                reason=report.reason,
                reported_at=report.reported_at,
            )
        )

    def publish(self, report: FailureReport) -> None:
        """Emit a committed failure report."""
        logger.error(
            "message_failed",
            extra={
                "message_id": str(report.message_id),
                "message_type": report.message_type.value,
                "attempt_count": report.attempt_count,
                "reason": report.reason,
                "reported_at": report.reported_at,
            },
        )
        for sink in self._sinks:
            try:
                sink(report)
            except Exception:
                logger.exception(
                    "failure_sink_error",
                    extra={"message_id": str(report.message_id)},
                )

    def recent_failures(
        self,
        limit: int = 20,
        message_type: MessageType | None = None,
    ) -> tuple[FailureReport, ...]:
        """Most recent failure reports, newest first."""
        if self._session_factory is None:
            raise RuntimeError("FailureReporter was created without a session_factory")

        stmt = select(MessageFailureModel).order_by(
            MessageFailureModel.reported_at.desc(),
        )
        if message_type is not None:
            stmt = stmt.where(MessageFailureModel.message_type == message_type.value)

        session = self._session_factory()
        try:
            models = session.execute(stmt.limit(limit)).scalars().all()
            return tuple(m.to_dto() for m in models)
        finally:
            session.close()
