"""
MessageHandler protocol, HandlerRegistry and the remote-call handler base.

Contract:
    ``MessageHandler`` defines the interface every message type's handler
    implements.  ``HandlerRegistry`` stores handlers keyed by
    ``message_type``; exactly one handler per type.

Architecture:
    claimant_messaging/handlers.  Imports from claimant_messaging.domain,
    claimant_kernel.exceptions and stdlib only.

Invariants enforced:
    - One handler per message type (``register()`` rejects duplicates).
    - A handler must not mark its own message completed or failed; it
      returns a MessageOutcome and the processor records it.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
from typing import Protocol, runtime_checkable

from sqlalchemy.orm import Session

from claimant_kernel.exceptions import (
    HandlerNotRegisteredError,
    MessagePayloadError,
    RemoteRequestRejectedError,
    RemoteServiceUnavailableError,
)
from claimant_kernel.logging_config import get_logger

from claimant_messaging.domain.types import MessageOutcome, MessageType, QueuedMessage

logger = get_logger("messaging.handlers")


# =============================================================================
# MessageHandler Protocol
# =============================================================================


@runtime_checkable
class MessageHandler(Protocol):
    """Protocol for the per-type unit of work.

    Contract:
        - ``message_type``: the single MessageType this handler serves.
        - ``handle()``: performs the work for ONE message inside a
          SAVEPOINT owned by the processor.  Rows the handler writes
          through ``session`` (including follow-up messages) commit
          atomically with the message's new status.

    Handlers may be invoked more than once for the same message (a crash
    between the remote call and the status commit re-delivers it), so
    remote calls should carry ``message.idempotency_key``.

    Non-goals:
        - Does NOT commit or roll back -- the processor owns the transaction.
        - Does NOT retry -- return ``MessageOutcome.retryable()`` instead.
    """

    @property
    def message_type(self) -> MessageType: ...

    def handle(
        self,
        message: QueuedMessage,
        session: Session,
        as_of: datetime,
    ) -> MessageOutcome:
        """Process one message.

        Args:
            message: Snapshot of the message being dispatched.
            session: Database session (SAVEPOINT active).
            as_of: Clock-injected timestamp of this dispatch.

        Returns:
            Success, retryable failure or fatal failure.  An exception
            escaping this method is treated as a retryable failure.
        """
        ...


# =============================================================================
# HandlerRegistry
# =============================================================================


class HandlerRegistry:
    """Registry mapping MessageType to its MessageHandler.

    Contract:
        - ``register()`` adds a handler; raises ValueError on duplicate.
        - ``get()`` retrieves by type; raises HandlerNotRegisteredError.
        - ``registered_types()`` returns the covered types in enum order.
    """

    def __init__(self) -> None:
        self._handlers: dict[MessageType, MessageHandler] = {}

    def register(self, handler: MessageHandler) -> None:
        """Register a handler.

        Raises:
            ValueError: If a handler for the same type is already registered.
        """
        message_type = MessageType(handler.message_type)
        if message_type in self._handlers:
            raise ValueError(
                f"Handler for message type '{message_type.value}' is already registered"
            )
        self._handlers[message_type] = handler

    def get(self, message_type: MessageType | str) -> MessageHandler:
        """Retrieve the handler for a message type.

        Raises:
            HandlerNotRegisteredError: If no handler covers the type.
        """
        key = _as_message_type(message_type)
        handler = self._handlers.get(key) if key is not None else None
        if handler is None:
            raise HandlerNotRegisteredError(
                str(getattr(message_type, "value", message_type)),
                registered=(t.value for t in self.registered_types()),
            )
        return handler

    def registered_types(self) -> tuple[MessageType, ...]:
        """Return every type with a handler, in MessageType declaration order."""
        return tuple(t for t in MessageType if t in self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, message_type: object) -> bool:
        key = _as_message_type(message_type)
        return key is not None and key in self._handlers

    def __iter__(self) -> Iterator[MessageHandler]:
        return iter(self._handlers[t] for t in self.registered_types())


def _as_message_type(value: object) -> MessageType | None:
    try:
        return MessageType(value)
    except ValueError:
        return None


# =============================================================================
# RemoteCallHandler
# =============================================================================


class RemoteCallHandler:
    """Base for handlers whose work is one call to a remote service.

    Subclasses implement ``call()``; this base maps client errors onto
    outcomes:

        RemoteServiceUnavailableError  -> retryable
        RemoteRequestRejectedError     -> fatal
        MessagePayloadError            -> fatal

    Anything else propagates and the processor treats it as retryable.
    """

    message_type: MessageType

    def handle(
        self,
        message: QueuedMessage,
        session: Session,
        as_of: datetime,
    ) -> MessageOutcome:
        try:
            self.call(message, session, as_of)
        except RemoteServiceUnavailableError as exc:
            logger.warning(
                "remote_service_unavailable",
                extra={"service": exc.service, "reason": exc.reason},
            )
            return MessageOutcome.retryable(str(exc))
        except RemoteRequestRejectedError as exc:
            logger.warning(
                "remote_request_rejected",
                extra={"service": exc.service, "reason": exc.reason},
            )
            return MessageOutcome.fatal(str(exc))
        except MessagePayloadError as exc:
            logger.warning(
                "message_payload_invalid",
                extra={"payload_type": exc.payload_type, "reason": exc.reason},
            )
            return MessageOutcome.fatal(str(exc))
        return MessageOutcome.success()

    def call(
        self,
        message: QueuedMessage,
        session: Session,
        as_of: datetime,
    ) -> None:
        raise NotImplementedError
