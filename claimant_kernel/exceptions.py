"""
Typed exception hierarchy for the claimant message queue.

Every error carries a machine-readable ``code`` class attribute and the
structured data needed to act on it, so callers catch by type and log by
field rather than by parsing message strings.

    ClaimantServiceError (base)
    |
    +-- MessageQueueError
    |   +-- InvalidMessageTypeError
    |   +-- MessageSerializationError
    |   +-- MessagePayloadError
    |   +-- HandlerNotRegisteredError
    |   +-- MessageNotFoundError
    |   +-- QueueStoreUnavailableError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ScheduleError
    |   +-- InvalidCronExpressionError
    |   +-- InvalidDurationError
    |
    +-- ConfigurationError
    |
    +-- RemoteServiceError
        +-- RemoteServiceUnavailableError
        +-- RemoteRequestRejectedError

Remote service errors are raised by client implementations and mapped to
message outcomes by handlers: unavailable is transient (retry with
backoff), rejected is permanent (fail the message).
"""

from collections.abc import Iterable


class ClaimantServiceError(Exception):
    """Base exception for all claimant service errors."""

    code: str = "CLAIMANT_SERVICE_ERROR"


# =============================================================================
# Message queue
# =============================================================================


class MessageQueueError(ClaimantServiceError):
    """Base for message queue errors."""

    code: str = "MESSAGE_QUEUE_ERROR"


class InvalidMessageTypeError(MessageQueueError):
    """The requested message type is not one of the known types."""

    code: str = "INVALID_MESSAGE_TYPE"

    def __init__(self, message_type: object, known_types: Iterable[str] = ()):
        self.message_type = str(message_type)
        self.known_types = tuple(known_types)
        super().__init__(
            f"Unknown message type '{message_type}'. "
            f"Known types: {list(self.known_types)}"
        )


class MessageSerializationError(MessageQueueError):
    """A payload could not be encoded for storage."""

    code: str = "MESSAGE_SERIALIZATION_FAILED"

    def __init__(self, message_type: str, reason: str):
        self.message_type = message_type
        self.reason = reason
        super().__init__(
            f"Cannot serialize payload for {message_type}: {reason}"
        )


class MessagePayloadError(MessageQueueError):
    """A stored payload could not be decoded by its handler."""

    code: str = "MESSAGE_PAYLOAD_INVALID"

    def __init__(self, payload_type: str, reason: str):
        self.payload_type = payload_type
        self.reason = reason
        super().__init__(f"Invalid {payload_type}: {reason}")


class HandlerNotRegisteredError(MessageQueueError):
    """No handler is registered for a message type."""

    code: str = "HANDLER_NOT_REGISTERED"

    def __init__(self, message_type: str, registered: Iterable[str] = ()):
        self.message_type = message_type
        self.registered = tuple(registered)
        super().__init__(
            f"No handler registered for message type '{message_type}'. "
            f"Registered: {list(self.registered)}"
        )


class MessageNotFoundError(MessageQueueError):
    """Message with given ID was not found."""

    code: str = "MESSAGE_NOT_FOUND"

    def __init__(self, message_id: str):
        self.message_id = message_id
        super().__init__(f"Message not found: {message_id}")


class QueueStoreUnavailableError(MessageQueueError):
    """The queue store could not be read or an outcome could not be recorded.

    Aborts the current processing run; the next scheduled firing retries.
    """

    code: str = "QUEUE_STORE_UNAVAILABLE"

    def __init__(self, message_type: str, operation: str, reason: str):
        self.message_type = message_type
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Queue store unavailable during {operation} for {message_type}: {reason}"
        )


# =============================================================================
# Immutability
# =============================================================================


class ImmutabilityError(ClaimantServiceError):
    """Base for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify a settled message or a failure report.

    A message's type never changes, a COMPLETED or FAILED message is
    frozen, and failure reports are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# =============================================================================
# Scheduling
# =============================================================================


class ScheduleError(ClaimantServiceError):
    """Base for schedule definition errors."""

    code: str = "SCHEDULE_ERROR"


class InvalidCronExpressionError(ScheduleError):
    """A cron expression could not be parsed."""

    code: str = "INVALID_CRON_EXPRESSION"

    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid cron expression '{expression}': {reason}")


class InvalidDurationError(ScheduleError):
    """An ISO-8601 duration could not be parsed."""

    code: str = "INVALID_DURATION"

    def __init__(self, value: str, reason: str = "not an ISO-8601 duration"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid duration '{value}': {reason}")


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(ClaimantServiceError):
    """Message processor configuration is missing or inconsistent."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid setting '{setting}': {reason}")


# =============================================================================
# Remote services
# =============================================================================


class RemoteServiceError(ClaimantServiceError):
    """Base for failures reported by remote service clients."""

    code: str = "REMOTE_SERVICE_ERROR"

    def __init__(self, service: str, reason: str):
        self.service = service
        self.reason = reason
        super().__init__(f"{service}: {reason}")


class RemoteServiceUnavailableError(RemoteServiceError):
    """Transient failure: timeout, connection refused, 5xx."""

    code: str = "REMOTE_SERVICE_UNAVAILABLE"


class RemoteRequestRejectedError(RemoteServiceError):
    """Permanent failure: the remote service rejected the request as invalid."""

    code: str = "REMOTE_REQUEST_REJECTED"
