"""
ORM-level immutability enforcement for the message queue tables.

SQLAlchemy fires ``before_update`` before the UPDATE reaches the database;
the listeners below inspect attribute history and raise
ImmutabilityViolationError, which aborts the flush.

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

    Entity               | Rule
    ---------------------|-----------------------------------------------
    MessageModel         | message_type never changes after INSERT
    MessageModel         | no field changes once COMPLETED or FAILED
    MessageFailureModel  | ALWAYS immutable (audit record)

Bulk ``update()`` statements bypass mapper events; the queue only issues
those against ``scheduler_locks``.

Called during startup (``init_engine_from_url``, ``create_tables`` and the
messaging orchestrator all call it; registration is idempotent):

    from claimant_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from claimant_kernel.exceptions import ImmutabilityViolationError
from claimant_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Audit metadata, refreshed on every UPDATE
_AUDIT_FIELDS = frozenset({"updated_at"})


def _violation(entity_type: str, target, field: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_message_immutability(mapper, connection, target):
    """
    Freeze the message type, and the whole row once it is settled.

    Allowed status transitions: PENDING -> PENDING / COMPLETED / FAILED.
    A COMPLETED or FAILED row rejects every field change, status included.
    """
    from claimant_messaging.domain.types import MessageStatus

    type_history = get_history(target, "message_type")
    if type_history.has_changes():
        raise _violation(
            "MessageModel", target, "message_type",
            "Cannot change the type of a queued message",
        )

    status_history = get_history(target, "status")
    if status_history.deleted:
        old_status = status_history.deleted[0]
    elif not status_history.added:
        old_status = target.status
    else:
        # Status set without a loaded prior value; nothing to compare against
        return

    if not MessageStatus(old_status).is_terminal:
        return

    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            raise _violation(
                "MessageModel", target, attr.key,
                f"Cannot modify field '{attr.key}' on {old_status} message",
            )


def _check_failure_report_immutability(mapper, connection, target):
    """Failure reports are audit records: no UPDATE is allowed."""
    for attr in inspect(target).attrs:
        if attr.history.has_changes():
            raise _violation(
                "MessageFailureModel", target, attr.key,
                "Failure reports are append-only",
            )


_LISTENERS = (
    ("MessageModel", _check_message_immutability),
    ("MessageFailureModel", _check_failure_report_immutability),
)


def _models():
    from claimant_messaging.models.message import MessageFailureModel, MessageModel

    return {
        "MessageModel": MessageModel,
        "MessageFailureModel": MessageFailureModel,
    }


def register_immutability_listeners() -> None:
    """
    Register the immutability listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    models = _models()
    for name, listener in _LISTENERS:
        if not event.contains(models[name], "before_update", listener):
            event.listen(models[name], "before_update", listener)


def unregister_immutability_listeners() -> None:
    """
    Remove the immutability listeners.

    WARNING: Only use this in tests that need to write a forbidden change.
    """
    models = _models()
    for name, listener in _LISTENERS:
        if event.contains(models[name], "before_update", listener):
            event.remove(models[name], "before_update", listener)
