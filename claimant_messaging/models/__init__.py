"""
claimant_messaging.models -- ORM models for message queue persistence.

Architecture: claimant_messaging/models. Imports from claimant_kernel.db.base only.
"""

from claimant_messaging.models.lock import SchedulerLockModel
from claimant_messaging.models.message import MessageFailureModel, MessageModel

__all__ = [
    "MessageFailureModel",
    "MessageModel",
    "SchedulerLockModel",
]
