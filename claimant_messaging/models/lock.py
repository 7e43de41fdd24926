"""
ORM model for fleet-wide scheduler locks.

One row per lock name.  A lock is held while ``lock_until`` is in the future;
acquiring it means winning a conditional UPDATE (or the first INSERT) that
moves ``lock_until`` forward.  No row is ever deleted, so a crashed holder
simply lets ``lock_until`` lapse.

Architecture: claimant_messaging/models. Imports from claimant_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from claimant_kernel.db.base import Base


class SchedulerLockModel(Base):
    """Lease row keyed by lock name."""

    __tablename__ = "scheduler_locks"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    lock_until: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    locked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    locked_by: Mapped[str] = mapped_column(String(200), nullable=False)
