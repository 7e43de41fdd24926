"""
LockCoordinator -- fleet-wide named locks with minimum and maximum hold.

Contract:
    At most one process across every instance sharing the database holds a
    given lock name at a time.  ``acquire()`` never blocks: it returns a
    lease or None.  A lease lapses on its own at ``locked_at + max_hold``,
    so a crashed holder cannot keep the lock forever.  ``release()`` keeps
    the lock held until at least ``locked_at + min_hold``, which stops a
    fast run on one instance from letting a second instance with a skewed
    clock repeat the same firing.

Architecture: claimant_messaging/services.  One row per lock name in
    ``scheduler_locks``; acquisition is a conditional UPDATE on
    ``lock_until <= now`` (or the first INSERT), so the database arbitrates
    every race.

Failure modes:
    - A lost INSERT race (IntegrityError on the unique name) returns None.
    - Database errors propagate to the caller; the scheduler logs them
      and gives up this firing.
"""

from __future__ import annotations

import os
import socket
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from claimant_kernel.domain.clock import Clock, SystemClock
from claimant_kernel.logging_config import get_logger

from claimant_messaging.models.lock import SchedulerLockModel

logger = get_logger("messaging.lock_coordinator")


@dataclass(frozen=True)
class LockLease:
    """Proof of holding a named lock, needed to release it."""

    name: str
    holder: str
    locked_at: datetime
    lock_until: datetime
    min_hold: timedelta


def default_instance_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class LockCoordinator:
    """Database-backed lease locks shared by every instance of the service.

    Non-goals:
        - NOT reentrant: a second ``acquire()`` by the same holder while
          the lease is live returns None.
        - Does NOT renew leases; work must finish within ``max_hold``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        instance_id: str | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._instance_id = instance_id or default_instance_id()

    @property
    def instance_id(self) -> str:
        return self._instance_id

    def acquire(
        self,
        name: str,
        min_hold: timedelta = timedelta(0),
        max_hold: timedelta = timedelta(minutes=10),
    ) -> LockLease | None:
        """Try to take the lock; return the lease, or None if it is held.

        Raises:
            ValueError: If ``min_hold`` is negative or exceeds ``max_hold``.
        """
        if min_hold < timedelta(0) or max_hold < min_hold:
            raise ValueError(
                f"Lock hold bounds must satisfy 0 <= min_hold <= max_hold, "
                f"got min_hold={min_hold} max_hold={max_hold}"
            )

        now = self._clock.now()
        lock_until = now + max_hold

        session = self._session_factory()
        try:
            result = session.execute(
                update(SchedulerLockModel)
                .where(
                    SchedulerLockModel.name == name,
                    SchedulerLockModel.lock_until <= now,
                )
                .values(
                    lock_until=lock_until,
                    locked_at=now,
                    locked_by=self._instance_id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                existing = session.execute(
                    select(SchedulerLockModel.locked_by).where(
                        SchedulerLockModel.name == name,
                    )
                ).first()
                if existing is not None:
                    session.rollback()
                    logger.debug(
                        "lock_not_acquired",
                        extra={"lock_name": name, "locked_by": existing.locked_by},
                    )
                    return None
                session.add(
                    SchedulerLockModel(
                        name=name,
                        lock_until=lock_until,
                        locked_at=now,
                        locked_by=self._instance_id,
                    )
                )
                session.flush()
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.debug("lock_insert_race_lost", extra={"lock_name": name})
            return None
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.debug(
            "lock_acquired",
            extra={"lock_name": name, "lock_until": lock_until},
        )
        return LockLease(
            name=name,
            holder=self._instance_id,
            locked_at=now,
            lock_until=lock_until,
            min_hold=min_hold,
        )

    def release(self, lease: LockLease) -> bool:
        """Release a lease, keeping the lock until ``locked_at + min_hold``.

        Returns False if the lease had already lapsed and another holder
        took the lock (nothing is changed in that case).
        """
        now = self._clock.now()
        release_at = max(now, lease.locked_at + lease.min_hold)

        session = self._session_factory()
        try:
            result = session.execute(
                update(SchedulerLockModel)
                .where(
                    SchedulerLockModel.name == lease.name,
                    SchedulerLockModel.locked_by == lease.holder,
                    SchedulerLockModel.locked_at == lease.locked_at,
                )
                .values(lock_until=release_at)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if result.rowcount == 0:
            logger.warning(
                "lock_lease_lost",
                extra={"lock_name": lease.name, "locked_at": lease.locked_at},
            )
            return False

        logger.debug(
            "lock_released",
            extra={"lock_name": lease.name, "lock_until": release_at},
        )
        return True

    def with_lock(
        self,
        name: str,
        body: Callable[[], object],
        min_hold: timedelta = timedelta(0),
        max_hold: timedelta = timedelta(minutes=10),
    ) -> bool:
        """Run ``body`` while holding ``name``.

        Returns True if the body ran, False if the lock was held elsewhere.
        The lease is released even when the body raises.
        """
        lease = self.acquire(name, min_hold=min_hold, max_hold=max_hold)
        if lease is None:
            return False
        try:
            body()
        finally:
            self.release(lease)
        return True
