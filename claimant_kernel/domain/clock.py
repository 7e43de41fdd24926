"""
Clock -- Injectable time abstraction.

Responsibility:
    Every comparison against "now" in the message queue (selection of due
    messages, backoff deadlines, lock expiry, cron firing) goes through a
    Clock instance received by constructor injection.  Nothing in the
    queue calls ``datetime.now()`` directly.

Architecture position:
    Kernel > Domain -- pure, zero I/O except SystemClock, which is the one
    sanctioned boundary for wall-clock time.

Failure modes:
    - DeterministicClock.advance() rejects negative offsets (time never
      runs backwards in a test).

Test relevance:
    DeterministicClock lets tests step over ``process_after`` and
    ``lock_until`` boundaries without sleeping.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Services that need the current time receive a Clock instance and
        call ``now()``.  The value returned is used both for persisted
        timestamps and for comparisons, so a single clock must be shared
        by everything that reads and writes the same rows.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def now_utc(self) -> datetime:
        """Get the current time normalized to UTC (naive values pass through)."""
        current = self.now()
        if current.tzinfo is None:
            return current
        return current.astimezone(timezone.utc)


class SystemClock(Clock):
    """
    Production clock returning timezone-aware UTC system time.

    Non-goals:
        Not suitable for deterministic tests.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - ``tick()`` advances by exactly one second and returns the new time.

    Tests that run against SQLite should pass a naive ``fixed_time``;
    SQLite drops tzinfo on the way back out and naive/aware datetimes
    cannot be compared.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: float | timedelta = 1) -> datetime:
        """Move the clock forward and return the new time.

        Raises:
            ValueError: If the offset is negative.
        """
        delta = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        if delta < timedelta(0):
            raise ValueError(f"Cannot move a clock backwards: {delta}")
        self._offset += delta
        return self.now()

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        return self.advance(1)
