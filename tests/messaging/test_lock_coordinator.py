"""
Tests for claimant_messaging.services.lock_coordinator.

Two coordinators with different instance ids stand in for two service
instances sharing one database.
"""

import threading
from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event, false, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from claimant_kernel.db.base import Base
from claimant_kernel.domain.clock import SystemClock

from claimant_messaging.models.lock import SchedulerLockModel
from claimant_messaging.services.lock_coordinator import LockCoordinator, default_instance_id

LOCK = "Process MAKE_PAYMENT messages"
MIN_HOLD = timedelta(seconds=5)
MAX_HOLD = timedelta(minutes=10)


@pytest.fixture
def instance_a(session_factory, clock):
    return LockCoordinator(session_factory, clock, instance_id="instance-a")


@pytest.fixture
def instance_b(session_factory, clock):
    return LockCoordinator(session_factory, clock, instance_id="instance-b")


def _lock_row(session_factory, name=LOCK):
    session = session_factory()
    try:
        return session.execute(
            select(SchedulerLockModel).where(SchedulerLockModel.name == name)
        ).scalar_one_or_none()
    finally:
        session.close()


class TestAcquire:
    def test_first_acquire_creates_row(self, instance_a, session_factory, clock):
        lease = instance_a.acquire(LOCK, MIN_HOLD, MAX_HOLD)

        assert lease is not None
        assert lease.holder == "instance-a"
        assert lease.locked_at == clock.now()
        assert lease.lock_until == clock.now() + MAX_HOLD

        row = _lock_row(session_factory)
        assert row.locked_by == "instance-a"
        assert row.lock_until == clock.now() + MAX_HOLD

    def test_held_lock_is_not_acquired_elsewhere(self, instance_a, instance_b):
        assert instance_a.acquire(LOCK, MIN_HOLD, MAX_HOLD) is not None
        assert instance_b.acquire(LOCK, MIN_HOLD, MAX_HOLD) is None

    def test_not_reentrant(self, instance_a):
        assert instance_a.acquire(LOCK) is not None
        assert instance_a.acquire(LOCK) is None

    def test_locks_are_independent_per_name(self, instance_a, instance_b):
        assert instance_a.acquire(LOCK) is not None
        assert instance_b.acquire("Process SEND_EMAIL messages") is not None

    def test_lease_lapses_after_max_hold(self, instance_a, instance_b, clock):
        instance_a.acquire(LOCK, MIN_HOLD, MAX_HOLD)

        clock.advance(MAX_HOLD - timedelta(seconds=1))
        assert instance_b.acquire(LOCK, MIN_HOLD, MAX_HOLD) is None

        clock.advance(1)
        lease = instance_b.acquire(LOCK, MIN_HOLD, MAX_HOLD)
        assert lease is not None
        assert lease.holder == "instance-b"

    @pytest.mark.parametrize(
        "min_hold, max_hold",
        [
            (timedelta(seconds=-1), MAX_HOLD),
            (timedelta(minutes=11), MAX_HOLD),
        ],
    )
    def test_invalid_hold_bounds(self, instance_a, min_hold, max_hold):
        with pytest.raises(ValueError):
            instance_a.acquire(LOCK, min_hold, max_hold)


class TestRelease:
    def test_release_keeps_lock_for_min_hold(self, instance_a, instance_b, clock):
        lease = instance_a.acquire(LOCK, MIN_HOLD, MAX_HOLD)
        clock.advance(1)
        assert instance_a.release(lease)

        assert instance_b.acquire(LOCK, MIN_HOLD, MAX_HOLD) is None
        clock.advance(4)
        assert instance_b.acquire(LOCK, MIN_HOLD, MAX_HOLD) is not None

    def test_release_after_min_hold_frees_immediately(self, instance_a, instance_b, session_factory, clock):
        lease = instance_a.acquire(LOCK, MIN_HOLD, MAX_HOLD)
        clock.advance(30)
        instance_a.release(lease)

        assert _lock_row(session_factory).lock_until == clock.now()
        assert instance_b.acquire(LOCK, MIN_HOLD, MAX_HOLD) is not None

    def test_release_after_lease_taken_over(self, instance_a, instance_b, session_factory, clock, captured_logs):
        lease = instance_a.acquire(LOCK, MIN_HOLD, MAX_HOLD)
        clock.advance(MAX_HOLD)
        takeover = instance_b.acquire(LOCK, MIN_HOLD, MAX_HOLD)

        assert instance_a.release(lease) is False
        assert _lock_row(session_factory).lock_until == takeover.lock_until
        assert any(r["message"] == "lock_lease_lost" for r in captured_logs())


class TestWithLock:
    def test_runs_body_when_acquired(self, instance_a):
        calls = []
        assert instance_a.with_lock(LOCK, lambda: calls.append(1), MIN_HOLD, MAX_HOLD)
        assert calls == [1]

    def test_skips_body_when_held(self, instance_a, instance_b):
        instance_a.acquire(LOCK, MIN_HOLD, MAX_HOLD)
        calls = []
        assert instance_b.with_lock(LOCK, lambda: calls.append(1), MIN_HOLD, MAX_HOLD) is False
        assert calls == []

    def test_releases_when_body_raises(self, instance_a, instance_b, session_factory, clock):
        def body():
            raise RuntimeError("batch blew up")

        with pytest.raises(RuntimeError):
            instance_a.with_lock(LOCK, body, MIN_HOLD, MAX_HOLD)

        assert _lock_row(session_factory).lock_until == clock.now() + MIN_HOLD
        clock.advance(MIN_HOLD)
        assert instance_b.acquire(LOCK, MIN_HOLD, MAX_HOLD) is not None


class TestRacingInstances:
    """Instances sharing the SQLite file contend for one lock."""

    def test_single_winner(self, session_factory, clock):
        barrier = threading.Barrier(4)
        leases = []
        errors = []

        def contender(index):
            coordinator = LockCoordinator(session_factory, clock, instance_id=f"racer-{index}")
            barrier.wait()
            try:
                leases.append(coordinator.acquire(LOCK, MIN_HOLD, MAX_HOLD))
            except OperationalError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=contender, args=(i,)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        winners = [lease for lease in leases if lease is not None]
        assert len(winners) == 1
        assert len(leases) + len(errors) == 4
        assert _lock_row(session_factory).locked_by == winners[0].holder

    def test_lost_insert_race(self, instance_a, engine, clock, session_factory, captured_logs):
        """The row appears between the empty UPDATE and the INSERT."""
        assert instance_a.acquire(LOCK, MIN_HOLD, MAX_HOLD) is not None

        stale_factory = sessionmaker(bind=engine, expire_on_commit=False)

        @event.listens_for(stale_factory, "do_orm_execute")
        def _hide_existing_lock(orm_execute_state):
            if orm_execute_state.is_select:
                orm_execute_state.statement = orm_execute_state.statement.where(false())

        late = LockCoordinator(stale_factory, clock, instance_id="instance-late")

        assert late.acquire(LOCK, MIN_HOLD, MAX_HOLD) is None
        assert _lock_row(session_factory).locked_by == "instance-a"
        lost = [r for r in captured_logs() if r["message"] == "lock_insert_race_lost"]
        assert lost[0]["lock_name"] == LOCK


class TestInstanceId:
    def test_default_instance_id_names_host_and_process(self, session_factory):
        coordinator = LockCoordinator(session_factory)
        assert coordinator.instance_id == default_instance_id()
        assert ":" in coordinator.instance_id


@pytest.mark.postgres
class TestConcurrentAcquire:
    """Many instances racing for one lock; exactly one wins."""

    def test_single_winner(self, postgres_url):
        engine = create_engine(postgres_url, pool_size=10)
        Base.metadata.create_all(engine, tables=[SchedulerLockModel.__table__])
        factory = sessionmaker(bind=engine, expire_on_commit=False)
        name = f"race-{uuid4()}"
        clock = SystemClock()

        barrier = threading.Barrier(8)
        leases = []

        def contender(index):
            coordinator = LockCoordinator(factory, clock, instance_id=f"racer-{index}")
            barrier.wait()
            leases.append(coordinator.acquire(name, MIN_HOLD, MAX_HOLD))

        threads = [threading.Thread(target=contender, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        try:
            assert sum(1 for lease in leases if lease is not None) == 1
        finally:
            with engine.begin() as conn:
                conn.execute(SchedulerLockModel.__table__.delete().where(
                    SchedulerLockModel.name == name,
                ))
            engine.dispose()
