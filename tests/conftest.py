"""
Pytest fixtures for the claimant message queue test suite.

Provides:
- SQLite engine with every message queue table (one database file per test)
- Session factory, deterministic clock, queue client
- Scripted handlers whose outcomes are set per test
- Structured log capture

The SQLite database lives under ``tmp_path`` rather than ``:memory:`` so
that every session, and every scheduler thread, sees the same data.

Environment Variables:
- CLAIMANT_TEST_POSTGRES_URL: PostgreSQL URL for tests marked ``postgres``.
  Those tests are skipped when it is not set.
"""

import json
import logging
import os
from collections.abc import Callable, Iterable
from datetime import datetime
from io import StringIO

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from claimant_kernel.db.base import Base
from claimant_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from claimant_kernel.domain.clock import DeterministicClock
from claimant_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

import claimant_messaging.models  # noqa: F401  (registers tables on Base.metadata)
from claimant_messaging.domain.types import (
    MessageOutcome,
    MessageType,
    QueuedMessage,
)
from claimant_messaging.handlers.base import HandlerRegistry
from claimant_messaging.models.message import MessageModel
from claimant_messaging.services.queue_client import MessageQueueClient

# 2026-02-01 12:00:00, naive: SQLite hands back naive datetimes.
T0 = datetime(2026, 2, 1, 12, 0, 0)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture claimant_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, processor):
            processor.process_messages_of_type(MessageType.SEND_EMAIL)
            logs = captured_logs()
            assert any(r["message"] == "message_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("claimant_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def engine(tmp_path):
    """SQLite engine with all message queue tables.

    pysqlite's own transaction handling defeats SAVEPOINT, so BEGIN is
    emitted explicitly and the driver's autocommit handling is switched off.
    """
    eng = create_engine(f"sqlite:///{tmp_path / 'messages.db'}")

    @event.listens_for(eng, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def postgres_url() -> str:
    url = os.environ.get("CLAIMANT_TEST_POSTGRES_URL")
    if not url:
        pytest.skip("CLAIMANT_TEST_POSTGRES_URL not set")
    return url


# =============================================================================
# Clock and producer fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(fixed_time=T0)


@pytest.fixture
def enqueue(session_factory, clock) -> Callable[..., object]:
    """Enqueue and commit one message; returns its id."""

    def _enqueue(message_type=MessageType.MAKE_PAYMENT, payload=None, process_after=None):
        session = session_factory()
        try:
            message_id = MessageQueueClient(session, clock).enqueue(
                message_type,
                payload if payload is not None else {"n": 1},
                process_after=process_after,
            )
            session.commit()
            return message_id
        finally:
            session.close()

    return _enqueue


@pytest.fixture
def load_message(session_factory) -> Callable[..., QueuedMessage]:
    """Read a message's current state in a fresh session."""

    def _load(message_id) -> QueuedMessage:
        session = session_factory()
        try:
            return session.get(MessageModel, message_id).to_dto()
        finally:
            session.close()

    return _load


# =============================================================================
# Scripted handlers
# =============================================================================


class ScriptedHandler:
    """Handler that returns queued outcomes in order, then repeats the last.

    Entries may be a MessageOutcome or an exception instance to raise.
    Records every message it was handed.
    """

    def __init__(self, message_type: MessageType, outcomes: Iterable = ()):
        self._message_type = message_type
        self._outcomes = list(outcomes) or [MessageOutcome.success()]
        self.calls: list[QueuedMessage] = []

    @property
    def message_type(self) -> MessageType:
        return self._message_type

    def handle(self, message: QueuedMessage, session: Session, as_of: datetime) -> MessageOutcome:
        self.calls.append(message)
        index = min(len(self.calls) - 1, len(self._outcomes) - 1)
        outcome = self._outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def scripted_handler() -> Callable[..., ScriptedHandler]:
    return ScriptedHandler


@pytest.fixture
def registry_with() -> Callable[..., HandlerRegistry]:
    """Build a HandlerRegistry from handler instances."""

    def _build(*handlers) -> HandlerRegistry:
        registry = HandlerRegistry()
        for handler in handlers:
            registry.register(handler)
        return registry

    return _build
