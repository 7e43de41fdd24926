"""Tests for claimant_kernel.db.engine -- engine lifecycle and session_scope."""

import pytest
from sqlalchemy import select

from claimant_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from claimant_messaging.domain.types import MessageType
from claimant_messaging.models.message import MessageModel
from claimant_messaging.services.queue_client import MessageQueueClient


@pytest.fixture
def initialized(tmp_path):
    init_engine_from_url(f"sqlite:///{tmp_path / 'engine.db'}")
    create_tables()
    yield
    reset_engine()


def _message_count():
    session = get_session_factory()()
    try:
        return len(session.execute(select(MessageModel.id)).all())
    finally:
        session.close()


class TestEngineLifecycle:
    def test_uninitialized(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_sqlite_engine(self, initialized):
        assert get_engine().dialect.name == "sqlite"


class TestSessionScope:
    def test_enqueue_commits_with_scope(self, initialized, clock):
        with session_scope() as session:
            MessageQueueClient(session, clock).enqueue(MessageType.SEND_EMAIL, {"k": "v"})
        assert _message_count() == 1

    def test_enqueue_rolls_back_with_business_change(self, initialized, clock):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                MessageQueueClient(session, clock).enqueue(MessageType.SEND_EMAIL, {"k": "v"})
                raise RuntimeError("claim update rejected")
        assert _message_count() == 0
