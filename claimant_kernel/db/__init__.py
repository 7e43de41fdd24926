"""Database layer - engine, session management and declarative base classes."""

from claimant_kernel.db.base import UUID, Base, TimestampedBase, UUIDString
from claimant_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "TimestampedBase",
    "UUID",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
]
