"""
Claimant Kernel - shared infrastructure for the claimant message queue.

Provides the pieces every other package builds on:
- Injectable clock (no direct datetime.now() calls)
- Structured JSON logging with context propagation
- Typed exception hierarchy with machine-readable codes
- SQLAlchemy declarative base and engine/session management
"""

__version__ = "0.1.0"
