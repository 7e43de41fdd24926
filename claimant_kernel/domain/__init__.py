"""
Pure domain layer for the kernel.

No ORM, no database, no I/O (except SystemClock, the sanctioned time
boundary).
"""

from claimant_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
]
