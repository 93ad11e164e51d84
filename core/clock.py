"""
core/clock.py -- Injectable "now" for time-based validity checks.

MFA code windows and session expiry are evaluated by comparing stored
timestamps to the current time at call time. Services take a Clock callable
instead of calling datetime.now() inline so tests can move time forward
deterministically rather than sleeping.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)
