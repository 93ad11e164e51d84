"""
tests/conftest.py -- Shared test fixtures for the staff auth service.

This module provides:
  - FakeClock: a manually advanced clock injected into the service
  - clock: a FakeClock starting at a fixed UTC instant
  - fast_settings: Settings with the minimum bcrypt cost so hashing is quick
  - service: a fresh StaffAuthenticationService per test
  - registered: the service with "alice" registered as Instructor

Design: time never comes from the wall clock in these tests. MFA windows and
session expiry are crossed by calling clock.advance(), which keeps boundary
tests exact instead of sleep-and-hope.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core.config import Settings
from staff.models import StaffRole
from staff.service import StaffAuthenticationService

ALICE = "alice"
ALICE_PASSWORD = "Secret123!"
ALICE_EMAIL = "alice@example.edu"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta | None = None, **kwargs) -> datetime:
        self.now = self.now + (delta if delta is not None else timedelta(**kwargs))
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 15, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with bcrypt at its minimum cost factor; all other values default."""
    return Settings(bcrypt_rounds=4)


@pytest.fixture
def service(fast_settings: Settings, clock: FakeClock) -> StaffAuthenticationService:
    return StaffAuthenticationService(settings=fast_settings, clock=clock)


@pytest.fixture
def registered(service: StaffAuthenticationService) -> StaffAuthenticationService:
    """Service with alice registered as an Instructor."""
    assert service.register_staff(ALICE, ALICE_PASSWORD, StaffRole.INSTRUCTOR, ALICE_EMAIL)
    return service
