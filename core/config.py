"""
core/config.py -- Tunables for the staff auth service.

Every knob the service reads (session timeout, failed-attempt threshold, MFA
code length and lifetime, bcrypt cost, audit client label, lock striping,
demo-account seeding) lives on Settings. StaffAuthenticationService takes a
Settings instance; when none is passed it falls back to get_settings().

Sources, highest priority first:
  1. keyword arguments to Settings(...)   (what tests use)
  2. STAFF_AUTH_* environment variables    (STAFF_AUTH_MAX_FAILED_ATTEMPTS=3)
  3. a .env file in the working directory
  4. the defaults below

Settings are checked once, at construction: non-positive durations or counts
and bcrypt costs the library would refuse raise a ValidationError there
instead of surfacing later as sessions that expire instantly or a failure
inside gensalt().

Layer rule: core/ is the kernel. This module may not import from staff/.
"""

import logging
from datetime import timedelta
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("staffauth.config")

# bcrypt.gensalt() rejects anything outside this range.
_MIN_BCRYPT_ROUNDS = 4
_MAX_BCRYPT_ROUNDS = 31


class Settings(BaseSettings):
    """Service settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. Tests usually construct
    Settings(bcrypt_rounds=4, ...) directly instead of going through
    get_settings().
    """

    model_config = SettingsConfigDict(
        env_prefix="STAFF_AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # Sliding window: every successful validation pushes expiry out again.
    session_timeout_minutes: int = 30

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    # Consecutive failures per username before every attempt is rejected.
    max_failed_attempts: int = 5

    # ------------------------------------------------------------------
    # MFA
    # ------------------------------------------------------------------

    mfa_code_length: int = 6
    mfa_validity_minutes: int = 5
    # Off by default: a code stays usable until superseded or expired.
    mfa_single_use: bool = False

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Audit / internals
    # ------------------------------------------------------------------

    client_info: str = "Local Application"
    lock_stripes: int = 64
    seed_default_staff: bool = False

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def session_timeout(self) -> timedelta:
        return timedelta(minutes=self.session_timeout_minutes)

    @property
    def mfa_validity(self) -> timedelta:
        return timedelta(minutes=self.mfa_validity_minutes)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Reject settings that would make the service misbehave silently.

        A zero session timeout would expire every session on creation; a zero
        attempt threshold would lock out every username before the first try.
        """
        positive = {
            "session_timeout_minutes": self.session_timeout_minutes,
            "max_failed_attempts": self.max_failed_attempts,
            "mfa_code_length": self.mfa_code_length,
            "mfa_validity_minutes": self.mfa_validity_minutes,
            "lock_stripes": self.lock_stripes,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value}.")
        if not _MIN_BCRYPT_ROUNDS <= self.bcrypt_rounds <= _MAX_BCRYPT_ROUNDS:
            raise ValueError(
                f"bcrypt_rounds must be between {_MIN_BCRYPT_ROUNDS} and {_MAX_BCRYPT_ROUNDS}, "
                f"got {self.bcrypt_rounds}."
            )
        if self.mfa_single_use:
            logger.info("Single-use MFA codes enabled")
        return self


@lru_cache
def get_settings() -> Settings:
    """Settings built from the process environment, shared by every caller.

    Environment changes made after the first call are not seen until
    get_settings.cache_clear() is called.
    """
    return Settings()
