"""
staff/security.py -- Password hashing, session tokens, and MFA codes.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). generate_salt() returns
       a bcrypt salt carrying its own cost factor; hash_password() hashes with
       that salt. The salt is stored on the credential next to the hash.

  Pre-hashing: bcrypt only reads the first 72 bytes and stops at NUL. The whole
       password is first reduced to base64(SHA-256(password)), 44 ASCII bytes,
       so every byte of a long password still decides the result.

  Verification: verify_password() recomputes the hash from the stored salt and
       compares the two hashes with hmac.compare_digest(), never the raw
       password bytes, so comparison time does not depend on where the first
       differing byte is.

  Timing equalization: callers authenticating an unknown username should still
       call verify_password() against a dummy salt/hash pair (see DummyCredential)
       so response time does not reveal whether the username exists.

  Session tokens: secrets.token_urlsafe(32) -- 256 bits of entropy.

  MFA codes: each digit drawn independently from secrets.randbelow(10), so
       leading zeros are as likely as any other digit.

Layer rule: no imports from core/ or fastapi.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
from dataclasses import dataclass

import bcrypt

_SESSION_TOKEN_BYTES = 32


def _password_bytes(plain: str) -> bytes:
    return base64.b64encode(hashlib.sha256(plain.encode("utf-8")).digest())


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def generate_salt(rounds: int = 12) -> bytes:
    """Return a fresh random bcrypt salt with the given cost factor."""
    return bcrypt.gensalt(rounds=rounds)


def hash_password(plain: str, salt: bytes) -> bytes:
    """Return the bcrypt hash of plain under salt."""
    return bcrypt.hashpw(_password_bytes(plain), salt)


def verify_password(plain: str, salt: bytes, expected_hash: bytes) -> bool:
    """Return True if plain hashes to expected_hash under salt.

    Any error from bcrypt (malformed salt, non-string input) is a mismatch.
    """
    try:
        computed = hash_password(plain, salt)
    except (TypeError, ValueError):
        return False
    return hmac.compare_digest(computed, expected_hash)


@dataclass(frozen=True)
class DummyCredential:
    """Salt/hash pair verified against when a username does not exist.

    Built with the same cost factor as real credentials so the failed lookup
    costs the same bcrypt work as a wrong password.
    """

    salt: bytes
    password_hash: bytes

    @classmethod
    def create(cls, rounds: int) -> DummyCredential:
        salt = generate_salt(rounds)
        return cls(salt=salt, password_hash=hash_password(secrets.token_hex(16), salt))


# ---------------------------------------------------------------------------
# Tokens and codes
# ---------------------------------------------------------------------------


def generate_session_token() -> str:
    """Return a URL-safe session token with 256 bits of entropy."""
    return secrets.token_urlsafe(_SESSION_TOKEN_BYTES)


def generate_mfa_code(length: int = 6) -> str:
    """Return a numeric code of exactly `length` digits (leading zeros allowed)."""
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def codes_match(provided: str | None, expected: str | None) -> bool:
    """Constant-time comparison of two MFA codes. None never matches."""
    if provided is None or expected is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
