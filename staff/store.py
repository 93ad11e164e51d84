"""
staff/store.py -- Concurrency-safe in-memory repositories for auth state.

Pattern: Repository. Each store owns one keyed collection and is the only code
that touches it. The service never reaches into the underlying dicts.

Concurrency:
  Every store guards its dict with a set of lock stripes. A key always maps to
  the same stripe, so read-modify-write on one key (attempt reservation,
  session renewal, check-and-insert registration, MFA code consumption) is
  atomic, while operations on unrelated keys usually take different locks and
  do not serialize.

  There are no cross-store transactions. One logical operation (e.g. a
  successful login) updates several stores one after another.

State is process-lifetime only; nothing is persisted.

Layer rule: no imports from core/ or fastapi.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta

from staff.models import StaffCredential, StaffSession

_DEFAULT_STRIPES = 64


class _LockStripes:
    """Fixed pool of locks selected by key hash."""

    def __init__(self, count: int = _DEFAULT_STRIPES) -> None:
        if count <= 0:
            raise ValueError(f"lock stripe count must be positive, got {count}")
        self._locks = [threading.Lock() for _ in range(count)]

    def for_key(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for StaffCredential records keyed by username.

    Usage:
        store = CredentialStore()
        store.add_if_absent(credential)   # False if the username is taken
        cred = store.get("alice")
    """

    def __init__(self, stripes: int = _DEFAULT_STRIPES) -> None:
        self._credentials: dict[str, StaffCredential] = {}
        self._locks = _LockStripes(stripes)

    def add_if_absent(self, credential: StaffCredential) -> bool:
        """Insert credential unless its username exists. Returns True if inserted."""
        with self._locks.for_key(credential.username):
            if credential.username in self._credentials:
                return False
            self._credentials[credential.username] = credential
            return True

    def get(self, username: str) -> StaffCredential | None:
        return self._credentials.get(username)

    def update(self, username: str, change: Callable[[StaffCredential], StaffCredential]) -> StaffCredential | None:
        """Replace the credential with change(current) atomically.

        Returns the new credential, or None if the username is not registered
        (change is not called in that case).
        """
        with self._locks.for_key(username):
            current = self._credentials.get(username)
            if current is None:
                return None
            updated = change(current)
            self._credentials[username] = updated
            return updated

    def check_and_update(
        self,
        username: str,
        check: Callable[[StaffCredential], bool],
        change: Callable[[StaffCredential], StaffCredential] | None = None,
    ) -> bool:
        """Run check(current) and, if it passes, apply change, under one lock.

        Returns False if the username is not registered or check fails. Used to
        validate and consume a single-use MFA code so two concurrent logins
        cannot both see the code before either clears it.
        """
        with self._locks.for_key(username):
            current = self._credentials.get(username)
            if current is None or not check(current):
                return False
            if change is not None:
                self._credentials[username] = change(current)
            return True

    def __contains__(self, username: str) -> bool:
        return username in self._credentials

    def __len__(self) -> int:
        return len(self._credentials)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for active StaffSession values keyed by token.

    Sessions are immutable; renewal swaps in a copy with a new expiry.
    """

    def __init__(self, stripes: int = _DEFAULT_STRIPES) -> None:
        self._sessions: dict[str, StaffSession] = {}
        self._locks = _LockStripes(stripes)

    def add(self, session: StaffSession) -> None:
        with self._locks.for_key(session.token):
            self._sessions[session.token] = session

    def get(self, token: str) -> StaffSession | None:
        return self._sessions.get(token)

    def refresh(self, token: str, now: datetime, timeout: timedelta) -> tuple[StaffSession | None, bool]:
        """Renew or expire the session for token, atomically.

        Returns (session, expired):
          (None, False)     -- no such token
          (session, True)   -- token had expired; it was removed and the
                               removed session is returned for auditing
          (session, False)  -- renewed copy with last_activity=now and
                               expires_at=now+timeout
        """
        with self._locks.for_key(token):
            current = self._sessions.get(token)
            if current is None:
                return None, False
            if current.is_expired(now):
                del self._sessions[token]
                return current, True
            renewed = replace(current, last_activity=now, expires_at=now + timeout)
            self._sessions[token] = renewed
            return renewed, False

    def remove(self, token: str) -> StaffSession | None:
        """Delete and return the session for token, or None if absent."""
        with self._locks.for_key(token):
            return self._sessions.pop(token, None)

    def for_user(self, username: str) -> list[StaffSession]:
        """Snapshot of sessions currently held for username (expired ones included)."""
        return [s for s in list(self._sessions.values()) if s.username == username]

    def __len__(self) -> int:
        return len(self._sessions)


# ---------------------------------------------------------------------------
# Failed attempts
# ---------------------------------------------------------------------------


class FailedAttemptCounter:
    """Per-username count of consecutive authentication failures.

    An attempt is charged to the count before it is evaluated (reserve()) and
    the count is cleared if it succeeds (reset()). Charging up front means N
    concurrent attempts cannot all slip in under the limit: at most `limit`
    attempts are ever evaluated between two successes.
    """

    def __init__(self, stripes: int = _DEFAULT_STRIPES) -> None:
        self._counts: dict[str, int] = {}
        self._locks = _LockStripes(stripes)

    def get(self, username: str) -> int:
        return self._counts.get(username, 0)

    def reserve(self, username: str, limit: int) -> int | None:
        """Charge one attempt if the count is below limit.

        Returns the new count, or None (count unchanged) if the limit is
        already reached.
        """
        with self._locks.for_key(username):
            count = self._counts.get(username, 0)
            if count >= limit:
                return None
            self._counts[username] = count + 1
            return count + 1

    def reset(self, username: str) -> None:
        with self._locks.for_key(username):
            self._counts.pop(username, None)
