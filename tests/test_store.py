"""Unit tests for staff/store.py -- keyed repositories and their locking.

Covers:
- CredentialStore check-and-insert and atomic update
- SessionStore refresh (missing / expired / renewed) and remove
- CredentialStore check-and-update consumes a value at most once under contention
- FailedAttemptCounter reservations are not lost and never pass the limit
- Concurrent registration of one username admits exactly one winner
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from staff.models import StaffCredential, StaffRole, StaffSession
from staff.store import CredentialStore, FailedAttemptCounter, SessionStore, _LockStripes

_T0 = datetime(2026, 1, 15, 9, 0, 0, tzinfo=timezone.utc)
_TIMEOUT = timedelta(minutes=30)


def _credential(username: str = "alice") -> StaffCredential:
    return StaffCredential(
        username=username,
        password_hash=b"hash",
        salt=b"salt",
        role=StaffRole.INSTRUCTOR,
        email=f"{username}@example.edu",
        created_at=_T0,
    )


def _session(token: str = "tok", expires_at: datetime = _T0 + _TIMEOUT) -> StaffSession:
    return StaffSession(
        token=token,
        username="alice",
        role=StaffRole.INSTRUCTOR,
        created_at=_T0,
        last_activity=_T0,
        expires_at=expires_at,
    )


class TestLockStripes:
    def test_same_key_same_lock(self):
        stripes = _LockStripes(8)
        assert stripes.for_key("alice") is stripes.for_key("alice")

    def test_zero_stripes_rejected(self):
        with pytest.raises(ValueError):
            _LockStripes(0)


class TestCredentialStore:
    def test_add_if_absent(self):
        store = CredentialStore()
        assert store.add_if_absent(_credential())
        assert not store.add_if_absent(_credential())
        assert len(store) == 1
        assert "alice" in store

    def test_duplicate_does_not_replace_original(self):
        store = CredentialStore()
        original = _credential()
        store.add_if_absent(original)
        store.add_if_absent(StaffCredential("alice", b"other", b"other", StaffRole.ADMINISTRATOR, "x", _T0))
        assert store.get("alice") is original

    def test_update_replaces_value(self):
        store = CredentialStore()
        store.add_if_absent(_credential())
        updated = store.update("alice", lambda c: replace(c, mfa_code="111111"))
        assert updated.mfa_code == "111111"
        assert store.get("alice").mfa_code == "111111"

    def test_update_missing_username_returns_none(self):
        store = CredentialStore()
        calls = []
        assert store.update("ghost", lambda c: calls.append(c) or c) is None
        assert calls == []

    def test_check_and_update_applies_change_when_check_passes(self):
        store = CredentialStore()
        store.add_if_absent(replace(_credential(), mfa_code="111111"))
        assert store.check_and_update("alice", lambda c: c.mfa_code == "111111", lambda c: replace(c, mfa_code=None))
        assert store.get("alice").mfa_code is None

    def test_check_and_update_leaves_value_when_check_fails(self):
        store = CredentialStore()
        store.add_if_absent(replace(_credential(), mfa_code="111111"))
        assert not store.check_and_update("alice", lambda c: False, lambda c: replace(c, mfa_code=None))
        assert store.get("alice").mfa_code == "111111"

    def test_check_and_update_missing_username(self):
        assert not CredentialStore().check_and_update("ghost", lambda c: True)

    def test_concurrent_consume_single_winner(self):
        store = CredentialStore(stripes=4)
        store.add_if_absent(replace(_credential(), mfa_code="111111"))

        def consume(_):
            return store.check_and_update(
                "alice", lambda c: c.mfa_code == "111111", lambda c: replace(c, mfa_code=None)
            )

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(consume, range(64)))
        assert results.count(True) == 1

    def test_concurrent_registration_single_winner(self):
        store = CredentialStore(stripes=4)
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: store.add_if_absent(_credential()), range(64)))
        assert results.count(True) == 1


class TestSessionStore:
    def test_refresh_missing(self):
        assert SessionStore().refresh("nope", _T0, _TIMEOUT) == (None, False)

    def test_refresh_renews_and_replaces(self):
        store = SessionStore()
        original = _session()
        store.add(original)
        later = _T0 + timedelta(minutes=10)
        renewed, expired = store.refresh("tok", later, _TIMEOUT)
        assert not expired
        assert renewed is not original
        assert renewed.last_activity == later
        assert renewed.expires_at == later + _TIMEOUT
        assert original.expires_at == _T0 + _TIMEOUT  # old value untouched
        assert store.get("tok") is renewed

    def test_refresh_expired_removes(self):
        store = SessionStore()
        store.add(_session())
        session, expired = store.refresh("tok", _T0 + _TIMEOUT + timedelta(seconds=1), _TIMEOUT)
        assert expired
        assert session.username == "alice"
        assert store.get("tok") is None
        assert len(store) == 0

    def test_remove(self):
        store = SessionStore()
        store.add(_session())
        assert store.remove("tok").token == "tok"
        assert store.remove("tok") is None

    def test_for_user(self):
        store = SessionStore()
        store.add(_session("a"))
        store.add(_session("b"))
        assert {s.token for s in store.for_user("alice")} == {"a", "b"}
        assert store.for_user("bob") == []


class TestFailedAttemptCounter:
    def test_reserve_and_reset(self):
        counter = FailedAttemptCounter()
        assert counter.get("alice") == 0
        assert counter.reserve("alice", limit=5) == 1
        assert counter.reserve("alice", limit=5) == 2
        counter.reset("alice")
        assert counter.get("alice") == 0

    def test_reserve_refuses_at_limit_without_counting(self):
        counter = FailedAttemptCounter()
        for _ in range(3):
            counter.reserve("alice", limit=3)
        assert counter.reserve("alice", limit=3) is None
        assert counter.get("alice") == 3

    def test_reset_unknown_is_noop(self):
        counter = FailedAttemptCounter()
        counter.reset("ghost")
        assert counter.get("ghost") == 0

    def test_concurrent_reservations_are_not_lost(self):
        counter = FailedAttemptCounter(stripes=2)
        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(lambda _: counter.reserve("alice", limit=10_000), range(1000)))
        assert counter.get("alice") == 1000

    def test_concurrent_reservations_never_exceed_limit(self):
        counter = FailedAttemptCounter(stripes=2)
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: counter.reserve("alice", limit=5), range(200)))
        assert sorted(r for r in results if r is not None) == [1, 2, 3, 4, 5]
        assert counter.get("alice") == 5
