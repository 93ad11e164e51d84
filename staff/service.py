"""
staff/service.py -- Staff credential and session service.

StaffAuthenticationService is the only entry point other code should use. It
owns four collections (credentials, sessions, failed-attempt counters, audit
log) and exposes register / MFA / authenticate / session / access / logout /
audit operations on them.

Authentication runs a fixed sequence of gates. Each gate writes its own audit
entry and, on rejection, short-circuits with a FailureReason:
  1. AUTHENTICATION_ATTEMPT (always)
  2. rate limit        -> AUTHENTICATION_BLOCKED, RATE_LIMITED
  3. username/password -> AUTHENTICATION_FAILED,  INVALID_CREDENTIALS
  4. MFA code + window -> MFA_VALIDATION_FAILED,  INVALID_MFA_CODE
  5. session created   -> AUTHENTICATION_SUCCESS

Security notes:
  Unknown usernames still pay one bcrypt hash (against a dummy credential) so
  response time does not reveal whether the account exists, and the rejection
  message is identical for unknown user and wrong password.

  The rate-limit gate runs before credential lookup and charges the attempt
  to the counter up front, so concurrent guesses cannot overshoot
  max_failed_attempts. A success clears the charge. While an attempt is in
  flight at the last free slot, a concurrent attempt for the same username is
  rejected as rate limited. Once a username reaches max_failed_attempts it
  stays blocked; only a successful login resets the counter, and the counter
  does not decay with time.

  Passwords, MFA codes and session tokens are never logged.

Time is read from an injected clock so tests can step past MFA windows and
session expiry without sleeping.

Usage:
    service = StaffAuthenticationService()
    service.register_staff("alice", "Secret123!", StaffRole.INSTRUCTOR, "alice@example.edu")
    code = service.generate_mfa_code("alice")
    result = service.authenticate("alice", "Secret123!", code)
    service.validate_access(result.token, StaffRole.TEACHING_ASSISTANT)  # True
    service.logout(result.token)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from core.clock import Clock, utc_now
from core.config import Settings, get_settings
from staff.audit import AuditLog, AuditLogQuery
from staff.errors import AuthenticationFailure
from staff.models import (
    AuditAction,
    AuthenticationResult,
    AuthOutcome,
    FailureReason,
    StaffCredential,
    StaffRole,
    StaffSession,
)
from staff.security import (
    DummyCredential,
    codes_match,
    generate_mfa_code,
    generate_salt,
    generate_session_token,
    hash_password,
    verify_password,
)
from staff.store import CredentialStore, FailedAttemptCounter, SessionStore

logger = logging.getLogger("staffauth.service")

# Accounts registered by seed_default_staff(): (username, password, role, email).
DEFAULT_STAFF: tuple[tuple[str, str, StaffRole, str], ...] = (
    ("admin", "AdminPass123!", StaffRole.ADMINISTRATOR, "admin@asu.edu"),
    ("instructor", "InstructorPass123!", StaffRole.INSTRUCTOR, "instructor@asu.edu"),
    ("assistant", "AssistantPass123!", StaffRole.TEACHING_ASSISTANT, "assistant@asu.edu"),
)


class StaffAuthenticationService:
    """In-memory credential, session, rate-limit, and audit service.

    Safe to share between request-handling threads. Every method is
    synchronous and does no I/O.
    """

    def __init__(self, settings: Settings | None = None, clock: Clock | None = None) -> None:
        self.settings = settings if settings is not None else get_settings()
        self._clock: Clock = clock if clock is not None else utc_now
        stripes = self.settings.lock_stripes
        self._credentials = CredentialStore(stripes)
        self._sessions = SessionStore(stripes)
        self._failed_attempts = FailedAttemptCounter(stripes)
        self._audit_log = AuditLog()
        self._dummy = DummyCredential.create(self.settings.bcrypt_rounds)
        if self.settings.seed_default_staff:
            seed_default_staff(self)

    # ------------------------------------------------------------------
    # Registration and MFA
    # ------------------------------------------------------------------

    def register_staff(self, username: str, password: str, role: StaffRole, email: str) -> bool:
        """Create a credential. Returns False if the username is already registered.

        No password-strength rules are applied.
        """
        if username in self._credentials:
            return False
        salt = generate_salt(self.settings.bcrypt_rounds)
        credential = StaffCredential(
            username=username,
            password_hash=hash_password(password, salt),
            salt=salt,
            role=role,
            email=email,
            created_at=self._clock(),
        )
        # A concurrent registration may have won between the check and here.
        if not self._credentials.add_if_absent(credential):
            return False
        self._audit(username, AuditAction.STAFF_REGISTERED, f"New staff member registered with role: {role}")
        logger.info("Registered staff member %r with role %s", username, role)
        return True

    def generate_mfa_code(self, username: str) -> str:
        """Issue a new MFA code for username, replacing any outstanding one.

        Always returns a code. It is only stored (and therefore only usable)
        when the username is registered; the audit entry is written either way.
        """
        code = generate_mfa_code(self.settings.mfa_code_length)
        now = self._clock()
        self._credentials.update(username, lambda c: replace(c, mfa_code=code, mfa_generated_at=now))
        self._audit(username, AuditAction.MFA_CODE_GENERATED, "New MFA code generated")
        return code

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def try_authenticate(self, username: str, password: str, mfa_code: str | None) -> AuthOutcome:
        """Run the authentication gates and return a tagged outcome. Never raises."""
        self._audit(username, AuditAction.AUTHENTICATION_ATTEMPT, "User attempted authentication")

        # Charging the attempt before evaluating it keeps concurrent guesses
        # under the limit; a success clears the charge again.
        attempts = self._failed_attempts.reserve(username, self.settings.max_failed_attempts)
        if attempts is None:
            self._audit(username, AuditAction.AUTHENTICATION_BLOCKED, "Rate limited due to failed attempts")
            logger.warning("Authentication blocked for %r: too many failed attempts", username)
            return AuthOutcome.rejected(FailureReason.RATE_LIMITED)

        credential = self._credentials.get(username)
        if not self._check_password(credential, password):
            self._note_failure(username, attempts)
            self._audit(username, AuditAction.AUTHENTICATION_FAILED, "Invalid credentials provided")
            logger.info("Authentication failed for %r: invalid credentials", username)
            return AuthOutcome.rejected(FailureReason.INVALID_CREDENTIALS)

        now = self._clock()
        consume = _clear_mfa_code if self.settings.mfa_single_use else None
        # Check and consume under the credential's lock so a single-use code
        # admits exactly one of several concurrent logins.
        if not self._credentials.check_and_update(
            username, lambda c: self._mfa_code_valid(c, mfa_code, now), consume
        ):
            self._note_failure(username, attempts)
            self._audit(username, AuditAction.MFA_VALIDATION_FAILED, "Invalid MFA code provided")
            logger.info("Authentication failed for %r: invalid MFA code", username)
            return AuthOutcome.rejected(FailureReason.INVALID_MFA_CODE)

        session = StaffSession(
            token=generate_session_token(),
            username=username,
            role=credential.role,
            created_at=now,
            last_activity=now,
            expires_at=now + self.settings.session_timeout,
        )
        self._sessions.add(session)
        self._failed_attempts.reset(username)
        self._audit(
            username,
            AuditAction.AUTHENTICATION_SUCCESS,
            f"Successfully authenticated with role: {credential.role}",
        )
        logger.info("Staff member %r authenticated", username)
        result = AuthenticationResult(token=session.token, role=session.role, expires_at=session.expires_at)
        return AuthOutcome.success(result)

    def authenticate(self, username: str, password: str, mfa_code: str | None) -> AuthenticationResult:
        """Authenticate and open a session.

        Raises AuthenticationFailure with the rejection reason on any failure.
        Use try_authenticate() to get the outcome as a value instead.
        """
        outcome = self.try_authenticate(username, password, mfa_code)
        if outcome.failure is not None:
            raise AuthenticationFailure(outcome.failure)
        return outcome.result

    # ------------------------------------------------------------------
    # Sessions and access
    # ------------------------------------------------------------------

    def validate_session(self, token: str | None) -> StaffSession | None:
        """Return the live session for token, extending its expiry.

        Unknown tokens return None silently. Expired tokens are removed, audited
        as SESSION_EXPIRED, and return None.
        """
        if not token:
            return None
        now = self._clock()
        session, expired = self._sessions.refresh(token, now, self.settings.session_timeout)
        if session is None:
            return None
        if expired:
            self._audit(session.username, AuditAction.SESSION_EXPIRED, "Session automatically expired")
            logger.info("Session for %r expired", session.username)
            return None
        return session

    def validate_access(self, token: str | None, required_role: StaffRole) -> bool:
        """Return True if token has a live session whose role meets required_role."""
        session = self.validate_session(token)
        if session is None:
            return False
        granted = session.role.has_access(required_role)
        self._audit(
            session.username,
            AuditAction.ACCESS_CHECK,
            f"Access {'GRANTED' if granted else 'DENIED'} for resource requiring {required_role}",
        )
        return granted

    def logout(self, token: str | None) -> bool:
        """End the session for token. Returns False if there was none."""
        if not token:
            return False
        session = self._sessions.remove(token)
        if session is None:
            return False
        self._audit(session.username, AuditAction.LOGOUT, "User logged out")
        logger.info("Staff member %r logged out", session.username)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_audit_log(
        self,
        username: str | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
    ) -> AuditLogQuery:
        """Return a lazy, restartable, newest-first view of matching audit entries.

        Time bounds are exclusive on both ends.
        """
        return self._audit_log.query(username=username, from_time=from_time, to_time=to_time)

    def get_credential(self, username: str) -> StaffCredential | None:
        return self._credentials.get(username)

    def failed_attempts(self, username: str) -> int:
        return self._failed_attempts.get(username)

    def is_rate_limited(self, username: str) -> bool:
        return self._failed_attempts.get(username) >= self.settings.max_failed_attempts

    def active_sessions(self, username: str) -> list[StaffSession]:
        """Sessions held for username that have not passed their expiry.

        Read-only: does not renew or evict anything.
        """
        now = self._clock()
        return [s for s in self._sessions.for_user(username) if not s.is_expired(now)]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_password(self, credential: StaffCredential | None, password: str) -> bool:
        if credential is None or not credential.is_active:
            # Equalize timing -- do NOT return before running bcrypt.
            verify_password(password, self._dummy.salt, self._dummy.password_hash)
            return False
        return verify_password(password, credential.salt, credential.password_hash)

    def _mfa_code_valid(self, credential: StaffCredential, provided: str | None, now: datetime) -> bool:
        if credential.mfa_code is None or credential.mfa_generated_at is None:
            return False
        # A code is dead at exactly generated_at + window.
        if now >= credential.mfa_generated_at + self.settings.mfa_validity:
            return False
        return codes_match(provided, credential.mfa_code)

    def _note_failure(self, username: str, attempts: int) -> None:
        # The attempt was already charged by reserve(); only report crossing the limit.
        if attempts == self.settings.max_failed_attempts:
            logger.warning("Username %r reached %d failed attempts; further attempts are blocked", username, attempts)

    def _audit(self, username: str, action: AuditAction, details: str) -> None:
        self._audit_log.record(self._clock(), username, action, details, self.settings.client_info)


def _clear_mfa_code(credential: StaffCredential) -> StaffCredential:
    return replace(credential, mfa_code=None, mfa_generated_at=None)


def seed_default_staff(service: StaffAuthenticationService) -> int:
    """Register the built-in demo staff accounts. Returns how many were added.

    Accounts that already exist are left untouched.
    """
    added = 0
    for username, password, role, email in DEFAULT_STAFF:
        if service.register_staff(username, password, role, email):
            added += 1
    logger.info("Seeded %d default staff account(s)", added)
    return added
