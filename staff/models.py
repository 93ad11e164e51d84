"""
staff/models.py -- Domain dataclasses and enums for staff authentication.

Pattern: Data class (pure data container, almost zero logic). Repositories in
staff/store.py and staff/audit.py hold them; staff/service.py does the work.

Credentials and sessions are frozen. A change (new MFA code, renewed expiry)
produces a new value via dataclasses.replace() which the store swaps in under
its per-key lock, so a reader never sees a half-updated record.

Layer rule: no imports from core/ or fastapi.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class StaffRole(Enum):
    """Staff clearance levels. Higher level = more access.

    Comparison is always by level, never by enum order or name.
    """

    TEACHING_ASSISTANT = (1, "Teaching Assistant", "Basic grading and student support functions")
    INSTRUCTOR = (2, "Instructor", "Course management, grading, and content creation")
    SENIOR_INSTRUCTOR = (3, "Senior Instructor", "Advanced course management and staff supervision")
    ADMINISTRATOR = (4, "Administrator", "Complete system administration and user management")

    def __init__(self, level: int, display_name: str, description: str) -> None:
        self.level = level
        self.display_name = display_name
        self.description = description

    def has_access(self, required: StaffRole) -> bool:
        """Return True if this role meets or exceeds the required role."""
        return self.level >= required.level

    def __str__(self) -> str:
        return self.display_name


class AuditAction(str, Enum):
    AUTHENTICATION_ATTEMPT = "AUTHENTICATION_ATTEMPT"
    AUTHENTICATION_SUCCESS = "AUTHENTICATION_SUCCESS"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    AUTHENTICATION_BLOCKED = "AUTHENTICATION_BLOCKED"
    MFA_VALIDATION_FAILED = "MFA_VALIDATION_FAILED"
    MFA_CODE_GENERATED = "MFA_CODE_GENERATED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    ACCESS_CHECK = "ACCESS_CHECK"
    LOGOUT = "LOGOUT"
    STAFF_REGISTERED = "STAFF_REGISTERED"

    def __str__(self) -> str:
        return self.value


class FailureReason(Enum):
    """Why an authentication attempt was rejected.

    INVALID_CREDENTIALS covers both "no such user" and "wrong password" so
    callers cannot enumerate usernames from the message.
    """

    RATE_LIMITED = "Account temporarily locked due to failed attempts"
    INVALID_CREDENTIALS = "Invalid username or password"
    INVALID_MFA_CODE = "Invalid MFA code"

    @property
    def message(self) -> str:
        return self.value


@dataclass(frozen=True)
class StaffCredential:
    """One registered staff account.

    salt is the bcrypt salt (cost factor included) used to produce
    password_hash. mfa_code / mfa_generated_at are None until the first
    generate_mfa_code() call for this username.
    """

    username: str
    password_hash: bytes
    salt: bytes
    role: StaffRole
    email: str
    created_at: datetime
    mfa_code: str | None = None
    mfa_generated_at: datetime | None = None
    is_active: bool = True

    def __repr__(self) -> str:
        # Keep hashes and codes out of logs and tracebacks.
        return (
            f"StaffCredential(username={self.username!r}, role={self.role.name}, "
            f"email={self.email!r}, is_active={self.is_active})"
        )


@dataclass(frozen=True)
class StaffSession:
    """An authenticated session.

    role is copied from the credential at creation and never changes for the
    life of the session.
    """

    token: str
    username: str
    role: StaffRole
    created_at: datetime
    last_activity: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        # A session checked at exactly expires_at is still live.
        return now > self.expires_at

    def __repr__(self) -> str:
        return (
            f"StaffSession(username={self.username!r}, role={self.role.name}, "
            f"created_at={self.created_at.isoformat()}, expires_at={self.expires_at.isoformat()})"
        )


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable record of a security-relevant event. Never updated or deleted."""

    timestamp: datetime
    username: str
    action: AuditAction
    details: str
    client_info: str

    def __str__(self) -> str:
        return f"[{self.timestamp.isoformat()}] {self.username} - {self.action}: {self.details} ({self.client_info})"


@dataclass(frozen=True)
class AuthenticationResult:
    token: str
    role: StaffRole
    expires_at: datetime


@dataclass(frozen=True)
class AuthOutcome:
    """Tagged result of an authentication attempt.

    Exactly one of result / failure is set. Rejections are routine business
    outcomes, so try_authenticate() hands them back as values; authenticate()
    turns them into AuthenticationFailure for callers that prefer exceptions.
    """

    result: AuthenticationResult | None = None
    failure: FailureReason | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    @classmethod
    def success(cls, result: AuthenticationResult) -> AuthOutcome:
        return cls(result=result)

    @classmethod
    def rejected(cls, reason: FailureReason) -> AuthOutcome:
        return cls(failure=reason)
