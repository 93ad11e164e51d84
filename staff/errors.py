"""
staff/errors.py -- The single error kind raised by the authentication path.
"""

from __future__ import annotations

from staff.models import FailureReason


class AuthenticationFailure(Exception):
    """Raised by StaffAuthenticationService.authenticate() on any rejection.

    reason distinguishes rate limiting, bad credentials, and bad MFA. str(exc)
    is the reason's fixed message, identical for unknown user and wrong
    password.
    """

    def __init__(self, reason: FailureReason) -> None:
        super().__init__(reason.message)
        self.reason = reason
