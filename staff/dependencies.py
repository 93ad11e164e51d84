"""
staff/dependencies.py -- FastAPI Depends() helpers for staff sessions.

The service instance is read from request.app.state.staff_auth, which the
hosting application sets at startup.

Token sources are checked in priority order:
  1. "session_token" cookie -- set by a web UI login flow.
  2. Authorization: Bearer <token> header -- API clients.

try_get_current_session() is the soft variant (returns None on failure).
get_current_session() wraps it and raises HTTP 401 if unauthenticated.
require_role(role) builds a dependency that also raises HTTP 403 when the
session's role is below the required level.

Every successful lookup goes through validate_session(), so using these
dependencies extends the caller's session exactly like a direct call would.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from staff.models import StaffRole, StaffSession
from staff.service import StaffAuthenticationService

SESSION_COOKIE = "session_token"


def _service(request: Request) -> StaffAuthenticationService:
    return request.app.state.staff_auth


def extract_token(request: Request) -> str | None:
    """Return the session token from cookie or Bearer header, or None."""
    token: str | None = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_current_session(request: Request) -> StaffSession | None:
    """Return the live session for the request, or None. Never raises."""
    token = extract_token(request)
    if token is None:
        return None
    return _service(request).validate_session(token)


def get_current_session(request: Request) -> StaffSession:
    """Require a live session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(session: StaffSession = Depends(get_current_session)): ...
    """
    session = try_get_current_session(request)
    if session is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return session


def require_role(required: StaffRole) -> Callable[[Request], StaffSession]:
    """Build a dependency that requires a session with at least `required` clearance.

    Raises HTTP 401 if unauthenticated, HTTP 403 if the role is too low. The
    access decision is made by validate_access() so it lands in the audit log.

    Use as a FastAPI dependency:
        @router.post("/grading-config")
        async def route(session: StaffSession = Depends(require_role(StaffRole.SENIOR_INSTRUCTOR))): ...
    """

    def dependency(request: Request) -> StaffSession:
        session = get_current_session(request)
        if not _service(request).validate_access(session.token, required):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"{required} access required."},
            )
        return session

    return dependency
