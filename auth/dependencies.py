"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token carriers are checked in priority order:
  1. JWT cookie ("access_token") -- set by the login and register routes.
  2. Authorization: Bearer <token> header -- API clients.

Both converge on AccessGuard.authorize(), which resolves the session and then
checks the capability. The two failure kinds stay distinct on the wire:
  Unauthenticated -> HTTP 401, code "unauthorized"
  Forbidden       -> HTTP 403, code "forbidden" (or a finer code from the guard)

get_current_account() only requires a live session.
require_admin_tier() and require_super_admin() add the capability check.

Layer rule: auth/dependencies.py may import from fastapi (for
Request/HTTPException) because this module is part of the FastAPI dependency
injection system.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from auth.guard import AccessGuard, Capability
from auth.models import Account
from auth.tokens import COOKIE_NAME
from core.errors import Forbidden, Unauthenticated


def extract_token(request: Request) -> Optional[str]:
    """Return the session token from the cookie or Bearer header, or None."""
    token: Optional[str] = request.cookies.get(COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def _authorize(request: Request, capability: Optional[Capability]) -> Account:
    guard: AccessGuard = request.app.state.guard
    token = extract_token(request)
    try:
        if capability is None:
            return guard.sessions.validate(token)
        return guard.authorize(token, capability)
    except Unauthenticated:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    except Forbidden as exc:
        raise HTTPException(
            status_code=403,
            detail={"code": exc.code, "message": exc.message},
        )


def get_current_account(request: Request) -> Account:
    """Require a live session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.post("/auth/logout")
        def route(account: Account = Depends(get_current_account)): ...
    """
    return _authorize(request, None)


def require_admin_tier(request: Request) -> Account:
    """Require a moderator, admin, or superAdmin session. 401 if none, 403 if the role falls short."""
    return _authorize(request, Capability.ADMIN_TIER)


def require_super_admin(request: Request) -> Account:
    """Require a superAdmin session. 401 if none, 403 for any other role."""
    return _authorize(request, Capability.SUPER_ADMIN)
