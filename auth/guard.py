"""
auth/guard.py -- The one place that decides whether an account may act.

Capabilities name what a caller is trying to do; each maps to the set of
roles allowed to do it. Routes and services ask require() instead of
comparing role strings themselves.

authorize() runs the two checks in order and keeps their outcomes apart:
  - no usable session   -> Unauthenticated (HTTP 401)
  - session, wrong role -> Forbidden       (HTTP 403)
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from auth.models import Account
from auth.sessions import SessionManager
from core.errors import Forbidden
from core.roles import HIGHEST_ROLE, STAFF_ROLES, Role


class Capability(str, Enum):
    # Reading the dashboard, handling invites and submissions.
    ADMIN_TIER = "admin_tier"
    # Role changes and account deletion.
    SUPER_ADMIN = "super_admin"


_ALLOWED: dict[Capability, frozenset[Role]] = {
    Capability.ADMIN_TIER: STAFF_ROLES,
    Capability.SUPER_ADMIN: frozenset({HIGHEST_ROLE}),
}


def has_capability(account: Account, capability: Capability) -> bool:
    return Role.parse(account.role) in _ALLOWED[capability]


def require(account: Account, capability: Capability) -> Account:
    """Raise Forbidden unless account's role grants capability."""
    if not has_capability(account, capability):
        if capability is Capability.SUPER_ADMIN:
            raise Forbidden("Super admin access required.", code="super_admin_required")
        raise Forbidden("Admin access required.", code="admin_required")
    return account


class AccessGuard:
    def __init__(self, sessions: SessionManager) -> None:
        self.sessions = sessions

    def authorize(self, token: Optional[str], capability: Capability) -> Account:
        account = self.sessions.validate(token)
        return require(account, capability)
