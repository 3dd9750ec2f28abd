"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only own the domain shape.

Layer rule: no imports from api/, invites/, submissions/, or notify/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class SessionRecord:
    """One signed-in device.

    session_id is the `jti` claim of the token handed to that device, so a
    token can only be honoured while its record exists. expires_at is the
    token's own absolute expiry; the retention window (30 days by default) is
    applied on top of it by the session manager.
    """

    session_id: str
    account_id: int
    created_at: datetime
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_id: Optional[str] = None
    id: Optional[int] = None


@dataclass
class Account:
    """A staff identity.

    email is stored lowercase and is globally unique. role holds the raw
    stored value; core.roles.Role.parse() turns it into a privilege level and
    returns None for anything outside the closed set.

    is_protected marks the seeded owner account, which cannot be deleted.
    sessions is populated by AccountStore with live records only.
    """

    name: str
    email: str
    role: str  # "moderator" | "admin" | "superAdmin"
    id: Optional[int] = None
    hashed_password: Optional[str] = None
    is_verified: bool = False
    is_protected: bool = False
    login_attempts: int = 0
    lock_until: Optional[datetime] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    sessions: list[SessionRecord] = field(default_factory=list)


@dataclass
class RequestContext:
    """Transport details a login or registration arrives with."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_id: Optional[str] = None


@dataclass
class AuthSession:
    """What a successful login or invite redemption hands back."""

    token: str
    account: Account
    expires_in: int


@dataclass
class AccountListing:
    """One row of the staff directory: the account plus how many submissions it approved."""

    account: Account
    approvals: int = 0


@dataclass
class AccountSummary:
    """Name and email of an account another record points at (creator, approver, redeemer)."""

    id: int
    name: str
    email: str
    role: str = ""

    @classmethod
    def of(cls, account: Account) -> "AccountSummary":
        return cls(id=account.id, name=account.name, email=account.email, role=account.role)
