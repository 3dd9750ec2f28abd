"""
invites/models.py -- Invite dataclass, status set, and the expiry predicate.

Pattern: Data class (pure data container). The only logic here is
is_expired(), a pure function of (status, expires_at, now). Nothing stores
or caches an "expired" flag; every decision point (create, resend, redeem,
sweep) calls the predicate with its own clock reading.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from auth.models import AccountSummary


class InviteStatus(str, Enum):
    pending = "pending"
    sent = "sent"
    accepted = "accepted"
    expired = "expired"
    revoked = "revoked"


# Non-terminal statuses. At most one invite per email may sit in one of these.
ACTIVE_STATUSES: frozenset[InviteStatus] = frozenset({InviteStatus.pending, InviteStatus.sent})


def is_expired(status: str, expires_at: datetime, now: datetime) -> bool:
    """True iff the invite is still nominally active but its deadline has passed."""
    return status in {s.value for s in ACTIVE_STATUSES} and expires_at <= now


@dataclass
class Invite:
    code: str
    email: str  # always lowercase
    role: str  # "moderator" | "admin"
    created_by: int
    expires_at: datetime
    status: str = InviteStatus.pending.value
    id: Optional[int] = None
    used_at: Optional[datetime] = None
    used_by: Optional[int] = None
    created_at: Optional[datetime] = None
    # Resolved by InviteLifecycle.list(); not stored.
    creator: Optional[AccountSummary] = None
    redeemer: Optional[AccountSummary] = None
