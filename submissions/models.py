"""
submissions/models.py -- Submission dataclasses and the status transition table.

Pattern: Data class (pure data container). TRANSITIONS is the whole state
machine: pending may become approved or rejected, and both of those are
terminal. Reaching a terminal status locks the record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from auth.models import AccountSummary


class SubmissionStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.pending: frozenset({SubmissionStatus.approved, SubmissionStatus.rejected}),
    SubmissionStatus.approved: frozenset(),
    SubmissionStatus.rejected: frozenset(),
}

TERMINAL_STATUSES: frozenset[SubmissionStatus] = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


@dataclass
class Socials:
    x: str
    telegram: str
    discord: str
    founder_tg: Optional[str] = None


@dataclass
class StatusChange:
    """One audit entry. Written once, never updated."""

    status: str
    changed_by: int
    changed_at: datetime
    id: Optional[int] = None
    changer: Optional[AccountSummary] = None


@dataclass
class Submission:
    project_name: str
    description: str
    socials: Socials
    email: Optional[str] = None
    submission_code: str = ""
    status: str = SubmissionStatus.pending.value
    status_locked: bool = False
    approved_by: Optional[int] = None
    rejected_by: Optional[int] = None
    id: Optional[int] = None
    submitted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    history: list[StatusChange] = field(default_factory=list)
    approver: Optional[AccountSummary] = None
    rejector: Optional[AccountSummary] = None
