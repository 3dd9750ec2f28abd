"""
API request and response models for the Reviewdesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
invites/models.py and submissions/models.py, which own the internal domain
representation. Route handlers map between the two with the from_domain()
constructors below.

Request models only bound sizes. Business validation (email syntax, password
length, handle formats) happens in the services so every caller gets the
same field-level errors, and the route layer reports them as 400.

Separation of concerns: domain models = domain truth; api/ models = API contract.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account, AccountListing, AccountSummary
from core.db import to_iso, utcnow
from invites.models import Invite, is_expired
from submissions.models import StatusChange, Submission


def _iso(value: Optional[datetime]) -> Optional[str]:
    return to_iso(value) if value else None


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[dict[str, str]] = None
    retry_after: Optional[int] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Accounts and auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255)
    password: str = Field(max_length=128)


class RegisterRequest(BaseModel):
    """Body for POST /api/v1/auth/register -- redeem an invite into an account."""

    model_config = ConfigDict(str_strip_whitespace=True)

    invite_code: str = Field(default="", max_length=64)
    email: str = Field(max_length=255)
    password: str = Field(max_length=128)
    name: str = Field(default="", max_length=200)


class AccountRef(BaseModel):
    """Who created, approved, or redeemed something."""

    id: int
    name: str
    email: str
    role: str = ""

    @classmethod
    def from_domain(cls, summary: Optional[AccountSummary]) -> Optional["AccountRef"]:
        if summary is None:
            return None
        return cls(id=summary.id, name=summary.name, email=summary.email, role=summary.role)


class AccountResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    is_verified: bool
    is_protected: bool
    last_login: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            role=account.role,
            is_verified=account.is_verified,
            is_protected=account.is_protected,
            last_login=_iso(account.last_login),
            created_at=_iso(account.created_at),
        )


class AccountListRow(AccountResponse):
    """One row of GET /api/v1/users: the account plus its approval count."""

    approvals: int = 0

    @classmethod
    def from_listing(cls, listing: AccountListing) -> "AccountListRow":
        base = AccountResponse.from_domain(listing.account).model_dump()
        return cls(**base, approvals=listing.approvals)


class AuthResponse(BaseModel):
    """Returned by login and register. The token is also set as an httpOnly cookie."""

    access_token: str
    token_type: str = "bearer"  # noqa: S105 -- OAuth token type, not a password
    expires_in: int
    account: AccountResponse


class RoleUpdateRequest(BaseModel):
    role: str = Field(max_length=30)


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------


class InviteCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255)
    role: str = Field(max_length=30)


class InviteResponse(BaseModel):
    id: int
    code: str
    email: str
    role: str
    status: str
    is_expired: bool
    expires_at: str
    created_at: Optional[str] = None
    used_at: Optional[str] = None
    created_by: int
    used_by: Optional[int] = None
    creator: Optional[AccountRef] = None
    redeemer: Optional[AccountRef] = None

    @classmethod
    def from_domain(cls, invite: Invite) -> "InviteResponse":
        return cls(
            id=invite.id,
            code=invite.code,
            email=invite.email,
            role=invite.role,
            status=invite.status,
            is_expired=is_expired(invite.status, invite.expires_at, utcnow()),
            expires_at=to_iso(invite.expires_at),
            created_at=_iso(invite.created_at),
            used_at=_iso(invite.used_at),
            created_by=invite.created_by,
            used_by=invite.used_by,
            creator=AccountRef.from_domain(invite.creator),
            redeemer=AccountRef.from_domain(invite.redeemer),
        )


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


class SocialsPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    x: str = Field(default="", max_length=64)
    telegram: str = Field(default="", max_length=64)
    discord: str = Field(default="", max_length=255)
    founder_tg: Optional[str] = Field(default=None, max_length=64)


class SubmissionCreateRequest(BaseModel):
    """Body for the public POST /api/v1/submissions.

    Every field defaults to empty so that missing values come back as the
    same field-level 400 errors as malformed ones.
    """

    project_name: str = Field(default="", max_length=500)
    description: str = Field(default="", max_length=5000)
    email: Optional[str] = Field(default=None, max_length=255)
    socials: SocialsPayload = Field(default_factory=SocialsPayload)


class SubmissionCreatedResponse(BaseModel):
    id: int
    code: str
    submitted_at: str


class StatusUpdateRequest(BaseModel):
    status: str = Field(max_length=30)


class StatusChangeResponse(BaseModel):
    status: str
    changed_by: int
    changed_at: str
    changer: Optional[AccountRef] = None

    @classmethod
    def from_domain(cls, change: StatusChange) -> "StatusChangeResponse":
        return cls(
            status=change.status,
            changed_by=change.changed_by,
            changed_at=to_iso(change.changed_at),
            changer=AccountRef.from_domain(change.changer),
        )


class SubmissionResponse(BaseModel):
    id: int
    project_name: str
    description: str
    email: Optional[str] = None
    socials: SocialsPayload
    submission_code: str
    status: str
    status_locked: bool
    approved_by: Optional[int] = None
    rejected_by: Optional[int] = None
    approver: Optional[AccountRef] = None
    rejector: Optional[AccountRef] = None
    submitted_at: Optional[str] = None
    updated_at: Optional[str] = None
    history: list[StatusChangeResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, submission: Submission) -> "SubmissionResponse":
        return cls(
            id=submission.id,
            project_name=submission.project_name,
            description=submission.description,
            email=submission.email,
            socials=SocialsPayload(
                x=submission.socials.x,
                telegram=submission.socials.telegram,
                discord=submission.socials.discord,
                founder_tg=submission.socials.founder_tg,
            ),
            submission_code=submission.submission_code,
            status=submission.status,
            status_locked=submission.status_locked,
            approved_by=submission.approved_by,
            rejected_by=submission.rejected_by,
            approver=AccountRef.from_domain(submission.approver),
            rejector=AccountRef.from_domain(submission.rejector),
            submitted_at=_iso(submission.submitted_at),
            updated_at=_iso(submission.updated_at),
            history=[StatusChangeResponse.from_domain(c) for c in submission.history],
        )


class SubmissionListResponse(BaseModel):
    count: int
    data: list[SubmissionResponse]
