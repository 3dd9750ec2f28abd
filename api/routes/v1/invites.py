"""
api/routes/v1/invites.py -- Role invitations.

Routes:
  POST /api/v1/invites               -- invite an email to a moderator/admin role
  GET  /api/v1/invites               -- all invites, newest first
  POST /api/v1/invites/{id}/resend   -- push the deadline out 24h and mail again
  POST /api/v1/invites/{id}/revoke   -- cancel an unredeemed invite

All four require an admin-tier session. Revoke additionally requires the
caller to be the invite's creator or a superAdmin; InviteLifecycle checks
that and answers 403 otherwise.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import InviteCreateRequest, InviteResponse
from api.results import unwrap
from auth.dependencies import require_admin_tier
from auth.models import Account
from invites.lifecycle import InviteLifecycle

router = APIRouter()


def _lifecycle(request: Request) -> InviteLifecycle:
    return request.app.state.invites


@router.post("/invites", response_model=InviteResponse, status_code=201)
def create_invite(
    request: Request,
    body: InviteCreateRequest,
    account: Account = Depends(require_admin_tier),
) -> InviteResponse:
    """Create an invite in status sent and mail the code to the address."""
    return InviteResponse.from_domain(unwrap(_lifecycle(request).create(body.email, body.role, account)))


@router.get("/invites", response_model=list[InviteResponse])
def list_invites(request: Request, account: Account = Depends(require_admin_tier)) -> list[InviteResponse]:
    return [InviteResponse.from_domain(i) for i in unwrap(_lifecycle(request).list())]


@router.post("/invites/{invite_id}/resend", response_model=InviteResponse)
def resend_invite(
    request: Request,
    invite_id: int,
    account: Account = Depends(require_admin_tier),
) -> InviteResponse:
    return InviteResponse.from_domain(unwrap(_lifecycle(request).resend(invite_id)))


@router.post("/invites/{invite_id}/revoke", response_model=InviteResponse)
def revoke_invite(
    request: Request,
    invite_id: int,
    account: Account = Depends(require_admin_tier),
) -> InviteResponse:
    return InviteResponse.from_domain(unwrap(_lifecycle(request).revoke(invite_id, account)))
