"""
api/routes/v1/users.py -- Staff directory and account administration.

Routes:
  GET    /api/v1/users             -- all accounts with approval counts (admin tier)
  PATCH  /api/v1/users/{id}/role   -- change an account's role (superAdmin)
  DELETE /api/v1/users/{id}        -- delete an account and its sessions (superAdmin)

The protected owner account cannot be deleted (403) and nobody can delete
themselves (400). Both rules live in AccountService.delete_account().
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import AccountListRow, AccountResponse, RoleUpdateRequest
from api.results import unwrap
from auth.dependencies import require_admin_tier, require_super_admin
from auth.models import Account
from auth.service import AccountService

router = APIRouter()


@router.get("/users", response_model=list[AccountListRow])
def list_users(request: Request, account: Account = Depends(require_admin_tier)) -> list[AccountListRow]:
    """Return every staff account, oldest first, with how many submissions each approved."""
    accounts: AccountService = request.app.state.accounts
    return [AccountListRow.from_listing(row) for row in unwrap(accounts.list_accounts())]


@router.patch("/users/{account_id}/role", response_model=AccountResponse)
def change_role(
    request: Request,
    account_id: int,
    body: RoleUpdateRequest,
    account: Account = Depends(require_super_admin),
) -> AccountResponse:
    """Set an account's role. SuperAdmin only; an unknown role is a 400."""
    accounts: AccountService = request.app.state.accounts
    return AccountResponse.from_domain(unwrap(accounts.change_role(account_id, body.role)))


@router.delete("/users/{account_id}", status_code=204)
def delete_user(
    request: Request,
    account_id: int,
    account: Account = Depends(require_super_admin),
) -> Response:
    """Delete an account. SuperAdmin only."""
    accounts: AccountService = request.app.state.accounts
    unwrap(accounts.delete_account(account_id, account))
    return Response(status_code=204)
