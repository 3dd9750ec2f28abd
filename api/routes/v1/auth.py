"""
api/routes/v1/auth.py -- Login, invite registration, logout, and identity.

Routes:
  POST /api/v1/auth/login     -- password login; sets JWT cookie
  POST /api/v1/auth/register  -- redeem an invite into a new account; sets JWT cookie
  POST /api/v1/auth/logout    -- ends the presenting session only; clears cookie
  GET  /api/v1/auth/me        -- current account (admin tier)

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute),
  on top of the per-account lockout in auth/credentials.py.
  Unknown email and wrong password return the same 401 "bad_credentials".
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AccountResponse, AuthResponse, LoginRequest, RegisterRequest
from api.results import unwrap
from auth.dependencies import extract_token, get_current_account, require_admin_tier
from auth.models import Account, AuthSession, RequestContext
from auth.service import AccountService
from auth.tokens import COOKIE_NAME, set_auth_cookie
from core.config import get_settings
from invites.lifecycle import InviteLifecycle

# Auth policy:
# - POST /api/v1/auth/login:     public, rate-limited
# - POST /api/v1/auth/register:  public -- the invite code is the credential
# - POST /api/v1/auth/logout:    requires a live session (get_current_account)
# - GET  /api/v1/auth/me:        requires admin tier (require_admin_tier)
router = APIRouter()

_settings = get_settings()


def request_context(request: Request) -> RequestContext:
    """Transport details recorded on the session record."""
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
        device_id=request.headers.get("X-Device-Id"),
    )


def _session_response(session: AuthSession, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            access_token=session.token,
            expires_in=session.expires_in,
            account=AccountResponse.from_domain(session.account),
        ).model_dump(),
    )
    set_auth_cookie(resp, session.token, session.expires_in)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; open a session for this device.

    A locked account answers 429 with Retry-After set to the remaining
    lockout in seconds, whatever password was sent.
    """
    accounts: AccountService = request.app.state.accounts
    session = unwrap(accounts.authenticate(body.email, body.password, request_context(request)))
    return _session_response(session)


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Redeem an invite code: create the account with the invited role and sign it in."""
    invites: InviteLifecycle = request.app.state.invites
    session = unwrap(
        invites.redeem(body.invite_code, body.email, body.password, body.name, request_context(request))
    )
    return _session_response(session, status_code=201)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout")
def logout(request: Request, account: Account = Depends(get_current_account)) -> JSONResponse:
    """End this device's session. Other devices stay signed in."""
    accounts: AccountService = request.app.state.accounts
    unwrap(accounts.end_session(account, extract_token(request)))
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie(COOKIE_NAME)
    return resp


@router.get("/auth/me", response_model=AccountResponse)
def me(request: Request, account: Account = Depends(require_admin_tier)) -> AccountResponse:
    """Return the currently authenticated account."""
    accounts: AccountService = request.app.state.accounts
    return AccountResponse.from_domain(unwrap(accounts.me(account)))

