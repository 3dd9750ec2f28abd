"""
api/main.py -- FastAPI application entry point for Reviewdesk.

Exposes the account, invite and submission services over HTTP and the
role channels over WebSocket.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (engine, stores, services, channel hub, background
loops) and shutdown (cancel loops, dispose engine) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.engine import Engine

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.events import router as events_router
from api.routes.v1.invites import router as invites_router
from api.routes.v1.submissions import router as submissions_router
from api.routes.v1.users import router as users_router
from auth.credentials import CredentialStore
from auth.guard import AccessGuard
from auth.service import AccountService
from auth.sessions import SessionManager
from auth.store import AccountStore
from core.config import get_settings
from core.db import create_db_engine
from invites.lifecycle import InviteLifecycle
from invites.store import InviteStore
from invites.sweeper import invite_sweep_loop, session_reap_loop
from notify.mailer import Mailer
from notify.publisher import ChannelHub
from submissions.store import SubmissionStore
from submissions.workflow import SubmissionWorkflow

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("reviewdesk.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def init_services(app: FastAPI, engine: Engine, mailer: Optional[Mailer] = None) -> None:
    """Build every store and service on one engine and attach them to app.state.

    One engine for all stores: redeeming an invite touches the invites and
    accounts tables in the same database. The ChannelHub is the Publisher
    handed to every service that emits events.
    """
    mailer = mailer or Mailer(_settings)
    hub = ChannelHub()

    account_store = AccountStore(engine, session_retention_days=_settings.session_retention_days)
    invite_store = InviteStore(engine)
    submission_store = SubmissionStore(engine)

    credentials = CredentialStore(account_store)
    sessions = SessionManager(account_store)

    app.state.engine = engine
    app.state.hub = hub
    app.state.account_store = account_store
    app.state.invite_store = invite_store
    app.state.sessions = sessions
    app.state.guard = AccessGuard(sessions)
    app.state.accounts = AccountService(
        account_store,
        credentials,
        sessions,
        approval_counts=submission_store.count_approvals_by_account,
    )
    app.state.invites = InviteLifecycle(invite_store, account_store, credentials, sessions, mailer, hub)
    app.state.submissions = SubmissionWorkflow(submission_store, account_store, mailer, hub)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine and services -- every route depends on them.
      2. Hub binding -- publish() from worker threads needs the running loop.
      3. Background loops last -- they reference the stores built in step 1.
    """
    logger.info("Reviewdesk API starting up")
    engine = create_db_engine()
    init_services(app, engine)
    app.state.hub.bind(asyncio.get_running_loop())
    logger.info(
        "Services initialized (owner_seeded=%s)",
        app.state.account_store.has_role("superAdmin"),
    )
    app.state.background_tasks = [
        asyncio.create_task(invite_sweep_loop(app.state.invite_store, _settings.invite_sweep_hour_utc)),
        asyncio.create_task(session_reap_loop(app.state.sessions, _settings.session_reap_interval_seconds)),
    ]

    yield

    for task in app.state.background_tasks:
        task.cancel()
    engine.dispose()
    logger.info("Reviewdesk API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Reviewdesk API",
    description="Staff authentication, role invitations, and project submission review.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Device-Id"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler; latency is measured around call_next.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(invites_router, prefix="/api/v1", tags=["Invites"])
app.include_router(submissions_router, prefix="/api/v1", tags=["Submissions"])
app.include_router(events_router, prefix="/api/v1", tags=["Events"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(exclude_none=True),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump()
    (a dict). When detail is already a structured dict, use it directly as the
    error field rather than stringifying it. Headers (Retry-After) are kept.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal",
                message="An unexpected error occurred.",
            )
        ).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and a database round-trip check."""
    database = "ok"
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: database unreachable")
        database = "error"
    return HealthResponse(version=API_VERSION, components={"app": "ok", "database": database})
