"""
tests/conftest.py -- Shared fixtures for Reviewdesk unit and integration tests.

This module provides:
  - make_engine(): an isolated named shared-memory SQLite engine
  - RecordingMailer / RecordingPublisher: fakes that keep what they were handed
  - store and service fixtures built on one fresh engine per test
  - test data fixtures: password, make_account, valid_submission,
    submission_payload, failing_mailer
  - api_client: TestClient over the real app with a patched lifespan and one
    seeded account per role

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any project import: get_settings() is cached
on first call, and the route modules read their rate limits at import time.
"""

from __future__ import annotations

import asyncio
import copy
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

# CRITICAL: before any project import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("SUBMISSION_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app, init_services
from auth.credentials import CredentialStore
from auth.models import Account
from auth.service import AccountService
from auth.sessions import SessionManager
from auth.store import AccountStore
from auth.tokens import hash_password
from core.db import create_db_engine
from invites.lifecycle import InviteLifecycle
from invites.store import InviteStore
from notify.mailer import Mailer
from submissions.store import SubmissionStore
from submissions.workflow import SubmissionWorkflow

PASSWORD = "correct-horse-9"

VALID_SUBMISSION: dict[str, Any] = {
    "project_name": "Lighthouse",
    "description": "A community-run relay network for sharing build artifacts between teams.",
    "email": "Founder@Example.com",
    "socials": {
        "x": "@lighthouse",
        "telegram": "lighthouse_hq",
        "discord": "lighthouse",
        "founder_tg": None,
    },
}


# ---------------------------------------------------------------------------
# Engine and fakes
# ---------------------------------------------------------------------------


def make_engine(name: str = "") -> Engine:
    """Return an engine on a fresh named shared-memory database."""
    name = name or uuid.uuid4().hex
    return create_db_engine(f"sqlite:///file:test_{name}?mode=memory&cache=shared&uri=true")


class RecordingMailer(Mailer):
    """Keeps every send() call instead of talking to SMTP.

    deliver=False makes every send report failure, like an SMTP outage.
    """

    def __init__(self, deliver: bool = True) -> None:
        super().__init__()
        self.deliver = deliver
        self.sent: list[tuple[str, list[str], str]] = []

    def send(self, template_name: str, args: Sequence[str], recipient: str) -> bool:
        self.sent.append((template_name, list(args), recipient))
        return self.deliver


@dataclass
class RecordingPublisher:
    events: list[tuple[str, str, dict]] = field(default_factory=list)

    def publish(self, topic: str, event: str, payload: dict[str, Any]) -> None:
        self.events.append((topic, event, payload))

    def names(self) -> list[str]:
        return [event for _topic, event, _payload in self.events]


def _create_account(store: AccountStore, email: str, role: str = "admin", name: str = "", **fields) -> Account:
    """Insert an account with PASSWORD and return it as loaded from the store."""
    account_id = store.create_account(
        Account(
            name=name or email.split("@")[0].title(),
            email=email,
            role=role,
            hashed_password=hash_password(PASSWORD),
            is_verified=True,
            **fields,
        )
    )
    return store.get_by_id(account_id)


# ---------------------------------------------------------------------------
# Store and service fixtures -- one fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    eng = make_engine()
    yield eng
    eng.dispose()


@pytest.fixture()
def account_store(engine: Engine) -> AccountStore:
    return AccountStore(engine)


@pytest.fixture()
def invite_store(engine: Engine) -> InviteStore:
    return InviteStore(engine)


@pytest.fixture()
def submission_store(engine: Engine) -> SubmissionStore:
    return SubmissionStore(engine)


@pytest.fixture()
def credentials(account_store: AccountStore) -> CredentialStore:
    return CredentialStore(account_store, max_attempts=5, lock_seconds=900)


@pytest.fixture()
def sessions(account_store: AccountStore) -> SessionManager:
    return SessionManager(account_store, expire_seconds=3600, max_sessions=10)


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def account_service(
    account_store: AccountStore,
    credentials: CredentialStore,
    sessions: SessionManager,
    submission_store: SubmissionStore,
) -> AccountService:
    return AccountService(
        account_store,
        credentials,
        sessions,
        approval_counts=submission_store.count_approvals_by_account,
    )


@pytest.fixture()
def lifecycle(
    invite_store: InviteStore,
    account_store: AccountStore,
    credentials: CredentialStore,
    sessions: SessionManager,
    mailer: RecordingMailer,
    publisher: RecordingPublisher,
) -> InviteLifecycle:
    return InviteLifecycle(invite_store, account_store, credentials, sessions, mailer, publisher, ttl_seconds=86400)


@pytest.fixture()
def workflow(
    submission_store: SubmissionStore,
    account_store: AccountStore,
    mailer: RecordingMailer,
    publisher: RecordingPublisher,
) -> SubmissionWorkflow:
    return SubmissionWorkflow(submission_store, account_store, mailer, publisher)


@pytest.fixture()
def owner(account_store: AccountStore) -> Account:
    return _create_account(account_store, "owner@example.com", role="superAdmin", is_protected=True)


@pytest.fixture()
def admin(account_store: AccountStore) -> Account:
    return _create_account(account_store, "admin@example.com", role="admin")


@pytest.fixture()
def moderator(account_store: AccountStore) -> Account:
    return _create_account(account_store, "mod@example.com", role="moderator")


@pytest.fixture()
def make_account() -> Callable[..., Account]:
    """Factory for extra accounts: make_account(store, email, role=..., **fields)."""
    return _create_account


@pytest.fixture()
def password() -> str:
    """The password every seeded account is created with."""
    return PASSWORD


@pytest.fixture()
def valid_submission() -> dict[str, Any]:
    return copy.deepcopy(VALID_SUBMISSION)


@pytest.fixture()
def submission_payload() -> Callable[..., dict[str, Any]]:
    """Builder for submission payloads: top-level overrides, socials merged in."""

    def build(**overrides) -> dict[str, Any]:
        data = copy.deepcopy(VALID_SUBMISSION)
        socials = overrides.pop("socials", None)
        if socials:
            data["socials"].update(socials)
        data.update(overrides)
        return data

    return build


@pytest.fixture()
def failing_mailer() -> RecordingMailer:
    """A mailer whose every send reports failure, like an SMTP outage."""
    return RecordingMailer(deliver=False)


# ---------------------------------------------------------------------------
# API client -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    mailer: RecordingMailer
    accounts: dict[str, Account]
    tokens: dict[str, str]

    def headers(self, who: Optional[str]) -> dict[str, str]:
        """Bearer header for one of the seeded accounts ("owner", "admin", "moderator")."""
        if who is None:
            return {}
        return {"Authorization": f"Bearer {self.tokens[who]}"}


def _patch_lifespan(engine: Engine, mailer: Mailer):
    """Return a lifespan that wires services onto the test engine.

    No background loops: the sweep and reap are exercised directly in
    test_sweeper.py.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_services(app, engine, mailer)
        app.state.hub.bind(asyncio.get_running_loop())
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext over the real app with an isolated database.

    Accounts for each role are seeded, and given a session, before the
    client starts. Cookies set by login/register responses stay in the
    client's jar; tests that log in through the API clear them afterwards
    so later requests are authenticated only by the headers they pass.
    """
    eng = make_engine()
    store = AccountStore(eng)
    issuer = SessionManager(store)
    accounts = {
        "owner": _create_account(store, "owner@example.com", role="superAdmin", name="Owner", is_protected=True),
        "admin": _create_account(store, "admin@example.com", role="admin", name="Admin"),
        "moderator": _create_account(store, "mod@example.com", role="moderator", name="Moderator"),
    }
    tokens = {who: issuer.issue(account) for who, account in accounts.items()}
    mailer = RecordingMailer()

    app.router.lifespan_context = _patch_lifespan(eng, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, mailer=mailer, accounts=accounts, tokens=tokens)

    eng.dispose()
