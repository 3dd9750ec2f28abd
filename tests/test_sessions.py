"""
tests/test_sessions.py -- Session issue, validation, revocation and reaping.

A token is only as good as its session record: these tests remove or age
the record and check that the otherwise valid JWT stops working.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from jose import jwt

from auth.guard import AccessGuard, Capability, has_capability
from auth.models import RequestContext
from auth.sessions import SessionManager
from auth.store import AccountStore
from auth.tokens import create_access_token, new_session_id
from core.db import to_iso, utcnow
from core.errors import Forbidden, Unauthenticated


def test_issue_then_validate(sessions, admin):
    token = sessions.issue(admin, RequestContext(ip_address="10.0.0.1", device_id="laptop"))
    account = sessions.validate(token)
    assert account.id == admin.id
    assert len(account.sessions) == 1
    assert account.sessions[0].ip_address == "10.0.0.1"
    assert account.sessions[0].device_id == "laptop"


@pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
def test_garbage_tokens_are_unauthenticated(sessions, token):
    with pytest.raises(Unauthenticated):
        sessions.validate(token)


def test_token_without_session_record_is_rejected(sessions, admin):
    token = create_access_token(
        user_id=admin.id,
        email=admin.email,
        role=admin.role,
        session_id=new_session_id(),
        issued_at=utcnow(),
        expire_seconds=3600,
    )
    with pytest.raises(Unauthenticated):
        sessions.validate(token)


def test_expired_tampered_and_revoked_tokens_fail_alike(sessions, admin):
    live = sessions.issue(admin)
    session_id = sessions.session_id_of(live)

    revoked = sessions.issue(admin)
    sessions.revoke(admin, revoked)
    with pytest.raises(Unauthenticated) as revoked_exc:
        sessions.validate(revoked)

    expired = create_access_token(
        user_id=admin.id,
        email=admin.email,
        role=admin.role,
        session_id=session_id,
        issued_at=utcnow() - timedelta(days=2),
        expire_seconds=60,
    )
    issued_at = utcnow()
    forged = jwt.encode(
        {
            "sub": admin.email,
            "user_id": admin.id,
            "role": admin.role,
            "jti": session_id,
            "iat": issued_at,
            "exp": issued_at + timedelta(hours=1),
        },
        "x" * 40,
        algorithm="HS256",
    )

    for token in (expired, forged):
        with pytest.raises(Unauthenticated) as exc:
            sessions.validate(token)
        assert exc.value.message == revoked_exc.value.message
        assert exc.value.code == revoked_exc.value.code == "invalid_session"

    # The session those tokens point at is still live.
    assert sessions.validate(live).id == admin.id


def test_revoke_ends_only_that_device(sessions, admin):
    phone = sessions.issue(admin, RequestContext(device_id="phone"))
    laptop = sessions.issue(admin, RequestContext(device_id="laptop"))

    assert sessions.revoke(admin, phone) is True

    with pytest.raises(Unauthenticated):
        sessions.validate(phone)
    assert sessions.validate(laptop).id == admin.id


def test_deleted_account_invalidates_token(sessions, account_store, admin):
    token = sessions.issue(admin)
    account_store.delete_account(admin.id)
    with pytest.raises(Unauthenticated):
        sessions.validate(token)


def test_unknown_stored_role_is_rejected(sessions, account_store, admin):
    token = sessions.issue(admin)
    account_store.update_account(admin.id, role="guest")
    with pytest.raises(Unauthenticated):
        sessions.validate(token)


def test_oldest_sessions_evicted_beyond_limit(account_store, admin):
    manager = SessionManager(account_store, expire_seconds=3600, max_sessions=3)
    tokens = [manager.issue(admin) for _ in range(4)]

    with pytest.raises(Unauthenticated):
        manager.validate(tokens[0])
    for token in tokens[1:]:
        assert manager.validate(token).id == admin.id


def test_session_past_retention_is_rejected_and_reaped(engine, admin):
    store = AccountStore(engine, session_retention_days=30)
    manager = SessionManager(store, expire_seconds=3600)
    token = manager.issue(admin)
    session_id = manager.session_id_of(token)

    # Age the record past the retention window.
    with engine.begin() as conn:
        conn.exec_driver_sql(
            "UPDATE sessions SET created_at = ? WHERE session_id = ?",
            (to_iso(utcnow() - timedelta(days=31)), session_id),
        )

    with pytest.raises(Unauthenticated):
        manager.validate(token)
    assert manager.reap_expired() == 1
    assert manager.reap_expired() == 0


def test_reap_keeps_live_sessions(sessions, admin):
    token = sessions.issue(admin)
    assert sessions.reap_expired() == 0
    assert sessions.validate(token).id == admin.id


class TestGuard:
    def test_every_staff_role_has_admin_tier(self, owner, admin, moderator):
        for account in (owner, admin, moderator):
            assert has_capability(account, Capability.ADMIN_TIER)

    def test_only_highest_role_has_super_admin(self, owner, admin, moderator):
        assert has_capability(owner, Capability.SUPER_ADMIN)
        assert not has_capability(admin, Capability.SUPER_ADMIN)
        assert not has_capability(moderator, Capability.SUPER_ADMIN)

    def test_authorize_keeps_401_and_403_apart(self, sessions, admin):
        guard = AccessGuard(sessions)
        with pytest.raises(Unauthenticated):
            guard.authorize(None, Capability.ADMIN_TIER)
        token = sessions.issue(admin)
        assert guard.authorize(token, Capability.ADMIN_TIER).id == admin.id
        with pytest.raises(Forbidden) as exc:
            guard.authorize(token, Capability.SUPER_ADMIN)
        assert exc.value.code == "super_admin_required"

    def test_role_change_applies_to_existing_session(self, sessions, account_store, make_account):
        account = make_account(account_store, "rising@example.com", role="moderator")
        guard = AccessGuard(sessions)
        token = sessions.issue(account)
        with pytest.raises(Forbidden):
            guard.authorize(token, Capability.SUPER_ADMIN)
        account_store.update_account(account.id, role="superAdmin")
        assert guard.authorize(token, Capability.SUPER_ADMIN).id == account.id
