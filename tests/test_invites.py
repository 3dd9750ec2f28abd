"""
tests/test_invites.py -- Invite lifecycle: create, resend, redeem, revoke, list.

Coverage:
  - End-to-end: create -> mail -> redeem -> account with the invited role, signed in
  - At most one active invite per email, enforced by the store as well;
    an overdue one is expired on the spot
  - Redeem is refused for a wrong email, an overdue invite, or a second use
  - Resend extends a live invite and refuses terminal ones
  - Revoke is limited to the creator or a superAdmin
  - A failed mail send never rolls the invite back
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from core.db import to_iso, utcnow
from core.errors import ErrorKind
from invites.lifecycle import InviteLifecycle, invite_event_payload, new_invite_code
from invites.models import Invite, InviteStatus


def _make_overdue(engine, invite_id: int) -> None:
    with engine.begin() as conn:
        conn.exec_driver_sql(
            "UPDATE invites SET expires_at = ? WHERE id = ?",
            (to_iso(utcnow() - timedelta(minutes=1)), invite_id),
        )


def _create(lifecycle, creator, email="newbie@example.com", role="moderator"):
    result = lifecycle.create(email, role, creator)
    assert result.success, result.message
    return result.data


class TestCreate:
    def test_create_sends_mail_and_publishes(self, lifecycle, mailer, publisher, admin):
        invite = _create(lifecycle, admin, email="NewBie@Example.com")
        assert invite.status == InviteStatus.sent.value
        assert invite.email == "newbie@example.com"
        assert len(invite.code) == 32
        assert invite.creator.id == admin.id

        template, args, recipient = mailer.sent[-1]
        assert template == "admin_invite"
        assert recipient == "newbie@example.com"
        assert args[0] == invite.code

        assert "invite.created" in publisher.names()
        assert all("code" not in payload for _t, _e, payload in publisher.events)

    def test_expires_in_twenty_four_hours(self, lifecycle, admin):
        invite = _create(lifecycle, admin)
        remaining = invite.expires_at - utcnow()
        assert timedelta(hours=23, minutes=59) < remaining <= timedelta(hours=24)

    def test_bad_email_and_role_reported_together(self, lifecycle, admin):
        result = lifecycle.create("not-an-email", "owner", admin)
        assert result.error_kind is ErrorKind.validation_error
        assert set(result.fields) == {"email", "role"}

    def test_highest_role_cannot_be_invited(self, lifecycle, owner):
        result = lifecycle.create("boss@example.com", "superAdmin", owner)
        assert result.error_kind is ErrorKind.validation_error
        assert "role" in result.fields

    def test_existing_account_conflicts(self, lifecycle, admin, moderator):
        result = lifecycle.create(moderator.email, "admin", admin)
        assert result.error_kind is ErrorKind.conflict
        assert result.code == "duplicate_account"

    def test_second_active_invite_conflicts(self, lifecycle, admin):
        _create(lifecycle, admin)
        result = lifecycle.create("newbie@example.com", "admin", admin)
        assert result.error_kind is ErrorKind.conflict
        assert result.code == "duplicate_invite"

    def test_store_allows_one_active_invite_per_email(self, invite_store, admin):
        def row(status: str, email: str = "newbie@example.com") -> Invite:
            return Invite(
                code=new_invite_code(),
                email=email,
                role="moderator",
                created_by=admin.id,
                expires_at=utcnow() + timedelta(days=1),
                status=status,
            )

        invite_store.create_invite(row(InviteStatus.sent.value))
        with pytest.raises(IntegrityError):
            invite_store.create_invite(row(InviteStatus.pending.value, email="NewBie@Example.com"))
        with pytest.raises(IntegrityError):
            invite_store.create_invite(row(InviteStatus.sent.value))

        # Finished invites do not hold the email.
        invite_store.create_invite(row(InviteStatus.revoked.value))
        invite_store.create_invite(row(InviteStatus.accepted.value))

    def test_concurrent_create_surfaces_conflict(self, lifecycle, invite_store, mailer, admin, monkeypatch):
        _create(lifecycle, admin)

        # The first lookup misses the active invite, as if a concurrent create
        # committed between the check and the insert.
        real_lookup = invite_store.find_active_by_email
        calls: list[str] = []

        def stale_then_real(email: str):
            calls.append(email)
            return None if len(calls) == 1 else real_lookup(email)

        monkeypatch.setattr(invite_store, "find_active_by_email", stale_then_real)
        result = lifecycle.create("newbie@example.com", "admin", admin)

        assert result.error_kind is ErrorKind.conflict
        assert result.code == "duplicate_invite"
        assert len(calls) == 2
        assert len(mailer.sent) == 1
        assert [i.email for i in invite_store.list_invites()] == ["newbie@example.com"]

    def test_overdue_invite_is_expired_and_replaced(self, lifecycle, invite_store, engine, admin):
        first = _create(lifecycle, admin)
        _make_overdue(engine, first.id)

        second = _create(lifecycle, admin)
        assert second.id != first.id
        assert invite_store.get_by_id(first.id).status == InviteStatus.expired.value

    def test_mail_failure_keeps_invite(self, invite_store, account_store, credentials, sessions, admin, failing_mailer):
        lifecycle = InviteLifecycle(invite_store, account_store, credentials, sessions, failing_mailer)
        result = lifecycle.create("newbie@example.com", "moderator", admin)
        assert result.success
        assert invite_store.get_by_id(result.data.id).status == InviteStatus.sent.value
        assert len(failing_mailer.sent) == 1


class TestRedeem:
    def test_full_invite_to_login_flow(self, lifecycle, account_service, account_store, publisher, admin, password):
        invite = _create(lifecycle, admin, role="admin")

        result = lifecycle.redeem(invite.code, "newbie@example.com", password, "New Bie")
        assert result.success, result.fields
        session = result.data
        assert session.account.role == "admin"
        assert session.account.is_verified is True
        assert session.token

        stored = lifecycle.invites.get_by_id(invite.id)
        assert stored.status == InviteStatus.accepted.value
        assert stored.used_by == session.account.id
        assert stored.used_at is not None
        assert "invite.accepted" in publisher.names()

        login = account_service.authenticate("newbie@example.com", password)
        assert login.success
        assert login.data.account.id == session.account.id

    def test_code_works_only_once(self, lifecycle, admin, password):
        invite = _create(lifecycle, admin)
        assert lifecycle.redeem(invite.code, "newbie@example.com", password, "New Bie").success
        again = lifecycle.redeem(invite.code, "newbie@example.com", password, "New Bie")
        assert again.error_kind is ErrorKind.invite_expired_or_invalid

    def test_wrong_email_is_refused(self, lifecycle, admin, password):
        invite = _create(lifecycle, admin)
        result = lifecycle.redeem(invite.code, "someone-else@example.com", password, "New Bie")
        assert result.error_kind is ErrorKind.invite_expired_or_invalid
        assert lifecycle.invites.get_by_id(invite.id).status == InviteStatus.sent.value

    def test_overdue_invite_is_refused_before_sweep(self, lifecycle, engine, account_store, admin, password):
        invite = _create(lifecycle, admin)
        _make_overdue(engine, invite.id)
        result = lifecycle.redeem(invite.code, "newbie@example.com", password, "New Bie")
        assert result.error_kind is ErrorKind.invite_expired_or_invalid
        assert account_store.get_by_email("newbie@example.com") is None

    def test_revoked_invite_is_refused(self, lifecycle, admin, password):
        invite = _create(lifecycle, admin)
        assert lifecycle.revoke(invite.id, admin).success
        result = lifecycle.redeem(invite.code, "newbie@example.com", password, "New Bie")
        assert result.error_kind is ErrorKind.invite_expired_or_invalid

    def test_field_errors(self, lifecycle):
        result = lifecycle.redeem("", "nope", "short", "x")
        assert result.error_kind is ErrorKind.validation_error
        assert set(result.fields) == {"invite_code", "email", "password", "name"}

    def test_account_created_meanwhile_releases_claim(self, lifecycle, account_store, admin, password, make_account):
        invite = _create(lifecycle, admin)
        make_account(account_store, "newbie@example.com", role="moderator")

        result = lifecycle.redeem(invite.code, "newbie@example.com", password, "New Bie")
        assert result.error_kind is ErrorKind.conflict
        assert result.code == "duplicate_account"
        assert lifecycle.invites.get_by_id(invite.id).status == InviteStatus.sent.value


class TestResend:
    def test_resend_pushes_deadline_and_mails_again(self, lifecycle, engine, mailer, admin):
        invite = _create(lifecycle, admin)
        with engine.begin() as conn:
            conn.exec_driver_sql(
                "UPDATE invites SET expires_at = ? WHERE id = ?",
                (to_iso(utcnow() + timedelta(hours=1)), invite.id),
            )

        result = lifecycle.resend(invite.id)
        assert result.success
        assert result.data.expires_at - utcnow() > timedelta(hours=23)
        assert [t for t, _a, _r in mailer.sent] == ["admin_invite", "admin_invite"]

    def test_resend_accepted(self, lifecycle, admin, password):
        invite = _create(lifecycle, admin)
        lifecycle.redeem(invite.code, "newbie@example.com", password, "New Bie")
        result = lifecycle.resend(invite.id)
        assert result.error_kind is ErrorKind.invalid_transition
        assert result.code == "already_accepted"

    def test_resend_overdue(self, lifecycle, engine, invite_store, admin):
        invite = _create(lifecycle, admin)
        _make_overdue(engine, invite.id)
        result = lifecycle.resend(invite.id)
        assert result.error_kind is ErrorKind.invite_expired_or_invalid
        assert result.code == "already_expired"
        assert invite_store.get_by_id(invite.id).status == InviteStatus.expired.value

    def test_resend_revoked(self, lifecycle, admin):
        invite = _create(lifecycle, admin)
        lifecycle.revoke(invite.id, admin)
        result = lifecycle.resend(invite.id)
        assert result.error_kind is ErrorKind.invalid_transition
        assert result.code == "invite_revoked"

    def test_resend_missing(self, lifecycle):
        assert lifecycle.resend(9999).error_kind is ErrorKind.not_found


class TestRevoke:
    def test_creator_can_revoke(self, lifecycle, publisher, admin):
        invite = _create(lifecycle, admin)
        result = lifecycle.revoke(invite.id, admin)
        assert result.success
        assert result.data.status == InviteStatus.revoked.value
        assert "invite.revoked" in publisher.names()

    def test_super_admin_can_revoke_anyones(self, lifecycle, admin, owner):
        invite = _create(lifecycle, admin)
        assert lifecycle.revoke(invite.id, owner).success

    def test_other_admin_cannot_revoke(self, lifecycle, account_store, admin, make_account):
        invite = _create(lifecycle, admin)
        other = make_account(account_store, "other-admin@example.com", role="admin")
        result = lifecycle.revoke(invite.id, other)
        assert result.error_kind is ErrorKind.forbidden
        assert result.code == "not_invite_owner"

    def test_accepted_invite_cannot_be_revoked(self, lifecycle, admin, password):
        invite = _create(lifecycle, admin)
        lifecycle.redeem(invite.code, "newbie@example.com", password, "New Bie")
        result = lifecycle.revoke(invite.id, admin)
        assert result.error_kind is ErrorKind.invalid_transition
        assert result.code == "already_accepted"

    def test_overdue_invite_reports_expired(self, lifecycle, engine, admin):
        invite = _create(lifecycle, admin)
        _make_overdue(engine, invite.id)
        result = lifecycle.revoke(invite.id, admin)
        assert result.code == "already_expired"

    def test_revoking_twice(self, lifecycle, admin):
        invite = _create(lifecycle, admin)
        lifecycle.revoke(invite.id, admin)
        result = lifecycle.revoke(invite.id, admin)
        assert result.error_kind is ErrorKind.invalid_transition
        assert result.code == "invite_revoked"


def test_list_resolves_creator_and_redeemer(lifecycle, admin, password):
    first = _create(lifecycle, admin, email="first@example.com")
    _create(lifecycle, admin, email="second@example.com")
    lifecycle.redeem(first.code, "first@example.com", password, "First One")

    invites = lifecycle.list().data
    assert [i.email for i in invites] == ["second@example.com", "first@example.com"]
    assert all(i.creator.email == admin.email for i in invites)
    assert invites[1].redeemer.name == "First One"
    assert invites[0].redeemer is None


def test_event_payload_leaves_out_code(lifecycle, admin):
    invite = _create(lifecycle, admin)
    payload = invite_event_payload(invite)
    assert "code" not in payload
    assert payload["email"] == "newbie@example.com"
