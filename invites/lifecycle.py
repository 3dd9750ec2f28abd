"""
invites/lifecycle.py -- Invite state machine and the redeem-into-account handshake.

    pending --send--> sent --redeem--> accepted
    pending|sent --deadline passed--> expired
    pending|sent --revoke--> revoked
    sent --resend--> sent (deadline pushed out)

accepted, expired and revoked are terminal. Nothing in here moves an invite
out of a terminal status; resend only ever extends a live one.

Expiry is checked with is_expired() at every decision point. The daily sweep
(invites/sweeper.py) tidies up stored statuses, but redemption never relies on
it: claim() itself refuses a row whose deadline has passed.

Every public method is a @core_operation and returns a core.errors.Result.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import asdict
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from auth.credentials import CredentialStore
from auth.models import Account, AccountSummary, AuthSession, RequestContext
from auth.sessions import SessionManager
from auth.store import AccountStore
from core.config import get_settings
from core.db import to_iso, utcnow
from core.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    InviteExpiredOrInvalid,
    NotFound,
    ValidationError,
    core_operation,
)
from core.roles import HIGHEST_ROLE, INVITABLE_ROLES, STAFF_ROLES, Role
from core.validation import normalize_email
from invites.models import Invite, InviteStatus, is_expired
from invites.store import InviteStore
from notify.mailer import Mailer
from notify.publisher import NullPublisher, Publisher, publish_to_roles

logger = logging.getLogger("reviewdesk.invites")

_CODE_ATTEMPTS = 3
MIN_PASSWORD_LENGTH = 8
NAME_LENGTH = (2, 100)


def new_invite_code() -> str:
    """32 hex chars from the OS CSPRNG."""
    return secrets.token_hex(16)


class InviteLifecycle:
    def __init__(
        self,
        invites: InviteStore,
        accounts: AccountStore,
        credentials: CredentialStore,
        sessions: SessionManager,
        mailer: Optional[Mailer] = None,
        publisher: Optional[Publisher] = None,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        self.invites = invites
        self.accounts = accounts
        self.credentials = credentials
        self.sessions = sessions
        self.mailer = mailer or Mailer()
        self.publisher = publisher or NullPublisher()
        self.ttl = timedelta(seconds=ttl_seconds or get_settings().invite_ttl_seconds)

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    @core_operation
    def create(self, email: str, role: str, creator: Account) -> Invite:
        fields: dict[str, str] = {}
        normalized = normalize_email(email)
        if normalized is None:
            fields["email"] = "Valid email required."
        parsed = Role.parse(role)
        if parsed not in INVITABLE_ROLES:
            fields["role"] = f"Must be one of: {', '.join(sorted(r.value for r in INVITABLE_ROLES))}."
        if fields:
            raise ValidationError("Invite request is invalid.", fields=fields)

        if self.accounts.get_by_email(normalized) is not None:
            raise Conflict("User already exists.", code="duplicate_account")

        for attempt in range(1, _CODE_ATTEMPTS + 1):
            now = utcnow()
            self._check_no_active_invite(normalized, now)
            invite = Invite(
                code=new_invite_code(),
                email=normalized,
                role=parsed.value,
                created_by=creator.id,
                expires_at=now + self.ttl,
                status=InviteStatus.sent.value,
            )
            try:
                invite_id = self.invites.create_invite(invite)
            except IntegrityError:
                # Either a concurrent create for the same email (the re-check at
                # the top of the loop reports it) or a code collision (retry).
                logger.info("Invite insert for %s collided (attempt %d)", normalized, attempt)
                continue
            break
        else:
            self._check_no_active_invite(normalized, utcnow())
            raise RuntimeError(f"Could not allocate a unique invite code after {_CODE_ATTEMPTS} attempts")

        created = self.invites.get_by_id(invite_id)
        created.creator = AccountSummary.of(creator)
        logger.info("Invite %d created for %s (%s) by account %d", invite_id, normalized, parsed.value, creator.id)
        self._dispatch(created)
        self._publish("invite.created", created)
        return created

    def _check_no_active_invite(self, email: str, now) -> None:
        existing = self.invites.find_active_by_email(email)
        if existing is None:
            return
        if is_expired(existing.status, existing.expires_at, now):
            self.invites.expire_one(existing.id, now)
            return
        raise Conflict("Active invite exists for this email.", code="duplicate_invite")

    # ------------------------------------------------------------------
    # resend
    # ------------------------------------------------------------------

    @core_operation
    def resend(self, invite_id: int) -> Invite:
        invite = self._get(invite_id)
        now = utcnow()
        if invite.status == InviteStatus.accepted.value:
            raise InvalidTransition(
                invite.status, InviteStatus.sent.value, message="Invite already accepted.", code="already_accepted"
            )
        if invite.status == InviteStatus.expired.value or is_expired(invite.status, invite.expires_at, now):
            self.invites.expire_one(invite.id, now)
            raise InviteExpiredOrInvalid("Invite expired.", code="already_expired")
        if invite.status == InviteStatus.revoked.value:
            raise InvalidTransition(
                invite.status, InviteStatus.sent.value, message="Invite was revoked.", code="invite_revoked"
            )

        if not self.invites.extend(invite.id, now + self.ttl, now):
            # Lost a race with redeem, revoke or the sweeper.
            current = self._get(invite_id)
            raise InvalidTransition(current.status, InviteStatus.sent.value)

        refreshed = self._get(invite_id)
        logger.info("Invite %d resent to %s", refreshed.id, refreshed.email)
        self._dispatch(refreshed)
        self._publish("invite.resent", refreshed)
        return refreshed

    # ------------------------------------------------------------------
    # redeem
    # ------------------------------------------------------------------

    @core_operation
    def redeem(
        self,
        code: str,
        email: str,
        password: str,
        name: str,
        context: Optional[RequestContext] = None,
    ) -> AuthSession:
        """Turn a live invite into a verified account and sign it in."""
        normalized = normalize_email(email)
        clean_name = (name or "").strip()
        fields: dict[str, str] = {}
        if normalized is None:
            fields["email"] = "Invalid email format."
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            fields["password"] = f"Password must be {MIN_PASSWORD_LENGTH}+ characters."
        if not NAME_LENGTH[0] <= len(clean_name) <= NAME_LENGTH[1]:
            fields["name"] = f"Name must be {NAME_LENGTH[0]} to {NAME_LENGTH[1]} characters."
        if not code or not code.strip():
            fields["invite_code"] = "Invite code required."
        if fields:
            raise ValidationError("Registration failed.", fields=fields)

        claimed = self.invites.claim(code.strip(), normalized, utcnow())
        if claimed is None:
            raise InviteExpiredOrInvalid("Invalid or expired invite code.")

        try:
            account_id = self.accounts.create_account(
                Account(
                    name=clean_name,
                    email=normalized,
                    role=claimed.role,
                    hashed_password=self.credentials.hash(password),
                    is_verified=True,
                )
            )
        except IntegrityError:
            self.invites.release_claim(claimed.id)
            raise Conflict("User already exists.", code="duplicate_account")
        except Exception:
            self.invites.release_claim(claimed.id)
            raise

        self.invites.set_used_by(claimed.id, account_id)
        account = self.accounts.get_by_id(account_id)
        token = self.sessions.issue(account, context)
        logger.info("Invite %d redeemed by new account %d (%s)", claimed.id, account_id, claimed.role)

        accepted = self._get(claimed.id)
        accepted.redeemer = AccountSummary.of(account)
        self._publish("invite.accepted", accepted)
        return AuthSession(token=token, account=account, expires_in=self.sessions.expire_seconds)

    # ------------------------------------------------------------------
    # revoke
    # ------------------------------------------------------------------

    @core_operation
    def revoke(self, invite_id: int, actor: Account) -> Invite:
        invite = self._get(invite_id)
        revoked = InviteStatus.revoked.value
        if invite.status == InviteStatus.accepted.value:
            raise InvalidTransition(
                invite.status, revoked, message="Cannot revoke an accepted invite.", code="already_accepted"
            )
        if invite.created_by != actor.id and Role.parse(actor.role) is not HIGHEST_ROLE:
            raise Forbidden("Not authorized to revoke this invite.", code="not_invite_owner")

        now = utcnow()
        if is_expired(invite.status, invite.expires_at, now):
            self.invites.expire_one(invite.id, now)
            raise InvalidTransition(InviteStatus.expired.value, revoked, code="already_expired")
        if invite.status == InviteStatus.expired.value:
            raise InvalidTransition(invite.status, revoked, code="already_expired")
        if invite.status == revoked:
            raise InvalidTransition(invite.status, revoked, code="invite_revoked")

        if not self.invites.revoke(invite.id):
            current = self._get(invite_id)
            raise InvalidTransition(current.status, revoked)

        result = self._get(invite_id)
        logger.info("Invite %d revoked by account %d", invite_id, actor.id)
        self._publish("invite.revoked", result)
        return result

    # ------------------------------------------------------------------
    # list
    # ------------------------------------------------------------------

    @core_operation
    def list(self) -> list[Invite]:
        """All invites, newest first, with creator and redeemer resolved."""
        invites = self.invites.list_invites()
        ids = {i.created_by for i in invites} | {i.used_by for i in invites if i.used_by is not None}
        people = self.accounts.get_many(ids)
        for invite in invites:
            if invite.created_by in people:
                invite.creator = AccountSummary.of(people[invite.created_by])
            if invite.used_by in people:
                invite.redeemer = AccountSummary.of(people[invite.used_by])
        return invites

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _get(self, invite_id: int) -> Invite:
        invite = self.invites.get_by_id(invite_id)
        if invite is None:
            raise NotFound("Invite not found.")
        return invite

    def _dispatch(self, invite: Invite) -> None:
        """Send the invite mail. A failure is logged and otherwise ignored."""
        sent = self.mailer.send("admin_invite", [invite.code, invite.email, invite.role], invite.email)
        if not sent:
            logger.warning("Invite %d mail to %s was not delivered", invite.id, invite.email)

    def _publish(self, event: str, invite: Invite) -> None:
        publish_to_roles(self.publisher, STAFF_ROLES, event, invite_event_payload(invite))


def invite_event_payload(invite: Invite) -> dict[str, Any]:
    """Event body for subscribers. The code is a credential and is left out."""
    return {
        "id": invite.id,
        "email": invite.email,
        "role": invite.role,
        "status": invite.status,
        "expires_at": to_iso(invite.expires_at),
        "created_by": invite.created_by,
        "used_by": invite.used_by,
        "creator": asdict(invite.creator) if invite.creator else None,
        "redeemer": asdict(invite.redeemer) if invite.redeemer else None,
    }
