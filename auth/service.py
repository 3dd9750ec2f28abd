"""
auth/service.py -- Account operations exposed to the route layer.

Every public method is a @core_operation: it returns a core.errors.Result and
never lets an exception escape. Invite redemption lives in
invites/lifecycle.py because it consumes an invite; it reuses the same
CredentialStore and SessionManager.

Approval counts come from the submissions package. auth/ may not import it,
so the count lookup is injected as a plain callable.

Layer rule: no imports from api/, invites/, submissions/, or notify/.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from auth.credentials import CredentialStore
from auth.models import Account, AccountListing, AuthSession, RequestContext
from auth.sessions import SessionManager
from auth.store import AccountStore
from core.errors import Forbidden, NotFound, ValidationError, core_operation
from core.roles import Role
from core.validation import normalize_email

logger = logging.getLogger("reviewdesk.auth")

MIN_PASSWORD_LENGTH = 8


class AccountService:
    def __init__(
        self,
        store: AccountStore,
        credentials: CredentialStore,
        sessions: SessionManager,
        approval_counts: Optional[Callable[[], dict[int, int]]] = None,
    ) -> None:
        self.store = store
        self.credentials = credentials
        self.sessions = sessions
        self._approval_counts = approval_counts or dict

    @core_operation
    def authenticate(self, email: str, password: str, context: Optional[RequestContext] = None) -> AuthSession:
        """Check credentials and open a new session for this device."""
        fields: dict[str, str] = {}
        normalized = normalize_email(email)
        if normalized is None:
            fields["email"] = "Please enter a valid email address."
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            fields["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
        if fields:
            raise ValidationError("Login failed.", fields=fields)

        account = self.credentials.authenticate(normalized, password)
        token = self.sessions.issue(account, context)
        logger.info("Login succeeded for account %d", account.id)
        return AuthSession(token=token, account=account, expires_in=self.sessions.expire_seconds)

    @core_operation
    def end_session(self, account: Account, token: str) -> None:
        """Log out the presenting device only."""
        self.sessions.revoke(account, token)

    @core_operation
    def me(self, account: Account) -> Account:
        return account

    @core_operation
    def list_accounts(self) -> list[AccountListing]:
        counts = self._approval_counts()
        return [AccountListing(account=a, approvals=counts.get(a.id, 0)) for a in self.store.list_accounts()]

    @core_operation
    def change_role(self, account_id: int, role: str) -> Account:
        parsed = Role.parse(role)
        if parsed is None:
            allowed = ", ".join(r.value for r in Role)
            raise ValidationError("Unknown role.", fields={"role": f"Must be one of: {allowed}."})
        if not self.store.update_account(account_id, role=parsed.value):
            raise NotFound("User not found.")
        logger.info("Account %d role changed to %s", account_id, parsed.value)
        return self.store.get_by_id(account_id)

    @core_operation
    def delete_account(self, account_id: int, actor: Account) -> None:
        target = self.store.get_by_id(account_id)
        if target is None:
            raise NotFound("User not found.")
        if target.is_protected:
            raise Forbidden("Protected admin cannot be deleted.", code="protected_account")
        if target.id == actor.id:
            raise ValidationError("Cannot delete your own account.", code="self_delete")
        self.store.delete_account(account_id)
        logger.info("Account %d deleted by account %d", account_id, actor.id)

    @core_operation
    def seed_owner(self, email: str, password: str, name: str) -> Optional[Account]:
        """Create the first protected superAdmin. Returns None if one already exists."""
        normalized = normalize_email(email)
        if normalized is None:
            raise ValidationError("A valid email is required.", fields={"email": "Invalid email format."})
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                "Password too short.",
                fields={"password": f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."},
            )
        if self.store.has_role(Role.super_admin.value):
            logger.info("A superAdmin already exists; nothing seeded")
            return None
        account_id = self.store.create_account(
            Account(
                name=name.strip(),
                email=normalized,
                role=Role.super_admin.value,
                hashed_password=self.credentials.hash(password),
                is_verified=True,
                is_protected=True,
            )
        )
        logger.info("Seeded protected superAdmin %s", normalized)
        return self.store.get_by_id(account_id)
