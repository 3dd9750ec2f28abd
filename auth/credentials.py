"""
auth/credentials.py -- Password checks and brute-force lockout per account.

Policy:
  - max_login_attempts (5) consecutive failures lock the account for
    lockout_seconds (15 minutes).
  - While locked, login is refused with AccountLocked before the password is
    even looked at, and the failure counter does not move.
  - Once a lock has run out, the next failure starts a new window at 1.
  - A successful login zeroes the counter and clears the lock.

Every counter change is persisted immediately by AccountStore as an atomic
UPDATE, so a login that races with another from the same account still sees
an accurate lock.

Layer rule: no imports from api/, invites/, submissions/, or notify/.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional

from auth.models import Account
from auth.store import AccountStore
from auth.tokens import burn_verification, hash_password, verify_password
from core.config import get_settings
from core.db import utcnow
from core.errors import AccountLocked, Unauthenticated

logger = logging.getLogger("reviewdesk.auth")

_BAD_CREDENTIALS = "Invalid email or password."


class CredentialStore:
    def __init__(
        self,
        store: AccountStore,
        max_attempts: Optional[int] = None,
        lock_seconds: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.max_attempts = max_attempts or settings.max_login_attempts
        self.lock_seconds = lock_seconds or settings.lockout_seconds

    # Hashing is a module-level concern of auth.tokens; exposed here so the
    # services only need one collaborator for credentials.
    hash = staticmethod(hash_password)
    verify = staticmethod(verify_password)

    def lock_remaining(self, account: Account, now: Optional[datetime] = None) -> int:
        """Whole seconds left on the account's lock (rounded up), 0 if not locked."""
        if account.lock_until is None:
            return 0
        now = now or utcnow()
        remaining = (account.lock_until - now).total_seconds()
        return math.ceil(remaining) if remaining > 0 else 0

    def record_failed_attempt(self, account: Account) -> Account:
        """Count a failed login and return the refreshed account."""
        self.store.record_failed_attempt(account.id, self.max_attempts, self.lock_seconds, utcnow())
        refreshed = self.store.get_by_id(account.id)
        if refreshed is not None and self.lock_remaining(refreshed):
            logger.warning("Account %d locked after %d failed logins", account.id, refreshed.login_attempts)
        return refreshed or account

    def record_success(self, account: Account) -> None:
        self.store.reset_login_attempts(account.id, utcnow())

    def authenticate(self, email: str, password: str) -> Account:
        """Check an email/password pair. Returns the Account or raises.

        Raises:
            AccountLocked:   lock_until is in the future (checked before the password).
            Unauthenticated: unknown email or wrong password -- one message for both.
        """
        account = self.store.get_by_email(email.strip().lower())
        if account is None:
            # Do NOT return before running bcrypt; unknown emails must cost the same.
            burn_verification(password)
            raise Unauthenticated(_BAD_CREDENTIALS, code="bad_credentials")

        retry_after = self.lock_remaining(account)
        if retry_after:
            raise AccountLocked(retry_after)

        if not verify_password(password, account.hashed_password or ""):
            self.record_failed_attempt(account)
            raise Unauthenticated(_BAD_CREDENTIALS, code="bad_credentials")

        self.record_success(account)
        return self.store.get_by_id(account.id) or account
