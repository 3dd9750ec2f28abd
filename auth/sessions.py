"""
auth/sessions.py -- Session token lifecycle: issue, validate, revoke, reap.

A session is two things that must agree:
  - a signed JWT held by the client (jti = session id), and
  - a SessionRecord row owned by the account.

validate() accepts a token only when both exist and are live. Every way a
token can fail (bad signature, expired JWT, account gone, record revoked or
reaped, record past retention, role no longer a staff level) surfaces as the
same Unauthenticated error. The specific reason is logged at DEBUG and never
returned to the caller.

Layer rule: no imports from api/, invites/, submissions/, or notify/.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from auth.models import Account, RequestContext, SessionRecord
from auth.store import AccountStore
from auth.tokens import create_access_token, decode_access_token, new_session_id
from core.config import get_settings
from core.db import utcnow
from core.errors import Unauthenticated
from core.roles import STAFF_ROLES, Role

logger = logging.getLogger("reviewdesk.auth")

_INVALID_SESSION = "Authentication required."


class SessionManager:
    """Issues and checks session tokens against the account's session records.

    Usage:
        sessions = SessionManager(store)
        token = sessions.issue(account, RequestContext(ip_address="10.0.0.1"))
        account = sessions.validate(token)   # raises Unauthenticated
        sessions.revoke(account, token)
    """

    def __init__(
        self,
        store: AccountStore,
        expire_seconds: Optional[int] = None,
        max_sessions: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.expire_seconds = expire_seconds or settings.token_expire_seconds
        self.max_sessions = max_sessions or settings.max_sessions_per_account

    def issue(self, account: Account, context: Optional[RequestContext] = None) -> str:
        """Create a session record for account and return its signed token."""
        context = context or RequestContext()
        now = utcnow()
        session_id = new_session_id()
        record = SessionRecord(
            session_id=session_id,
            account_id=account.id,
            created_at=now,
            expires_at=now + timedelta(seconds=self.expire_seconds),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            device_id=context.device_id,
        )
        self.store.add_session(record, self.max_sessions)
        logger.info("Session issued for account %d from %s", account.id, context.ip_address or "unknown")
        return create_access_token(
            user_id=account.id,
            email=account.email,
            role=account.role,
            session_id=session_id,
            issued_at=now,
            expire_seconds=self.expire_seconds,
        )

    def validate(self, token: Optional[str]) -> Account:
        """Resolve a token to its Account or raise Unauthenticated."""
        if not token:
            return self._reject("no token presented")
        payload = decode_access_token(token)
        if payload is None:
            return self._reject("signature or expiry check failed")

        account = self.store.get_by_id(payload["user_id"])
        if account is None:
            return self._reject("account %s no longer exists" % payload["user_id"])

        # AccountStore only loads records inside their expiry and the retention
        # window, so a match here is a live session.
        if not any(s.session_id == payload["jti"] for s in account.sessions):
            return self._reject("no live session %s on account %d" % (payload["jti"], account.id))

        role = Role.parse(account.role)
        if role is None or role not in STAFF_ROLES:
            return self._reject("account %d holds unknown role %r" % (account.id, account.role))
        return account

    def session_id_of(self, token: str) -> Optional[str]:
        payload = decode_access_token(token)
        return payload["jti"] if payload else None

    def revoke(self, account: Account, token: str) -> bool:
        """Delete the one session record the token belongs to. Other devices stay signed in."""
        session_id = self.session_id_of(token)
        if session_id is None:
            return False
        removed = self.store.delete_session(account.id, session_id)
        if removed:
            logger.info("Session revoked for account %d", account.id)
        return removed

    def reap_expired(self) -> int:
        """Delete session rows past their expiry or the retention window."""
        removed = self.store.delete_stale_sessions(utcnow())
        if removed:
            logger.info("Reaped %d stale session(s)", removed)
        return removed

    @staticmethod
    def _reject(reason: str) -> Account:
        logger.debug("Session rejected: %s", reason)
        raise Unauthenticated(_INVALID_SESSION, code="invalid_session")
