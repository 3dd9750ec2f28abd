"""
invites/store.py -- SQLAlchemy Core persistence layer for invites.

Pattern: Repository + Data Mapper, same shape as auth/store.py.

Every state change is a conditional UPDATE whose WHERE clause restates the
state the caller expects to find. The rowcount says whether the change
happened; a 0 means another request (or the sweeper) got there first.

One active invite per email is enforced by the datastore itself: a partial
UNIQUE index on email covering only rows whose status is pending or sent.
Terminal rows (accepted, expired, revoked) are not indexed, so an address may
collect any number of them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Index, Integer, MetaData, String, Table
from sqlalchemy.engine import Engine

from core.db import from_iso, to_iso, utcnow
from invites.models import ACTIVE_STATUSES, Invite, InviteStatus

_metadata = MetaData()

_ACTIVE = [s.value for s in ACTIVE_STATUSES]

_invites = Table(
    "invites",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(64), nullable=False, unique=True),
    Column("email", String(255), nullable=False, index=True),  # always lowercase
    Column("role", String(30), nullable=False),
    Column("created_by", Integer, nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("status", String(16), nullable=False),
    Column("used_at", String(32)),
    Column("used_by", Integer),
    Column("created_at", String(32), nullable=False),
)

Index(
    "uq_invites_active_email",
    _invites.c.email,
    unique=True,
    sqlite_where=_invites.c.status.in_(_ACTIVE),
    postgresql_where=_invites.c.status.in_(_ACTIVE),
)


class InviteStore:
    """Repository for Invite entities.

    Usage:
        store = InviteStore(engine)
        invite_id = store.create_invite(Invite(code=..., email=..., ...))
        claimed = store.claim(code, email, now)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    def create_invite(self, invite: Invite) -> int:
        """Insert an invite and return its ID.

        Raises sqlalchemy.exc.IntegrityError on a duplicate code or when the
        email already has an active invite.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _invites.insert().values(
                    code=invite.code,
                    email=invite.email.lower(),
                    role=invite.role,
                    created_by=invite.created_by,
                    expires_at=to_iso(invite.expires_at),
                    status=invite.status,
                    created_at=to_iso(utcnow()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, invite_id: int) -> Optional[Invite]:
        with self.engine.connect() as conn:
            row = conn.execute(_invites.select().where(_invites.c.id == invite_id)).fetchone()
        return _row_to_invite(row) if row else None

    def get_by_code(self, code: str) -> Optional[Invite]:
        with self.engine.connect() as conn:
            row = conn.execute(_invites.select().where(_invites.c.code == code)).fetchone()
        return _row_to_invite(row) if row else None

    def find_active_by_email(self, email: str) -> Optional[Invite]:
        """Return the pending/sent invite for email, if any (regardless of its deadline)."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _invites.select().where((_invites.c.email == email.lower()) & _invites.c.status.in_(_ACTIVE))
            ).fetchone()
        return _row_to_invite(row) if row else None

    def list_invites(self) -> list[Invite]:
        """All invites, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _invites.select().order_by(_invites.c.created_at.desc(), _invites.c.id.desc())
            ).fetchall()
        return [_row_to_invite(r) for r in rows]

    # ------------------------------------------------------------------
    # Conditional state changes
    # ------------------------------------------------------------------

    def expire_one(self, invite_id: int, now: datetime) -> bool:
        """Mark a single overdue active invite expired."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _invites.update()
                .where(
                    (_invites.c.id == invite_id)
                    & _invites.c.status.in_(_ACTIVE)
                    & (_invites.c.expires_at <= to_iso(now))
                )
                .values(status=InviteStatus.expired.value)
            )
            conn.commit()
        return result.rowcount > 0

    def expire_overdue(self, now: datetime) -> int:
        """Bulk-expire every active invite whose deadline has passed. Returns rows changed."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _invites.update()
                .where(_invites.c.status.in_(_ACTIVE) & (_invites.c.expires_at <= to_iso(now)))
                .values(status=InviteStatus.expired.value)
            )
            conn.commit()
        return result.rowcount

    def extend(self, invite_id: int, expires_at: datetime, now: datetime) -> bool:
        """Push the deadline out and re-affirm status sent, only while active and not yet overdue."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _invites.update()
                .where(
                    (_invites.c.id == invite_id)
                    & _invites.c.status.in_(_ACTIVE)
                    & (_invites.c.expires_at > to_iso(now))
                )
                .values(status=InviteStatus.sent.value, expires_at=to_iso(expires_at))
            )
            conn.commit()
        return result.rowcount > 0

    def claim(self, code: str, email: str, now: datetime) -> Optional[Invite]:
        """Atomically move a live sent invite to accepted. Returns it, or None if nothing matched."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _invites.update()
                .where(
                    (_invites.c.code == code)
                    & (_invites.c.email == email.lower())
                    & (_invites.c.status == InviteStatus.sent.value)
                    & (_invites.c.expires_at > to_iso(now))
                )
                .values(status=InviteStatus.accepted.value, used_at=to_iso(now))
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_code(code)

    def release_claim(self, invite_id: int) -> bool:
        """Undo claim() for an invite whose account was never created."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _invites.update()
                .where(
                    (_invites.c.id == invite_id)
                    & (_invites.c.status == InviteStatus.accepted.value)
                    & _invites.c.used_by.is_(None)
                )
                .values(status=InviteStatus.sent.value, used_at=None)
            )
            conn.commit()
        return result.rowcount > 0

    def set_used_by(self, invite_id: int, account_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_invites.update().where(_invites.c.id == invite_id).values(used_by=account_id))
            conn.commit()

    def revoke(self, invite_id: int) -> bool:
        """Move an active invite to revoked. False if it was no longer active."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _invites.update()
                .where((_invites.c.id == invite_id) & _invites.c.status.in_(_ACTIVE))
                .values(status=InviteStatus.revoked.value)
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


def _row_to_invite(row) -> Invite:
    return Invite(
        id=row.id,
        code=row.code,
        email=row.email,
        role=row.role,
        created_by=row.created_by,
        expires_at=from_iso(row.expires_at),
        status=row.status,
        used_at=from_iso(row.used_at),
        used_by=row.used_by,
        created_at=from_iso(row.created_at),
    )
