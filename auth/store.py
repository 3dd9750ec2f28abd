"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and sessions.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account / _row_to_session are the mappers. Services never touch SQL
directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  Login-attempt bookkeeping is written as single UPDATE statements with
  column arithmetic (login_attempts = login_attempts + 1) inside one
  transaction, never as read-modify-write in Python. Two failed logins
  arriving together therefore both count, and the lock lands on whichever
  statement crosses the threshold.

  Session records are a bounded collection per account: add_session() evicts
  the oldest rows beyond max_sessions in the same transaction as the insert.
  Loading an account filters out sessions past their own expiry or past the
  retention window, so an unreaped row is never visible to callers.

Layer rule: no imports from api/, invites/, submissions/, or notify/.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Boolean, Column, ForeignKey, Integer, MetaData, String, Table, Text, case, select
from sqlalchemy.engine import Engine

from auth.models import Account, SessionRecord
from core.db import from_iso, to_iso, utcnow

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # always lowercase
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False),
    Column("is_verified", Boolean, nullable=False, server_default="0"),
    Column("is_protected", Boolean, nullable=False, server_default="0"),
    Column("login_attempts", Integer, nullable=False, server_default="0"),
    Column("lock_until", String(32)),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("session_id", String(64), nullable=False, unique=True),  # JWT jti
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("device_id", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account and SessionRecord entities.

    Usage:
        store = AccountStore(create_db_engine())
        account_id = store.create_account(Account(name="Ada", email="ada@example.com", role="admin", ...))
        account = store.get_by_email("ada@example.com")
    """

    def __init__(self, engine: Engine, session_retention_days: int = 30) -> None:
        self.engine = engine
        self.session_retention = timedelta(days=session_retention_days)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    name=account.name,
                    email=account.email.lower(),
                    hashed_password=account.hashed_password,
                    role=account.role,
                    is_verified=account.is_verified,
                    is_protected=account.is_protected,
                    login_attempts=0,
                    created_at=to_iso(utcnow()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, account_id: int) -> Optional[Account]:
        """Look up an account by primary key, with its live sessions. None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
            if row is None:
                return None
            sessions = self._live_sessions(conn, account_id)
        return _row_to_account(row, sessions)

    def get_by_email(self, email: str) -> Optional[Account]:
        """Look up an account by email (case-insensitive via lowercase storage)."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email.lower())).fetchone()
            if row is None:
                return None
            sessions = self._live_sessions(conn, row.id)
        return _row_to_account(row, sessions)

    def get_many(self, account_ids: set[int]) -> dict[int, Account]:
        """Return {id: Account} for the given IDs (sessions not loaded). Missing IDs are absent."""
        if not account_ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(_accounts.select().where(_accounts.c.id.in_(account_ids))).fetchall()
        return {row.id: _row_to_account(row, []) for row in rows}

    def list_accounts(self) -> list[Account]:
        """Return all accounts ordered by creation time (sessions not loaded)."""
        with self.engine.connect() as conn:
            rows = conn.execute(_accounts.select().order_by(_accounts.c.created_at, _accounts.c.id)).fetchall()
        return [_row_to_account(r, []) for r in rows]

    def has_role(self, role: str) -> bool:
        """Return True if at least one account holds the given role."""
        with self.engine.connect() as conn:
            row = conn.execute(select(_accounts.c.id).where(_accounts.c.role == role).limit(1)).fetchone()
        return row is not None

    def update_account(self, account_id: int, **fields) -> bool:
        """Update mutable fields (name, role, is_verified, hashed_password).

        Returns True if a row was updated, False if account_id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_account(self, account_id: int) -> bool:
        """Delete an account and every session it owns. Returns False if not found."""
        with self.engine.begin() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.account_id == account_id))
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Login attempts
    # ------------------------------------------------------------------

    def record_failed_attempt(self, account_id: int, max_attempts: int, lock_seconds: int, now: datetime) -> None:
        """Count one failed login, locking the account when the threshold is reached.

        Runs as two statements in one transaction:
          1. A lock that has already run out is cleared and the counter
             zeroed, so the failure below starts a fresh window at 1.
          2. The counter is incremented in SQL; when the incremented value
             reaches max_attempts, lock_until is set to now + lock_seconds.
        """
        now_iso = to_iso(now)
        lock_iso = to_iso(now + timedelta(seconds=lock_seconds))
        with self.engine.begin() as conn:
            conn.execute(
                _accounts.update()
                .where(
                    (_accounts.c.id == account_id)
                    & _accounts.c.lock_until.isnot(None)
                    & (_accounts.c.lock_until <= now_iso)
                )
                .values(login_attempts=0, lock_until=None)
            )
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(
                    login_attempts=_accounts.c.login_attempts + 1,
                    lock_until=case(
                        (_accounts.c.login_attempts + 1 >= max_attempts, lock_iso),
                        else_=_accounts.c.lock_until,
                    ),
                )
            )

    def reset_login_attempts(self, account_id: int, now: datetime) -> None:
        """Zero the counter, clear any lock, and stamp last_login."""
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(login_attempts=0, lock_until=None, last_login=to_iso(now))
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def add_session(self, record: SessionRecord, max_sessions: int) -> int:
        """Insert a session record and evict the account's oldest beyond max_sessions."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    account_id=record.account_id,
                    session_id=record.session_id,
                    ip_address=record.ip_address,
                    user_agent=record.user_agent,
                    device_id=record.device_id,
                    created_at=to_iso(record.created_at),
                    expires_at=to_iso(record.expires_at),
                )
            )
            keep = (
                select(_sessions.c.id)
                .where(_sessions.c.account_id == record.account_id)
                .order_by(_sessions.c.created_at.desc(), _sessions.c.id.desc())
                .limit(max_sessions)
            )
            conn.execute(
                _sessions.delete().where(
                    (_sessions.c.account_id == record.account_id) & _sessions.c.id.not_in(keep)
                )
            )
            return result.inserted_primary_key[0]

    def delete_session(self, account_id: int, session_id: str) -> bool:
        """Remove exactly one session record. Both IDs must match."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where(
                    (_sessions.c.account_id == account_id) & (_sessions.c.session_id == session_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def delete_stale_sessions(self, now: datetime) -> int:
        """Delete sessions past their expiry or the retention window. Returns rows removed."""
        cutoff = to_iso(now - self.session_retention)
        now_iso = to_iso(now)
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where((_sessions.c.created_at <= cutoff) | (_sessions.c.expires_at <= now_iso))
            )
            conn.commit()
        return result.rowcount

    def _live_sessions(self, conn, account_id: int) -> list[SessionRecord]:
        now = utcnow()
        rows = conn.execute(
            _sessions.select()
            .where(
                (_sessions.c.account_id == account_id)
                & (_sessions.c.created_at > to_iso(now - self.session_retention))
                & (_sessions.c.expires_at > to_iso(now))
            )
            .order_by(_sessions.c.created_at, _sessions.c.id)
        ).fetchall()
        return [_row_to_session(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row, sessions: list[SessionRecord]) -> Account:
    return Account(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        is_verified=bool(row.is_verified),
        is_protected=bool(row.is_protected),
        login_attempts=row.login_attempts or 0,
        lock_until=from_iso(row.lock_until),
        last_login=from_iso(row.last_login),
        created_at=from_iso(row.created_at),
        sessions=sessions,
    )


def _row_to_session(row) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        account_id=row.account_id,
        session_id=row.session_id,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        device_id=row.device_id,
        created_at=from_iso(row.created_at),
        expires_at=from_iso(row.expires_at),
    )
