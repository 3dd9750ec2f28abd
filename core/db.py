"""
core/db.py -- Engine construction and timestamp helpers shared by every store.

All stores (accounts, invites, submissions) run on ONE engine so the account
created by an invite redemption and the invite row it consumes live in the
same database. Each store owns its own tables and creates them on init.

Timestamps are stored as fixed-width UTC ISO 8601 strings
("2026-01-01T00:00:00.000000+00:00"). Fixed width matters: SQL string
comparison (expires_at < :now) is only chronological when every value has
the same shape, and datetime.isoformat() drops the fractional part when it
is zero unless timespec is pinned.

Layer rule: core/ is the kernel. No imports from other project packages.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from core.config import get_settings

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'reviewdesk.db'}"


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str = "") -> Engine:
    """Build the SQLAlchemy engine for db_url (or Settings.database_url, or the default file)."""
    db_url = db_url or get_settings().database_url or _DEFAULT_DB_URL
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a thread pool; the same pooled
        # connection may be used from several threads.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Serialize an aware datetime as a fixed-width UTC ISO string."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp. Naive values are treated as UTC."""
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
