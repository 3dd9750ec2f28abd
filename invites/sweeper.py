"""
invites/sweeper.py -- Scheduled background maintenance.

Two loops, both started from the FastAPI lifespan as asyncio tasks:

  invite_sweep_loop   once a day at INVITE_SWEEP_HOUR_UTC (default 00:00 UTC),
                      bulk-expire every pending/sent invite past its deadline.
  session_reap_loop   every SESSION_REAP_INTERVAL_SECONDS, delete session rows
                      past their expiry or the retention window.

The database work runs in a worker thread (asyncio.to_thread) so a slow sweep
never stalls request handling on the event loop. A failing pass is logged
with its traceback and the loop waits for the next slot; a missed sweep is
harmless because redemption re-checks the deadline itself.

CancelledError from task.cancel() during shutdown propagates out of
asyncio.sleep and unwinds the coroutine cleanly.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from auth.sessions import SessionManager
from core.db import utcnow
from invites.store import InviteStore

logger = logging.getLogger("reviewdesk.invites")


def seconds_until_next_run(now: datetime, hour_utc: int) -> float:
    """Seconds from now until the next hour_utc:00:00 UTC, always > 0."""
    target = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


def sweep_expired_invites(store: InviteStore, now: Optional[datetime] = None) -> int:
    """Expire overdue pending/sent invites. Returns how many changed."""
    count = store.expire_overdue(now or utcnow())
    logger.info("Expired %d invite(s)", count)
    return count


async def run_sweep_once(store: InviteStore) -> Optional[int]:
    """Run one sweep in a worker thread. Returns the count, or None if it failed."""
    try:
        return await asyncio.to_thread(sweep_expired_invites, store)
    except Exception:
        logger.exception("Invite expiry sweep failed")
        return None


async def invite_sweep_loop(store: InviteStore, hour_utc: int = 0) -> None:
    while True:
        delay = seconds_until_next_run(utcnow(), hour_utc)
        logger.debug("Next invite sweep in %.0fs", delay)
        await asyncio.sleep(delay)
        await run_sweep_once(store)


async def session_reap_loop(sessions: SessionManager, interval_seconds: int) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(sessions.reap_expired)
        except Exception:
            logger.exception("Session reap failed")
