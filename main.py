#!/usr/bin/env python3
"""
Reviewdesk -- operator commands for the staff review backend.

Usage:
  python main.py seed-admin
  python main.py seed-admin --email owner@example.com --password '...' --name Owner
  python main.py sweep-invites
  python main.py reap-sessions

Environment variables:
  DATABASE_URL              SQLAlchemy URL (default: sqlite:///reviewdesk.db)
  INITIAL_ADMIN_EMAIL       Used by seed-admin when --email is not given
  INITIAL_ADMIN_PASSWORD    Used by seed-admin when --password is not given
  INITIAL_ADMIN_NAME        Used by seed-admin when --name is not given

The API server runs the invite sweep and the session reap on its own; the
sweep-invites and reap-sessions commands are for cron or one-off cleanup.
"""

import argparse
import logging
import sys

from auth.credentials import CredentialStore
from auth.service import AccountService
from auth.sessions import SessionManager
from auth.store import AccountStore
from core.config import get_settings
from core.db import create_db_engine
from invites.store import InviteStore
from invites.sweeper import sweep_expired_invites

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def seed_admin(email: str, password: str, name: str) -> int:
    """Create the protected owner account. Returns a process exit code."""
    settings = get_settings()
    engine = create_db_engine()
    try:
        store = AccountStore(engine, session_retention_days=settings.session_retention_days)
        credentials = CredentialStore(store)
        service = AccountService(store, credentials, SessionManager(store))
        result = service.seed_owner(email, password, name)
    finally:
        engine.dispose()

    if not result.success:
        print(f"  [!] {result.message}")
        for field_name, problem in result.fields.items():
            print(f"      {field_name}: {problem}")
        return 1
    if result.data is None:
        print("  A superAdmin already exists. Nothing to do.")
        return 0
    print(f"  Created protected superAdmin {result.data.email} (id {result.data.id}).")
    return 0


def sweep_invites() -> int:
    engine = create_db_engine()
    try:
        expired = sweep_expired_invites(InviteStore(engine))
    finally:
        engine.dispose()
    print(f"  {expired} invite(s) expired.")
    return 0


def reap_sessions() -> int:
    settings = get_settings()
    engine = create_db_engine()
    try:
        store = AccountStore(engine, session_retention_days=settings.session_retention_days)
        removed = SessionManager(store).reap_expired()
    finally:
        engine.dispose()
    print(f"  {removed} stale session(s) removed.")
    return 0


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="reviewdesk",
        description="Operator commands for the Reviewdesk backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py seed-admin --email owner@example.com --password 'correct horse' --name Owner
  INITIAL_ADMIN_EMAIL=owner@example.com INITIAL_ADMIN_PASSWORD=... python main.py seed-admin
  python main.py sweep-invites
  python main.py reap-sessions
        """,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    seed = commands.add_parser("seed-admin", help="Create the first protected superAdmin account")
    seed.add_argument("--email", default=settings.initial_admin_email, help="Owner email address")
    seed.add_argument("--password", default=settings.initial_admin_password, help="Owner password (8+ characters)")
    seed.add_argument("--name", default=settings.initial_admin_name, help="Owner display name")

    commands.add_parser("sweep-invites", help="Expire every invite whose deadline has passed")
    commands.add_parser("reap-sessions", help="Delete sessions past the retention window")

    args = parser.parse_args()

    if args.command == "seed-admin":
        sys.exit(seed_admin(args.email or "", args.password or "", args.name or ""))
    elif args.command == "sweep-invites":
        sys.exit(sweep_invites())
    elif args.command == "reap-sessions":
        sys.exit(reap_sessions())
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
