#!/usr/bin/env python3
"""
webbase -- account administration and server launcher.

Usage:
  python main.py create-user alice --email alice@example.com
  python main.py set-password alice
  python main.py deactivate alice
  python main.py activate alice
  python main.py list-users
  python main.py purge-sessions
  python main.py serve --host 127.0.0.1 --port 8000 --reload

Passwords are prompted for with getpass when --password is omitted, so they
never land in shell history. Settings (DATABASE_URL, ARGON2_*, ...) come from
the environment or .env, exactly as for the web server.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.service import validate_new_password
from auth.sessions import SessionStore
from auth.store import UserStore
from core.config import get_settings
from core.db import Database
from core.errors import AppError


def _open_stores() -> tuple[Database, UserStore, SessionStore]:
    settings = get_settings()
    db = Database.from_settings(settings)
    return db, UserStore(db, username_case_sensitive=settings.username_case_sensitive), SessionStore(db)


def _prompt_password() -> Optional[str]:
    """Prompt twice for a new password. Returns None if the entries differ."""
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


# ---------------------------------------------------------------------------
# Commands -- each returns a process exit code
# ---------------------------------------------------------------------------


def cmd_create_user(args: argparse.Namespace) -> int:
    email = args.email or input("  Email: ").strip()
    password = args.password if args.password is not None else _prompt_password()
    if password is None:
        return 1
    db, users, _ = _open_stores()
    try:
        validate_new_password(password)
        user = users.create_user(args.username, email, password)
    finally:
        db.close()
    print(f"  Created user '{user.username}' (id={user.id}, email={user.email}).")
    return 0


def cmd_set_password(args: argparse.Namespace) -> int:
    password = args.password if args.password is not None else _prompt_password()
    if password is None:
        return 1
    db, users, _ = _open_stores()
    try:
        user = users.get_by_username(args.username)
        if user is None:
            print(f"  [!] No user named '{args.username}'.")
            return 1
        validate_new_password(password)
        users.set_password(user.id, password, revoke_sessions=True)
    finally:
        db.close()
    print(f"  Password updated for '{user.username}'. All of their sessions were revoked.")
    return 0


def _set_active(username: str, active: bool) -> int:
    db, users, _ = _open_stores()
    try:
        user = users.get_by_username(username)
        if user is None:
            print(f"  [!] No user named '{username}'.")
            return 1
        users.set_active(user.id, active)
    finally:
        db.close()
    state = "activated" if active else "deactivated (sessions revoked)"
    print(f"  User '{user.username}' {state}.")
    return 0


def cmd_deactivate(args: argparse.Namespace) -> int:
    return _set_active(args.username, False)


def cmd_activate(args: argparse.Namespace) -> int:
    return _set_active(args.username, True)


def cmd_list_users(args: argparse.Namespace) -> int:
    db, users, sessions = _open_stores()
    try:
        rows = [(u, sessions.count_for_user(u.id)) for u in users.list_users()]
    finally:
        db.close()
    if not rows:
        print("  No users.")
        return 0
    print(f"  {'ID':>4}  {'USERNAME':<20} {'EMAIL':<32} {'ACTIVE':<6} {'SESSIONS':>8}  LAST LOGIN")
    for user, count in rows:
        print(
            f"  {user.id:>4}  {user.username:<20} {user.email:<32} "
            f"{'yes' if user.is_active else 'no':<6} {count:>8}  {user.last_login or '-'}"
        )
    return 0


def cmd_purge_sessions(args: argparse.Namespace) -> int:
    db, _, sessions = _open_stores()
    try:
        removed = sessions.purge_expired()
    finally:
        db.close()
    print(f"  Purged {removed} expired session(s).")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webbase",
        description="Account administration and server launcher for webbase.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user alice --email alice@example.com
  python main.py deactivate alice
  DATABASE_URL=postgresql+psycopg://... python main.py list-users
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("create-user", help="Create a user (prompts for missing values)")
    p.add_argument("username")
    p.add_argument("--email", help="Email address (prompted if omitted)")
    p.add_argument("--password", help="Password (prompted if omitted; avoid in shared shells)")
    p.set_defaults(func=cmd_create_user)

    p = sub.add_parser("set-password", help="Replace a user's password and revoke their sessions")
    p.add_argument("username")
    p.add_argument("--password", help="New password (prompted if omitted)")
    p.set_defaults(func=cmd_set_password)

    p = sub.add_parser("deactivate", help="Disable a user and revoke their sessions")
    p.add_argument("username")
    p.set_defaults(func=cmd_deactivate)

    p = sub.add_parser("activate", help="Re-enable a deactivated user")
    p.add_argument("username")
    p.set_defaults(func=cmd_activate)

    p = sub.add_parser("list-users", help="List users with their live session counts")
    p.set_defaults(func=cmd_list_users)

    p = sub.add_parser("purge-sessions", help="Delete expired session rows")
    p.set_defaults(func=cmd_purge_sessions)

    p = sub.add_parser("serve", help="Run the web server with uvicorn")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    try:
        return args.func(args)
    except AppError as exc:
        print(f"  [!] {exc.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
