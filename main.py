#!/usr/bin/env python3
"""
VRC CMS -- management commands.

Usage:
  python main.py init-db
  python main.py create-admin --username admin --email admin@example.com --password 'S3cure!pass'
  python main.py reset-admin-password --username admin --password 'N3w!password'
  python main.py cleanup-tokens
  python main.py serve --host 0.0.0.0 --port 8000 --reload

Environment variables (see core/config.py for the full list):
  DATABASE_URL  SQLAlchemy URL. Defaults to a SQLite file next to this script.
  SECRET_KEY    Required unless DEBUG=true.
"""

import argparse
import sys

from auth.roles import ADMIN
from auth.service import AuthError, AuthService, check_password_strength
from auth.store import UserStore
from auth.tokens import hash_password
from content.store import ContentStore
from core.config import get_settings
from core.logging import configure_logging


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create every table. Safe to run repeatedly."""
    user_store = UserStore()
    content_store = ContentStore()
    print(f"Schema ready at {user_store.engine.url.render_as_string(hide_password=True)}")
    user_store.close()
    content_store.close()
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    store = UserStore()
    try:
        user = AuthService(store).create_account(args.username, args.email, args.password, role=ADMIN)
    except AuthError as exc:
        print(f"  [!] {exc.message}{' ' + exc.detail if exc.detail else ''}", file=sys.stderr)
        return 1
    finally:
        store.close()
    print(f"Admin '{user.username}' created (id={user.id}).")
    return 0


def cmd_reset_admin_password(args: argparse.Namespace) -> int:
    """Set a password without knowing the old one. Ends every session of the account."""
    store = UserStore()
    try:
        user = store.get_by_username(args.username)
        if user is None:
            print(f"  [!] No user named '{args.username}'.", file=sys.stderr)
            return 1
        try:
            check_password_strength(args.password)
        except AuthError as exc:
            print(f"  [!] {exc.message} {exc.detail}", file=sys.stderr)
            return 1
        store.update_user(user.id, hashed_password=hash_password(args.password), is_active=True)
        AuthService(store).logout_all(user, action="password_reset_complete")
    finally:
        store.close()
    print(f"Password for '{args.username}' updated; all sessions revoked.")
    return 0


def cmd_cleanup_tokens(args: argparse.Namespace) -> int:
    store = UserStore()
    try:
        counts = AuthService(store).cleanup_expired()
    finally:
        store.close()
    for name, count in counts.items():
        print(f"  {name}: {count} removed")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="VRC CMS management commands.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create database tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("create-admin", help="Create an admin account")
    p.add_argument("--username", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--password", required=True, help="Must meet the password complexity rules")
    p.set_defaults(func=cmd_create_admin)

    p = sub.add_parser("reset-admin-password", help="Set a new password for an existing account")
    p.add_argument("--username", required=True)
    p.add_argument("--password", required=True)
    p.set_defaults(func=cmd_reset_admin_password)

    p = sub.add_parser("cleanup-tokens", help="Purge expired refresh, revoked and reset tokens")
    p.set_defaults(func=cmd_cleanup_tokens)

    p = sub.add_parser("serve", help="Run the API with uvicorn")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development)")
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    get_settings()  # fail fast on a bad SECRET_KEY before touching the database
    configure_logging()
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
