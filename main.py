#!/usr/bin/env python3
"""
SensorHub -- operator command line.

Usage:
  python main.py create-user alice
  python main.py create-user root --admin
  python main.py list-users
  python main.py serve --host 0.0.0.0 --port 8000

create-user prompts for the password (twice) unless --password-stdin is
given, in which case the first line of stdin is used. This is the bootstrap
path for the first ADMIN account: over HTTP, only an existing admin can
create another one.

Environment variables:
  SECRET_KEY    Required. At least 32 characters.
  DATABASE_URL  Optional. Defaults to sqlite:///sensorhub.db in the project root.
"""

import argparse
import getpass
import sys

from auth.models import Role
from auth.store import AccountStore
from auth.tokens import hash_password
from core.errors import AppError


def _read_password(from_stdin: bool) -> str:
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise SystemExit("  [!] Passwords do not match.")
    return first


def cmd_create_user(args: argparse.Namespace) -> int:
    username = args.username.strip()
    if not username:
        print("  [!] Username must not be empty.")
        return 1
    role = Role.ADMIN if args.admin else Role.USER
    store = AccountStore()
    try:
        account = store.create_account(username, hash_password(_read_password(args.password_stdin)), role)
    except AppError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()
    print(f"  Created {account.role.value} account '{account.username}'.")
    return 0


def cmd_list_users(args: argparse.Namespace) -> int:
    store = AccountStore()
    try:
        accounts = store.list_accounts()
    finally:
        store.close()
    if not accounts:
        print("  No accounts yet. Run: python main.py create-user <name> --admin")
        return 0
    width = max(len(a.username) for a in accounts)
    for account in accounts:
        print(f"  {account.username:<{width}}  {account.role.value:<5}  {account.created_at}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="sensorhub",
        description="SensorHub operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user root --admin
  echo 's3cret' | python main.py create-user alice --password-stdin
  python main.py list-users
  python main.py serve --port 8080
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account (use --admin for the first admin)")
    create.add_argument("username")
    create.add_argument("--admin", action="store_true", help="Grant the ADMIN role")
    create.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of stdin instead of prompting",
    )
    create.set_defaults(func=cmd_create_user)

    listing = sub.add_parser("list-users", help="List all accounts")
    listing.set_defaults(func=cmd_list_users)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development)")
    serve.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
