#!/usr/bin/env python3
"""
AuthWarden -- password authentication service with rotating refresh tokens.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000
  python main.py register alice@example.com alice
  python main.py logout 1f0c6f9e-6a43-4f0e-9a55-2f3c1b7d9e10
  python main.py delete-account 1f0c6f9e-6a43-4f0e-9a55-2f3c1b7d9e10

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL. Defaults to a SQLite file next to this script.
  DEBUG          Development mode: auto-generates SECRET_KEY with a warning.
"""

import argparse
import getpass
import sys
from typing import Optional

from pydantic import ValidationError

from auth.errors import AuthError
from core.config import get_settings


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _cmd_register(args: argparse.Namespace) -> int:
    from api.main import build_components

    password = args.password or getpass.getpass("Password: ")
    if args.password is None and getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.")
        return 1

    components = build_components(get_settings())
    try:
        view = components.service.register(args.email, args.username, password)
    finally:
        components.close()
    print(f"  Account created: {view.id} ({view.email})")
    return 0


def _cmd_logout(args: argparse.Namespace) -> int:
    from api.main import build_components

    components = build_components(get_settings())
    try:
        revoked = components.service.logout(args.account_id)
    finally:
        components.close()
    print(f"  Revoked {revoked} refresh token(s) for {args.account_id}.")
    return 0


def _cmd_delete_account(args: argparse.Namespace) -> int:
    from api.main import build_components

    components = build_components(get_settings())
    try:
        components.service.delete_account(args.account_id)
    finally:
        components.close()
    print(f"  Account {args.account_id} deleted.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authwarden",
        description="Password authentication with short-lived access tokens and rotating refresh tokens.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py register alice@example.com alice
  python main.py logout <account-id>
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    serve.set_defaults(func=_cmd_serve)

    register = sub.add_parser("register", help="Create an account")
    register.add_argument("email")
    register.add_argument("username")
    register.add_argument(
        "--password",
        default=None,
        help="Password (prompted for if omitted; passing it here leaves it in shell history)",
    )
    register.set_defaults(func=_cmd_register)

    logout = sub.add_parser("logout", help="Revoke every refresh token of an account")
    logout.add_argument("account_id")
    logout.set_defaults(func=_cmd_logout)

    delete = sub.add_parser("delete-account", help="Delete an account and its sessions")
    delete.add_argument("account_id")
    delete.set_defaults(func=_cmd_delete_account)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    try:
        return args.func(args)
    except AuthError as exc:
        print(f"  [!] {exc.code}: {exc.message}")
        return 1
    except ValidationError as exc:
        print(f"  [!] config: {exc.errors()[0]['msg']}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
