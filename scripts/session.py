#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
import getpass
import logging
import os

from auth import AuthClient, AuthError, AuthService, SessionCache
from backend import get_backend


def main() -> None:
    parser = ArgumentParser(description="Sign in once and keep the session for the other scripts")
    sub = parser.add_subparsers(dest="command", required=True)
    login = sub.add_parser("login", help="Sign in and cache the session")
    login.add_argument("--email", required=True)
    login.add_argument("--password", default=None, help="Prompted for when omitted")
    sub.add_parser("logout", help="Sign out and drop the cached session")
    sub.add_parser("whoami", help="Show the cached session")
    args = parser.parse_args()

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING"))
    cache = SessionCache()
    service = AuthService(AuthClient(), get_backend(), cache)

    if args.command == "login":
        password = args.password or getpass.getpass("Password: ")
        try:
            session = service.log_in(args.email, password)
        except AuthError as exc:
            raise SystemExit(f"[session] login failed: {exc.message}") from exc
        print(f"[session] user_id={session.user_id} email={session.email} cache={cache.path}")
    elif args.command == "logout":
        service.log_out(service.restore())
        print("[session] signed out")
    else:
        session = service.restore()
        if session is None:
            print("[session] none")
            return
        keys = f"openai={'yes' if session.openai_api_key else 'no'} heygen={'yes' if session.heygen_api_key else 'no'}"
        print(f"[session] user_id={session.user_id} email={session.email} {keys}")


if __name__ == "__main__":
    main()
