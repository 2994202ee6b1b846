#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
import json
import logging
import os

from auth import SessionCache
from backend import get_backend
from plans import PlanLimitResolver


def main() -> None:
    parser = ArgumentParser(description="Show a user's plan quotas and usage")
    parser.add_argument("--email", default=None, help="Defaults to the cached session")
    parser.add_argument("--user-id", default=None, help="Defaults to the cached session")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    args = parser.parse_args()

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING"))
    if not (args.email and args.user_id):
        session = SessionCache().load()
        if session is None:
            raise SystemExit("Pass --email and --user-id, or run scripts/session.py login first")
        args.email = args.email or session.email
        args.user_id = args.user_id or session.user_id
    limits = PlanLimitResolver(get_backend()).resolve(args.email, args.user_id)
    if args.json:
        print(json.dumps(limits.as_dict(), indent=2))
        return
    if limits.error:
        print(f"[limits] error={limits.error}")
        return
    print(f"[limits] tier={limits.tier} plan_id={limits.plan_id}")
    for feature in ("avatars", "ai_cloning", "video_creation"):
        quota = limits.quota(feature)
        limit = "unlimited" if quota.unlimited else quota.limit
        print(f"[limits] {feature}: used={quota.used} limit={limit}")
    print(f"[limits] automations={limits.automations_enabled} ai_editing={limits.ai_editing_enabled}")


if __name__ == "__main__":
    main()
