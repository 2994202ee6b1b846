#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
import logging
import os

from auth import SessionCache
from backend import get_backend
from generation.avatar import AvatarClient, AvatarRequest, store_avatar_image


def main() -> None:
    parser = ArgumentParser(description="Generate an avatar image and store it in the bucket")
    parser.add_argument("--prompt", required=True)
    parser.add_argument("--user-id", default=None, help="Defaults to the cached session")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--aspect-ratio", default="9:16")
    parser.add_argument("--format", dest="output_format", choices=["jpeg", "png"], default="jpeg")
    parser.add_argument("--no-store", action="store_true", help="Print the provider URL only")
    args = parser.parse_args()

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    user_id = args.user_id
    if user_id is None and not args.no_store:
        session = SessionCache().load()
        if session is None:
            raise SystemExit("Pass --user-id, or run scripts/session.py login first")
        user_id = session.user_id
    request = AvatarRequest(
        prompt=args.prompt,
        seed=args.seed,
        aspect_ratio=args.aspect_ratio,
        output_format=args.output_format,
    )
    image_url = AvatarClient().generate(request)
    print(f"[avatar] provider_url={image_url}")
    if args.no_store:
        return
    public_url = store_avatar_image(get_backend(), user_id, image_url, args.output_format)
    print(f"[avatar] stored_url={public_url}")


if __name__ == "__main__":
    main()
