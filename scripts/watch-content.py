#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
import asyncio
from dataclasses import replace
import logging
import os

from auth import SessionCache
from backend import get_backend
from generation import PollerRegistry, load_poller_config
from stores import ContentStore


def _report(influencer_id: str):
    def report(items: list[dict]) -> None:
        for item in items:
            print(
                f"[content] influencer={influencer_id} id={item.get('id')} "
                f"status={item.get('status')} url={item.get('video_url') or '-'}"
            )

    return report


async def _watch(store: ContentStore, influencer_ids: list[str], config) -> list:
    registry = PollerRegistry()
    tasks = [
        registry.start(store.poller(influencer_id, config=config, on_update=_report(influencer_id)))
        for influencer_id in influencer_ids
    ]
    pollers = [registry.get(influencer_id) for influencer_id in influencer_ids]
    await asyncio.gather(*tasks)
    return pollers


def main() -> None:
    parser = ArgumentParser(description="Poll influencers' content until every video has finished")
    parser.add_argument("--influencer-id", required=True, action="append", dest="influencer_ids")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between polls")
    parser.add_argument("--max-duration", type=float, default=None, help="Give up after this many seconds")
    args = parser.parse_args()

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    session = SessionCache().load()
    if session is None:
        raise SystemExit("No cached session; run scripts/session.py login first")

    config = load_poller_config()
    if args.interval is not None:
        config = replace(config, interval_s=args.interval)
    if args.max_duration is not None:
        config = replace(config, max_duration_s=args.max_duration)

    store = ContentStore(session, get_backend())
    influencer_ids = list(dict.fromkeys(args.influencer_ids))
    try:
        pollers = asyncio.run(_watch(store, influencer_ids, config))
    except KeyboardInterrupt:
        print("[watch] interrupted")
        return
    for poller in pollers:
        print(
            f"[watch] influencer={poller.influencer_id} stopped={poller.stop_reason} "
            f"ticks={poller.ticks} failures={poller.failures}"
        )


if __name__ == "__main__":
    main()
