#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
import logging
import os

from rq import SimpleWorker, Worker

from pipeline.queue import get_queue, get_redis


def _dispose_engine() -> None:
    if os.getenv("DATA_BACKEND", "rest").strip().lower() == "sql":
        from db.session import get_engine

        get_engine().dispose()


def main() -> None:
    parser = ArgumentParser(description="Start RQ worker for planned videos")
    parser.add_argument("--queue", default="default")
    parser.add_argument("--burst", action="store_true", help="Process queued jobs and exit")
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Do not move scheduled planner jobs onto the queue",
    )
    args = parser.parse_args()

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    if hasattr(os, "register_at_fork"):
        os.register_at_fork(after_in_child=_dispose_engine)

    queue = get_queue(args.queue)
    worker_cls = SimpleWorker if os.getenv("RQ_SIMPLE_WORKER", "1") == "1" else Worker
    worker = worker_cls([queue], connection=get_redis())
    worker.work(with_scheduler=not args.no_scheduler, burst=args.burst)


if __name__ == "__main__":
    main()
