#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path

import yaml

from pipeline.queue import PlannerRow, enqueue_planner_rows


def _load_rows(path: Path) -> list[PlannerRow]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    elif path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        raise ValueError("planner rows must be .yaml/.yml/.json")
    if isinstance(data, dict):
        data = data.get("rows")
    if not isinstance(data, list):
        raise ValueError("planner rows must be a list")
    return [PlannerRow.from_mapping(item) for item in data]


def main() -> None:
    parser = ArgumentParser(description="Queue a batch of planned videos")
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--rows", required=True, help="YAML/JSON file with planner rows")
    parser.add_argument(
        "--at",
        default=None,
        help="ISO timestamp to schedule the batch (UTC when no offset is given)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    rows = _load_rows(Path(args.rows))
    scheduled_at = None
    if args.at:
        scheduled_at = datetime.fromisoformat(args.at)
        if scheduled_at.tzinfo is None:
            scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)

    queued = enqueue_planner_rows(args.user_id, rows, scheduled_at=scheduled_at)
    print(f"[enqueue] rows={len(rows)} queued={len(queued)} skipped={len(rows) - len(queued)}")
    for item in queued:
        print(f"[enqueue] rq_id={item['rq_id']} influencer={item['influencer_id']} title={item['title']!r}")


if __name__ == "__main__":
    main()
