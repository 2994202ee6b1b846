from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import os
from typing import Any, Iterable, Mapping

from redis import Redis
from rq import Queue

from pipeline.jobs import generate_planned_video_job, rq_on_failure, rq_on_success


@dataclass(frozen=True)
class PlannerRow:
    influencer_id: str
    title: str
    prompt: str = ""
    cta: str = ""
    script: str = ""
    selected: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PlannerRow":
        return cls(
            influencer_id=str(data.get("influencer_id") or ""),
            title=str(data.get("title") or ""),
            prompt=str(data.get("prompt") or ""),
            cta=str(data.get("cta") or ""),
            script=str(data.get("script") or ""),
            selected=bool(data.get("selected", True)),
        )

    @property
    def ready(self) -> bool:
        return bool(
            self.selected
            and self.influencer_id
            and self.title.strip()
            and (self.script.strip() or self.prompt.strip())
        )


def _redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


def _timeout_seconds() -> int:
    return int(os.getenv("RQ_JOB_TIMEOUT", "300"))


def get_redis() -> Redis:
    return Redis.from_url(_redis_url())


def get_queue(name: str = "default") -> Queue:
    return Queue(name, connection=get_redis())


def enqueue_planner_rows(
    user_id: str,
    rows: Iterable[PlannerRow],
    scheduled_at: datetime | None = None,
    queue: Queue | None = None,
) -> list[dict]:
    """Queue one video job per ready row; rows that are not ready are skipped."""
    queue = queue or get_queue()
    queued: list[dict] = []
    for row in rows:
        if not row.ready:
            continue
        args = (user_id, row.influencer_id, row.title.strip(), row.script.strip(), row.prompt, row.cta)
        options = dict(
            job_timeout=_timeout_seconds(),
            on_failure=rq_on_failure,
            on_success=rq_on_success,
        )
        if scheduled_at is not None:
            job = queue.enqueue_at(scheduled_at, generate_planned_video_job, *args, **options)
        else:
            job = queue.enqueue(generate_planned_video_job, *args, **options)
        queued.append({"rq_id": job.id, "influencer_id": row.influencer_id, "title": row.title.strip()})
    return queued
