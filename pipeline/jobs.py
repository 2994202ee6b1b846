from __future__ import annotations

import logging

from rq.job import Job as RQJob

from auth import UserSession
from backend import BackendError, get_backend
from llm.prompts import planner_prompt
from plans import PlanLimitResolver, require_quota
from stores import ContentStore

logger = logging.getLogger(__name__)


def _session_for(backend, user_id: str) -> UserSession:
    user = backend.select_one(
        "users", columns="id,email,openai_key,heygen_key", filters={"id": user_id}
    )
    return UserSession(
        user_id=str(user["id"]),
        email=str(user.get("email") or ""),
        openai_api_key=user.get("openai_key"),
        heygen_api_key=user.get("heygen_key"),
    )


def generate_planned_video_job(
    user_id: str,
    influencer_id: str,
    title: str,
    script: str = "",
    prompt: str = "",
    cta: str = "",
) -> dict:
    """One planner row: write the script if needed, then start the video."""
    backend = get_backend()
    session = _session_for(backend, user_id)
    influencer = backend.select_one(
        "influencers",
        columns="id,template_id",
        filters={"id": influencer_id, "user_id": user_id},
    )
    limits = PlanLimitResolver(backend).resolve(session.email, user_id)
    if limits.error:
        raise BackendError(code="plan_limits_unavailable", message=limits.error, table="plans", retryable=True)
    require_quota(limits, "video_creation")

    store = ContentStore(session, backend)
    if not script.strip():
        script = store.generate_script(planner_prompt(prompt, cta))
    item = store.generate_video(influencer_id, influencer["template_id"], title, script)
    logger.info("planned video %s started for influencer %s", item["id"], influencer_id)
    return {"content_id": item["id"], "video_id": item.get("video_id"), "status": item.get("status")}


def rq_on_failure(job: RQJob, connection, exc_type, exc_value, traceback) -> None:  # type: ignore[no-untyped-def]
    logger.error("planner job %s failed: %s", job.id, exc_value)


def rq_on_success(job: RQJob, connection, result, *args, **kwargs) -> None:  # type: ignore[no-untyped-def]
    logger.info("planner job %s finished: %s", job.id, result)
