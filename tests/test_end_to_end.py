from __future__ import annotations

import asyncio

from generation.poller import PollerConfig
from generation.video import apply_webhook_event
from plans import PlanLimitResolver, require_quota
from stores import ContentStore, InfluencerStore

FAST = PollerConfig(interval_s=0.0, backoff=1.0, max_interval_s=0.0)


class _FakeChat:
    def complete(self, messages, *, api_key, temperature=None, max_tokens=None) -> str:
        return "Welcome to the launch of our new app!"


class _FakeVideoClient:
    def __init__(self, api_key) -> None:
        self.api_key = api_key

    def submit(self, template_id, title, script, callback_id=None) -> str:
        return "vid-e2e"


def test_video_lifecycle_from_script_to_completed(backend, user) -> None:
    plan = backend.insert("plans", {"plan_name": "Basic", "price": 30, "video_creation": '{"limit": 3}'})[0]
    backend.update("users", {"current_plan": plan["id"]}, {"id": user.user_id})
    require_quota(PlanLimitResolver(backend).resolve(user.email, user.user_id), "video_creation")

    influencer = InfluencerStore(user, backend).add("Nova", "tmpl-1")
    store = ContentStore(user, backend, llm_client=_FakeChat(), video_client_factory=_FakeVideoClient)
    script = store.generate_script("Announce our new app")
    item = store.generate_video(influencer.id, influencer.template_id, "Launch", script)

    poller = store.poller(influencer.id, config=FAST)
    assert asyncio.run(poller.tick()) is True
    assert store.get(influencer.id)[0]["status"] == "generating"
    assert store.in_queue(influencer.id) == 1

    updated = apply_webhook_event(
        backend,
        {
            "event_type": "avatar_video.success",
            "event_data": {"video_id": "vid-e2e", "url": "https://cdn/launch.mp4", "callback_id": item["id"]},
        },
    )
    assert updated["status"] == "completed"

    items = asyncio.run(poller.run())

    assert poller.stop_reason == "settled"
    assert items[0]["status"] == "completed"
    assert items[0]["video_url"] == "https://cdn/launch.mp4"
    assert store.get(influencer.id)[0]["video_url"] == "https://cdn/launch.mp4"
    assert store.in_queue(influencer.id) == 0

    stale = apply_webhook_event(
        backend,
        {"event_type": "avatar_video.fail", "event_data": {"video_id": "vid-e2e", "msg": "late failure"}},
    )
    assert stale is None
    assert store.refresh(influencer.id)[0]["status"] == "completed"
