from __future__ import annotations

import asyncio

import pytest

from generation import GenerationError, PollerConfig, PollerRegistry
from stores import ContentStore, InfluencerStore, WebhookStore


class _FakeChat:
    def __init__(self, reply: str = "  A fresh script.  ") -> None:
        self.reply = reply
        self.calls: list[dict] = []

    def complete(self, messages, *, api_key, temperature=None, max_tokens=None) -> str:
        self.calls.append({"messages": list(messages), "api_key": api_key})
        return self.reply


class _FakeVideoClient:
    def __init__(self, api_key, *, error: GenerationError | None = None) -> None:
        self.api_key = api_key
        self.error = error
        self.submitted: list[dict] = []

    def submit(self, template_id, title, script, callback_id=None) -> str:
        if self.error is not None:
            raise self.error
        self.submitted.append(
            {"template_id": template_id, "title": title, "script": script, "callback_id": callback_id}
        )
        return "vid-42"


@pytest.fixture()
def influencer(backend, user):
    return InfluencerStore(user, backend).add("Nova", "tmpl-1")


def test_influencer_store_crud(backend, user) -> None:
    store = InfluencerStore(user, backend)
    first = store.add("Nova", "tmpl-1")
    second = store.add("Orion", "tmpl-2")

    assert [inf.id for inf in store.all()] == [second.id, first.id]

    renamed = store.update(first.id, name="Nova II")
    assert renamed is not None and renamed.name == "Nova II"
    assert renamed.template_id == "tmpl-1"
    assert backend.select_one("influencers", columns="name", filters={"id": first.id}) == {"name": "Nova II"}

    store.delete(second.id)
    assert store.get(second.id) is None
    assert {inf.id for inf in InfluencerStore(user, backend).fetch()} == {first.id}

    with pytest.raises(ValueError):
        store.add("  ", "tmpl")


def test_generate_video_records_provider_job(backend, user, influencer) -> None:
    client = _FakeVideoClient("hg-test")
    store = ContentStore(user, backend, llm_client=_FakeChat(), video_client_factory=lambda key: client)

    item = store.generate_video(influencer.id, influencer.template_id, " Launch day ", "Hello world")

    assert item["status"] == "generating"
    assert item["video_id"] == "vid-42"
    assert item["title"] == "Launch day"
    assert client.submitted == [
        {"template_id": "tmpl-1", "title": "Launch day", "script": "Hello world", "callback_id": item["id"]}
    ]
    assert store.in_queue(influencer.id) == 1
    stored = backend.select_one("content", filters={"id": item["id"]})
    assert stored["video_id"] == "vid-42"


def test_generate_video_marks_row_failed_when_submit_fails(backend, user, influencer) -> None:
    error = GenerationError(code="submit_failed", message="template not found", provider="heygen")
    store = ContentStore(
        user,
        backend,
        llm_client=_FakeChat(),
        video_client_factory=lambda key: _FakeVideoClient(key, error=error),
    )

    with pytest.raises(GenerationError):
        store.generate_video(influencer.id, "missing", "Title", "Script")

    [row] = backend.select("content", filters={"influencer_id": influencer.id})
    assert row["status"] == "failed"
    assert row["error"] == "template not found"
    assert store.get(influencer.id)[0]["status"] == "failed"
    assert store.in_queue(influencer.id) == 0


def test_generate_video_validates_before_any_call(backend, user, influencer) -> None:
    store = ContentStore(user, backend, llm_client=_FakeChat(), video_client_factory=_FakeVideoClient)

    with pytest.raises(ValueError):
        store.generate_video(influencer.id, "tmpl-1", "", "Script")

    assert backend.select("content") == []


def test_refresh_merges_forward_only(backend, user, influencer) -> None:
    store = ContentStore(
        user, backend, llm_client=_FakeChat(), video_client_factory=lambda key: _FakeVideoClient(key)
    )
    item = store.generate_video(influencer.id, "tmpl-1", "Title", "Script")
    local = store.get(influencer.id)
    local[0] = {**local[0], "status": "completed", "video_url": "https://cdn/v.mp4"}
    store.replace(influencer.id, local)

    refreshed = store.refresh(influencer.id)

    assert refreshed[0]["id"] == item["id"]
    assert refreshed[0]["status"] == "completed"
    assert refreshed[0]["video_url"] == "https://cdn/v.mp4"


def test_delete_removes_rows_and_cache(backend, user, influencer) -> None:
    store = ContentStore(
        user, backend, llm_client=_FakeChat(), video_client_factory=lambda key: _FakeVideoClient(key)
    )
    keep = store.generate_video(influencer.id, "tmpl-1", "Keep", "Script")
    drop = store.generate_video(influencer.id, "tmpl-1", "Drop", "Script")

    store.delete(influencer.id, [drop["id"]])

    assert [item["id"] for item in store.get(influencer.id)] == [keep["id"]]
    assert [row["id"] for row in store.fetch(influencer.id)] == [keep["id"]]


def test_generate_script_uses_user_key_and_action(backend, user) -> None:
    chat = _FakeChat()
    store = ContentStore(user, backend, llm_client=chat, video_client_factory=_FakeVideoClient)

    script = store.generate_script("Old script", action="shorten")

    assert script == "A fresh script."
    assert chat.calls[0]["api_key"] == "sk-test"
    assert chat.calls[0]["messages"][-1]["content"].startswith("Make this script more concise")
    with pytest.raises(ValueError):
        store.generate_script("   ")


def test_webhook_store(backend, user, influencer) -> None:
    store = WebhookStore(user, backend)

    hook = store.add(influencer.id, "Zapier", "https://hooks.example.com/abc")

    assert store.fetch(influencer.id) == [hook]
    with pytest.raises(ValueError):
        store.add(influencer.id, "Bad", "ftp://example.com")
    store.delete(influencer.id, hook["id"])
    assert store.get(influencer.id) == []
    assert backend.select("webhook_influencer") == []


def test_store_poller_runs_through_registry_and_updates_cache(backend, user, influencer) -> None:
    store = ContentStore(
        user, backend, llm_client=_FakeChat(), video_client_factory=lambda key: _FakeVideoClient(key)
    )
    item = store.generate_video(influencer.id, "tmpl-1", "Title", "Script")
    backend.update("content", {"status": "completed", "video_url": "https://cdn/v.mp4"}, {"id": item["id"]})
    seen: list[list[dict]] = []

    async def scenario():
        registry = PollerRegistry()
        poller = store.poller(
            influencer.id,
            config=PollerConfig(interval_s=0.0, backoff=1.0, max_interval_s=0.0),
            on_update=seen.append,
        )
        await registry.start(poller)
        return poller, registry.active_ids()

    poller, active = asyncio.run(scenario())

    assert poller.stop_reason == "settled"
    assert active == []
    assert seen[-1][0]["video_url"] == "https://cdn/v.mp4"
    assert store.get(influencer.id)[0]["status"] == "completed"
