from __future__ import annotations

from datetime import UTC, datetime

import pytest

import generation.video as video_module
import pipeline.jobs as jobs
import stores.content as content_module
from backend import BackendError
from pipeline.jobs import generate_planned_video_job, rq_on_failure, rq_on_success
from pipeline.queue import PlannerRow, enqueue_planner_rows
from plans import QuotaExceeded


class _FakeJob:
    def __init__(self, job_id: str) -> None:
        self.id = job_id


class _FakeQueue:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    def _record(self, kind, func, args, kwargs, when=None) -> _FakeJob:
        self.calls.append({"kind": kind, "func": func, "args": args, "kwargs": kwargs, "when": when})
        return _FakeJob(f"job-{len(self.calls)}")

    def enqueue(self, func, *args, **kwargs) -> _FakeJob:
        return self._record("now", func, args, kwargs)

    def enqueue_at(self, when, func, *args, **kwargs) -> _FakeJob:
        return self._record("at", func, args, kwargs, when)


class _FakeChat:
    def __init__(self) -> None:
        self.prompts: list[str] = []

    def complete(self, messages, *, api_key, temperature=None, max_tokens=None) -> str:
        self.prompts.append(messages[-1]["content"])
        return "Generated script"


def test_planner_row_readiness() -> None:
    assert PlannerRow.from_mapping({"influencer_id": "inf-1", "title": "A", "script": "S"}).ready
    assert PlannerRow.from_mapping({"influencer_id": "inf-1", "title": "A", "prompt": "P"}).ready
    assert not PlannerRow.from_mapping({"influencer_id": "inf-1", "title": "  ", "script": "S"}).ready
    assert not PlannerRow.from_mapping({"influencer_id": "inf-1", "title": "A"}).ready
    assert not PlannerRow.from_mapping({"title": "A", "script": "S"}).ready
    assert not PlannerRow.from_mapping(
        {"influencer_id": "inf-1", "title": "A", "script": "S", "selected": False}
    ).ready


def test_enqueue_skips_rows_that_are_not_ready(monkeypatch) -> None:
    monkeypatch.setenv("RQ_JOB_TIMEOUT", "120")
    queue = _FakeQueue()
    rows = [
        PlannerRow(influencer_id="inf-1", title=" Monday ", script=" Hello "),
        PlannerRow(influencer_id="inf-1", title="Tuesday"),
        PlannerRow(influencer_id="inf-2", title="Wednesday", prompt="Launch", cta="Sign up"),
    ]

    queued = enqueue_planner_rows("user-1", rows, queue=queue)

    assert queued == [
        {"rq_id": "job-1", "influencer_id": "inf-1", "title": "Monday"},
        {"rq_id": "job-2", "influencer_id": "inf-2", "title": "Wednesday"},
    ]
    first, second = queue.calls
    assert first["func"] is generate_planned_video_job
    assert first["args"] == ("user-1", "inf-1", "Monday", "Hello", "", "")
    assert second["args"] == ("user-1", "inf-2", "Wednesday", "", "Launch", "Sign up")
    assert first["kwargs"] == {"job_timeout": 120, "on_failure": rq_on_failure, "on_success": rq_on_success}


def test_enqueue_schedules_when_time_given() -> None:
    queue = _FakeQueue()
    when = datetime(2026, 11, 2, 9, 0, tzinfo=UTC)

    enqueue_planner_rows("user-1", [PlannerRow(influencer_id="inf-1", title="A", script="S")], when, queue)

    assert queue.calls[0]["kind"] == "at"
    assert queue.calls[0]["when"] == when


@pytest.fixture()
def planned(monkeypatch, backend, user):
    plan = backend.insert("plans", {"plan_name": "Pro", "price": 60, "video_creation": '{"limit": -1}'})[0]
    backend.update("users", {"current_plan": plan["id"]}, {"id": user.user_id})
    influencer = backend.insert(
        "influencers", {"user_id": user.user_id, "name": "Nova", "template_id": "tmpl-1"}
    )[0]
    submitted: list[dict] = []

    def fake_request_json(method, url, *, headers=None, payload=None, timeout=None):
        submitted.append({"url": url, "headers": headers, "payload": payload})
        return {"data": {"video_id": "vid-9"}}

    chat = _FakeChat()
    monkeypatch.setattr(jobs, "get_backend", lambda: backend)
    monkeypatch.setattr(video_module, "request_json", fake_request_json)
    monkeypatch.setattr(content_module, "get_client", lambda: chat)
    return {"influencer": influencer, "submitted": submitted, "chat": chat, "plan": plan}


def test_job_writes_script_from_prompt_and_starts_video(backend, user, planned) -> None:
    influencer = planned["influencer"]

    result = generate_planned_video_job(user.user_id, influencer["id"], "Launch", prompt="New app", cta="Try it")

    assert result["video_id"] == "vid-9"
    assert result["status"] == "generating"
    assert "New app" in planned["chat"].prompts[0]
    assert "Call to Action: Try it" in planned["chat"].prompts[0]
    [call] = planned["submitted"]
    assert call["headers"] == {"X-Api-Key": "hg-test"}
    assert call["payload"]["variables"]["script"]["properties"]["content"] == "Generated script"
    row = backend.select_one("content", filters={"id": result["content_id"]})
    assert row["title"] == "Launch"


def test_job_uses_given_script_without_llm(backend, user, planned) -> None:
    generate_planned_video_job(user.user_id, planned["influencer"]["id"], "Launch", script="Ready script")

    assert planned["chat"].prompts == []


def test_job_respects_video_quota(backend, user, planned) -> None:
    backend.update("plans", {"video_creation": '{"limit": 2}'}, {"id": planned["plan"]["id"]})
    backend.update("user_usage", {"videos_created": 2}, {"user_id": user.user_id})

    with pytest.raises(QuotaExceeded):
        generate_planned_video_job(user.user_id, planned["influencer"]["id"], "Launch", script="S")

    assert planned["submitted"] == []
    assert backend.select("content") == []


class _PlansDown:
    """Delegates to the real backend but fails every plans lookup."""

    def __init__(self, inner) -> None:
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def select(self, table, *args, **kwargs):
        if table == "plans":
            raise BackendError(code="network_error", message="down", table="plans", retryable=True)
        return self._inner.select(table, *args, **kwargs)

    def select_one(self, table, *args, **kwargs):
        if table == "plans":
            raise BackendError(code="network_error", message="down", table="plans", retryable=True)
        return self._inner.select_one(table, *args, **kwargs)


def test_job_reports_unavailable_plan_lookup_instead_of_quota(monkeypatch, backend, user, planned) -> None:
    monkeypatch.setattr(jobs, "get_backend", lambda: _PlansDown(backend))

    with pytest.raises(BackendError) as exc:
        generate_planned_video_job(user.user_id, planned["influencer"]["id"], "Launch", script="S")

    assert exc.value.code == "plan_limits_unavailable"
    assert exc.value.retryable is True
    assert planned["submitted"] == []
    assert backend.select("content") == []
