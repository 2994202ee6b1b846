from __future__ import annotations

import pytest

import llm.client as client_module
from backend.http import HTTPCallError, sanitize
from llm import ChatClient, ChatRoute, LLMError


def _route(**overrides) -> ChatRoute:
    values = dict(
        provider="openai",
        model="gpt-4o",
        base_url="https://llm.test/v1",
        temperature=0.2,
        timeout_s=10,
        retries=2,
        breaker_threshold=2,
        breaker_cooldown_s=60,
        max_tokens=500,
    )
    values.update(overrides)
    return ChatRoute(**values)


def _completion(text: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 11, "completion_tokens": 7},
    }


def test_complete_sends_payload_and_tracks_metrics(monkeypatch) -> None:
    calls: list[dict] = []

    def fake_request_json(method, url, *, headers=None, payload=None, timeout=None):
        calls.append({"url": url, "headers": headers, "payload": payload, "timeout": timeout})
        return _completion("Hello!")

    monkeypatch.setattr(client_module, "request_json", fake_request_json)
    client = ChatClient(_route())

    text = client.complete([{"role": "user", "content": "hi"}], api_key="sk-1", temperature=0.7, max_tokens=9000)

    assert text == "Hello!"
    call = calls[0]
    assert call["url"] == "https://llm.test/v1/chat/completions"
    assert call["headers"] == {"Authorization": "Bearer sk-1"}
    assert call["payload"] == {
        "model": "gpt-4o",
        "messages": [{"role": "user", "content": "hi"}],
        "temperature": 0.7,
        "max_tokens": 500,
    }
    bucket = client.get_metrics_snapshot()["routes"]["openai|gpt-4o"]
    assert bucket["calls"] == 1
    assert bucket["success"] == 1
    assert bucket["prompt_tokens_total"] == 11


def test_retryable_errors_are_retried(monkeypatch) -> None:
    attempts = {"count": 0}

    def flaky(method, url, **kwargs):
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise HTTPCallError(status=503, detail="overloaded")
        return _completion("third time")

    monkeypatch.setattr(client_module, "request_json", flaky)
    monkeypatch.setattr(client_module.time, "sleep", lambda _seconds: None)
    client = ChatClient(_route())

    assert client.complete([{"role": "user", "content": "hi"}], api_key="sk-1") == "third time"
    assert attempts["count"] == 3
    assert client.get_metrics_snapshot()["routes"]["openai|gpt-4o"]["retries"] == 2


def test_client_errors_are_not_retried(monkeypatch) -> None:
    attempts = {"count": 0}

    def unauthorized(method, url, **kwargs):
        attempts["count"] += 1
        raise HTTPCallError(status=401, detail="Incorrect API key provided")

    monkeypatch.setattr(client_module, "request_json", unauthorized)
    client = ChatClient(_route())

    with pytest.raises(LLMError) as exc:
        client.complete([{"role": "user", "content": "hi"}], api_key="sk-bad")

    assert exc.value.code == "http_401"
    assert attempts["count"] == 1


def test_breaker_opens_after_consecutive_failures(monkeypatch) -> None:
    def broken(method, url, **kwargs):
        raise HTTPCallError(status=400, detail="bad request")

    monkeypatch.setattr(client_module, "request_json", broken)
    client = ChatClient(_route(breaker_threshold=2))
    messages = [{"role": "user", "content": "hi"}]

    for _ in range(2):
        with pytest.raises(LLMError):
            client.complete(messages, api_key="sk-1")

    with pytest.raises(LLMError) as exc:
        client.complete(messages, api_key="sk-1")
    assert exc.value.code == "circuit_open"

    with pytest.raises(LLMError) as other_key:
        client.complete(messages, api_key="sk-2")
    assert other_key.value.code == "http_400"


def test_missing_key_and_bad_shape(monkeypatch) -> None:
    client = ChatClient(_route())
    with pytest.raises(LLMError) as exc:
        client.complete([{"role": "user", "content": "hi"}], api_key=None)
    assert exc.value.code == "missing_api_key"

    monkeypatch.setattr(client_module, "request_json", lambda method, url, **kwargs: {"choices": []})
    with pytest.raises(LLMError) as shape:
        client.complete([{"role": "user", "content": "hi"}], api_key="sk-1")
    assert shape.value.code == "invalid_response"


def test_sanitize_redacts_bearer_tokens() -> None:
    text = sanitize("Authorization: Bearer sk-secret\nmore" + "x" * 400)
    assert "sk-secret" not in text
    assert text.startswith("Authorization: Bearer [redacted] more")
    assert "\n" not in text
    assert len(text) == 300
