from __future__ import annotations

import pytest

import generation.avatar as avatar_module
from generation import GenerationError
from generation.avatar import AvatarClient, AvatarConfig, AvatarRequest, store_avatar_image


def _config(**overrides) -> AvatarConfig:
    values = dict(
        api_key="bfl-key",
        base_url="https://images.test",
        model="flux-pro-1.1",
        poll_interval_s=1.5,
        max_wait_s=10.0,
    )
    values.update(overrides)
    return AvatarConfig(**values)


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self) -> float:
        return self.now


def _scripted(monkeypatch, results: list[dict]) -> list[dict]:
    calls: list[dict] = []

    def fake_request_json(method, url, *, headers=None, payload=None, timeout=None):
        calls.append({"method": method, "url": url, "headers": headers, "payload": payload})
        if method == "POST":
            return {"id": "req-1"}
        return results.pop(0) if len(results) > 1 else results[0]

    monkeypatch.setattr(avatar_module, "request_json", fake_request_json)
    return calls


def test_generate_polls_until_ready(monkeypatch) -> None:
    calls = _scripted(
        monkeypatch,
        [
            {"status": "Pending"},
            {"status": "Pending"},
            {"status": "Ready", "result": {"sample": "https://img.test/a.jpg"}},
        ],
    )
    clock = _Clock()
    client = AvatarClient(_config(), sleep=clock.sleep, clock=clock)

    url = client.generate(AvatarRequest(prompt="portrait of a friendly host", seed=7))

    assert url == "https://img.test/a.jpg"
    assert clock.sleeps == [1.5, 1.5]
    submit = calls[0]
    assert submit["url"] == "https://images.test/v1/flux-pro-1.1"
    assert submit["headers"] == {"x-key": "bfl-key"}
    assert submit["payload"] == {
        "prompt": "portrait of a friendly host",
        "aspect_ratio": "9:16",
        "safety_tolerance": 2,
        "output_format": "jpeg",
        "seed": 7,
    }
    assert calls[1]["url"] == "https://images.test/v1/get_result?id=req-1"


def test_moderated_result_raises(monkeypatch) -> None:
    _scripted(monkeypatch, [{"status": "Content Moderated"}])
    clock = _Clock()

    with pytest.raises(GenerationError) as exc:
        AvatarClient(_config(), sleep=clock.sleep, clock=clock).generate(AvatarRequest(prompt="x"))

    assert exc.value.code == "moderated"


def test_wait_gives_up_at_deadline(monkeypatch) -> None:
    _scripted(monkeypatch, [{"status": "Pending"}])
    clock = _Clock()

    with pytest.raises(GenerationError) as exc:
        AvatarClient(_config(max_wait_s=4.0), sleep=clock.sleep, clock=clock).generate(
            AvatarRequest(prompt="x")
        )

    assert exc.value.code == "timeout"
    assert exc.value.retryable


def test_empty_prompt_is_rejected_locally(monkeypatch) -> None:
    calls = _scripted(monkeypatch, [{"status": "Ready"}])

    with pytest.raises(ValueError):
        AvatarClient(_config()).submit(AvatarRequest(prompt="   "))

    assert calls == []


def test_missing_api_key(monkeypatch) -> None:
    monkeypatch.delenv("BFL_API_KEY", raising=False)
    with pytest.raises(GenerationError) as exc:
        AvatarClient()
    assert exc.value.code == "missing_api_key"


def test_store_avatar_image_uploads_to_bucket(monkeypatch, backend, tmp_path) -> None:
    monkeypatch.setattr(avatar_module, "request_raw", lambda method, url, **kwargs: (200, b"jpeg-bytes"))
    monkeypatch.setenv("STORAGE_BUCKET", "avatars")

    public_url = store_avatar_image(backend, "user-1", "https://img.test/a.jpg")

    assert public_url.startswith("file://")
    stored = list((tmp_path / "storage" / "avatars" / "user-1").iterdir())
    assert len(stored) == 1
    assert stored[0].suffix == ".jpg"
    assert stored[0].read_bytes() == b"jpeg-bytes"
