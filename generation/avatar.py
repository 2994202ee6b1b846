from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import time
from typing import Any, Callable, Literal
from uuid import uuid4

from backend.http import HTTPCallError, build_url, request_json, request_raw

from .errors import GenerationError

logger = logging.getLogger(__name__)

PROVIDER = "bfl"

AspectRatio = Literal["1:1", "16:9", "9:16", "4:3", "3:4", "21:9", "9:21"]
OutputFormat = Literal["jpeg", "png"]

_FAILED_STATUSES = {"Error", "Content Moderated", "Request Moderated", "Task not found"}


@dataclass(frozen=True)
class AvatarConfig:
    api_key: str
    base_url: str
    model: str
    poll_interval_s: float
    max_wait_s: float


@dataclass(frozen=True)
class AvatarRequest:
    prompt: str
    seed: int | None = None
    aspect_ratio: AspectRatio = "9:16"
    safety_tolerance: int = 2
    output_format: OutputFormat = "jpeg"

    def payload(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "prompt": self.prompt,
            "aspect_ratio": self.aspect_ratio,
            "safety_tolerance": self.safety_tolerance,
            "output_format": self.output_format,
        }
        if self.seed is not None:
            body["seed"] = self.seed
        return body


def load_avatar_config() -> AvatarConfig:
    api_key = os.getenv("BFL_API_KEY", "").strip()
    if not api_key:
        raise GenerationError(
            code="missing_api_key",
            message="BFL_API_KEY is not set",
            provider=PROVIDER,
        )
    return AvatarConfig(
        api_key=api_key,
        base_url=os.getenv("BFL_BASE_URL", "https://api.bfl.ml").strip().rstrip("/"),
        model=os.getenv("BFL_MODEL", "flux-pro-1.1").strip(),
        poll_interval_s=float(os.getenv("AVATAR_POLL_INTERVAL_S", "1.5")),
        max_wait_s=float(os.getenv("AVATAR_POLL_MAX_WAIT_S", "120")),
    )


class AvatarClient:
    def __init__(
        self,
        config: AvatarConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or load_avatar_config()
        self._sleep = sleep
        self._clock = clock

    def _call(self, method: str, path: str, *, params=None, payload=None) -> dict[str, Any]:
        try:
            body = request_json(
                method,
                build_url(self._config.base_url, path, params),
                headers={"x-key": self._config.api_key},
                payload=payload,
            )
        except HTTPCallError as exc:
            raise GenerationError(
                code="provider_error",
                message=exc.detail,
                provider=PROVIDER,
                retryable=exc.retryable,
            ) from exc
        if not isinstance(body, dict):
            raise GenerationError(code="provider_error", message="empty response", provider=PROVIDER)
        return body

    def submit(self, request: AvatarRequest) -> str:
        if not request.prompt.strip():
            raise ValueError("prompt is required")
        body = self._call("POST", f"/v1/{self._config.model}", payload=request.payload())
        request_id = body.get("id")
        if not request_id:
            raise GenerationError(code="submit_failed", message="no request id returned", provider=PROVIDER)
        return str(request_id)

    def wait_for_result(self, request_id: str) -> str:
        deadline = self._clock() + self._config.max_wait_s
        while True:
            body = self._call("GET", "/v1/get_result", params={"id": request_id})
            status = str(body.get("status", ""))
            if status == "Ready":
                sample = (body.get("result") or {}).get("sample")
                if not sample:
                    raise GenerationError(code="provider_error", message="result has no image", provider=PROVIDER)
                return str(sample)
            if status in _FAILED_STATUSES:
                code = "moderated" if "Moderated" in status else "provider_error"
                raise GenerationError(code=code, message=status, provider=PROVIDER)
            if self._clock() >= deadline:
                raise GenerationError(
                    code="timeout",
                    message=f"image not ready after {self._config.max_wait_s:.0f}s",
                    provider=PROVIDER,
                    retryable=True,
                )
            self._sleep(self._config.poll_interval_s)

    def generate(self, request: AvatarRequest) -> str:
        request_id = self.submit(request)
        logger.info("avatar image request %s submitted", request_id)
        return self.wait_for_result(request_id)


def store_avatar_image(backend: Any, user_id: str, image_url: str, output_format: str = "jpeg") -> str:
    """Copy a generated image into the storage bucket and return its public URL."""
    bucket = os.getenv("STORAGE_BUCKET", "generated-images")
    try:
        _, data = request_raw("GET", image_url)
    except HTTPCallError as exc:
        raise GenerationError(
            code="provider_error",
            message=f"could not download image: {exc.detail}",
            provider=PROVIDER,
            retryable=exc.retryable,
        ) from exc
    extension = "png" if output_format == "png" else "jpg"
    path = f"{user_id}/{uuid4().hex}.{extension}"
    return backend.upload(bucket, path, data, f"image/{'png' if extension == 'png' else 'jpeg'}")
