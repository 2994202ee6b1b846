from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Any

from backend import DataBackend
from backend.http import HTTPCallError, build_url, request_json

from .errors import GenerationError
from .status import COMPLETED, FAILED, GENERATING, advance, is_terminal

logger = logging.getLogger(__name__)

PROVIDER = "heygen"

_STATUS_MAP = {
    "pending": GENERATING,
    "waiting": GENERATING,
    "processing": GENERATING,
    "completed": COMPLETED,
    "failed": FAILED,
}


@dataclass(frozen=True)
class VideoStatus:
    status: str
    video_url: str | None = None
    error: str | None = None


def _base_url() -> str:
    return os.getenv("HEYGEN_BASE_URL", "https://api.heygen.com").strip().rstrip("/")


def _error_text(error: Any) -> str | None:
    if not error:
        return None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("detail") or error)
    return str(error)


class VideoClient:
    """Avatar video generation from a stored template and a script."""

    def __init__(self, api_key: str | None, base_url: str | None = None) -> None:
        if not api_key:
            raise GenerationError(
                code="missing_api_key",
                message="No video generation API key configured for this user",
                provider=PROVIDER,
            )
        self._api_key = api_key
        self._base_url = base_url or _base_url()

    def _call(self, method: str, path: str, *, params=None, payload=None) -> dict[str, Any]:
        try:
            body = request_json(
                method,
                build_url(self._base_url, path, params),
                headers={"X-Api-Key": self._api_key},
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

    def submit(self, template_id: str, title: str, script: str, callback_id: str | None = None) -> str:
        payload: dict[str, Any] = {
            "caption": False,
            "title": title,
            "variables": {
                "script": {
                    "name": "script",
                    "type": "text",
                    "properties": {"content": script},
                }
            },
        }
        if callback_id:
            payload["callback_id"] = callback_id
        try:
            body = self._call("POST", f"/v2/template/{template_id}/generate", payload=payload)
        except GenerationError as exc:
            raise GenerationError(
                code="submit_failed",
                message=exc.message,
                provider=PROVIDER,
                retryable=exc.retryable,
            ) from exc
        video_id = (body.get("data") or {}).get("video_id")
        if not video_id:
            raise GenerationError(
                code="submit_failed",
                message=_error_text(body.get("error")) or "provider returned no video id",
                provider=PROVIDER,
            )
        return str(video_id)

    def status(self, video_id: str) -> VideoStatus:
        body = self._call("GET", "/v1/video_status.get", params={"video_id": video_id})
        data = body.get("data") or {}
        status = _STATUS_MAP.get(str(data.get("status", "")).lower(), GENERATING)
        return VideoStatus(
            status=status,
            video_url=data.get("video_url"),
            error=_error_text(data.get("error")),
        )


def apply_webhook_event(
    backend: DataBackend, event: dict[str, Any], table: str = "content"
) -> dict[str, Any] | None:
    """Record a provider callback on the content row it belongs to.

    Returns the updated row, or None when the event is unknown, matches no row,
    or arrives for a row that is already finished.
    """
    event_type = str(event.get("event_type", ""))
    data = event.get("event_data") or {}
    if event_type == "avatar_video.success":
        incoming = COMPLETED
        values: dict[str, Any] = {"video_url": data.get("url"), "error": None}
    elif event_type == "avatar_video.fail":
        incoming = FAILED
        values = {"error": str(data.get("msg") or "Generation failed")}
    else:
        logger.info("ignoring video event %s", event_type or "<missing>")
        return None

    if data.get("callback_id"):
        filters = {"id": data["callback_id"]}
    elif data.get("video_id"):
        filters = {"video_id": data["video_id"]}
    else:
        return None

    rows = backend.select(table, columns="id,status", filters=filters)
    if not rows:
        logger.warning("video event %s matched no content row", filters)
        return None
    row = rows[0]
    status = advance(row.get("status"), incoming)
    if is_terminal(row.get("status")) or status != incoming:
        logger.info("ignoring %s for content %s already %s", event_type, row["id"], row.get("status"))
        return None
    values["status"] = status
    updated = backend.update(table, values, {"id": row["id"]})
    return updated[0] if updated else None
