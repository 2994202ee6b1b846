from __future__ import annotations

import logging
from urllib.parse import urlparse

from auth import UserSession
from backend import BackendError, DataBackend

logger = logging.getLogger(__name__)

TABLE = "webhook_influencer"


class WebhookStore:
    """Automation hooks attached to an influencer."""

    def __init__(self, session: UserSession | None, backend: DataBackend) -> None:
        self._backend = backend.with_token(session.access_token if session else None)
        self._hooks: dict[str, list[dict]] = {}

    def fetch(self, influencer_id: str) -> list[dict]:
        try:
            rows = self._backend.select(TABLE, filters={"influencer_id": influencer_id}, order="created_at")
        except BackendError as exc:
            logger.error("failed to fetch webhooks for %s: %s", influencer_id, exc)
            raise
        self._hooks[influencer_id] = rows
        return list(rows)

    def add(self, influencer_id: str, name: str, url: str) -> dict:
        name = (name or "").strip()
        url = (url or "").strip()
        if not name or not url:
            raise ValueError("name and url are required")
        if urlparse(url).scheme not in {"http", "https"}:
            raise ValueError("url must be http(s)")
        try:
            rows = self._backend.insert(TABLE, {"influencer_id": influencer_id, "name": name, "url": url})
        except BackendError as exc:
            logger.error("failed to add webhook for %s: %s", influencer_id, exc)
            raise
        self._hooks.setdefault(influencer_id, []).append(rows[0])
        return rows[0]

    def delete(self, influencer_id: str, webhook_id: str) -> None:
        try:
            self._backend.delete(TABLE, {"id": webhook_id, "influencer_id": influencer_id})
        except BackendError as exc:
            logger.error("failed to delete webhook %s: %s", webhook_id, exc)
            raise
        self._hooks[influencer_id] = [
            hook for hook in self._hooks.get(influencer_id, []) if hook.get("id") != webhook_id
        ]

    def get(self, influencer_id: str) -> list[dict]:
        return list(self._hooks.get(influencer_id, []))
