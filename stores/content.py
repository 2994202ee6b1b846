from __future__ import annotations

import logging
import os
from typing import Any, Callable, Sequence

from auth import UserSession
from backend import BackendError, DataBackend
from generation.errors import GenerationError
from generation.poller import ContentPoller, PollerConfig
from generation.status import FAILED, GENERATING, count_generating, merge_snapshot
from generation.video import VideoClient
from llm import ChatClient, get_client
from llm.prompts import ScriptAction, script_messages, script_prompt

logger = logging.getLogger(__name__)

ContentItem = dict[str, Any]


def _content_table() -> str:
    return os.getenv("CONTENT_TABLE", "content")


class ContentStore:
    """Per-influencer cache of generated videos."""

    def __init__(
        self,
        session: UserSession,
        backend: DataBackend,
        *,
        llm_client: ChatClient | None = None,
        video_client_factory: Callable[[str | None], VideoClient] = VideoClient,
    ) -> None:
        self._session = session
        self._backend = backend.with_token(session.access_token)
        self._llm = llm_client or get_client()
        self._video_client_factory = video_client_factory
        self._table = _content_table()
        self._contents: dict[str, list[ContentItem]] = {}

    def fetch_remote(self, influencer_id: str) -> list[ContentItem]:
        return self._backend.select(
            self._table,
            filters={"influencer_id": influencer_id},
            order="created_at",
            descending=True,
        )

    def fetch(self, influencer_id: str) -> list[ContentItem]:
        try:
            rows = self.fetch_remote(influencer_id)
        except BackendError as exc:
            logger.error("failed to fetch contents for %s: %s", influencer_id, exc)
            raise
        self._contents[influencer_id] = rows
        return list(rows)

    def refresh(self, influencer_id: str) -> list[ContentItem]:
        try:
            rows = self.fetch_remote(influencer_id)
        except BackendError as exc:
            logger.error("failed to refresh contents for %s: %s", influencer_id, exc)
            raise
        return self.replace(influencer_id, merge_snapshot(self._contents.get(influencer_id, []), rows))

    def replace(self, influencer_id: str, items: Sequence[ContentItem]) -> list[ContentItem]:
        self._contents[influencer_id] = [dict(item) for item in items]
        return list(self._contents[influencer_id])

    def poller(
        self,
        influencer_id: str,
        *,
        is_active: Callable[[], bool] | None = None,
        config: PollerConfig | None = None,
        on_update: Callable[[list[ContentItem]], None] | None = None,
    ) -> ContentPoller:
        def update(items: list[ContentItem]) -> None:
            cached = self.replace(influencer_id, items)
            if on_update is not None:
                on_update(cached)

        return ContentPoller(
            influencer_id,
            self.fetch_remote,
            config=config,
            initial=self._contents.get(influencer_id, []),
            is_active=is_active,
            on_update=update,
        )

    def get(self, influencer_id: str) -> list[ContentItem]:
        return list(self._contents.get(influencer_id, []))

    def in_queue(self, influencer_id: str) -> int:
        return count_generating(self._contents.get(influencer_id, []))

    def generate_script(self, prompt: str, action: ScriptAction = "write") -> str:
        if not (prompt or "").strip():
            raise ValueError("Please enter a prompt or script first")
        text = self._llm.complete(
            script_messages(script_prompt(action, prompt.strip())),
            api_key=self._session.openai_api_key,
        )
        return text.strip()

    def generate_video(self, influencer_id: str, template_id: str, title: str, script: str) -> ContentItem:
        title = (title or "").strip()
        script = (script or "").strip()
        if not title or not script:
            raise ValueError("title and script are required")

        rows = self._backend.insert(
            self._table,
            {
                "influencer_id": influencer_id,
                "title": title,
                "script": script,
                "status": GENERATING,
            },
        )
        item = rows[0]
        self._contents.setdefault(influencer_id, []).insert(0, item)

        try:
            client = self._video_client_factory(self._session.heygen_api_key)
            video_id = client.submit(template_id, title, script, callback_id=str(item["id"]))
        except GenerationError as exc:
            logger.error("video generation for %s failed to start: %s", item["id"], exc)
            self._patch(influencer_id, item["id"], {"status": FAILED, "error": exc.message})
            raise
        return self._patch(influencer_id, item["id"], {"video_id": video_id})

    def _patch(self, influencer_id: str, content_id: str, values: dict[str, Any]) -> ContentItem:
        rows = self._backend.update(self._table, values, {"id": content_id})
        patched = rows[0] if rows else {"id": content_id, **values}
        cached = self._contents.setdefault(influencer_id, [])
        for index, existing in enumerate(cached):
            if existing.get("id") == content_id:
                cached[index] = {**existing, **patched}
                return cached[index]
        cached.insert(0, patched)
        return patched

    def delete(self, influencer_id: str, content_ids: Sequence[str]) -> None:
        ids = list(content_ids)
        if not ids:
            return
        try:
            self._backend.delete(self._table, {"id": ids, "influencer_id": influencer_id})
        except BackendError as exc:
            logger.error("failed to delete contents %s: %s", ids, exc)
            raise
        self._contents[influencer_id] = [
            item for item in self._contents.get(influencer_id, []) if item.get("id") not in ids
        ]
