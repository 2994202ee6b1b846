from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import os
import time
from typing import Any, Callable, Sequence

from .status import has_pending, merge_snapshot

logger = logging.getLogger(__name__)

Snapshot = list[dict[str, Any]]


@dataclass(frozen=True)
class PollerConfig:
    interval_s: float = 5.0
    backoff: float = 1.0
    max_interval_s: float = 60.0
    max_duration_s: float = 0.0


def load_poller_config() -> PollerConfig:
    return PollerConfig(
        interval_s=float(os.getenv("CONTENT_POLL_INTERVAL_S", "5")),
        backoff=max(1.0, float(os.getenv("CONTENT_POLL_BACKOFF", "1.0"))),
        max_interval_s=float(os.getenv("CONTENT_POLL_MAX_INTERVAL_S", "60")),
        max_duration_s=float(os.getenv("CONTENT_POLL_MAX_DURATION_S", "0")),
    )


class ContentPoller:
    """Re-fetches one influencer's content until nothing is left in flight.

    The loop stops on its own once every item is ``completed`` or ``failed``,
    when ``is_active`` reports the influencer gone, after ``max_duration_s``
    (when set) or on ``stop()``. A failed fetch is logged and retried on the
    next tick.
    """

    def __init__(
        self,
        influencer_id: str,
        fetch: Callable[[str], Sequence[dict[str, Any]]],
        *,
        config: PollerConfig | None = None,
        initial: Sequence[dict[str, Any]] | None = None,
        is_active: Callable[[], bool] | None = None,
        on_update: Callable[[Snapshot], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.influencer_id = influencer_id
        self._fetch = fetch
        self._config = config or load_poller_config()
        self._is_active = is_active
        self._on_update = on_update
        self._clock = clock
        self._stop_event: asyncio.Event | None = None
        self._stop_requested = False
        self.items: Snapshot = [dict(item) for item in initial or []]
        self.ticks = 0
        self.failures = 0
        self.stop_reason: str | None = None

    def stop(self) -> None:
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()

    def _next_interval(self, current: float, failed: bool) -> float:
        if not failed:
            return self._config.interval_s
        return min(current * self._config.backoff, self._config.max_interval_s)

    async def _sleep(self, seconds: float) -> None:
        if self._stop_event is None:
            raise RuntimeError("poller is not running")
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return

    async def tick(self) -> bool:
        """One fetch and merge. Returns False when the fetch failed."""
        self.ticks += 1
        try:
            snapshot = await asyncio.to_thread(self._fetch, self.influencer_id)
        except Exception as exc:
            self.failures += 1
            logger.warning("refresh of content for %s failed: %s", self.influencer_id, exc)
            return False
        self.items = merge_snapshot(self.items, list(snapshot))
        if self._on_update is not None:
            self._on_update(self.items)
        return True

    async def run(self) -> Snapshot:
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            self._stop_event.set()
        started = self._clock()
        interval = self._config.interval_s
        while True:
            if self._stop_event.is_set():
                self.stop_reason = "stopped"
                break
            if self._is_active is not None and not self._is_active():
                self.stop_reason = "inactive"
                break
            ok = await self.tick()
            if ok and not has_pending(self.items):
                self.stop_reason = "settled"
                break
            if self._config.max_duration_s > 0 and self._clock() - started >= self._config.max_duration_s:
                self.stop_reason = "timeout"
                logger.warning(
                    "gave up polling content for %s after %.0fs",
                    self.influencer_id,
                    self._config.max_duration_s,
                )
                break
            interval = self._next_interval(interval, failed=not ok)
            await self._sleep(interval)
        logger.info("content poller for %s stopped: %s", self.influencer_id, self.stop_reason)
        return self.items


class PollerRegistry:
    """At most one running poller per influencer id."""

    def __init__(self) -> None:
        self._running: dict[str, tuple[ContentPoller, asyncio.Task]] = {}

    def start(self, poller: ContentPoller) -> asyncio.Task:
        key = poller.influencer_id
        current = self._running.get(key)
        if current is not None and not current[1].done():
            return current[1]
        task = asyncio.create_task(poller.run(), name=f"content-poller:{key}")
        self._running[key] = (poller, task)
        task.add_done_callback(lambda done, key=key: self._forget(key, done))
        return task

    def _forget(self, key: str, task: asyncio.Task) -> None:
        current = self._running.get(key)
        if current is not None and current[1] is task:
            del self._running[key]

    def get(self, influencer_id: str) -> ContentPoller | None:
        current = self._running.get(influencer_id)
        return current[0] if current is not None else None

    def active_ids(self) -> list[str]:
        return [key for key, (_, task) in self._running.items() if not task.done()]

    async def stop(self, influencer_id: str) -> None:
        current = self._running.get(influencer_id)
        if current is None:
            return
        poller, task = current
        poller.stop()
        await task

    async def stop_all(self) -> None:
        for key in list(self._running):
            await self.stop(key)
