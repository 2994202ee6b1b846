"""In-app navigation requested by the assistant.

Replies may carry a ``NAVIGATE_TO: <destination>`` token. The token is removed
from the text shown to the user; the destination resolves to a route and an
optional element to highlight once the page has loaded.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
import os
from pathlib import Path
import re
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)

NAVIGATION_PATTERN = re.compile(r"NAVIGATE_TO: ([\w-]+)")

NAVIGATE_AFTER_S = 2.0
HIGHLIGHT_AFTER_S = 0.5
HIGHLIGHT_DURATION_S = 5.0


@dataclass(frozen=True)
class Highlight:
    selector: str
    message: str


@dataclass(frozen=True)
class NavigationGuide:
    path: str
    highlight: Highlight | None = None


@dataclass(frozen=True)
class Navigation:
    destination: str
    path: str
    highlight: Highlight | None = None
    navigate_after_s: float = NAVIGATE_AFTER_S
    highlight_after_s: float = HIGHLIGHT_AFTER_S
    highlight_duration_s: float = HIGHLIGHT_DURATION_S

    def as_dict(self) -> dict[str, Any]:
        return {
            "destination": self.destination,
            "path": self.path,
            "highlight": (
                {"selector": self.highlight.selector, "message": self.highlight.message}
                if self.highlight
                else None
            ),
            "navigate_after_s": self.navigate_after_s,
            "highlight_after_s": self.highlight_after_s,
            "highlight_duration_s": self.highlight_duration_s,
        }


DEFAULT_GUIDES: dict[str, NavigationGuide] = {
    "create-influencer": NavigationGuide(
        path="/dashboard",
        highlight=Highlight(
            selector='[data-tour="create-influencer"]',
            message="Click this + button to create a new influencer",
        ),
    ),
    "settings": NavigationGuide(
        path="/settings",
        highlight=Highlight(
            selector='[data-tour="settings"]',
            message="Here you can manage your API keys and account settings",
        ),
    ),
    "planner": NavigationGuide(
        path="/planner",
        highlight=Highlight(
            selector='[data-tour="calendar"]',
            message="Use the content planner to create multiple videos at once",
        ),
    ),
}


def parse_navigation(text: str) -> tuple[str, str | None]:
    """Split a reply into display text and the first navigation destination."""
    match = NAVIGATION_PATTERN.search(text or "")
    if match is None:
        return (text or "").strip(), None
    stripped = text[: match.start()] + text[match.end() :]
    lines = [re.sub(r"[ \t]+", " ", line).strip() for line in stripped.splitlines()]
    return "\n".join(lines).strip(), match.group(1)


def _guide_from_mapping(name: str, data: Mapping[str, Any]) -> NavigationGuide:
    path = str(data.get("path") or "").strip()
    if not path:
        raise ValueError(f"navigation guide {name!r} needs a path")
    highlight = data.get("highlight")
    return NavigationGuide(
        path=path,
        highlight=(
            Highlight(selector=str(highlight["selector"]), message=str(highlight.get("message", "")))
            if isinstance(highlight, Mapping) and highlight.get("selector")
            else None
        ),
    )


def load_guides(path: str | Path | None = None) -> dict[str, NavigationGuide]:
    """Built-in guides, extended or overridden by ``NAVIGATION_GUIDES_FILE``."""
    guides = dict(DEFAULT_GUIDES)
    source = path or os.getenv("NAVIGATION_GUIDES_FILE", "").strip()
    if not source:
        return guides
    payload = yaml.safe_load(Path(source).read_text(encoding="utf-8")) or {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"{source}: expected a mapping of destination to guide")
    for name, data in payload.items():
        if not isinstance(data, Mapping):
            raise ValueError(f"{source}: guide {name!r} must be a mapping")
        guides[str(name)] = _guide_from_mapping(str(name), data)
    logger.info("loaded %d navigation guides from %s", len(payload), source)
    return guides


@lru_cache(maxsize=1)
def get_guides() -> dict[str, NavigationGuide]:
    return load_guides()


def resolve_navigation(destination: str, guides: Mapping[str, NavigationGuide] | None = None) -> Navigation:
    guide = (guides if guides is not None else get_guides()).get(destination)
    if guide is None:
        return Navigation(destination=destination, path=f"/{destination}")
    return Navigation(destination=destination, path=guide.path, highlight=guide.highlight)


class HighlightTracker:
    """The highlight currently shown, cleared after a fixed delay."""

    def __init__(self, duration_s: float = HIGHLIGHT_DURATION_S) -> None:
        self._duration_s = duration_s
        self._active: Highlight | None = None
        self._expires_at = 0.0

    def activate(self, highlight: Highlight, now: float) -> None:
        # A new highlight replaces the old one and restarts the timer.
        self._active = highlight
        self._expires_at = now + self._duration_s

    def current(self, now: float) -> Highlight | None:
        if self._active is not None and now >= self._expires_at:
            self._active = None
        return self._active

    def clear(self) -> None:
        self._active = None
