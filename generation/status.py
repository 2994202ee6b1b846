"""Content generation status and snapshot merging.

Status moves one way only: ``queued`` -> ``generating`` -> ``completed`` or
``failed``. The two last states are terminal; a stale snapshot can never pull a
finished item back into ``generating``.
"""
from __future__ import annotations

from typing import Any, Iterable, Sequence

QUEUED = "queued"
GENERATING = "generating"
COMPLETED = "completed"
FAILED = "failed"

TERMINAL = frozenset({COMPLETED, FAILED})
_RANK = {QUEUED: 0, GENERATING: 1, COMPLETED: 2, FAILED: 2}

# Fields owned by the generation service; they follow the status guard.
_RESULT_FIELDS = ("video_url", "error")


def is_terminal(status: str | None) -> bool:
    return status in TERMINAL


def advance(current: str | None, incoming: str | None) -> str | None:
    if incoming not in _RANK:
        return current
    if current not in _RANK:
        return incoming
    if current in TERMINAL:
        return current
    if _RANK[incoming] < _RANK[current]:
        return current
    return incoming


def merge_item(local: dict[str, Any], fetched: dict[str, Any]) -> dict[str, Any]:
    merged = dict(local)
    current = local.get("status")
    status = advance(current, fetched.get("status"))
    regressed = status != fetched.get("status")
    for key, value in fetched.items():
        if key == "status":
            continue
        if regressed and current in TERMINAL and key in _RESULT_FIELDS:
            continue
        merged[key] = value
    merged["status"] = status
    return merged


def merge_snapshot(
    local: Sequence[dict[str, Any]], fetched: Sequence[dict[str, Any]]
) -> list[dict[str, Any]]:
    cached = {item.get("id"): item for item in local}
    merged: list[dict[str, Any]] = []
    for row in fetched:
        previous = cached.get(row.get("id"))
        merged.append(merge_item(previous, row) if previous is not None else dict(row))
    return merged


def has_pending(items: Iterable[dict[str, Any]]) -> bool:
    return any(not is_terminal(item.get("status")) for item in items)


def count_generating(items: Iterable[dict[str, Any]]) -> int:
    return sum(1 for item in items if item.get("status") == GENERATING)
