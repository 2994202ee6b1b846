from __future__ import annotations

from generation.status import (
    COMPLETED,
    FAILED,
    GENERATING,
    QUEUED,
    advance,
    count_generating,
    has_pending,
    merge_snapshot,
)


def test_advance_only_moves_forward() -> None:
    assert advance(QUEUED, GENERATING) == GENERATING
    assert advance(GENERATING, COMPLETED) == COMPLETED
    assert advance(GENERATING, QUEUED) == GENERATING
    assert advance(COMPLETED, GENERATING) == COMPLETED
    assert advance(COMPLETED, FAILED) == COMPLETED
    assert advance(FAILED, COMPLETED) == FAILED
    assert advance(None, GENERATING) == GENERATING
    assert advance(GENERATING, "bogus") == GENERATING


def test_merge_reflects_completion_and_keeps_other_fields() -> None:
    local = [
        {"id": "x", "title": "Intro", "status": GENERATING, "video_url": None, "selected": True},
        {"id": "y", "title": "Outro", "status": GENERATING, "video_url": None},
    ]
    fetched = [
        {"id": "x", "title": "Intro", "status": COMPLETED, "video_url": "https://cdn/x.mp4"},
        {"id": "y", "title": "Outro", "status": GENERATING, "video_url": None},
    ]

    merged = merge_snapshot(local, fetched)

    assert merged[0] == {
        "id": "x",
        "title": "Intro",
        "status": COMPLETED,
        "video_url": "https://cdn/x.mp4",
        "selected": True,
    }
    assert merged[1]["status"] == GENERATING
    assert has_pending(merged)
    assert count_generating(merged) == 1


def test_stale_snapshot_never_regresses_terminal_item() -> None:
    local = [{"id": "x", "status": COMPLETED, "video_url": "https://cdn/x.mp4", "error": None}]
    stale = [{"id": "x", "status": GENERATING, "video_url": None, "error": None, "title": "Renamed"}]

    merged = merge_snapshot(local, stale)

    assert merged == [
        {"id": "x", "status": COMPLETED, "video_url": "https://cdn/x.mp4", "error": None, "title": "Renamed"}
    ]
    assert not has_pending(merged)


def test_membership_and_order_follow_fetched_snapshot() -> None:
    local = [{"id": "a", "status": GENERATING}, {"id": "gone", "status": GENERATING}]
    fetched = [{"id": "new", "status": GENERATING}, {"id": "a", "status": FAILED, "error": "bad template"}]

    merged = merge_snapshot(local, fetched)

    assert [item["id"] for item in merged] == ["new", "a"]
    assert merged[1]["error"] == "bad template"
