from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta, timezone

import pytest

from branch_topology.domain.models import (
    AheadBehind,
    Badge,
    Branch,
    CheckStatus,
    DesignedTree,
    Node,
    ReviewItem,
    ReviewState,
    WorkingCopy,
    parse_timestamp,
)


def test_node_serializes_canonically() -> None:
    node = Node(
        branch="feature/pay",
        badges=(Badge.DIRTY, Badge.OPEN_REVIEW),
        last_commit_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2))),
        working_copy=WorkingCopy(path="/work/pay", branch="feature/pay", dirty=True),
        ahead_behind=AheadBehind(ahead=3, behind=0),
    )

    payload = json.loads(node.to_json())

    assert payload["badges"] == ["dirty", "pr"]
    assert payload["last_commit_at"] == "2026-03-01T10:00:00Z"
    assert payload["working_copy"]["dirty"] is True
    assert payload["ahead_behind"] == {"ahead": 3, "behind": 0}
    assert payload["review"] is None
    assert node.to_json() == json.dumps(payload, sort_keys=True, separators=(",", ":"))


def test_branch_from_dict_normalizes_timestamps() -> None:
    branch = Branch.from_dict(
        {"name": " main ", "commit_id": "abc123", "commit_time": "2026-01-02T03:04:05Z"}
    )

    assert branch.name == "main"
    assert branch.commit_time == datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)


def test_parse_timestamp_rejects_naive_values() -> None:
    with pytest.raises(ValueError, match="timezone-aware"):
        parse_timestamp("2026-01-02T03:04:05")


def test_review_item_from_dict_round_trips() -> None:
    item = ReviewItem(
        number=7,
        title="Speed up scans",
        state=ReviewState.OPEN,
        branch="perf/scan",
        labels=("perf",),
        check_status=CheckStatus.PENDING,
    )

    assert ReviewItem.from_json(item.to_json()) == item


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"number": 1, "title": "x", "state": "locked", "branch": "b"}, "ReviewItem.state"),
        ({"number": -1, "title": "x", "state": "open", "branch": "b"}, "ReviewItem.number"),
        ({"number": 1, "title": "x", "state": "open", "branch": ""}, "ReviewItem.branch"),
        ({"number": 1, "title": "x", "state": "open", "branch": "b", "extra": 1}, "unexpected"),
    ],
)
def test_review_item_validation(payload: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        ReviewItem.from_dict(payload)


def test_designed_tree_rejects_duplicate_nodes() -> None:
    with pytest.raises(ValueError, match="duplicate"):
        DesignedTree.from_dict({"edges": [], "nodes": ["release", "release"]})


def test_ahead_behind_rejects_negative_counts() -> None:
    with pytest.raises(ValueError, match="AheadBehind.behind"):
        AheadBehind(ahead=0, behind=-1)
    assert AheadBehind(ahead=0, behind=0).in_sync
