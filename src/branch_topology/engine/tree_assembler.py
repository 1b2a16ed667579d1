"""Node assembly and layered edge reconciliation.

Edges come in three layers of increasing precedence: inferred (git evidence),
confirmed planning sessions, and the designed tree. A higher layer replaces the
lower layer's edge for the same child. Overlay edges are trusted as declared and
are not checked against history, since their child branch may not exist yet.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

import structlog

from branch_topology.domain.models import (
    Badge,
    Branch,
    CheckStatus,
    Confidence,
    DesignedTree,
    Edge,
    Node,
    PlanningSession,
    ReviewDecision,
    ReviewItem,
    ReviewState,
    WorkingCopy,
)

logger = structlog.get_logger(__name__)

_LIFECYCLE_BADGES: dict[ReviewState, Badge] = {
    ReviewState.OPEN: Badge.OPEN_REVIEW,
    ReviewState.MERGED: Badge.MERGED_REVIEW,
    ReviewState.CLOSED: Badge.CLOSED_REVIEW,
}

_INFERRED_RANK = 0
_SESSION_RANK = 1
_DESIGNED_RANK = 2


def select_review_item(items: Iterable[ReviewItem]) -> ReviewItem | None:
    """Open items beat closed or merged ones; then the highest number wins."""
    return max(items, key=lambda item: (item.is_open, item.number), default=None)


def derive_badges(working_copy: WorkingCopy | None, review: ReviewItem | None) -> tuple[Badge, ...]:
    badges: list[Badge] = []
    if working_copy is not None and working_copy.dirty:
        badges.append(Badge.DIRTY)
    if working_copy is not None and working_copy.active:
        badges.append(Badge.ACTIVE)
    if review is not None:
        badges.append(_LIFECYCLE_BADGES[review.state])
        if review.draft:
            badges.append(Badge.DRAFT)
        if review.check_status is CheckStatus.FAILURE:
            badges.append(Badge.CI_FAIL)
        if review.check_status is CheckStatus.SUCCESS:
            badges.append(Badge.CI_PASS)
        if review.review_decision is ReviewDecision.APPROVED:
            badges.append(Badge.APPROVED)
        if review.review_decision is ReviewDecision.CHANGES_REQUESTED:
            badges.append(Badge.CHANGES_REQUESTED)
    return tuple(badges)


def build_nodes(
    branches: Sequence[Branch],
    working_copies: Sequence[WorkingCopy],
    review_items: Sequence[ReviewItem],
    descriptions: Mapping[str, str] | None = None,
) -> tuple[Node, ...]:
    """One node per branch, in branch order, with working copy and review attached."""
    copies_by_branch: dict[str, WorkingCopy] = {}
    for working_copy in working_copies:
        if working_copy.branch is not None:
            copies_by_branch.setdefault(working_copy.branch, working_copy)

    reviews_by_branch: dict[str, list[ReviewItem]] = {}
    for item in review_items:
        reviews_by_branch.setdefault(item.branch, []).append(item)

    descriptions = descriptions or {}
    nodes: list[Node] = []
    for branch in branches:
        working_copy = copies_by_branch.get(branch.name)
        review = select_review_item(reviews_by_branch.get(branch.name, ()))
        nodes.append(
            Node(
                branch=branch.name,
                badges=derive_badges(working_copy, review),
                last_commit_at=branch.commit_time,
                description=descriptions.get(branch.name),
                working_copy=working_copy,
                review=review,
            )
        )
    return tuple(nodes)


def session_edges(sessions: Iterable[PlanningSession]) -> tuple[Edge, ...]:
    """Edges implied by confirmed planning sessions.

    A task's branch hangs off its parent task's branch; tasks without a parent
    edge, or whose parent task has no branch yet, hang off the session base.
    """
    edges: list[Edge] = []
    for session in sessions:
        if not session.is_confirmed:
            continue
        branch_by_task = {task.id: task.branch_name for task in session.tasks}
        parent_task: dict[str, str] = {}
        for task_edge in session.edges:
            parent_task.setdefault(task_edge.child, task_edge.parent)
        for task in session.tasks:
            if not task.branch_name:
                continue
            parent_branch = branch_by_task.get(parent_task.get(task.id, ""))
            edges.append(
                Edge(
                    parent=parent_branch or session.base_branch,
                    child=task.branch_name,
                    confidence=Confidence.HIGH,
                    designed=True,
                )
            )
    return tuple(edges)


def designed_edges(
    designed_tree: DesignedTree | None, default_branch: str | None = None
) -> tuple[Edge, ...]:
    """Explicit designed edges plus base-branch edges for declared roots.

    Roots hang off the tree's ``base_branch``, or ``default_branch`` when the
    tree declares none.
    """
    if designed_tree is None:
        return ()
    edges = [
        Edge(parent=edge.parent, child=edge.child, confidence=Confidence.HIGH, designed=True)
        for edge in designed_tree.edges
    ]
    base = designed_tree.base_branch or default_branch
    if base:
        children = {edge.child for edge in designed_tree.edges}
        edges.extend(
            Edge(parent=base, child=name, confidence=Confidence.HIGH, designed=True)
            for name in designed_tree.nodes
            if name not in children and name != base
        )
    return tuple(edges)


def reconcile_edges(
    inferred: Iterable[Edge],
    session: Iterable[Edge],
    designed: Iterable[Edge],
    default_branch: str,
    branch_order: Sequence[str] = (),
) -> tuple[Edge, ...]:
    """Merge edge layers so every child keeps exactly one parent and no cycle forms.

    An overlay edge that would close a loop through lower-layer edges demotes
    the lowest such edge to ``default_branch -> child`` at ``low``; a loop made
    only of edges from its own layer or above drops the overlay edge instead.
    """
    by_child: dict[str, Edge] = {}
    rank: dict[str, int] = {}
    for edge in inferred:
        if edge.child == default_branch or edge.parent == edge.child:
            continue
        if _cycle_path(edge, by_child) is not None:
            # siblings forked from the same unnamed commit can pick each other
            logger.info("inferred_edge_demoted", parent=edge.parent, child=edge.child)
            edge = _demoted(edge.child, default_branch)
        by_child[edge.child] = edge
        rank[edge.child] = _INFERRED_RANK

    for layer_rank, layer_name, layer in (
        (_SESSION_RANK, "session", session),
        (_DESIGNED_RANK, "designed", designed),
    ):
        for edge in layer:
            overlay = Edge(
                parent=edge.parent, child=edge.child, confidence=Confidence.HIGH, designed=True
            )
            reason = _overlay_rejection(overlay, default_branch)
            path = _cycle_path(overlay, by_child) if reason is None else None
            if path:
                # nearest the child among the lowest-ranked edges on the loop
                breaker = min(reversed(path), key=lambda loop_edge: rank[loop_edge.child])
                if rank[breaker.child] >= layer_rank:
                    reason = "cycle"
                else:
                    logger.info(
                        "edge_demoted_for_overlay",
                        layer=layer_name,
                        parent=breaker.parent,
                        child=breaker.child,
                        overlay_parent=overlay.parent,
                        overlay_child=overlay.child,
                    )
                    by_child[breaker.child] = _demoted(breaker.child, default_branch)
                    rank[breaker.child] = _INFERRED_RANK
            if reason is not None:
                logger.info(
                    "overlay_edge_rejected",
                    layer=layer_name,
                    parent=overlay.parent,
                    child=overlay.child,
                    reason=reason,
                )
                continue
            by_child[overlay.child] = overlay
            rank[overlay.child] = layer_rank

    position = {name: index for index, name in enumerate(branch_order)}
    ordered = sorted(
        by_child.values(),
        key=lambda edge: (
            (0, position[edge.child], "") if edge.child in position else (1, 0, edge.child)
        ),
    )
    return tuple(ordered)


def _demoted(child: str, default_branch: str) -> Edge:
    return Edge(parent=default_branch, child=child, confidence=Confidence.LOW)


def _overlay_rejection(edge: Edge, default_branch: str) -> str | None:
    if edge.child == default_branch:
        return "child_is_default_branch"
    if edge.parent == edge.child:
        return "self_loop"
    return None


def _cycle_path(edge: Edge, by_child: Mapping[str, Edge]) -> list[Edge] | None:
    """Edges from ``edge.parent`` up to ``edge.child`` when adding ``edge`` closes a loop."""
    path: list[Edge] = []
    seen: set[str] = set()
    cursor = edge.parent
    while cursor not in seen:
        if cursor == edge.child:
            return path
        seen.add(cursor)
        parent_edge = by_child.get(cursor)
        if parent_edge is None:
            return None
        path.append(parent_edge)
        cursor = parent_edge.parent
    return None


__all__ = [
    "build_nodes",
    "derive_badges",
    "designed_edges",
    "reconcile_edges",
    "select_review_item",
    "session_edges",
]
