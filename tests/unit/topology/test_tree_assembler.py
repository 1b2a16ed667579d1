from __future__ import annotations

import pytest

from branch_topology.domain.models import (
    Badge,
    CheckStatus,
    Confidence,
    DesignedEdge,
    DesignedTree,
    Edge,
    PlanningSession,
    PlanningStatus,
    PlanningTask,
    ReviewDecision,
    ReviewState,
    TaskEdge,
)
from branch_topology.engine.tree_assembler import (
    build_nodes,
    derive_badges,
    designed_edges,
    reconcile_edges,
    select_review_item,
    session_edges,
)

from . import make_branches, make_review, make_working_copy


def _inferred(parent: str, child: str, confidence: Confidence = Confidence.LOW) -> Edge:
    return Edge(parent=parent, child=child, confidence=confidence)


def test_build_nodes_attaches_working_copy_review_and_description() -> None:
    branches = make_branches(["main", "feature/a", "feature/b"])
    copies = [
        make_working_copy("feature/a", dirty=True, active=True, agent="agent-1"),
        make_working_copy(None, path="/work/detached"),
    ]
    reviews = [make_review("feature/b", 7, check_status=CheckStatus.FAILURE)]

    nodes = build_nodes(branches, copies, reviews, {"feature/a": "Login form"})

    assert [node.branch for node in nodes] == ["main", "feature/a", "feature/b"]
    main, feature_a, feature_b = nodes
    assert main.badges == ()
    assert main.last_commit_at == branches[0].commit_time
    assert feature_a.working_copy is copies[0]
    assert feature_a.description == "Login form"
    assert feature_a.badges == (Badge.DIRTY, Badge.ACTIVE)
    assert feature_b.review is reviews[0]
    assert feature_b.badges == (Badge.OPEN_REVIEW, Badge.CI_FAIL)


def test_badges_follow_fixed_order() -> None:
    review = make_review(
        "topic",
        check_status=CheckStatus.SUCCESS,
        draft=True,
        review_decision=ReviewDecision.APPROVED,
    )
    copy = make_working_copy("topic", dirty=True, active=True)

    assert derive_badges(copy, review) == (
        Badge.DIRTY,
        Badge.ACTIVE,
        Badge.OPEN_REVIEW,
        Badge.DRAFT,
        Badge.CI_PASS,
        Badge.APPROVED,
    )


@pytest.mark.parametrize(
    ("state", "badge"),
    [
        (ReviewState.MERGED, Badge.MERGED_REVIEW),
        (ReviewState.CLOSED, Badge.CLOSED_REVIEW),
    ],
)
def test_lifecycle_badge_for_finished_reviews(state: ReviewState, badge: Badge) -> None:
    review = make_review(
        "topic", state=state, review_decision=ReviewDecision.CHANGES_REQUESTED
    )

    assert derive_badges(None, review) == (badge, Badge.CHANGES_REQUESTED)


def test_select_review_item_prefers_open_then_newest() -> None:
    merged_new = make_review("topic", 9, state=ReviewState.MERGED)
    open_old = make_review("topic", 3)
    open_new = make_review("topic", 5)

    assert select_review_item([merged_new, open_old, open_new]) is open_new
    assert select_review_item([merged_new, make_review("topic", 2, state=ReviewState.CLOSED)]) is (
        merged_new
    )
    assert select_review_item([]) is None


def test_session_edges_follow_task_tree_and_fall_back_to_base() -> None:
    session = PlanningSession(
        id="s1",
        base_branch="develop",
        status=PlanningStatus.CONFIRMED,
        tasks=(
            PlanningTask(id="t1", branch_name="feature/api"),
            PlanningTask(id="t2", branch_name="feature/api-client"),
            PlanningTask(id="t3", branch_name=None),
            PlanningTask(id="t4", branch_name="feature/docs"),
        ),
        edges=(TaskEdge(parent="t1", child="t2"), TaskEdge(parent="t3", child="t4")),
    )
    draft = PlanningSession(
        id="s2",
        base_branch="main",
        tasks=(PlanningTask(id="x", branch_name="ignored"),),
    )

    edges = session_edges([session, draft])

    assert [(edge.parent, edge.child) for edge in edges] == [
        ("develop", "feature/api"),
        ("feature/api", "feature/api-client"),
        # t3 has no branch yet, so t4 hangs off the base
        ("develop", "feature/docs"),
    ]
    assert all(edge.designed and edge.confidence is Confidence.HIGH for edge in edges)


def test_designed_edges_connect_declared_roots_to_base() -> None:
    tree = DesignedTree(
        base_branch="main",
        edges=(DesignedEdge(parent="release/1.0", child="fix/crash"),),
        nodes=("main", "release/1.0", "fix/crash"),
    )

    edges = designed_edges(tree)

    assert [(edge.parent, edge.child) for edge in edges] == [
        ("release/1.0", "fix/crash"),
        ("main", "release/1.0"),
    ]
    assert designed_edges(None) == ()


def test_designed_roots_fall_back_to_default_branch_without_a_base() -> None:
    tree = DesignedTree(
        edges=(DesignedEdge(parent="release/1.0", child="fix/crash"),),
        nodes=("develop", "release/1.0", "fix/crash"),
    )

    assert [(edge.parent, edge.child) for edge in designed_edges(tree, "develop")] == [
        ("release/1.0", "fix/crash"),
        ("develop", "release/1.0"),
    ]
    assert [(edge.parent, edge.child) for edge in designed_edges(tree)] == [
        ("release/1.0", "fix/crash"),
    ]


def test_designed_edge_overrides_inferred_for_same_child() -> None:
    inferred = [_inferred("main", "feat")]
    designed = [Edge(parent="develop", child="feat", confidence=Confidence.LOW)]

    edges = reconcile_edges(inferred, [], designed, "main", ["main", "develop", "feat"])

    assert edges == (Edge(parent="develop", child="feat", confidence=Confidence.HIGH, designed=True),)


def test_layer_precedence_is_inferred_then_session_then_designed() -> None:
    inferred = [_inferred("main", "a"), _inferred("main", "b"), _inferred("main", "c")]
    session = [
        Edge(parent="a", child="b", confidence=Confidence.HIGH, designed=True),
        Edge(parent="a", child="c", confidence=Confidence.HIGH, designed=True),
    ]
    designed = [Edge(parent="b", child="c", confidence=Confidence.HIGH, designed=True)]

    edges = reconcile_edges(inferred, session, designed, "main", ["main", "a", "b", "c"])

    assert [(edge.parent, edge.child, edge.designed) for edge in edges] == [
        ("main", "a", False),
        ("a", "b", True),
        ("b", "c", True),
    ]


def test_overlay_edges_onto_default_branch_or_self_are_rejected() -> None:
    inferred = [_inferred("main", "a"), _inferred("a", "b", Confidence.MEDIUM)]
    designed = [
        Edge(parent="a", child="main", confidence=Confidence.HIGH),
        Edge(parent="b", child="b", confidence=Confidence.HIGH),
    ]

    edges = reconcile_edges(inferred, [], designed, "main", ["main", "a", "b"])

    assert [(edge.parent, edge.child) for edge in edges] == [("main", "a"), ("a", "b")]


def test_designed_edge_demotes_the_inferred_edge_it_would_loop_through() -> None:
    inferred = [_inferred("main", "a"), _inferred("a", "b", Confidence.MEDIUM)]
    designed = [Edge(parent="b", child="a", confidence=Confidence.HIGH)]

    edges = reconcile_edges(inferred, [], designed, "main", ["main", "a", "b"])

    assert edges == (
        Edge(parent="b", child="a", confidence=Confidence.HIGH, designed=True),
        Edge(parent="main", child="b", confidence=Confidence.LOW),
    )


def test_designed_edge_demotes_a_looping_session_edge() -> None:
    inferred = [_inferred("main", "a"), _inferred("main", "b")]
    session = [Edge(parent="a", child="b", confidence=Confidence.HIGH, designed=True)]
    designed = [Edge(parent="b", child="a", confidence=Confidence.HIGH, designed=True)]

    edges = reconcile_edges(inferred, session, designed, "main", ["main", "a", "b"])

    assert [(edge.parent, edge.child, edge.designed) for edge in edges] == [
        ("b", "a", True),
        ("main", "b", False),
    ]


def test_loop_between_edges_of_one_layer_drops_the_later_edge() -> None:
    designed = [
        Edge(parent="a", child="b", confidence=Confidence.HIGH),
        Edge(parent="b", child="a", confidence=Confidence.HIGH),
    ]

    inferred = [_inferred("main", "a"), _inferred("main", "b")]

    edges = reconcile_edges(inferred, [], designed, "main", ["main", "a", "b"])

    assert [(edge.parent, edge.child, edge.designed) for edge in edges] == [
        ("main", "a", False),
        ("a", "b", True),
    ]


def test_designed_edge_order_does_not_change_the_result() -> None:
    inferred = [_inferred("main", "feat"), _inferred("feat", "feat-x", Confidence.HIGH)]
    tree = DesignedTree(
        base_branch="main",
        edges=(DesignedEdge(parent="feat-x", child="feat"),),
        nodes=("feat", "feat-x"),
    )
    forward = designed_edges(tree)

    first = reconcile_edges(inferred, [], forward, "main", ["main", "feat", "feat-x"])
    second = reconcile_edges(inferred, [], forward[::-1], "main", ["main", "feat", "feat-x"])

    assert first == second
    assert [(edge.parent, edge.child, edge.designed) for edge in first] == [
        ("feat-x", "feat", True),
        ("main", "feat-x", True),
    ]


def test_inferred_cycle_is_demoted_to_default_branch() -> None:
    inferred = [_inferred("q", "p", Confidence.MEDIUM), _inferred("p", "q", Confidence.MEDIUM)]

    edges = reconcile_edges(inferred, [], [], "main", ["main", "p", "q"])

    assert edges == (
        Edge(parent="q", child="p", confidence=Confidence.MEDIUM),
        Edge(parent="main", child="q", confidence=Confidence.LOW),
    )


def test_planned_children_are_ordered_after_live_branches() -> None:
    designed = [
        Edge(parent="main", child="zeta", confidence=Confidence.HIGH),
        Edge(parent="main", child="planned", confidence=Confidence.HIGH),
    ]

    edges = reconcile_edges([_inferred("main", "zeta")], [], designed, "main", ["main", "zeta"])

    assert [edge.child for edge in edges] == ["zeta", "planned"]
