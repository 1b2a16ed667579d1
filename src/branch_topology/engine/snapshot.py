"""Snapshot orchestration: one read-only topology pass over query-service facts.

Stage order is inputs, parent inference, edge reconciliation, divergence and
warnings. Nothing is carried between calls, so identical inputs produce an
identical snapshot.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from branch_topology.constants import BEHIND_ERROR_THRESHOLD, DEFAULT_MAX_CONCURRENCY
from branch_topology.domain.models import (
    Branch,
    CanonicalModel,
    DesignedTree,
    Edge,
    NamingRule,
    Node,
    PlanningSession,
    QueryError,
    ReviewItem,
    TopologyWarning,
    WorkingCopy,
)
from branch_topology.engine.default_branch import resolve_default_branch
from branch_topology.engine.divergence import annotate_divergence
from branch_topology.engine.parent_inference import infer_parents
from branch_topology.engine.tree_assembler import (
    build_nodes,
    designed_edges,
    reconcile_edges,
    session_edges,
)
from branch_topology.engine.warnings import compute_warnings
from branch_topology.services.protocols import (
    HostQueryService,
    QueryResult,
    RepositoryQueryService,
    ReviewQueryService,
    capture,
)
from branch_topology.utils.concurrency import map_bounded

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Snapshot(CanonicalModel):
    default_branch: str
    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...]
    inferred_edges: tuple[Edge, ...]
    warnings: tuple[TopologyWarning, ...]
    query_errors: tuple[QueryError, ...] = ()

    def node(self, branch: str) -> Node | None:
        return next((node for node in self.nodes if node.branch == branch), None)

    def parent_of(self, branch: str) -> Edge | None:
        return next((edge for edge in self.edges if edge.child == branch), None)


async def _descriptions(
    branch_names: Sequence[str],
    repository: RepositoryQueryService | None,
    max_concurrency: int,
) -> tuple[dict[str, str], list[QueryError]]:
    if repository is None:
        return {}, []

    async def describe(name: str) -> QueryResult[str | None]:
        return await capture("branch_description", name, repository.branch_description(name))

    results = await map_bounded(list(branch_names), describe, max_concurrency=max_concurrency)
    descriptions: dict[str, str] = {}
    errors: list[QueryError] = []
    for name, result in zip(branch_names, results, strict=True):
        if result.error is not None:
            errors.append(result.error)
        elif result.value:
            descriptions[name] = result.value
    return descriptions, errors


async def compute_snapshot(
    branches: Sequence[Branch],
    working_copies: Sequence[WorkingCopy],
    review_items: Sequence[ReviewItem],
    default_branch_hint: str | None = None,
    designed_tree: DesignedTree | None = None,
    naming_rule: NamingRule | None = None,
    *,
    repository: RepositoryQueryService | None = None,
    planning_sessions: Sequence[PlanningSession] = (),
    host_default: str | None = None,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    behind_error_threshold: int = BEHIND_ERROR_THRESHOLD,
) -> Snapshot:
    """Build nodes, edges and warnings from already-gathered repository facts.

    ``default_branch_hint`` is the remote-declared default and ``host_default``
    the code host's. Without ``repository`` only naming-based inference runs and
    no divergence is computed.
    """
    branch_names = [branch.name for branch in branches]
    default_branch = resolve_default_branch(
        branch_names, remote_default=default_branch_hint, host_default=host_default
    )

    (guesses, (descriptions, errors)) = await asyncio.gather(
        infer_parents(branch_names, default_branch, repository, max_concurrency=max_concurrency),
        _descriptions(branch_names, repository, max_concurrency),
    )
    query_errors: list[QueryError] = [error for guess in guesses.values() for error in guess.errors]
    query_errors.extend(errors)

    # the git-evidence layer after cycle demotion, before any overlay
    inferred = reconcile_edges(
        [
            Edge(parent=guess.parent, child=branch, confidence=guess.confidence)
            for branch, guess in guesses.items()
        ],
        (),
        (),
        default_branch,
        branch_names,
    )
    edges = reconcile_edges(
        inferred,
        session_edges(planning_sessions),
        designed_edges(designed_tree, default_branch),
        default_branch,
        branch_names,
    )

    nodes = build_nodes(branches, working_copies, review_items, descriptions)
    if repository is not None:
        divergence = await annotate_divergence(
            nodes, edges, default_branch, repository, max_concurrency=max_concurrency
        )
        nodes = divergence.nodes
        query_errors.extend(divergence.errors)

    warnings = compute_warnings(
        nodes,
        edges,
        naming_rule,
        default_branch,
        designed_tree,
        git_edges=inferred,
        behind_error_threshold=behind_error_threshold,
    )
    logger.info(
        "snapshot_computed",
        default_branch=default_branch,
        branches=len(nodes),
        edges=len(edges),
        warnings=len(warnings),
        query_errors=len(query_errors),
    )
    return Snapshot(
        default_branch=default_branch,
        nodes=nodes,
        edges=edges,
        inferred_edges=inferred,
        warnings=warnings,
        query_errors=tuple(query_errors),
    )


async def _no_items() -> tuple[ReviewItem, ...]:
    return ()


async def _no_signal() -> str | None:
    return None


async def collect_snapshot(
    repository: RepositoryQueryService,
    *,
    review_service: ReviewQueryService | None = None,
    host: HostQueryService | None = None,
    designed_tree: DesignedTree | None = None,
    naming_rule: NamingRule | None = None,
    planning_sessions: Sequence[PlanningSession] = (),
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    behind_error_threshold: int = BEHIND_ERROR_THRESHOLD,
) -> Snapshot:
    """Gather inputs from the services concurrently, then run :func:`compute_snapshot`.

    Each input degrades to empty (or no signal) when its query fails; the
    failure is kept in ``Snapshot.query_errors``.
    """
    branches, copies, reviews, remote_default, host_default = await asyncio.gather(
        capture("list_branches", "repository", repository.list_branches()),
        capture("working_copies", "repository", repository.working_copies()),
        capture(
            "list_review_items",
            "review_host",
            review_service.list_review_items() if review_service is not None else _no_items(),
        ),
        capture("default_remote_branch", "repository", repository.default_remote_branch()),
        capture(
            "host_default_branch",
            "review_host",
            host.host_default_branch() if host is not None else _no_signal(),
        ),
    )
    input_errors = [
        result.error
        for result in (branches, copies, reviews, remote_default, host_default)
        if result.error is not None
    ]

    snapshot = await compute_snapshot(
        tuple(branches.unwrap_or(())),
        tuple(copies.unwrap_or(())),
        tuple(reviews.unwrap_or(())),
        remote_default.value,
        designed_tree,
        naming_rule,
        repository=repository,
        planning_sessions=planning_sessions,
        host_default=host_default.value,
        max_concurrency=max_concurrency,
        behind_error_threshold=behind_error_threshold,
    )
    if not input_errors:
        return snapshot
    return dataclasses.replace(snapshot, query_errors=(*input_errors, *snapshot.query_errors))


__all__ = ["Snapshot", "collect_snapshot", "compute_snapshot"]
