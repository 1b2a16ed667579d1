"""Ahead/behind annotation relative to the final parent and the remote upstream."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from branch_topology.constants import DEFAULT_MAX_CONCURRENCY
from branch_topology.domain.models import AheadBehind, Edge, Node, QueryError
from branch_topology.services.protocols import RepositoryQueryService, capture
from branch_topology.utils.concurrency import map_bounded


@dataclass(frozen=True, slots=True)
class DivergenceResult:
    nodes: tuple[Node, ...]
    errors: tuple[QueryError, ...] = ()


@dataclass(frozen=True, slots=True)
class _NodeDivergence:
    ahead_behind: AheadBehind | None
    remote_ahead_behind: AheadBehind | None
    errors: tuple[QueryError, ...]


async def annotate_divergence(
    nodes: Sequence[Node],
    edges: Iterable[Edge],
    default_branch: str,
    repository: RepositoryQueryService,
    *,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> DivergenceResult:
    """Return copies of ``nodes`` carrying parent and upstream divergence.

    Non-default nodes without an edge are measured against the default branch.
    Upstream divergence is kept only when it is nonzero. A failed query leaves
    its field unset and is reported in ``errors``.
    """
    parent_of = {edge.child: edge.parent for edge in edges}

    async def measure(node: Node) -> _NodeDivergence:
        errors: list[QueryError] = []
        ahead_behind: AheadBehind | None = None
        if node.branch != default_branch:
            parent = parent_of.get(node.branch, default_branch)
            result = await capture(
                "commit_distance",
                f"{parent}...{node.branch}",
                repository.commit_distance(parent, node.branch),
            )
            if result.error is not None:
                errors.append(result.error)
            ahead_behind = result.value

        remote_ahead_behind: AheadBehind | None = None
        upstream = await capture("upstream_of", node.branch, repository.upstream_of(node.branch))
        if upstream.error is not None:
            errors.append(upstream.error)
        elif upstream.value:
            remote = await capture(
                "commit_distance",
                f"{upstream.value}...{node.branch}",
                repository.commit_distance(upstream.value, node.branch),
            )
            if remote.error is not None:
                errors.append(remote.error)
            elif remote.value is not None and not remote.value.in_sync:
                remote_ahead_behind = remote.value
        return _NodeDivergence(ahead_behind, remote_ahead_behind, tuple(errors))

    measured = await map_bounded(list(nodes), measure, max_concurrency=max_concurrency)
    annotated: list[Node] = []
    errors: list[QueryError] = []
    for node, divergence in zip(nodes, measured, strict=True):
        errors.extend(divergence.errors)
        annotated.append(
            dataclasses.replace(
                node,
                ahead_behind=divergence.ahead_behind,
                remote_ahead_behind=divergence.remote_ahead_behind,
            )
        )
    return DivergenceResult(nodes=tuple(annotated), errors=tuple(errors))


__all__ = ["DivergenceResult", "annotate_divergence"]
