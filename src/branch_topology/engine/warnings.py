"""Rule-based warnings and designed-tree drift detection. Pure; advisory only."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

import structlog

from branch_topology.constants import BEHIND_ERROR_THRESHOLD
from branch_topology.domain.models import (
    CheckStatus,
    DesignedTree,
    Edge,
    NamingRule,
    Node,
    Severity,
    TopologyWarning,
    WarningCode,
)

logger = structlog.get_logger(__name__)

_SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARN: 1}


def compile_naming_patterns(naming_rule: NamingRule | None) -> tuple[re.Pattern[str], ...]:
    if naming_rule is None:
        return ()
    compiled: list[re.Pattern[str]] = []
    for pattern in naming_rule.patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            logger.debug("naming_pattern_skipped", pattern=pattern, error=str(exc))
    return tuple(compiled)


def _behind_warning(node: Node, threshold: int) -> TopologyWarning | None:
    if node.ahead_behind is None or node.ahead_behind.behind < 1:
        return None
    behind = node.ahead_behind.behind
    return TopologyWarning(
        severity=Severity.ERROR if behind >= threshold else Severity.WARN,
        code=WarningCode.BEHIND_PARENT,
        message=f"Branch {node.branch} is {behind} commits behind",
        meta={"branch": node.branch, "behind": behind},
    )


def node_warnings(
    node: Node,
    patterns: Sequence[re.Pattern[str]],
    default_branch: str,
    *,
    behind_error_threshold: int = BEHIND_ERROR_THRESHOLD,
) -> list[TopologyWarning]:
    warnings: list[TopologyWarning] = []

    behind = _behind_warning(node, behind_error_threshold)
    if behind is not None:
        warnings.append(behind)

    if node.working_copy is not None and node.working_copy.dirty:
        warnings.append(
            TopologyWarning(
                severity=Severity.WARN,
                code=WarningCode.DIRTY,
                message=f"Worktree for {node.branch} has uncommitted changes",
                meta={"branch": node.branch, "worktree": node.working_copy.path},
            )
        )

    if node.review is not None and node.review.check_status is CheckStatus.FAILURE:
        warnings.append(
            TopologyWarning(
                severity=Severity.ERROR,
                code=WarningCode.CI_FAIL,
                message=f"CI failed for PR #{node.review.number} ({node.branch})",
                meta={"branch": node.branch, "pr_number": node.review.number},
            )
        )

    if (
        patterns
        and node.branch != default_branch
        and not any(pattern.search(node.branch) for pattern in patterns)
    ):
        warnings.append(
            TopologyWarning(
                severity=Severity.WARN,
                code=WarningCode.BRANCH_NAMING_VIOLATION,
                message=f"Branch {node.branch} does not follow naming convention",
                meta={"branch": node.branch},
            )
        )
    return warnings


def drift_warnings(
    designed_tree: DesignedTree | None,
    branch_names: Iterable[str],
    git_edges: Iterable[Edge],
) -> list[TopologyWarning]:
    """One warning per designed edge between live branches that git does not show."""
    if designed_tree is None:
        return []
    existing = set(branch_names)
    observed = {(edge.parent, edge.child) for edge in git_edges}
    warnings: list[TopologyWarning] = []
    for edge in designed_tree.edges:
        # references to deleted branches drop out silently
        if edge.parent not in existing or edge.child not in existing:
            continue
        if (edge.parent, edge.child) in observed:
            continue
        warnings.append(
            TopologyWarning(
                severity=Severity.WARN,
                code=WarningCode.TREE_DIVERGENCE,
                message=f"Design tree has {edge.parent} -> {edge.child} but git doesn't match",
                meta={"parent": edge.parent, "child": edge.child, "type": "missing_in_git"},
            )
        )
    return warnings


def compute_warnings(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    naming_rule: NamingRule | None,
    default_branch: str,
    designed_tree: DesignedTree | None = None,
    *,
    git_edges: Sequence[Edge] | None = None,
    behind_error_threshold: int = BEHIND_ERROR_THRESHOLD,
) -> tuple[TopologyWarning, ...]:
    """Errors first, then warnings, each in node order; drift warnings come last.

    ``git_edges`` is the edge set drift is checked against. It defaults to
    ``edges``; pass the inferred layer when ``edges`` already contains the
    designed overlay.
    """
    patterns = compile_naming_patterns(naming_rule)
    per_node = [
        warning
        for node in nodes
        for warning in node_warnings(
            node, patterns, default_branch, behind_error_threshold=behind_error_threshold
        )
    ]
    per_node.sort(key=lambda warning: _SEVERITY_RANK[warning.severity])
    drift = drift_warnings(
        designed_tree,
        (node.branch for node in nodes),
        edges if git_edges is None else git_edges,
    )
    return (*per_node, *drift)


__all__ = [
    "compile_naming_patterns",
    "compute_warnings",
    "drift_warnings",
    "node_warnings",
]
