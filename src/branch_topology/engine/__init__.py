"""Branch topology inference and drift-detection engine."""

from branch_topology.engine.default_branch import resolve_default_branch
from branch_topology.engine.divergence import DivergenceResult, annotate_divergence
from branch_topology.engine.parent_inference import (
    ParentGuess,
    infer_parent,
    infer_parents,
    naming_parent,
)
from branch_topology.engine.refresh import (
    RefreshBudget,
    RefreshCandidate,
    RefreshContext,
    RefreshWeights,
    score_refresh_candidate,
    select_refresh_candidates,
)
from branch_topology.engine.restart import RestartInfo, generate_restart_info
from branch_topology.engine.snapshot import Snapshot, collect_snapshot, compute_snapshot
from branch_topology.engine.tree_assembler import (
    build_nodes,
    designed_edges,
    reconcile_edges,
    session_edges,
)
from branch_topology.engine.warnings import compute_warnings

__all__ = [
    "DivergenceResult",
    "ParentGuess",
    "RefreshBudget",
    "RefreshCandidate",
    "RefreshContext",
    "RefreshWeights",
    "RestartInfo",
    "Snapshot",
    "annotate_divergence",
    "build_nodes",
    "collect_snapshot",
    "compute_snapshot",
    "compute_warnings",
    "designed_edges",
    "generate_restart_info",
    "infer_parent",
    "infer_parents",
    "naming_parent",
    "reconcile_edges",
    "resolve_default_branch",
    "score_refresh_candidate",
    "select_refresh_candidates",
    "session_edges",
]
