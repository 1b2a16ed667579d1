"""Domain types for branch topology snapshots; free of IO side effects."""

from branch_topology.domain.models import (
    AheadBehind,
    Badge,
    Branch,
    CachedReview,
    CheckStatus,
    Confidence,
    DesignedEdge,
    DesignedTree,
    Edge,
    NamingRule,
    Node,
    PlanningSession,
    PlanningStatus,
    PlanningTask,
    QueryError,
    ReviewDecision,
    ReviewItem,
    ReviewState,
    ReviewStatus,
    Severity,
    TaskEdge,
    TopologyWarning,
    WarningCode,
    WorkingCopy,
)

__all__ = [
    "AheadBehind",
    "Badge",
    "Branch",
    "CachedReview",
    "CheckStatus",
    "Confidence",
    "DesignedEdge",
    "DesignedTree",
    "Edge",
    "NamingRule",
    "Node",
    "PlanningSession",
    "PlanningStatus",
    "PlanningTask",
    "QueryError",
    "ReviewDecision",
    "ReviewItem",
    "ReviewState",
    "ReviewStatus",
    "Severity",
    "TaskEdge",
    "TopologyWarning",
    "WarningCode",
    "WorkingCopy",
]
