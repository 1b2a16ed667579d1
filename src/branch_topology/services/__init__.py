"""Repository and review query services consumed by the topology engine."""

from branch_topology.services.git_service import (
    GitCommandError,
    GitRepositoryService,
    GitServiceError,
)
from branch_topology.services.protocols import (
    HostQueryService,
    QueryResult,
    QueryServiceError,
    RepositoryQueryService,
    ReviewQueryService,
    capture,
)
from branch_topology.services.review_service import (
    GhReviewService,
    ReviewServiceError,
    normalize_review_payload,
)

__all__ = [
    "GhReviewService",
    "GitCommandError",
    "GitRepositoryService",
    "GitServiceError",
    "HostQueryService",
    "QueryResult",
    "QueryServiceError",
    "RepositoryQueryService",
    "ReviewQueryService",
    "ReviewServiceError",
    "capture",
    "normalize_review_payload",
]
