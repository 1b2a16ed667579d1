"""Stable constants shared across the topology engine and its collaborators."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Default-branch fallbacks, in priority order.
CONVENTIONAL_DEFAULT_BRANCHES: Final[tuple[str, ...]] = ("develop", "main", "master")
EMPTY_REPO_DEFAULT_BRANCH: Final[str] = "main"

# Separators that make a branch name a naming-convention child of another.
NAMING_SEPARATORS: Final[tuple[str, ...]] = ("/", "-")

# Warning thresholds.
BEHIND_ERROR_THRESHOLD: Final[int] = 5

# Working-copy liveness.
HEARTBEAT_WINDOW_SECONDS: Final[float] = 30.0
HEARTBEAT_RELATIVE_PATH: Final[PurePosixPath] = PurePosixPath(".vibetree/heartbeat.json")

# Remote and review-host defaults.
DEFAULT_REMOTE: Final[str] = "origin"
DEFAULT_REVIEW_LIMIT: Final[int] = 50
DEFAULT_MAX_CONCURRENCY: Final[int] = 16

# Review-refresh scoring weights and budgets.
REFRESH_LOCAL_BRANCH_WEIGHT: Final[float] = 20.0
REFRESH_WORKING_COPY_WEIGHT: Final[float] = 0.0
REFRESH_CI_PENDING_WEIGHT: Final[float] = 30.0
REFRESH_STALENESS_PER_MINUTE: Final[float] = 2.0
REFRESH_STALENESS_MAX: Final[float] = 60.0
REFRESH_JITTER_MAX: Final[float] = 25.0
REFRESH_MAX_TOTAL: Final[int] = 5
REFRESH_OTHER_MAX: Final[int] = 3

CONFIG_SCHEMA_VERSION: Final[int] = 1

__all__ = [
    "BEHIND_ERROR_THRESHOLD",
    "CONFIG_SCHEMA_VERSION",
    "CONVENTIONAL_DEFAULT_BRANCHES",
    "DEFAULT_MAX_CONCURRENCY",
    "DEFAULT_REMOTE",
    "DEFAULT_REVIEW_LIMIT",
    "EMPTY_REPO_DEFAULT_BRANCH",
    "HEARTBEAT_RELATIVE_PATH",
    "HEARTBEAT_WINDOW_SECONDS",
    "NAMING_SEPARATORS",
    "REFRESH_CI_PENDING_WEIGHT",
    "REFRESH_JITTER_MAX",
    "REFRESH_LOCAL_BRANCH_WEIGHT",
    "REFRESH_MAX_TOTAL",
    "REFRESH_OTHER_MAX",
    "REFRESH_STALENESS_MAX",
    "REFRESH_STALENESS_PER_MINUTE",
    "REFRESH_WORKING_COPY_WEIGHT",
]
