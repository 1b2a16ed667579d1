"""
branch-topology — package root

File: src/branch_topology/__init__.py

Purpose
- Infer the parent/child tree of a repository's branches from commit ancestry
  and naming, overlay planned and designed edges, and flag drift between the
  intended and actual topology.

Import boundary rules
- Importing the package has no side effects (no config loading, no logging init).
- Engine entrypoints are pure over their inputs; git and code-host access lives
  in ``branch_topology.services``.
"""

from __future__ import annotations

__version__ = "0.1.0"

from branch_topology.engine import (
    Snapshot,
    collect_snapshot,
    compute_snapshot,
    generate_restart_info,
    select_refresh_candidates,
)

__all__ = [
    "Snapshot",
    "__version__",
    "collect_snapshot",
    "compute_snapshot",
    "generate_restart_info",
    "select_refresh_candidates",
]
