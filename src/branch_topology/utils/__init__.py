"""Utility exports for bounded async fan-out."""

from branch_topology.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    WorkerPool,
    map_bounded,
    run_with_timeout,
)

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "WorkerPool",
    "map_bounded",
    "run_with_timeout",
]
