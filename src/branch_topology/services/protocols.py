"""Query-service contracts consumed by the topology engine.

The engine never runs git or code-host commands itself. It talks to these
protocols, and every call it makes goes through :func:`capture` so a single
failing query turns into a recorded :class:`QueryError` plus a safe default
instead of aborting the pass.
"""

from __future__ import annotations

from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar, runtime_checkable

import structlog

from branch_topology.domain.models import AheadBehind, Branch, QueryError, ReviewItem, WorkingCopy

T = TypeVar("T")

logger = structlog.get_logger(__name__)


class QueryServiceError(RuntimeError):
    """Base class for failures raised by production query services."""


@runtime_checkable
class RepositoryQueryService(Protocol):
    async def list_branches(self) -> Sequence[Branch]: ...

    async def default_remote_branch(self) -> str | None: ...

    async def is_ancestor(self, ancestor: str, descendant: str) -> bool: ...

    async def merge_base(self, left: str, right: str) -> str | None: ...

    async def commit_distance(self, base: str, tip: str) -> AheadBehind:
        """``ahead`` = commits reachable from ``tip`` only, ``behind`` = from ``base`` only."""
        ...

    async def working_copies(self) -> Sequence[WorkingCopy]: ...

    async def branch_description(self, branch: str) -> str | None: ...

    async def upstream_of(self, branch: str) -> str | None: ...


@runtime_checkable
class ReviewQueryService(Protocol):
    async def list_review_items(self) -> Sequence[ReviewItem]: ...


@runtime_checkable
class HostQueryService(Protocol):
    async def host_default_branch(self) -> str | None: ...


@dataclass(frozen=True, slots=True)
class QueryResult(Generic[T]):
    value: T | None = None
    error: QueryError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        if self.error is not None or self.value is None:
            return default
        return self.value


async def capture(operation: str, subject: str, awaitable: Awaitable[T]) -> QueryResult[T]:
    """Await one query and fold any failure into a :class:`QueryResult`. Never retries."""
    try:
        value = await awaitable
    except Exception as exc:  # noqa: BLE001 - every service failure degrades to a default
        message = str(exc) or type(exc).__name__
        logger.warning(
            "query_failed",
            operation=operation,
            subject=subject,
            error_type=type(exc).__name__,
            error=message,
        )
        return QueryResult(error=QueryError(operation=operation, subject=subject, message=message))
    return QueryResult(value=value)


__all__ = [
    "HostQueryService",
    "QueryResult",
    "QueryServiceError",
    "RepositoryQueryService",
    "ReviewQueryService",
    "capture",
]
