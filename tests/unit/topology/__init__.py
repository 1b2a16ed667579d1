"""In-memory commit-graph fixture and builders shared by topology engine tests."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Final

from branch_topology.domain.models import (
    AheadBehind,
    Branch,
    CheckStatus,
    ReviewItem,
    ReviewState,
    WorkingCopy,
)
from branch_topology.services.protocols import QueryServiceError

BASE_TS: Final[datetime] = datetime(2026, 3, 1, 9, 0, 0, tzinfo=UTC)


class FakeQueryError(QueryServiceError):
    pass


class FakeRepository:
    """Repository Query Service over a hand-built commit DAG.

    Refs resolve through branch names first, then raw commit ids. Any call can be
    made to fail with :meth:`fail`, keyed by operation name and positional args.
    """

    def __init__(self) -> None:
        self.parents: dict[str, tuple[str, ...]] = {}
        self.refs: dict[str, str] = {}
        self.upstreams: dict[str, str] = {}
        self.descriptions: dict[str, str] = {}
        self.copies: list[WorkingCopy] = []
        self.remote_default: str | None = None
        self.calls: list[tuple[str, ...]] = []
        self.delay: float = 0.0
        self.in_flight = 0
        self.peak_in_flight = 0
        self._failures: set[tuple[str, ...]] = set()
        self._failing_operations: set[str] = set()

    # -- builders ---------------------------------------------------------

    def commit(self, commit_id: str, *parents: str) -> FakeRepository:
        for parent in parents:
            if parent not in self.parents:
                raise KeyError(f"unknown parent commit {parent!r}")
        self.parents[commit_id] = tuple(parents)
        return self

    def chain(self, start_parent: str | None, *commit_ids: str) -> FakeRepository:
        parent = start_parent
        for commit_id in commit_ids:
            self.commit(commit_id, *(() if parent is None else (parent,)))
            parent = commit_id
        return self

    def branch(self, name: str, commit_id: str) -> FakeRepository:
        if commit_id not in self.parents:
            raise KeyError(f"unknown commit {commit_id!r}")
        self.refs[name] = commit_id
        return self

    def fail(self, operation: str, *args: str) -> FakeRepository:
        if args:
            self._failures.add((operation, *args))
        else:
            self._failing_operations.add(operation)
        return self

    # -- graph helpers ----------------------------------------------------

    def resolve(self, ref: str) -> str:
        commit_id = self.refs.get(ref, ref)
        if commit_id not in self.parents:
            raise FakeQueryError(f"unknown revision {ref!r}")
        return commit_id

    def ancestors(self, ref: str) -> set[str]:
        seen: set[str] = set()
        stack = [self.resolve(ref)]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.parents[current])
        return seen

    # -- RepositoryQueryService -------------------------------------------

    async def list_branches(self) -> tuple[Branch, ...]:
        await self._enter("list_branches")
        try:
            return tuple(
                Branch(name=name, commit_id=commit_id, commit_time=BASE_TS + timedelta(minutes=i))
                for i, (name, commit_id) in enumerate(self.refs.items())
            )
        finally:
            self._exit()

    async def default_remote_branch(self) -> str | None:
        await self._enter("default_remote_branch")
        self._exit()
        return self.remote_default

    async def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        await self._enter("is_ancestor", ancestor, descendant)
        try:
            return self.resolve(ancestor) in self.ancestors(descendant)
        finally:
            self._exit()

    async def merge_base(self, left: str, right: str) -> str | None:
        await self._enter("merge_base", left, right)
        try:
            common = self.ancestors(left) & self.ancestors(right)
            # best common ancestors: not a proper ancestor of another common commit
            best = [
                commit_id
                for commit_id in common
                if not any(
                    commit_id != other and commit_id in self.ancestors(other) for other in common
                )
            ]
            return min(best) if best else None
        finally:
            self._exit()

    async def commit_distance(self, base: str, tip: str) -> AheadBehind:
        await self._enter("commit_distance", base, tip)
        try:
            base_set = self.ancestors(base)
            tip_set = self.ancestors(tip)
            return AheadBehind(ahead=len(tip_set - base_set), behind=len(base_set - tip_set))
        finally:
            self._exit()

    async def working_copies(self) -> tuple[WorkingCopy, ...]:
        await self._enter("working_copies")
        self._exit()
        return tuple(self.copies)

    async def branch_description(self, branch: str) -> str | None:
        await self._enter("branch_description", branch)
        self._exit()
        return self.descriptions.get(branch)

    async def upstream_of(self, branch: str) -> str | None:
        await self._enter("upstream_of", branch)
        self._exit()
        return self.upstreams.get(branch)

    async def _enter(self, operation: str, *args: str) -> None:
        self.calls.append((operation, *args))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if operation in self._failing_operations or (operation, *args) in self._failures:
                raise FakeQueryError(f"{operation} failed for {' '.join(args) or 'repository'}")
        except BaseException:
            self.in_flight -= 1
            raise

    def _exit(self) -> None:
        self.in_flight -= 1


class FakeReviewService:
    def __init__(
        self,
        items: Iterable[ReviewItem] = (),
        *,
        default_branch: str | None = None,
        error: Exception | None = None,
    ) -> None:
        self.items = tuple(items)
        self.default_branch = default_branch
        self.error = error

    async def list_review_items(self) -> tuple[ReviewItem, ...]:
        if self.error is not None:
            raise self.error
        return self.items

    async def host_default_branch(self) -> str | None:
        return self.default_branch


def stacked_repo() -> FakeRepository:
    """``main`` m1-m2; ``alpha`` forks at m2 (a1, a2); ``beta`` forks at a2 (b1);
    ``gamma`` forks at m2 (g1).
    """
    return (
        FakeRepository()
        .chain(None, "m1", "m2")
        .chain("m2", "a1", "a2")
        .chain("a2", "b1")
        .chain("m2", "g1")
        .branch("main", "m2")
        .branch("alpha", "a2")
        .branch("beta", "b1")
        .branch("gamma", "g1")
    )


def make_branches(names: Sequence[str]) -> tuple[Branch, ...]:
    return tuple(
        Branch(name=name, commit_id=f"{index:040x}", commit_time=BASE_TS + timedelta(hours=index))
        for index, name in enumerate(names)
    )


def make_review(
    branch: str,
    number: int = 1,
    *,
    state: ReviewState = ReviewState.OPEN,
    check_status: CheckStatus | None = None,
    **overrides: object,
) -> ReviewItem:
    payload: dict[str, object] = {
        "number": number,
        "title": f"PR for {branch}",
        "state": state,
        "branch": branch,
        "check_status": check_status,
    }
    payload.update(overrides)
    return ReviewItem(**payload)  # type: ignore[arg-type]


def make_working_copy(branch: str | None, path: str | None = None, **overrides: object) -> WorkingCopy:
    payload: dict[str, object] = {
        "path": path or f"/work/{branch or 'detached'}",
        "branch": branch,
    }
    payload.update(overrides)
    return WorkingCopy(**payload)  # type: ignore[arg-type]


__all__ = [
    "BASE_TS",
    "FakeQueryError",
    "FakeRepository",
    "FakeReviewService",
    "make_branches",
    "make_review",
    "make_working_copy",
    "stacked_repo",
]
