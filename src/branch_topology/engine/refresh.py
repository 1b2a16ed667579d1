"""Priority scoring for re-fetching review metadata under a refresh budget.

Working-copy branches are always refreshed. The rest compete on score: local
branches, pending checks and stale data rank higher, and a small random jitter
keeps equally ranked branches from starving each other across cycles.
"""

from __future__ import annotations

import random
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from branch_topology.constants import (
    REFRESH_CI_PENDING_WEIGHT,
    REFRESH_JITTER_MAX,
    REFRESH_LOCAL_BRANCH_WEIGHT,
    REFRESH_MAX_TOTAL,
    REFRESH_OTHER_MAX,
    REFRESH_STALENESS_MAX,
    REFRESH_STALENESS_PER_MINUTE,
    REFRESH_WORKING_COPY_WEIGHT,
)
from branch_topology.domain.models import UTC, CachedReview, CanonicalModel, CheckStatus


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True, slots=True)
class RefreshWeights:
    local_branch: float = REFRESH_LOCAL_BRANCH_WEIGHT
    working_copy: float = REFRESH_WORKING_COPY_WEIGHT
    ci_pending: float = REFRESH_CI_PENDING_WEIGHT
    staleness_per_minute: float = REFRESH_STALENESS_PER_MINUTE
    staleness_max: float = REFRESH_STALENESS_MAX
    jitter_max: float = REFRESH_JITTER_MAX

    def __post_init__(self) -> None:
        for name in ("staleness_per_minute", "staleness_max", "jitter_max"):
            if getattr(self, name) < 0:
                raise ValueError(f"RefreshWeights.{name} must be >= 0")


@dataclass(frozen=True, slots=True)
class RefreshBudget:
    max_total: int = REFRESH_MAX_TOTAL
    other_max: int = REFRESH_OTHER_MAX

    def __post_init__(self) -> None:
        if self.max_total < 0 or self.other_max < 0:
            raise ValueError("refresh budgets must be >= 0")


@dataclass(frozen=True, slots=True)
class RefreshContext:
    local_branches: frozenset[str]
    working_copy_branches: frozenset[str]
    now: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


@dataclass(frozen=True, slots=True)
class RefreshCandidate(CanonicalModel):
    branch: str
    score: float
    guaranteed: bool = False


def score_refresh_candidate(
    item: CachedReview,
    context: RefreshContext,
    weights: RefreshWeights | None = None,
    rng: RandomSource | None = None,
) -> float:
    weights = weights or RefreshWeights()
    rng = rng if rng is not None else random.Random()

    score = 0.0
    if item.branch in context.working_copy_branches:
        score += weights.working_copy
    elif item.branch in context.local_branches:
        score += weights.local_branch

    if item.check_status is CheckStatus.PENDING:
        score += weights.ci_pending

    if item.refreshed_at is None:
        score += weights.staleness_max
    else:
        minutes = max(0.0, (context.now - item.refreshed_at).total_seconds() / 60.0)
        score += min(weights.staleness_max, minutes * weights.staleness_per_minute)

    return score + rng.random() * weights.jitter_max


def select_refresh_candidates(
    cached: Iterable[CachedReview],
    context: RefreshContext,
    budget: RefreshBudget | None = None,
    *,
    weights: RefreshWeights | None = None,
    rng: RandomSource | None = None,
) -> tuple[RefreshCandidate, ...]:
    """Every working-copy branch, then the best-scoring others within budget.

    The guaranteed set is never truncated, so the result exceeds
    ``budget.max_total`` only when the working-copy branches alone do.
    """
    budget = budget or RefreshBudget()
    rng = rng if rng is not None else random.Random()

    items: dict[str, CachedReview] = {}
    for item in cached:
        items.setdefault(item.branch, item)
    for branch in sorted(context.working_copy_branches.difference(items)):
        items[branch] = CachedReview(branch=branch)

    guaranteed: list[RefreshCandidate] = []
    others: list[RefreshCandidate] = []
    for item in items.values():
        is_guaranteed = item.branch in context.working_copy_branches
        candidate = RefreshCandidate(
            branch=item.branch,
            score=score_refresh_candidate(item, context, weights, rng),
            guaranteed=is_guaranteed,
        )
        (guaranteed if is_guaranteed else others).append(candidate)

    def by_score(candidate: RefreshCandidate) -> tuple[float, str]:
        return (-candidate.score, candidate.branch)

    guaranteed.sort(key=by_score)
    others.sort(key=by_score)
    slots = max(0, min(budget.other_max, budget.max_total - len(guaranteed)))
    return (*guaranteed, *others[:slots])


__all__ = [
    "RandomSource",
    "RefreshBudget",
    "RefreshCandidate",
    "RefreshContext",
    "RefreshWeights",
    "score_refresh_candidate",
    "select_refresh_candidates",
]
