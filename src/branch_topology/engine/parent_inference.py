"""Best-guess parent branch inference from naming conventions and commit ancestry.

Stage 1 (``high``): a branch named ``X/...`` or ``X-...`` where ``X`` is another
non-default branch is a child of ``X``; the longest such ``X`` wins. Names are
trusted as-is and never checked against history.

Stage 2 (``medium``): with a repository service, the candidate whose merge-base
with the target sits strictly closer to the target than the default branch's
merge-base does wins. When the default branch's own distance cannot be measured,
any qualifying candidate may win. Anything else falls back to the default branch
at ``low``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from branch_topology.constants import DEFAULT_MAX_CONCURRENCY, NAMING_SEPARATORS
from branch_topology.domain.models import Confidence, QueryError
from branch_topology.services.protocols import RepositoryQueryService, capture
from branch_topology.utils.concurrency import map_bounded

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ParentGuess:
    parent: str
    confidence: Confidence
    errors: tuple[QueryError, ...] = ()


@dataclass(frozen=True, slots=True)
class _Measurement:
    distance: int | None
    errors: tuple[QueryError, ...] = ()


def naming_parent(branch: str, branch_names: Sequence[str], default_branch: str) -> str | None:
    """Longest other non-default branch that prefixes ``branch`` followed by a separator."""
    best: str | None = None
    for candidate in branch_names:
        if candidate in (branch, default_branch):
            continue
        if not any(branch.startswith(candidate + separator) for separator in NAMING_SEPARATORS):
            continue
        if best is None or len(candidate) > len(best):
            best = candidate
    return best


async def infer_parent(
    branch: str,
    branch_names: Sequence[str],
    default_branch: str,
    repository: RepositoryQueryService | None = None,
    *,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> ParentGuess:
    named = naming_parent(branch, branch_names, default_branch)
    if named is not None:
        return ParentGuess(parent=named, confidence=Confidence.HIGH)

    fallback = ParentGuess(parent=default_branch, confidence=Confidence.LOW)
    if repository is None or branch == default_branch:
        return fallback

    trunk_subject = f"{default_branch}...{branch}"
    default_distance = await capture(
        "commit_distance", trunk_subject, repository.commit_distance(default_branch, branch)
    )
    default_base = await capture(
        "merge_base", trunk_subject, repository.merge_base(default_branch, branch)
    )
    errors: list[QueryError] = [
        result.error for result in (default_distance, default_base) if result.error is not None
    ]
    if default_base.value is None:
        return ParentGuess(parent=default_branch, confidence=Confidence.LOW, errors=tuple(errors))
    default_merge_base = default_base.value

    async def measure(candidate: str) -> _Measurement:
        subject = f"{candidate}...{branch}"
        merge_base = await capture("merge_base", subject, repository.merge_base(candidate, branch))
        if merge_base.error is not None:
            return _Measurement(None, (merge_base.error,))
        if merge_base.value is None or merge_base.value == default_merge_base:
            return _Measurement(None)
        descends = await capture(
            "is_ancestor", subject, repository.is_ancestor(default_merge_base, merge_base.value)
        )
        if descends.error is not None:
            return _Measurement(None, (descends.error,))
        if not descends.value:
            return _Measurement(None)
        distance = await capture(
            "commit_distance", subject, repository.commit_distance(merge_base.value, branch)
        )
        if distance.error is not None:
            return _Measurement(None, (distance.error,))
        # zero means the candidate already contains the target: a descendant, not a parent
        if distance.value is None or distance.value.ahead == 0:
            return _Measurement(None)
        return _Measurement(distance.value.ahead)

    candidates = [name for name in branch_names if name not in (branch, default_branch)]
    measurements = await map_bounded(candidates, measure, max_concurrency=max_concurrency)

    best: str | None = None
    # an unmeasured default distance leaves the threshold unbounded
    best_distance = (
        default_distance.value.ahead if default_distance.value is not None else None
    )
    for candidate, measurement in zip(candidates, measurements, strict=True):
        errors.extend(measurement.errors)
        if measurement.distance is None:
            continue
        if best_distance is None or measurement.distance < best_distance:
            best = candidate
            best_distance = measurement.distance

    if best is None:
        return ParentGuess(parent=default_branch, confidence=Confidence.LOW, errors=tuple(errors))
    return ParentGuess(parent=best, confidence=Confidence.MEDIUM, errors=tuple(errors))


async def infer_parents(
    branch_names: Sequence[str],
    default_branch: str,
    repository: RepositoryQueryService | None = None,
    *,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> dict[str, ParentGuess]:
    """Infer a parent for every non-default branch, keyed in branch-list order.

    Branches fan out across the pool; candidates within one branch are measured
    one at a time so the pass never runs more than ``max_concurrency`` queries.
    """
    targets = [name for name in branch_names if name != default_branch]

    async def guess(branch: str) -> ParentGuess:
        return await infer_parent(
            branch, branch_names, default_branch, repository, max_concurrency=1
        )

    guesses = await map_bounded(targets, guess, max_concurrency=max_concurrency)
    inferred = dict(zip(targets, guesses, strict=True))
    for branch, result in inferred.items():
        logger.debug(
            "parent_inferred",
            branch=branch,
            parent=result.parent,
            confidence=result.confidence.value,
        )
    return inferred


__all__ = ["ParentGuess", "infer_parent", "infer_parents", "naming_parent"]
