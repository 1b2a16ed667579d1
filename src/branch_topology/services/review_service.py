"""Review Query Service backed by the GitHub ``gh`` CLI, plus payload normalization."""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Final

import structlog

from branch_topology.constants import DEFAULT_REVIEW_LIMIT
from branch_topology.domain.models import (
    CheckStatus,
    ReviewDecision,
    ReviewItem,
    ReviewState,
    ReviewStatus,
)
from branch_topology.services.protocols import QueryServiceError

logger = structlog.get_logger(__name__)

PR_LIST_FIELDS: Final[tuple[str, ...]] = (
    "number",
    "title",
    "state",
    "url",
    "headRefName",
    "isDraft",
    "labels",
    "assignees",
    "reviewDecision",
    "reviewRequests",
    "reviews",
    "statusCheckRollup",
    "additions",
    "deletions",
    "changedFiles",
)

_FAILED_CONCLUSIONS: Final[frozenset[str]] = frozenset({"FAILURE", "ERROR"})
_PASSED_CONCLUSIONS: Final[frozenset[str]] = frozenset({"SUCCESS", "SKIPPED"})


class ReviewServiceError(QueryServiceError):
    """Raised when the code-host CLI fails or returns an unusable payload."""


def is_bot(name: str | None) -> bool:
    if not name:
        return False
    return "copilot" in name.lower() or name.endswith("[bot]")


def aggregate_check_status(rollup: Sequence[Mapping[str, object]] | None) -> CheckStatus | None:
    """Any failing/erroring check => failure; all success-or-skipped => success; else pending."""
    if not rollup:
        return None
    conclusions = [_check_conclusion(entry) for entry in rollup]
    if any(conclusion in _FAILED_CONCLUSIONS for conclusion in conclusions):
        return CheckStatus.FAILURE
    if all(conclusion in _PASSED_CONCLUSIONS for conclusion in conclusions):
        return CheckStatus.SUCCESS
    return CheckStatus.PENDING


def normalize_review_payload(raw: Mapping[str, object]) -> ReviewItem:
    """Convert one ``gh pr list --json`` object into a :class:`ReviewItem`."""
    if not isinstance(raw, Mapping):
        raise ReviewServiceError(f"review payload must be an object, got {type(raw).__name__}")

    try:
        number = raw["number"]
        branch = raw["headRefName"]
    except KeyError as exc:
        raise ReviewServiceError(f"review payload missing field {exc.args[0]!r}") from exc
    if isinstance(number, bool) or not isinstance(number, int):
        raise ReviewServiceError(f"review payload number must be an integer, got {number!r}")
    if not isinstance(branch, str) or not branch:
        raise ReviewServiceError(f"review #{number} has no head branch")

    reviewers = tuple(
        name
        for name in (_reviewer_name(request) for request in _objects(raw.get("reviewRequests")))
        if name is not None and not is_bot(name)
    )
    human_reviews = [
        review
        for review in _objects(raw.get("reviews"))
        if (login := _login(review.get("author"))) is not None and not is_bot(login)
    ]

    decision = _review_decision(raw.get("reviewDecision"))
    if decision is ReviewDecision.APPROVED:
        review_status = ReviewStatus.APPROVED
    elif human_reviews:
        review_status = ReviewStatus.REVIEWED
    elif reviewers:
        review_status = ReviewStatus.REQUESTED
    else:
        review_status = ReviewStatus.NONE

    return ReviewItem(
        number=number,
        title=_text(raw.get("title")),
        state=_review_state(raw.get("state"), number),
        branch=branch,
        url=_text(raw.get("url")) or None,
        draft=raw.get("isDraft") is True,
        labels=tuple(
            name for name in (_text(label.get("name")) for label in _objects(raw.get("labels"))) if name
        ),
        assignees=tuple(
            login
            for login in (_login(assignee) for assignee in _objects(raw.get("assignees")))
            if login is not None
        ),
        reviewers=reviewers,
        review_decision=decision,
        review_status=review_status,
        check_status=aggregate_check_status(_objects(raw.get("statusCheckRollup"))),
        additions=_count(raw.get("additions")),
        deletions=_count(raw.get("deletions")),
        changed_files=_count(raw.get("changedFiles")),
    )


class GhReviewService:
    """Lists pull requests and the host default branch through ``gh``."""

    def __init__(self, repo_path: str | Path, *, limit: int = DEFAULT_REVIEW_LIMIT) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self.repo_path = Path(repo_path).resolve()
        self.limit = limit

    async def list_review_items(self) -> tuple[ReviewItem, ...]:
        stdout = await self._run_gh(
            [
                "pr",
                "list",
                "--state",
                "all",
                "--json",
                ",".join(PR_LIST_FIELDS),
                "--limit",
                str(self.limit),
            ]
        )
        try:
            payload = json.loads(stdout or "[]")
        except json.JSONDecodeError as exc:
            raise ReviewServiceError(f"gh pr list returned invalid JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise ReviewServiceError("gh pr list must return a JSON array")

        items: list[ReviewItem] = []
        for entry in payload:
            try:
                items.append(normalize_review_payload(entry))
            except (ReviewServiceError, ValueError) as exc:
                logger.warning("review_payload_skipped", error=str(exc))
        return tuple(items)

    async def host_default_branch(self) -> str | None:
        stdout = await self._run_gh(
            ["repo", "view", "--json", "defaultBranchRef", "--jq", ".defaultBranchRef.name"]
        )
        return stdout.strip() or None

    async def _run_gh(self, args: Sequence[str]) -> str:
        command = ("gh", *args)
        env = os.environ.copy()
        env["GH_PROMPT_DISABLED"] = "1"
        env.setdefault("NO_COLOR", "1")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=self.repo_path,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ReviewServiceError(f"gh CLI is not installed: {exc}") from exc
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            message = f"gh command failed ({process.returncode}): {' '.join(command)}"
            raise ReviewServiceError(f"{message}: {detail}" if detail else message)
        return stdout.decode("utf-8", errors="replace")


def _objects(value: object) -> list[Mapping[str, object]]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _text(value: object) -> str:
    return value if isinstance(value, str) else ""


def _count(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def _login(value: object) -> str | None:
    if not isinstance(value, Mapping):
        return None
    login = value.get("login")
    return login if isinstance(login, str) and login else None


def _reviewer_name(request: Mapping[str, object]) -> str | None:
    # users carry ``login``; teams carry ``slug``/``name``
    for key in ("login", "slug", "name"):
        candidate = request.get(key)
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


def _check_conclusion(entry: Mapping[str, object]) -> str:
    for key in ("conclusion", "state"):
        value = entry.get(key)
        if isinstance(value, str) and value:
            return value.upper()
    return ""


def _review_state(value: object, number: int) -> ReviewState:
    try:
        return ReviewState(_text(value).strip().lower())
    except ValueError as exc:
        raise ReviewServiceError(f"review #{number} has unknown state {value!r}") from exc


def _review_decision(value: object) -> ReviewDecision:
    text = _text(value).strip().lower()
    if not text:
        return ReviewDecision.NONE
    try:
        return ReviewDecision(text)
    except ValueError:
        return ReviewDecision.NONE


__all__ = [
    "PR_LIST_FIELDS",
    "GhReviewService",
    "ReviewServiceError",
    "aggregate_check_status",
    "is_bot",
    "normalize_review_payload",
]
