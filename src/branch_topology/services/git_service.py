"""Git-backed Repository Query Service.

Every query is a read-only ``git`` subprocess run through asyncio. Non-zero exits
raise :class:`GitCommandError`; the engine captures those per call.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath

import structlog

from branch_topology.constants import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_REMOTE,
    HEARTBEAT_RELATIVE_PATH,
    HEARTBEAT_WINDOW_SECONDS,
)
from branch_topology.domain.models import UTC, AheadBehind, Branch, WorkingCopy, parse_timestamp
from branch_topology.services.protocols import QueryServiceError
from branch_topology.utils.concurrency import map_bounded

logger = structlog.get_logger(__name__)

_BRANCH_REF_PREFIX = "refs/heads/"
_FIELD_SEPARATOR = "\x00"


class GitServiceError(QueryServiceError):
    """Base error for git query failures."""


class GitCommandError(GitServiceError):
    """Raised when a git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class GitRepositoryService:
    """Read-only repository queries against a local clone and its worktrees."""

    def __init__(
        self,
        repo_path: str | Path,
        *,
        remote: str = DEFAULT_REMOTE,
        heartbeat_path: str | PurePosixPath = HEARTBEAT_RELATIVE_PATH,
        heartbeat_window_seconds: float = HEARTBEAT_WINDOW_SECONDS,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        clock: Callable[[], datetime] = _utc_now,
        env_overrides: Mapping[str, str] | None = None,
    ) -> None:
        if heartbeat_window_seconds <= 0:
            raise ValueError("heartbeat_window_seconds must be > 0")
        self.repo_path = Path(repo_path).resolve()
        self.remote = remote
        self.heartbeat_path = PurePosixPath(heartbeat_path)
        if self.heartbeat_path.is_absolute():
            raise ValueError("heartbeat_path must be relative to the worktree")
        self.heartbeat_window_seconds = heartbeat_window_seconds
        self.max_concurrency = max_concurrency
        self._clock = clock
        self._env_overrides = dict(env_overrides or {})

    async def list_branches(self) -> tuple[Branch, ...]:
        fields = "%(refname:short)%00%(objectname)%00%(committerdate:iso-strict)"
        result = await self._run_git(
            ["for-each-ref", "--sort=-committerdate", f"--format={fields}", _BRANCH_REF_PREFIX]
        )
        branches: list[Branch] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            name, _, rest = line.partition(_FIELD_SEPARATOR)
            commit_id, _, committed = rest.partition(_FIELD_SEPARATOR)
            commit_time = parse_timestamp(committed, f"branch {name}") if committed else None
            branches.append(Branch(name=name, commit_id=commit_id, commit_time=commit_time))
        return tuple(branches)

    async def default_remote_branch(self) -> str | None:
        remote_head = f"refs/remotes/{self.remote}/HEAD"
        result = await self._run_git(["symbolic-ref", "--quiet", remote_head], check=False)
        if result.returncode != 0:
            return None
        target = result.stdout.strip()
        prefix = f"refs/remotes/{self.remote}/"
        if not target.startswith(prefix):
            return None
        return target[len(prefix) :] or None

    async def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = await self._run_git(
            ["merge-base", "--is-ancestor", ancestor, descendant], check=False
        )
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        raise _command_error(result)

    async def merge_base(self, left: str, right: str) -> str | None:
        result = await self._run_git(["merge-base", left, right], check=False)
        if result.returncode == 0:
            return result.stdout.strip() or None
        # exit 1 with no output: unrelated histories
        if result.returncode == 1 and not result.stderr.strip():
            return None
        raise _command_error(result)

    async def commit_distance(self, base: str, tip: str) -> AheadBehind:
        result = await self._run_git(["rev-list", "--left-right", "--count", f"{base}...{tip}"])
        parts = result.stdout.split()
        if len(parts) != 2:
            raise GitServiceError(f"unexpected rev-list output: {result.stdout.strip()!r}")
        behind, ahead = (int(part) for part in parts)
        return AheadBehind(ahead=ahead, behind=behind)

    async def working_copies(self) -> tuple[WorkingCopy, ...]:
        result = await self._run_git(["worktree", "list", "--porcelain"])
        entries = parse_worktree_porcelain(result.stdout)
        return tuple(
            await map_bounded(entries, self._inspect_worktree, max_concurrency=self.max_concurrency)
        )

    async def branch_description(self, branch: str) -> str | None:
        result = await self._run_git(["config", "--get", f"branch.{branch}.description"], check=False)
        # exit 1 = key not set
        if result.returncode == 1:
            return None
        if result.returncode != 0:
            raise _command_error(result)
        return result.stdout.strip() or None

    async def upstream_of(self, branch: str) -> str | None:
        result = await self._run_git(
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", f"{branch}@{{upstream}}"],
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    async def _inspect_worktree(self, entry: WorktreeEntry) -> WorkingCopy:
        status = await self._run_git(["status", "--porcelain"], cwd=Path(entry.path), check=False)
        dirty = status.returncode == 0 and bool(status.stdout.strip())
        if status.returncode != 0:
            logger.debug("worktree_status_failed", path=entry.path, stderr=status.stderr.strip())
        active, agent = self._read_heartbeat(Path(entry.path))
        return WorkingCopy(
            path=entry.path,
            branch=entry.branch,
            head=entry.head,
            dirty=dirty,
            active=active,
            agent=agent,
        )

    def _read_heartbeat(self, worktree: Path) -> tuple[bool, str | None]:
        heartbeat_file = worktree.joinpath(*self.heartbeat_path.parts)
        if not heartbeat_file.is_file():
            return False, None
        try:
            payload = json.loads(heartbeat_file.read_text(encoding="utf-8"))
            updated_at = parse_timestamp(payload["updatedAt"], "heartbeat.updatedAt")
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.debug("heartbeat_unreadable", path=str(heartbeat_file), error=str(exc))
            return False, None
        age = (self._clock() - updated_at).total_seconds()
        if age >= self.heartbeat_window_seconds:
            return False, None
        agent = payload.get("agent")
        return True, agent if isinstance(agent, str) and agent else None

    async def _run_git(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
    ) -> CommandResult:
        command = ("git", *args)
        run_cwd = cwd if cwd is not None else self.repo_path
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
        env.setdefault("LC_ALL", "C")
        env.update(self._env_overrides)

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=run_cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise GitServiceError(f"cannot run git in {run_cwd}: {exc}") from exc
        stdout, stderr = await process.communicate()

        result = CommandResult(
            command=command,
            cwd=run_cwd.as_posix(),
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if check and result.returncode != 0:
            raise _command_error(result)
        return result


@dataclass(frozen=True, slots=True)
class WorktreeEntry:
    path: str
    head: str | None = None
    branch: str | None = None


def parse_worktree_porcelain(output: str) -> tuple[WorktreeEntry, ...]:
    """Parse ``git worktree list --porcelain``; bare entries are skipped."""
    entries: list[WorktreeEntry] = []
    current: dict[str, str | None] = {}
    bare = False

    def flush() -> None:
        path = current.get("worktree")
        if path and not bare:
            entries.append(
                WorktreeEntry(path=path, head=current.get("HEAD"), branch=current.get("branch"))
            )

    for line in output.splitlines():
        if not line.strip():
            flush()
            current = {}
            bare = False
            continue

        key, _, value = line.partition(" ")
        value = value.strip()
        if key == "worktree":
            if current:
                flush()
                bare = False
            current = {"worktree": value}
        elif key == "HEAD":
            current["HEAD"] = value or None
        elif key == "branch":
            current["branch"] = value.removeprefix(_BRANCH_REF_PREFIX) or None
        elif key == "bare":
            bare = True

    flush()
    return tuple(entries)


def _command_error(result: CommandResult) -> GitCommandError:
    return GitCommandError(
        command=result.command,
        returncode=result.returncode,
        stdout=result.stdout,
        stderr=result.stderr,
    )


__all__ = [
    "CommandResult",
    "GitCommandError",
    "GitRepositoryService",
    "GitServiceError",
    "WorktreeEntry",
    "parse_worktree_porcelain",
]
