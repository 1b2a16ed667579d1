"""Shared fixtures: a throwaway git repository with a small stacked branch history.

History (commit dates increase one minute per commit)::

    main              c1, c2
    feature/api       c2 + a1
    feature/api-docs  a1 + d1   (checked out in the wt-docs worktree, dirty)
    hotfix            c1 + h1
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import pytest


@dataclass(frozen=True, slots=True)
class TopologyRepo:
    root: Path
    worktree: Path
    commits: dict[str, str]


def git(repo_root: Path, *args: str, env_extra: dict[str, str] | None = None) -> str:
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
    env.update(env_extra or {})
    result = subprocess.run(
        ["git", *args],
        cwd=repo_root,
        env=env,
        check=False,
        text=True,
        capture_output=True,
    )
    if result.returncode != 0:
        detail = result.stderr.strip() or result.stdout.strip()
        raise RuntimeError(f"git command failed: git {' '.join(args)}: {detail}")
    return result.stdout.strip()


def _commit(repo_root: Path, name: str, minute: int) -> str:
    (repo_root / f"{name}.txt").write_text(f"{name}\n", encoding="utf-8")
    stamp = f"2026-01-01T00:{minute:02d}:00+00:00"
    git(repo_root, "add", ".")
    git(
        repo_root,
        "-c",
        "user.name=Topology Test",
        "-c",
        "user.email=topology-test@example.com",
        "commit",
        "--quiet",
        "-m",
        name,
        env_extra={"GIT_AUTHOR_DATE": stamp, "GIT_COMMITTER_DATE": stamp},
    )
    return git(repo_root, "rev-parse", "HEAD")


@pytest.fixture(autouse=True)
def isolate_git_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    for name in list(os.environ):
        if name.startswith("BRANCH_TOPOLOGY_"):
            monkeypatch.delenv(name)


@pytest.fixture
def topology_repo(tmp_path: Path) -> TopologyRepo:
    root = tmp_path / "repo"
    root.mkdir()
    git(root, "init", "--initial-branch=main", "--quiet")

    commits = {"c1": _commit(root, "c1", 1), "c2": _commit(root, "c2", 2)}
    git(root, "checkout", "--quiet", "-b", "feature/api")
    commits["a1"] = _commit(root, "a1", 3)
    git(root, "checkout", "--quiet", "-b", "feature/api-docs")
    commits["d1"] = _commit(root, "d1", 4)
    git(root, "checkout", "--quiet", "-b", "hotfix", commits["c1"])
    commits["h1"] = _commit(root, "h1", 5)
    git(root, "checkout", "--quiet", "main")
    git(root, "config", "branch.feature/api.description", "API layer")

    worktree = tmp_path / "wt-docs"
    git(root, "worktree", "add", str(worktree), "feature/api-docs")
    (worktree / "scratch.txt").write_text("uncommitted\n", encoding="utf-8")
    heartbeat = worktree / ".vibetree" / "heartbeat.json"
    heartbeat.parent.mkdir()
    heartbeat.write_text(
        json.dumps({"updatedAt": datetime.now(tz=UTC).isoformat(), "agent": "agent-7"}),
        encoding="utf-8",
    )
    return TopologyRepo(root=root.resolve(), worktree=worktree.resolve(), commits=commits)


@pytest.fixture
def cloned_repo(topology_repo: TopologyRepo, tmp_path: Path) -> Path:
    """A clone of ``topology_repo`` whose ``origin/HEAD`` points at ``main``."""
    clone = tmp_path / "clone"
    git(tmp_path, "clone", "--quiet", str(topology_repo.root), str(clone))
    return clone.resolve()
