"""
Integration tests for the branch-topology CLI against a real git repository.

Coverage:
- scan output in JSON and text form
- designed-tree drift reported through the CLI
- restart prompt lookup by worktree path
- refresh planning from a cache document
- exit codes for config, query, and usage failures
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from branch_topology.main import cli_entrypoint
from branch_topology.observability import reset_logging
from branch_topology.ui.cli import run_cli

if TYPE_CHECKING:
    from .conftest import TopologyRepo

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    yield
    reset_logging()


def _scan_json(capsys: pytest.CaptureFixture[str], *args: str) -> dict[str, object]:
    assert run_cli(["scan", "--json", "--no-reviews", *args]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert isinstance(payload, dict)
    return payload


def test_scan_json_reports_tree_and_worktree_state(
    topology_repo: TopologyRepo, capsys: pytest.CaptureFixture[str]
) -> None:
    payload = _scan_json(capsys, "--repo-root", str(topology_repo.root))

    assert payload["default_branch"] == "main"
    edges = {(edge["parent"], edge["child"]): edge["confidence"] for edge in payload["edges"]}
    assert set(edges) == {
        ("main", "feature/api"),
        ("feature/api", "feature/api-docs"),
        ("main", "hotfix"),
    }
    assert edges[("feature/api", "feature/api-docs")] == "high"
    nodes = {node["branch"]: node for node in payload["nodes"]}
    assert nodes["feature/api"]["description"] == "API layer"
    assert nodes["feature/api-docs"]["badges"] == ["dirty", "active"]
    assert nodes["hotfix"]["ahead_behind"] == {"ahead": 1, "behind": 1}
    assert [warning["code"] for warning in payload["warnings"]] == ["BEHIND_PARENT", "DIRTY"]
    assert payload["query_errors"] == []


def test_scan_text_output(topology_repo: TopologyRepo, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["scan", "--no-reviews", "--repo-root", str(topology_repo.root)]) == 0

    out = capsys.readouterr().out
    assert "Default branch: main" in out
    assert "Tree:" in out
    assert "└─ feature/api-docs [dirty, active]" in out
    assert "[WARN] Worktree for feature/api-docs has uncommitted changes" in out


def test_scan_reports_design_drift_and_naming(
    topology_repo: TopologyRepo, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    design = tmp_path / "design.yaml"
    design.write_text(
        "edges:\n  - {parent: hotfix, child: feature/api}\n  - {parent: main, child: gone}\n",
        encoding="utf-8",
    )

    payload = _scan_json(
        capsys,
        "--repo-root",
        str(topology_repo.root),
        "--design",
        str(design),
        "--naming",
        "^(feature|hotfix)",
    )

    final = {edge["child"]: edge for edge in payload["edges"]}
    assert (final["feature/api"]["parent"], final["feature/api"]["designed"]) == ("hotfix", True)
    drift = [w for w in payload["warnings"] if w["code"] == "TREE_DIVERGENCE"]
    assert [(w["meta"]["parent"], w["meta"]["child"]) for w in drift] == [
        ("hotfix", "feature/api")
    ]
    assert not any(w["code"] == "BRANCH_NAMING_VIOLATION" for w in payload["warnings"])


def test_restart_prompt_for_worktree(
    topology_repo: TopologyRepo, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(
        [
            "restart",
            "--no-reviews",
            "--repo-root",
            str(topology_repo.root),
            "--worktree",
            str(topology_repo.worktree),
            "--json",
        ]
    )

    assert code == 0
    info = json.loads(capsys.readouterr().out)
    assert Path(info["working_copy_path"]).resolve() == topology_repo.worktree
    assert info["cd_command"].startswith("cd ")
    assert "- Branch: `feature/api-docs`" in info["prompt_markdown"]
    assert "- Dirty: Yes (uncommitted changes)" in info["prompt_markdown"]


def test_restart_unknown_worktree_is_a_usage_error(
    topology_repo: TopologyRepo, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(
        [
            "restart",
            "--no-reviews",
            "--repo-root",
            str(topology_repo.root),
            "--worktree",
            str(tmp_path / "elsewhere"),
        ]
    )

    assert code == 2
    assert "no worktree of this repository" in capsys.readouterr().err


def test_refresh_plan_guarantees_worktree_branches(
    topology_repo: TopologyRepo, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cache = tmp_path / "cache.json"
    cache.write_text(
        json.dumps(
            [
                {"branch": "hotfix", "refreshed_at": "2026-01-01T00:00:00Z"},
                {"branch": "feature/api", "check_status": "pending"},
            ]
        ),
        encoding="utf-8",
    )

    code = run_cli(
        [
            "refresh-plan",
            "--repo-root",
            str(topology_repo.root),
            "--cache",
            str(cache),
            "--seed",
            "7",
            "--json",
        ]
    )

    assert code == 0
    candidates = json.loads(capsys.readouterr().out)["candidates"]
    guaranteed = {c["branch"] for c in candidates if c["guaranteed"]}
    assert guaranteed == {"main", "feature/api-docs"}
    assert {c["branch"] for c in candidates} == {
        "main",
        "feature/api-docs",
        "hotfix",
        "feature/api",
    }


def test_config_command_reflects_overrides(
    topology_repo: TopologyRepo, capsys: pytest.CaptureFixture[str]
) -> None:
    (topology_repo.root / "branch-topology.toml").write_text(
        "[scan]\nreview_limit = 10\n", encoding="utf-8"
    )

    code = run_cli(["config", "--repo-root", str(topology_repo.root), "--log-level", "error"])

    assert code == 0
    config = json.loads(capsys.readouterr().out)
    assert config["scan"]["review_limit"] == 10
    assert config["observability"]["log_level"] == "ERROR"


def test_scan_outside_a_repository_is_a_query_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    empty = tmp_path / "not-a-repo"
    empty.mkdir()

    code = run_cli(["scan", "--json", "--no-reviews", "--repo-root", str(empty)])

    assert code == 3
    payload = json.loads(capsys.readouterr().out)
    assert payload["nodes"] == []
    assert payload["query_errors"][0]["operation"] == "list_branches"


@pytest.mark.parametrize(
    ("argv", "expected"),
    [
        (["scan", "--no-reviews", "--config", "missing.toml"], 2),
        (["scan", "--no-reviews", "--deadline", "0"], 2),
        (["no-such-command"], 2),
        (["scan", "--no-reviews", "--repo-root", "does/not/exist"], 2),
    ],
)
def test_entrypoint_exit_codes(
    topology_repo: TopologyRepo,
    monkeypatch: pytest.MonkeyPatch,
    argv: list[str],
    expected: int,
) -> None:
    monkeypatch.chdir(topology_repo.root)

    assert cli_entrypoint(argv) == expected
