"""Command-line interface router for branch-topology."""

from __future__ import annotations

import argparse
import asyncio
import json
import random
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from branch_topology.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_cached_reviews,
    load_config,
    load_designed_tree,
    load_planning_sessions,
)
from branch_topology.domain.models import DesignedTree, NamingRule, PlanningSession, WorkingCopy
from branch_topology.engine import (
    RefreshBudget,
    RefreshContext,
    RefreshWeights,
    Snapshot,
    collect_snapshot,
    generate_restart_info,
    select_refresh_candidates,
)
from branch_topology.observability import configure_logging, scan_scope
from branch_topology.services import GhReviewService, GitRepositoryService
from branch_topology.ui.render import CLIRenderer, create_renderer, tree_lines
from branch_topology.utils import run_with_timeout


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="branch-topology",
        description=(
            "branch-topology: infer a repository's branch tree and flag drift.\n\n"
            "Common workflows:\n"
            "  branch-topology scan                    Show the inferred tree and warnings\n"
            "  branch-topology scan --design tree.yml  Compare against a designed tree\n"
            "  branch-topology refresh-plan --cache c.json\n"
            "  branch-topology restart --worktree ../wt-feature\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--repo-root",
        default=".",
        help="Repository root directory (default: current working directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: <repo-root>/branch-topology.toml if present).",
    )
    common.add_argument(
        "--log-level",
        default=None,
        help="Override observability.log_level (DEBUG, INFO, WARNING, ERROR).",
    )
    common.add_argument(
        "--log-format",
        default=None,
        choices=("console", "json"),
        help="Override observability.log_format.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", parents=[common], help="Compute one topology snapshot.")
    _add_scan_inputs(scan)
    scan.add_argument("--json", action="store_true", default=False, help="Emit JSON.")
    scan.set_defaults(handler=_cmd_scan)

    refresh = subparsers.add_parser(
        "refresh-plan",
        parents=[common],
        help="Choose which branches' review data to re-fetch this cycle.",
    )
    refresh.add_argument(
        "--cache",
        required=True,
        help="JSON/YAML list of cached reviews (branch, check_status, refreshed_at).",
    )
    refresh.add_argument("--seed", type=int, default=None, help="Seed the score jitter.")
    refresh.add_argument("--json", action="store_true", default=False, help="Emit JSON.")
    refresh.set_defaults(handler=_cmd_refresh_plan)

    restart = subparsers.add_parser(
        "restart", parents=[common], help="Print a restart prompt for one worktree."
    )
    _add_scan_inputs(restart)
    restart.add_argument("--worktree", required=True, help="Path of the worktree to resume.")
    restart.add_argument("--json", action="store_true", default=False, help="Emit JSON.")
    restart.set_defaults(handler=_cmd_restart)

    config = subparsers.add_parser("config", parents=[common], help="Show effective config.")
    config.set_defaults(handler=_cmd_config)

    return parser


def _add_scan_inputs(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--design", default=None, help="Designed tree (YAML or JSON).")
    parser.add_argument("--sessions", default=None, help="Planning sessions (YAML or JSON).")
    parser.add_argument(
        "--naming",
        action="append",
        default=None,
        metavar="PATTERN",
        help="Branch naming regex; repeatable. Overrides warnings.naming_patterns.",
    )
    parser.add_argument(
        "--no-reviews",
        action="store_true",
        default=False,
        help="Skip the code-host review query (gh).",
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Abort the scan when it runs longer than this.",
    )
    parser.add_argument("--max-concurrency", type=int, default=None)


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_scan(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    config = _load_effective_config(args, repo_root)
    snapshot = _run_scan(args, config, repo_root)

    if args.json:
        _emit_json(snapshot.to_dict())
    else:
        _render_snapshot(_get_renderer(args), snapshot)
    return _scan_exit_code(snapshot)


def _cmd_refresh_plan(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    config = _load_effective_config(args, repo_root)
    cached = _load_input(load_cached_reviews, args.cache)
    repository = _repository(config, repo_root)

    async def context() -> RefreshContext:
        branches, copies = await asyncio.gather(
            repository.list_branches(), repository.working_copies()
        )
        return RefreshContext(
            local_branches=frozenset(branch.name for branch in branches),
            working_copy_branches=frozenset(
                copy.branch for copy in copies if copy.branch is not None
            ),
        )

    try:
        refresh_context = asyncio.run(context())
    except Exception as exc:  # noqa: BLE001 - query failures map to exit code 3
        raise CLIError(f"repository query failed: {exc}", exit_code=3) from exc

    refresh = config["refresh"]
    candidates = select_refresh_candidates(
        cached,
        refresh_context,
        RefreshBudget(max_total=refresh["max_total"], other_max=refresh["other_max"]),
        weights=RefreshWeights(**refresh["weights"]),
        rng=random.Random(args.seed),
    )

    if args.json:
        _emit_json({"candidates": [candidate.to_dict() for candidate in candidates]})
        return 0
    renderer = _get_renderer(args)
    renderer.heading(f"Refresh {len(candidates)} branch(es)")
    renderer.table(
        ("BRANCH", "SCORE", "WORKTREE"),
        [
            (candidate.branch, f"{candidate.score:.1f}", "yes" if candidate.guaranteed else "")
            for candidate in candidates
        ],
    )
    return 0


def _cmd_restart(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    config = _load_effective_config(args, repo_root)
    snapshot = _run_scan(args, config, repo_root)

    target = Path(args.worktree).expanduser().resolve()
    working_copy = _find_working_copy(snapshot, target)
    if working_copy is None:
        raise CLIError(f"no worktree of this repository at {target}", exit_code=2)

    info = generate_restart_info(
        working_copy, snapshot.nodes, snapshot.warnings, _naming_rule(args, config)
    )
    if args.json:
        _emit_json(info.to_dict())
    else:
        renderer = _get_renderer(args)
        renderer.text(info.cd_command)
        renderer.text("")
        renderer.text(info.prompt_markdown.rstrip("\n"))
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    config = _load_effective_config(args, repo_root)
    _get_renderer(args).text(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_scan(args: argparse.Namespace, config: Mapping[str, Any], repo_root: Path) -> Snapshot:
    scan = config["scan"]
    designed_tree: DesignedTree | None = None
    if args.design:
        designed_tree = _load_input(load_designed_tree, args.design)
    sessions: tuple[PlanningSession, ...] = ()
    if args.sessions:
        sessions = _load_input(load_planning_sessions, args.sessions)

    repository = _repository(config, repo_root)
    reviews = None if args.no_reviews else GhReviewService(repo_root, limit=scan["review_limit"])

    async def scan_once() -> Snapshot:
        with scan_scope(scan_id=uuid.uuid4().hex[:12], repo=repo_root.as_posix()):
            return await collect_snapshot(
                repository,
                review_service=reviews,
                host=reviews,
                designed_tree=designed_tree,
                naming_rule=_naming_rule(args, config),
                planning_sessions=sessions,
                max_concurrency=scan["max_concurrency"],
                behind_error_threshold=config["warnings"]["behind_error_threshold"],
            )

    async def bounded() -> Snapshot:
        if args.deadline is None:
            return await scan_once()
        return await run_with_timeout(scan_once(), args.deadline)

    if args.deadline is not None and args.deadline <= 0:
        raise CLIError("--deadline must be > 0", exit_code=2)
    try:
        return asyncio.run(bounded())
    except TimeoutError as exc:
        raise CLIError(str(exc), exit_code=3) from exc


def _scan_exit_code(snapshot: Snapshot) -> int:
    # an unlistable repository is a query-service failure, not an empty tree
    if any(error.operation == "list_branches" for error in snapshot.query_errors):
        return 3
    return 0


def _render_snapshot(renderer: CLIRenderer, snapshot: Snapshot) -> None:
    renderer.kv("Default branch", snapshot.default_branch)
    renderer.section("Tree:")
    for line in tree_lines(snapshot):
        renderer.text(f"  {line}")

    renderer.section("Warnings:")
    if snapshot.warnings:
        renderer.items(
            [
                f"[{warning.severity.value.upper()}] {warning.message}"
                for warning in snapshot.warnings
            ]
        )
    else:
        renderer.text("  none")

    if snapshot.query_errors:
        renderer.section("Query errors:")
        if renderer.verbose:
            renderer.items(
                [
                    f"{error.operation} {error.subject}: {error.message}"
                    for error in snapshot.query_errors
                ]
            )
        else:
            renderer.warning(f"{len(snapshot.query_errors)} query error(s); rerun with -v")


def _find_working_copy(snapshot: Snapshot, target: Path) -> WorkingCopy | None:
    for node in snapshot.nodes:
        copy = node.working_copy
        if copy is not None and Path(copy.path).resolve() == target:
            return copy
    return None


def _repository(config: Mapping[str, Any], repo_root: Path) -> GitRepositoryService:
    scan = config["scan"]
    return GitRepositoryService(
        repo_root,
        remote=scan["remote"],
        heartbeat_path=scan["heartbeat_path"],
        heartbeat_window_seconds=scan["heartbeat_window_seconds"],
        max_concurrency=scan["max_concurrency"],
    )


def _naming_rule(args: argparse.Namespace, config: Mapping[str, Any]) -> NamingRule | None:
    patterns = args.naming if args.naming else config["warnings"]["naming_patterns"]
    return NamingRule(patterns=tuple(patterns)) if patterns else None


def _load_input(loader: Any, path: str) -> Any:
    try:
        return loader(path)
    except ConfigLoadError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=bool(getattr(args, "verbose", False)))


def _repo_root(args: argparse.Namespace) -> Path:
    candidate = Path(args.repo_root).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(f"repo root is not a directory: {candidate}", exit_code=2)
    return candidate


def _load_effective_config(args: argparse.Namespace, repo_root: Path) -> dict[str, Any]:
    overrides: dict[str, object] = {
        "observability.log_level": args.log_level.upper() if args.log_level else None,
        "observability.log_format": args.log_format,
        "scan.max_concurrency": getattr(args, "max_concurrency", None),
    }
    try:
        config = load_config(args.config_path, cli_overrides=overrides, search_dir=repo_root)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    observability = config["observability"]
    configure_logging(observability["log_level"], observability["log_format"], stream=sys.stderr)
    return config


__all__ = ["CLIError", "build_parser", "run_cli"]
