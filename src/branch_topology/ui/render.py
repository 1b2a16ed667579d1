"""Plain-text rendering for the branch-topology CLI.

File: src/branch_topology/ui/render.py

Purpose
- Provide a thin rendering layer for CLI output.
- Draw a snapshot's edge forest as an indented tree with badges and divergence.

Functional requirements
- Output is deterministic for a given snapshot.
- No dependencies beyond the standard library.
"""

from __future__ import annotations

import sys
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from branch_topology.domain.models import Node
    from branch_topology.engine.snapshot import Snapshot


class CLIRenderer:
    """Thin CLI output renderer producing clean, deterministic plain text."""

    def __init__(self, *, verbose: bool = False, stream: IO[str] | None = None) -> None:
        self.verbose = verbose
        self._stream = stream

    def _print(self, line: str = "") -> None:
        print(line, file=self._stream if self._stream is not None else sys.stdout)

    def heading(self, text: str) -> None:
        self._print(text)

    def kv(self, key: str, value: object) -> None:
        self._print(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._print(line)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._print(f"\n{title}")

    def warning(self, text: str) -> None:
        self._print(f"  Warning: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._print(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self._print(f"  {_pad(list(headers))}")
        self._print(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self._print(f"  {_pad(list(row))}")


def describe_node(node: Node) -> str:
    """One-line label: ``name [badges] +ahead/-behind``."""

    parts = [node.branch]
    if node.badges:
        parts.append("[" + ", ".join(badge.value for badge in node.badges) + "]")
    if node.ahead_behind is not None and not node.ahead_behind.in_sync:
        parts.append(f"+{node.ahead_behind.ahead}/-{node.ahead_behind.behind}")
    if node.remote_ahead_behind is not None:
        remote = node.remote_ahead_behind
        parts.append(f"(upstream +{remote.ahead}/-{remote.behind})")
    return " ".join(parts)


def tree_lines(snapshot: Snapshot) -> list[str]:
    """Render the edge forest depth-first from the default branch.

    Overlay edges are marked ``*``; inferred edges show their confidence.
    Overlay children that are not live branches appear as ``(planned)``.
    """

    nodes_by_branch = {node.branch: node for node in snapshot.nodes}
    children: dict[str, list[tuple[str, str]]] = {}
    for edge in snapshot.edges:
        marker = "*" if edge.designed else edge.confidence.value
        children.setdefault(edge.parent, []).append((edge.child, marker))

    lines: list[str] = []
    visited: set[str] = set()

    def label(branch: str) -> str:
        node = nodes_by_branch.get(branch)
        return describe_node(node) if node is not None else f"{branch} (planned)"

    def walk(branch: str, depth: int) -> None:
        for child, marker in children.get(branch, []):
            if child in visited:
                continue
            visited.add(child)
            lines.append(f"{'  ' * depth}└─ {label(child)} <{marker}>")
            walk(child, depth + 1)

    roots = [snapshot.default_branch]
    # parents outside the default tree (stale overlays) become extra roots
    roots.extend(parent for parent in children if parent not in nodes_by_branch)
    roots.extend(
        node.branch
        for node in snapshot.nodes
        if node.branch != snapshot.default_branch and snapshot.parent_of(node.branch) is None
    )
    for root in dict.fromkeys(roots):
        if root in visited:
            continue
        visited.add(root)
        lines.append(label(root))
        walk(root, 1)
    return lines


def create_renderer(*, verbose: bool = False, stream: IO[str] | None = None) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer", "describe_node", "tree_lines"]
