"""UI package exports for the CLI and its plain-text rendering."""

from branch_topology.ui.cli import CLIError, build_parser, run_cli
from branch_topology.ui.render import CLIRenderer, create_renderer, describe_node, tree_lines

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_parser",
    "create_renderer",
    "describe_node",
    "run_cli",
    "tree_lines",
]
