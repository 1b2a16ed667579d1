"""Module entrypoint for ``python -m branch_topology``."""

from __future__ import annotations

from branch_topology.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
