"""Trunk selection for a repository's branch list."""

from __future__ import annotations

from collections.abc import Sequence

from branch_topology.constants import CONVENTIONAL_DEFAULT_BRANCHES, EMPTY_REPO_DEFAULT_BRANCH


def resolve_default_branch(
    branch_names: Sequence[str],
    *,
    remote_default: str | None = None,
    host_default: str | None = None,
) -> str:
    """Pick the trunk: remote HEAD, then code-host default, then develop/main/master.

    Signals naming a branch that is not in ``branch_names`` are ignored. The
    result is always a member of ``branch_names``, or ``"main"`` when it is empty.
    """
    present = set(branch_names)
    for signal in (remote_default, host_default):
        if signal and signal in present:
            return signal
    for conventional in CONVENTIONAL_DEFAULT_BRANCHES:
        if conventional in present:
            return conventional
    if branch_names:
        return branch_names[0]
    return EMPTY_REPO_DEFAULT_BRANCH


__all__ = ["resolve_default_branch"]
