from __future__ import annotations

from branch_topology.services.git_service import WorktreeEntry, parse_worktree_porcelain

_PORCELAIN = """\
worktree /srv/repo.git
bare

worktree /srv/wt/main
HEAD 1111111111111111111111111111111111111111
branch refs/heads/main

worktree /srv/wt/feature
HEAD 2222222222222222222222222222222222222222
branch refs/heads/feature/login
locked

worktree /srv/wt/detached
HEAD 3333333333333333333333333333333333333333
detached
"""


def test_parse_skips_bare_and_strips_ref_prefix() -> None:
    entries = parse_worktree_porcelain(_PORCELAIN)

    assert entries == (
        WorktreeEntry(
            path="/srv/wt/main", head="1111111111111111111111111111111111111111", branch="main"
        ),
        WorktreeEntry(
            path="/srv/wt/feature",
            head="2222222222222222222222222222222222222222",
            branch="feature/login",
        ),
        WorktreeEntry(
            path="/srv/wt/detached", head="3333333333333333333333333333333333333333", branch=None
        ),
    )


def test_parse_handles_missing_trailing_blank_line() -> None:
    output = "worktree /a\nHEAD abc\nbranch refs/heads/x\nworktree /b\nHEAD def\ndetached"

    assert [(entry.path, entry.branch) for entry in parse_worktree_porcelain(output)] == [
        ("/a", "x"),
        ("/b", None),
    ]


def test_parse_empty_output() -> None:
    assert parse_worktree_porcelain("") == ()
