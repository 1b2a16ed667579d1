from __future__ import annotations

from branch_topology.domain.models import (
    AheadBehind,
    NamingRule,
    Node,
    Severity,
    TopologyWarning,
    WarningCode,
)
from branch_topology.engine.restart import DETACHED_LABEL, generate_restart_info

from . import make_working_copy


def _warning(branch: str, message: str, severity: Severity = Severity.WARN) -> TopologyWarning:
    return TopologyWarning(
        severity=severity, code=WarningCode.DIRTY, message=message, meta={"branch": branch}
    )


def test_prompt_lists_state_warnings_and_next_steps() -> None:
    copy = make_working_copy("feature/pay", path="/work/my repo", dirty=True)
    nodes = [Node(branch="feature/pay", ahead_behind=AheadBehind(ahead=2, behind=6))]
    warnings = [
        _warning("feature/pay", "Branch feature/pay is 6 commits behind", Severity.ERROR),
        _warning("other", "Worktree for other has uncommitted changes"),
        _warning("feature/pay", "Worktree for feature/pay has uncommitted changes"),
    ]

    info = generate_restart_info(copy, nodes, warnings, NamingRule(patterns=("^feature/",)))

    assert info.working_copy_path == "/work/my repo"
    assert info.cd_command == "cd '/work/my repo'"
    prompt = info.prompt_markdown
    assert prompt.startswith("# Restart Prompt\n")
    assert "- Patterns: `^feature/`\n" in prompt
    assert "- Branch: `feature/pay`\n" in prompt
    assert "- Dirty: Yes (uncommitted changes)\n" in prompt
    assert "- Behind: 6 commits\n" in prompt
    assert "- [ERROR] Branch feature/pay is 6 commits behind\n" in prompt
    assert "other" not in prompt
    assert "1. Address: Branch feature/pay is 6 commits behind\n" in prompt
    assert "2. Address: Worktree for feature/pay has uncommitted changes\n" in prompt
    assert prompt.endswith("*Paste this prompt into your coding agent to continue the session.*\n")


def test_next_steps_are_capped_at_three() -> None:
    copy = make_working_copy("topic")
    warnings = [_warning("topic", f"issue {index}") for index in range(5)]

    prompt = generate_restart_info(copy, [], warnings, None).prompt_markdown

    assert "3. Address: issue 2\n" in prompt
    assert "4. Address" not in prompt
    assert "- [WARN] issue 4\n" in prompt


def test_clean_worktree_without_rules_or_warnings() -> None:
    copy = make_working_copy("topic")

    prompt = generate_restart_info(copy, [Node(branch="topic")], [], None).prompt_markdown

    assert "- Patterns: N/A\n" in prompt
    assert "- Dirty: No\n" in prompt
    assert "Behind" not in prompt
    assert "No warnings\n" in prompt
    assert "1. Continue working on your current task\n" in prompt


def test_detached_worktree_gets_no_branch_warnings() -> None:
    copy = make_working_copy(None, path="/work/detached")

    prompt = generate_restart_info(copy, [], [_warning("topic", "unrelated")], None).prompt_markdown

    assert f"- Branch: `{DETACHED_LABEL}`\n" in prompt
    assert "unrelated" not in prompt
