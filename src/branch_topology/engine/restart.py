"""Markdown restart prompt for resuming work inside one working copy."""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from dataclasses import dataclass

from jinja2 import Environment, StrictUndefined

from branch_topology.domain.models import (
    CanonicalModel,
    NamingRule,
    Node,
    TopologyWarning,
    WorkingCopy,
)

MAX_NEXT_STEPS = 3
DETACHED_LABEL = "(detached HEAD)"

_RESTART_TEMPLATE = """\
# Restart Prompt

## Project Rules
### Branch Naming
- Patterns: {{ patterns }}

## Current State
- Branch: `{{ branch }}`
- Worktree: `{{ path }}`
- Dirty: {{ "Yes (uncommitted changes)" if dirty else "No" }}
{% if behind is not none %}- Behind: {{ behind }} commits
{% endif %}
## Warnings
{% for warning in warnings %}- [{{ warning.severity | upper }}] {{ warning.message }}
{% else %}No warnings
{% endfor %}
## Next Steps
{% for warning in warnings[:max_steps] %}{{ loop.index }}. Address: {{ warning.message }}
{% else %}1. Continue working on your current task
{% endfor %}
---
*Paste this prompt into your coding agent to continue the session.*
"""

_ENVIRONMENT = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    trim_blocks=False,
    lstrip_blocks=False,
    newline_sequence="\n",
    keep_trailing_newline=True,
)


@dataclass(frozen=True, slots=True)
class RestartInfo(CanonicalModel):
    working_copy_path: str
    cd_command: str
    prompt_markdown: str


def generate_restart_info(
    working_copy: WorkingCopy,
    nodes: Sequence[Node],
    warnings: Sequence[TopologyWarning],
    naming_rule: NamingRule | None,
) -> RestartInfo:
    """Render the restart prompt for ``working_copy`` from a computed snapshot."""
    branch = working_copy.branch
    node = next((candidate for candidate in nodes if candidate.branch == branch), None)
    branch_warnings = [
        {"severity": warning.severity.value, "message": warning.message}
        for warning in warnings
        if branch is not None and warning.meta.get("branch") == branch
    ]
    patterns = (
        ", ".join(f"`{pattern}`" for pattern in naming_rule.patterns)
        if naming_rule is not None and naming_rule.patterns
        else "N/A"
    )
    behind = (
        node.ahead_behind.behind if node is not None and node.ahead_behind is not None else None
    )

    prompt = _ENVIRONMENT.from_string(_RESTART_TEMPLATE).render(
        patterns=patterns,
        branch=branch if branch is not None else DETACHED_LABEL,
        path=working_copy.path,
        dirty=working_copy.dirty,
        behind=behind,
        warnings=branch_warnings,
        max_steps=MAX_NEXT_STEPS,
    )
    return RestartInfo(
        working_copy_path=working_copy.path,
        cd_command=f"cd {shlex.quote(working_copy.path)}",
        prompt_markdown=prompt,
    )


__all__ = ["DETACHED_LABEL", "MAX_NEXT_STEPS", "RestartInfo", "generate_restart_info"]
