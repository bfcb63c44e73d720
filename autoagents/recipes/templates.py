"""Built-in recipe templates that can be scaffolded into recipe files."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True, slots=True)
class RecipeTemplate:
    id: str
    description: str
    interval_secs: int
    tools: Tuple[str, ...]
    persona: str
    instructions: str


RECIPE_TEMPLATES: Tuple[RecipeTemplate, ...] = (
    RecipeTemplate(
        id="repo-watch",
        description="Track repo state, test failures, and unfinished work.",
        interval_secs=1800,
        tools=("workspace_list_files", "workspace_read_file", "workspace_run_command"),
        persona=(
            "You are a repository watchdog agent. Focus on risky changes, broken tests, "
            "and unfinished tasks."
        ),
        instructions=(
            "Inspect the repository, run quick verification commands, and summarize what "
            "changed, what failed, and what to do next."
        ),
    ),
    RecipeTemplate(
        id="release-notes",
        description="Draft concise release notes from recent source changes.",
        interval_secs=3600,
        tools=("workspace_read_file", "workspace_run_command"),
        persona="You are a release-notes agent. Produce concise, accurate, developer-facing notes.",
        instructions=(
            "Analyze recent project changes and draft release notes with sections: Added, "
            "Changed, Fixed, and Follow-ups."
        ),
    ),
    RecipeTemplate(
        id="cleanup",
        description="Find stale files and suggest safe cleanup actions.",
        interval_secs=7200,
        tools=("workspace_list_files", "workspace_read_file", "workspace_run_command"),
        persona="You are a codebase cleanup agent. Prefer safe, incremental improvements.",
        instructions=(
            "Scan for stale artifacts, dead scripts, and obvious cleanup opportunities. "
            "Propose a prioritized cleanup plan."
        ),
    ),
)


def recipe_templates() -> Tuple[RecipeTemplate, ...]:
    return RECIPE_TEMPLATES


def template_by_id(template_id: str) -> Optional[RecipeTemplate]:
    wanted = template_id.strip().lower()
    return next((template for template in RECIPE_TEMPLATES if template.id == wanted), None)
