"""Prompt builders for the coordinator and worker agents.

Bundled texts can be overridden by Markdown files with the same name in the
configured prompt directories (``$AUTOAGENTS_PROMPTS_DIR`` first, then
``$AUTOAGENTS_HOME/prompts``).
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

EXECUTION_STYLE = """\
Execution style:
- Deliver concrete, final outputs rather than plans to do the work later.
- Be concise and explicit about every change you make.
- When something fails, report what failed and the next step that would fix it."""

ORCHESTRATION_RULES = """\
Orchestration rules:
- Always delegate work by spawning sub-agents. Never call tools directly.
- Route each spawned unit of work to the backend identifier best suited for it.
- Group every spawn that belongs to the same request under one shared coordination key.
- After spawning the full group, collect its results before writing the final answer.
- For file or code sub-tasks, instruct workers to use the workspace tools to create or
  update files and to run verification commands, and to report what they ran."""

PLAN_FORMAT = """\
Respond with JSON in this format:
{
  "tasks": [
    {"backend": "<backend identifier>", "prompt": "<self-contained instructions>"}
  ]
}"""

NEEDS_INPUT_RULE = """\
If you cannot continue without information only the user has, stop and state the
exact question, prefixed with NEEDS_INPUT:."""


def load_prompt(file_name: str, bundled: str, search_dirs: Iterable[Path] = ()) -> str:
    """Return the first non-empty override for ``file_name`` or the bundled text."""
    for directory in search_dirs:
        path = directory / file_name
        if not path.is_file():
            continue
        try:
            text = path.read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if text:
            return text
    return bundled.strip()


def default_persona(name: str) -> str:
    return (
        f"You are a background autonomous agent named '{name}'. "
        "Be concise, action-oriented, and explicit about changes."
    )


def worker_system_prompt(
    persona: str,
    now: str,
    has_tools: bool,
    search_dirs: Sequence[Path] = (),
) -> str:
    tools_line = (
        "You have tool access. Use tools proactively to complete the task fully."
        if has_tools
        else "You have no tool access. Still produce final, ready-to-apply outputs."
    )
    execution_style = load_prompt("execution_style.md", EXECUTION_STYLE, search_dirs)
    needs_input = load_prompt("needs_input_rule.md", NEEDS_INPUT_RULE, search_dirs)
    return (
        f"{persona}\nCurrent date and time: {now}.\n"
        f"You are a delegated worker agent.\n{tools_line}\n\n{execution_style}\n\n{needs_input}"
    )


def orchestrator_system_prompt(
    backends: Iterable[str],
    now: str,
    search_dirs: Sequence[Path] = (),
) -> str:
    rules = load_prompt("orchestration_rules.md", ORCHESTRATION_RULES, search_dirs)
    backend_list = ", ".join(sorted(backends)) or "(none registered)"
    return (
        "You are the coordinating agent. You decompose a request into sub-tasks and "
        f"delegate each one.\nCurrent date and time: {now}.\n"
        f"Available backends: {backend_list}\n\n{rules}\n\n{PLAN_FORMAT}"
    )


def synthesis_prompt(request: str, results: Iterable[tuple[str, str]]) -> str:
    sections = "\n\n".join(f"### {label}\n{text}" for label, text in results)
    return (
        f"Original request:\n{request}\n\nSub-agent results:\n\n{sections}\n\n"
        "Synthesize a single final answer from these results. Mention any sub-task that failed."
    )
