"""Markdown recipe parsing and rendering.

Recipe files are Markdown with optional front matter::

    ---
    name: repo-digest
    description: summarize repo activity
    interval_secs: 1800
    auto_start: false
    tools: local
    persona: You are a repo digest agent.
    ---
    Summarize recent repository changes and propose next actions.

A non-empty body always replaces the ``instructions`` front matter value.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from autoagents.core.errors import RecipeParseError
from autoagents.core.models import DEFAULT_INTERVAL_SECS, Recipe, ToolMode, ToolSelection

FENCE = "---"

KNOWN_KEYS = frozenset(
    {
        "name",
        "description",
        "interval_secs",
        "auto_start",
        "tools",
        "persona",
        "instructions",
        "trigger_events",
        "trigger_variables",
    }
)

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}
_NAME_INVALID = re.compile(r"[^a-z0-9_-]")


def sanitize_name(raw: str) -> str:
    """Normalize an agent name to a filesystem-safe slug."""
    candidate = _NAME_INVALID.sub("-", raw.strip().lower()).strip("-")
    if not candidate:
        raise ValueError("name cannot be empty")
    return candidate


def split_front_matter(text: str) -> Tuple[Dict[str, str], str]:
    """Split raw file text into front matter values and body."""
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != FENCE:
        return {}, text

    values: Dict[str, str] = {}
    for index, line in enumerate(lines[1:], start=1):
        stripped = line.strip()
        if stripped == FENCE:
            return values, "".join(lines[index + 1 :])
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = line.partition(":")
        if not sep:
            raise RecipeParseError(f"line {index + 1}: expected 'key: value', got {stripped!r}")
        values[key.strip()] = _unquote(value.strip())

    raise RecipeParseError("unterminated front matter block (missing closing '---')")


def parse_tools(raw: Optional[str]) -> ToolSelection:
    if raw is None or not raw.strip():
        return ToolSelection(mode=ToolMode.ABSENT, raw=raw or "")
    lowered = raw.strip().lower()
    if lowered == "none":
        return ToolSelection(mode=ToolMode.NONE, raw=raw)
    if lowered == "local":
        return ToolSelection(mode=ToolMode.LOCAL, raw=raw)
    return ToolSelection(mode=ToolMode.EXPLICIT, names=parse_csv(raw), raw=raw)


def parse_csv(raw: str) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for item in raw.split(","):
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return tuple(seen)


def parse_recipe(path: Path, text: str) -> Recipe:
    """Parse one recipe file, raising ``RecipeParseError`` on invalid content."""
    try:
        front, body = split_front_matter(text)
    except RecipeParseError as exc:
        raise RecipeParseError(str(exc), filename=path.name) from exc

    def fail(message: str) -> RecipeParseError:
        return RecipeParseError(message, filename=path.name)

    try:
        name = sanitize_name(front.get("name") or path.stem)
    except ValueError as exc:
        raise fail(str(exc)) from exc

    interval_secs = DEFAULT_INTERVAL_SECS
    if "interval_secs" in front:
        raw_interval = front["interval_secs"]
        try:
            interval_secs = int(raw_interval)
        except ValueError as exc:
            raise fail(f"interval_secs must be an integer, got {raw_interval!r}") from exc
        if interval_secs <= 0:
            raise fail(f"interval_secs must be positive, got {interval_secs}")

    auto_start = False
    if "auto_start" in front:
        raw_flag = front["auto_start"].lower()
        if raw_flag in _TRUE:
            auto_start = True
        elif raw_flag not in _FALSE:
            raise fail(f"auto_start must be a boolean, got {front['auto_start']!r}")

    if body.strip():
        instructions = body.strip()
    else:
        instructions = front.get("instructions", "").strip()

    return Recipe(
        name=name,
        description=front.get("description", "").strip(),
        interval_secs=interval_secs,
        auto_start=auto_start,
        tools=parse_tools(front.get("tools")),
        persona=front.get("persona", "").strip(),
        instructions=instructions,
        trigger_events=parse_csv(front.get("trigger_events", "")),
        trigger_variables=parse_csv(front.get("trigger_variables", "")),
        path=path,
    )


def render_recipe(
    *,
    name: str,
    description: str,
    interval_secs: int,
    auto_start: bool,
    tools: Iterable[str],
    persona: str,
    instructions: str,
) -> str:
    """Render a recipe as Markdown with front matter."""
    tool_line = ",".join(tools) or "none"
    lines = [
        FENCE,
        f"name: {name}",
        f"description: {_quote(description.strip() or 'Custom auto-agent')}",
        f"interval_secs: {interval_secs}",
        f"auto_start: {'true' if auto_start else 'false'}",
        f"tools: {_quote(tool_line)}",
        f"persona: {_quote(persona.strip())}",
        FENCE,
        instructions.strip(),
        "",
    ]
    return "\n".join(lines)


def _quote(value: str) -> str:
    # Front matter values are single-line.
    value = " ".join(value.splitlines())
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return re.sub(r"\\(.)", r"\1", value[1:-1])
    if len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1]
    return value
