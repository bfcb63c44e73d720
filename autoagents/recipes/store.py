"""File-backed store of agent recipes."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from autoagents.core.errors import RecipeParseError
from autoagents.core.models import DEFAULT_INTERVAL_SECS, Recipe
from autoagents.recipes.parser import parse_recipe, render_recipe, sanitize_name

logger = logging.getLogger(__name__)

RECIPE_SUFFIX = ".md"


@dataclass(frozen=True, slots=True)
class LoadReport:
    """Outcome of reading the recipe directory."""

    recipes: Tuple[Recipe, ...]
    errors: Tuple[Tuple[str, str], ...] = ()


@dataclass(slots=True)
class NewRecipe:
    """Fields used to write a fresh recipe file."""

    name: str
    instructions: str
    description: str = ""
    interval_secs: int = DEFAULT_INTERVAL_SECS
    auto_start: bool = False
    tools: List[str] = field(default_factory=lambda: ["local"])
    persona: str = ""


class RecipeStore:
    """Reads recipe files from one directory and keeps the current snapshot."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self._snapshot: Tuple[Recipe, ...] = ()

    @property
    def recipes(self) -> Tuple[Recipe, ...]:
        return self._snapshot

    def get(self, name: str) -> Optional[Recipe]:
        return next((recipe for recipe in self._snapshot if recipe.name == name), None)

    def ensure_directory(self) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        return self.directory

    def load(self) -> LoadReport:
        """Parse every recipe file; malformed files are skipped and reported."""
        if not self.directory.is_dir():
            return LoadReport(recipes=())

        by_name: Dict[str, Recipe] = {}
        errors: List[Tuple[str, str]] = []
        paths = sorted(
            path
            for path in self.directory.iterdir()
            if path.is_file() and path.suffix.lower() == RECIPE_SUFFIX
        )
        for path in paths:
            try:
                text = path.read_text(encoding="utf-8")
                recipe = parse_recipe(path, text)
            except (OSError, UnicodeDecodeError, RecipeParseError) as exc:
                logger.warning("Skipping recipe %s: %s", path.name, exc)
                errors.append((path.name, str(exc)))
                continue
            previous = by_name.get(recipe.name)
            if previous is not None and previous.path is not None:
                logger.info(
                    "Recipe '%s' from %s overrides %s", recipe.name, path.name, previous.path.name
                )
            by_name[recipe.name] = recipe

        ordered = tuple(sorted(by_name.values(), key=lambda recipe: recipe.name))
        return LoadReport(recipes=ordered, errors=tuple(errors))

    def reload(self) -> LoadReport:
        """Re-read the directory and swap in the new snapshot in one step."""
        report = self.load()
        self._snapshot = report.recipes
        logger.info(
            "Loaded %d recipe(s) from %s (%d error(s))",
            len(report.recipes),
            self.directory,
            len(report.errors),
        )
        return report

    def path_for(self, name: str) -> Path:
        return self.directory / f"{sanitize_name(name)}{RECIPE_SUFFIX}"

    def write_recipe(self, draft: NewRecipe) -> Path:
        name = sanitize_name(draft.name)
        if not draft.instructions.strip():
            raise ValueError("instructions cannot be empty")
        if draft.interval_secs <= 0:
            raise ValueError("interval_secs must be positive")

        self.ensure_directory()
        path = self.path_for(name)
        if path.exists():
            raise FileExistsError(f"Agent recipe already exists: {path}")

        content = render_recipe(
            name=name,
            description=draft.description,
            interval_secs=draft.interval_secs,
            auto_start=draft.auto_start,
            tools=draft.tools,
            persona=draft.persona,
            instructions=draft.instructions,
        )
        path.write_text(content, encoding="utf-8")
        logger.info("Wrote recipe %s", path)
        return path

    def read_recipe(self, path: Path) -> Recipe:
        return parse_recipe(path, path.read_text(encoding="utf-8"))

    def delete_recipe(self, name: str) -> Optional[Path]:
        """Delete the recipe file backing ``name``; returns the removed path."""
        recipe = self.get(name)
        path = recipe.path if recipe is not None and recipe.path is not None else self.path_for(name)
        if not path.exists():
            return None
        path.unlink()
        logger.info("Removed recipe file %s", path)
        return path
