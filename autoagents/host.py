"""Host facade tying the recipe store to the agent registry."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from autoagents.agents.registry import AgentRegistry
from autoagents.core.errors import AgentNotFoundError
from autoagents.core.models import AgentState, Recipe, RunRecord
from autoagents.prompts import default_persona
from autoagents.recipes.parser import sanitize_name
from autoagents.recipes.store import LoadReport, NewRecipe, RecipeStore
from autoagents.recipes.templates import RecipeTemplate, recipe_templates, template_by_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReloadSummary:
    report: LoadReport
    removed: Tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RemoveSummary:
    name: str
    was_running: bool
    deleted_file: Optional[Path]


class AgentHost:
    """Operations behind the ``autoagents`` commands."""

    def __init__(self, store: RecipeStore, registry: AgentRegistry) -> None:
        self.store = store
        self.registry = registry

    @property
    def recipe_dir(self) -> Path:
        return self.store.ensure_directory()

    async def startup(self, *, auto_start: bool = True) -> ReloadSummary:
        """Load recipes, register them and auto-start the ones that ask for it."""
        self.store.ensure_directory()
        return await self.reload(auto_start=auto_start)

    async def reload(self, *, auto_start: bool = True) -> ReloadSummary:
        report = self.store.reload()
        removed = await self.registry.sync(report.recipes, allow_auto_start=auto_start)
        for name in removed:
            logger.info("Agent %s removed: its recipe disappeared", name)
        return ReloadSummary(report=report, removed=tuple(removed))

    def templates(self) -> Tuple[RecipeTemplate, ...]:
        return recipe_templates()

    async def create(
        self,
        name: str,
        interval_secs: int,
        instructions: str,
        *,
        start: bool = True,
    ) -> AgentState:
        """Write a new recipe with local tools and, unless ``start`` is False, start it."""
        name = sanitize_name(name)
        if name in self.registry:
            raise FileExistsError(f"An agent named '{name}' already exists")
        draft = NewRecipe(
            name=name,
            description="CLI-created auto-agent recipe",
            interval_secs=interval_secs,
            auto_start=True,
            tools=["local"],
            persona=(
                f"{default_persona(name)} You can use local workspace tools to inspect files, "
                "edit files, and run commands."
            ),
            instructions=instructions,
        )
        return await self._install(draft, start=start)

    async def scaffold(
        self,
        template_id: str,
        name: Optional[str] = None,
        *,
        start: bool = True,
    ) -> AgentState:
        template = template_by_id(template_id)
        if template is None:
            raise KeyError(f"Unknown template '{template_id}'")
        target = sanitize_name(name or template.id)
        if target in self.registry:
            raise FileExistsError(f"An agent named '{target}' already exists")
        draft = NewRecipe(
            name=target,
            description=template.description,
            interval_secs=template.interval_secs,
            auto_start=True,
            tools=list(template.tools),
            persona=template.persona,
            instructions=template.instructions,
        )
        return await self._install(draft, start=start)

    async def _install(self, draft: NewRecipe, *, start: bool) -> AgentState:
        path = self.store.write_recipe(draft)
        recipe = self.store.read_recipe(path)
        state = await self.registry.register(recipe, allow_auto_start=start)
        # Keep the snapshot in step with the directory without a full reload.
        self.store.reload()
        return state

    async def start(self, name: str) -> AgentState:
        return await self.registry.start(name)

    async def stop(self, name: str) -> AgentState:
        return await self.registry.stop(name)

    async def run(self, name: str) -> Optional[RunRecord]:
        return await self.registry.run_once(name)

    async def remove(self, name: str, *, delete_recipe: bool = True) -> RemoveSummary:
        """Unregister an agent and, unless asked not to, delete its recipe file."""
        state = self.registry.get(name)
        was_running = state is not None and state.running
        if state is not None:
            await self.registry.remove(name)
        deleted = self.store.delete_recipe(name) if delete_recipe else None
        if state is None and deleted is None:
            raise AgentNotFoundError(name)
        if deleted is not None:
            self.store.reload()
        return RemoveSummary(name=name, was_running=was_running, deleted_file=deleted)

    async def dispatch_event(self, event_type: str, variable_name: Optional[str] = None) -> List[RunRecord]:
        return await self.registry.dispatch_event(event_type, variable_name)

    def agents(self) -> List[AgentState]:
        return self.registry.list()

    def recipes(self) -> Tuple[Recipe, ...]:
        return self.store.recipes

    def history(self, name: Optional[str] = None) -> List[RunRecord]:
        if name is not None:
            state = self.registry.get(name)
            if state is None:
                raise AgentNotFoundError(name)
            states = [state]
        else:
            states = self.registry.list()
        records = [record for state in states for record in state.history]
        return sorted(records, key=lambda record: record.finished_at)

    async def shutdown(self, grace: Optional[float] = None) -> None:
        await self.registry.shutdown(grace)
