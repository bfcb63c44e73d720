"""Registry of recipe-backed background agents and their run state."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Dict, Iterable, List, Optional

from autoagents.core.errors import AgentNotFoundError
from autoagents.core.models import (
    AgentState,
    AgentStatus,
    ExecutionRequest,
    ExecutionResult,
    Recipe,
    RunRecord,
    utcnow,
)
from autoagents.scheduling.scheduler import IntervalScheduler
from autoagents.services.backends import ExecutionBackend
from autoagents.services.tools import ToolCatalog, resolve_tools

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Single source of truth for which agents exist and whether they run.

    ``time_scale`` converts a recipe's ``interval_secs`` into scheduler
    seconds; it is 1.0 outside of tests.
    """

    def __init__(
        self,
        backend: ExecutionBackend,
        catalog: ToolCatalog,
        scheduler: IntervalScheduler,
        *,
        time_scale: float = 1.0,
        history_size: int = 50,
    ) -> None:
        self._backend = backend
        self._catalog = catalog
        self._scheduler = scheduler
        self._time_scale = time_scale
        self._history_size = history_size
        self._agents: Dict[str, AgentState] = {}
        self._lock = asyncio.Lock()

    # -- queries ---------------------------------------------------------

    def get(self, name: str) -> Optional[AgentState]:
        return self._agents.get(name)

    def list(self) -> List[AgentState]:
        return sorted(self._agents.values(), key=lambda state: state.name)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def _require(self, name: str) -> AgentState:
        state = self._agents.get(name)
        if state is None:
            raise AgentNotFoundError(name)
        return state

    def _ensure_current(self, name: str, state: AgentState) -> None:
        if self._agents.get(name) is not state:
            raise AgentNotFoundError(name)

    # -- lifecycle -------------------------------------------------------

    async def register(self, recipe: Recipe, *, allow_auto_start: bool = True) -> AgentState:
        """Install or replace the agent for ``recipe.name``.

        A first registration of an ``auto_start`` recipe starts the agent unless
        ``allow_auto_start`` is False.
        """
        async with self._lock:
            state = self._agents.get(recipe.name)
            first_registration = state is None
            if state is None:
                state = AgentState(recipe=recipe, history=deque(maxlen=self._history_size))
                self._agents[recipe.name] = state
            else:
                state.recipe = recipe
                if state.handle is not None:
                    state.handle.reschedule()

        if first_registration:
            logger.info("Registered agent %s", recipe.name)
            if recipe.auto_start and allow_auto_start:
                await self.start(recipe.name)
        else:
            logger.debug("Updated recipe for agent %s", recipe.name)
        return state

    async def start(self, name: str) -> AgentState:
        state = self._require(name)
        async with state.lifecycle_lock:
            self._ensure_current(name, state)
            if state.status is AgentStatus.RUNNING:
                return state
            state.handle = self._scheduler.schedule(
                name,
                lambda: self._execute(state, trigger="schedule"),
                lambda: state.recipe.interval_secs * self._time_scale,
            )
            state.status = AgentStatus.RUNNING
        logger.info("Started agent %s (every %ss)", name, state.recipe.interval_secs)
        return state

    async def stop(self, name: str) -> AgentState:
        """Cancel future ticks and wait for an in-flight run to finish."""
        state = self._require(name)
        async with state.lifecycle_lock:
            self._ensure_current(name, state)
            await self._halt(state)
        return state

    async def remove(self, name: str) -> AgentState:
        """Stop the agent and forget it. The recipe file is left untouched."""
        state = self._require(name)
        # Held across stop and delete so a concurrent start cannot reschedule it.
        async with state.lifecycle_lock:
            self._ensure_current(name, state)
            await self._halt(state)
            async with self._lock:
                if self._agents.get(name) is state:
                    del self._agents[name]
        logger.info("Removed agent %s", name)
        return state

    async def run_once(self, name: str) -> Optional[RunRecord]:
        """Run the agent now without touching its schedule or running flag."""
        state = self._require(name)
        return await self._execute(state, trigger="manual")

    async def sync(
        self,
        recipes: Iterable[Recipe],
        *,
        allow_auto_start: bool = True,
    ) -> List[str]:
        """Apply a reloaded recipe set; returns the names of removed agents."""
        recipes = list(recipes)
        wanted = {recipe.name for recipe in recipes}
        for recipe in recipes:
            await self.register(recipe, allow_auto_start=allow_auto_start)

        removed = [name for name in list(self._agents) if name not in wanted]
        for name in removed:
            try:
                await self.remove(name)
            except AgentNotFoundError:
                logger.debug("Agent %s was already removed", name)
        return removed

    async def dispatch_event(self, event_type: str, variable_name: Optional[str] = None) -> List[RunRecord]:
        """Run every running agent whose trigger matches the event."""
        matching = [
            state
            for state in self._agents.values()
            if state.running and state.recipe.matches_trigger(event_type, variable_name)
        ]
        if not matching:
            return []
        records = await asyncio.gather(
            *(self._execute(state, trigger="event") for state in matching)
        )
        return [record for record in records if record is not None]

    async def shutdown(self, grace: Optional[float] = None) -> None:
        """Cancel all schedules; no new executions start afterwards."""
        await self._scheduler.shutdown(grace)
        for state in self._agents.values():
            state.handle = None
            state.status = AgentStatus.STOPPED

    async def _halt(self, state: AgentState) -> None:
        """Cancel future ticks and wait for an in-flight run. Caller holds the lifecycle lock."""
        handle = state.handle
        if handle is None:
            state.status = AgentStatus.STOPPED
            return
        state.status = AgentStatus.CANCELLING
        handle.cancel()
        await handle.wait()
        state.handle = None
        state.status = AgentStatus.STOPPED
        logger.info("Stopped agent %s", state.name)

    # -- execution -------------------------------------------------------

    async def _execute(self, state: AgentState, *, trigger: str) -> Optional[RunRecord]:
        async with state.execution_lock:
            recipe = state.recipe
            if not recipe.instructions.strip():
                logger.debug("Agent %s has no instructions; idling", recipe.name)
                return None

            resolution = resolve_tools(recipe.tools, self._catalog)
            for warning in resolution.warnings:
                logger.warning("Agent %s: %s", recipe.name, warning)

            request = ExecutionRequest(
                prompt=recipe.instructions,
                persona=recipe.persona,
                tools=resolution.capabilities,
                label=recipe.name,
            )
            started_at = utcnow()
            try:
                output = await self._backend.run(request)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Agent %s %s run failed: %s", recipe.name, trigger, exc)
                result = ExecutionResult.failure(str(exc) or type(exc).__name__)
            else:
                result = ExecutionResult.success(output)

            record = RunRecord(
                agent=recipe.name,
                trigger=trigger,
                started_at=started_at,
                finished_at=utcnow(),
                result=result,
            )
            state.record(record)
            logger.info("Agent %s %s run: %s", recipe.name, trigger, result.summary())
            return record
