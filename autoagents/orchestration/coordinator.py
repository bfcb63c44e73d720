"""Coordinating agent that decomposes a request into spawned sub-agent tasks."""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from autoagents.core.errors import CollectTimeoutError
from autoagents.core.models import CollectResult, ExecutionRequest
from autoagents.orchestration.orchestrator import Orchestrator
from autoagents.prompts import orchestrator_system_prompt, synthesis_prompt
from autoagents.services.backends import ExecutionBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PlannedTask:
    backend: str
    prompt: str


@dataclass(frozen=True, slots=True)
class CoordinatorReply:
    coordination_key: str
    answer: str
    plan: Tuple[PlannedTask, ...]
    results: CollectResult


class Coordinator:
    """Plan with a model, fan the plan out through the orchestrator, then synthesize.

    The coordinator never touches tools: planning and synthesis are plain
    backend turns with an empty tool set, and every sub-task is a spawn.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        planner: ExecutionBackend,
        *,
        default_backend: str,
        collect_timeout: Optional[float] = 120.0,
        prompt_dirs: Sequence[Path] = (),
    ) -> None:
        self._orchestrator = orchestrator
        self._planner = planner
        self.default_backend = default_backend
        self.collect_timeout = collect_timeout
        self._prompt_dirs = tuple(prompt_dirs)

    async def handle(self, request: str, *, coordination_key: Optional[str] = None) -> CoordinatorReply:
        key = coordination_key or f"coord-{uuid.uuid4().hex[:12]}"
        plan = await self._plan(request)

        for item in plan:
            await self._orchestrator.spawn(key, item.backend, item.prompt)

        try:
            results = await self._orchestrator.collect(key, timeout=self.collect_timeout)
        except CollectTimeoutError as exc:
            logger.warning("Synthesizing '%s' from a partial group: %s", key, exc)
            results = exc.result

        answer = await self._synthesize(request, results)
        return CoordinatorReply(coordination_key=key, answer=answer, plan=plan, results=results)

    async def _plan(self, request: str) -> Tuple[PlannedTask, ...]:
        """Use the planner to decompose the request into backend-routed tasks."""
        now = datetime.now().astimezone().strftime("%Y-%m-%d %H:%M %Z")
        persona = orchestrator_system_prompt(self._orchestrator.backends, now, self._prompt_dirs)
        content = await self._planner.run(
            ExecutionRequest(prompt=request, persona=persona, label="coordinator")
        )
        plan = self.parse_plan(content)
        if not plan:
            logger.info("Planner returned no usable plan; delegating the whole request")
            return (PlannedTask(backend=self.default_backend, prompt=request),)
        return plan

    def parse_plan(self, content: str) -> Tuple[PlannedTask, ...]:
        """Extract planned tasks from the planner's reply."""
        # Extract JSON from markdown code blocks if present
        try:
            if "```json" in content:
                content = content.split("```json")[1].split("```")[0].strip()
            elif "```" in content:
                content = content.split("```")[1].split("```")[0].strip()
            data = json.loads(content)
        except (json.JSONDecodeError, IndexError):
            return ()

        raw_tasks = data.get("tasks") if isinstance(data, dict) else data
        if not isinstance(raw_tasks, list):
            return ()

        known = set(self._orchestrator.backends)
        plan: List[PlannedTask] = []
        for raw in raw_tasks:
            if not isinstance(raw, dict):
                continue
            prompt = str(raw.get("prompt") or "").strip()
            if not prompt:
                continue
            backend = str(raw.get("backend") or self.default_backend)
            if backend not in known:
                logger.warning("Planner chose unknown backend '%s'; using %s", backend, self.default_backend)
                backend = self.default_backend
            plan.append(PlannedTask(backend=backend, prompt=prompt))
        return tuple(plan)

    async def _synthesize(
        self,
        request: str,
        results: CollectResult,
    ) -> str:
        sections = []
        for index, (task_id, outcome) in enumerate(results.outcomes.items(), start=1):
            label = f"Task {index} ({outcome.backend}, {task_id[:8]})"
            if outcome.pending:
                text = "still pending when results were collected"
            elif outcome.error is not None:
                text = f"FAILED: {outcome.error}"
            else:
                text = outcome.output or ""
            sections.append((label, text))

        return await self._planner.run(
            ExecutionRequest(prompt=synthesis_prompt(request, sections), label="coordinator")
        )
