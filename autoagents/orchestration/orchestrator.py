"""Fan-out/fan-in of sub-agent executions grouped by coordination key."""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from autoagents.core.errors import CollectTimeoutError
from autoagents.core.models import (
    CollectResult,
    ExecutionRequest,
    ExecutionResult,
    OrchestrationTask,
    TaskOutcome,
    TaskStatus,
    utcnow,
)
from autoagents.services.backends import BackendRegistry, ExecutionBackend

logger = logging.getLogger(__name__)

# Completed groups kept for repeat collects; the oldest are evicted first.
MAX_CACHED_RESULTS = 256


@dataclass(slots=True)
class _Group:
    tasks: Dict[str, OrchestrationTask] = field(default_factory=dict)
    changed: asyncio.Condition = field(default_factory=asyncio.Condition)

    def is_complete(self) -> bool:
        return all(task.status.is_terminal for task in self.tasks.values())

    def snapshot(self, coordination_key: str) -> CollectResult:
        return CollectResult(
            coordination_key=coordination_key,
            outcomes={task_id: TaskOutcome.from_task(task) for task_id, task in self.tasks.items()},
            complete=self.is_complete(),
        )


class Orchestrator:
    """Spawn sub-agent tasks against named backends and collect them per key.

    The orchestrator only knows execution backends: it has no handle on the
    tool catalog, so every unit of work goes through a backend.
    """

    def __init__(self, *, backends: BackendRegistry, max_cached_results: int = MAX_CACHED_RESULTS) -> None:
        self._backends = backends
        self._max_cached_results = max_cached_results
        self._tasks: Dict[str, OrchestrationTask] = {}
        self._groups: Dict[str, _Group] = {}
        self._collected: OrderedDict[str, CollectResult] = OrderedDict()
        self._runners: Set[asyncio.Task[None]] = set()

    @property
    def backends(self) -> List[str]:
        return self._backends.names()

    async def spawn(
        self,
        coordination_key: str,
        backend: str,
        prompt: str,
        *,
        persona: str = "",
        tools: Iterable[str] = (),
    ) -> str:
        """Create a task under ``coordination_key`` and dispatch it to ``backend``."""
        executor = self._backends.get(backend)
        task = OrchestrationTask(
            task_id=str(uuid.uuid4()),
            coordination_key=coordination_key,
            backend=backend,
            prompt=prompt,
            persona=persona,
            tools=frozenset(tools),
        )
        # A new spawn reopens a group that was already collected.
        self._collected.pop(coordination_key, None)
        group = self._groups.setdefault(coordination_key, _Group())
        self._tasks[task.task_id] = task
        group.tasks[task.task_id] = task

        runner = asyncio.create_task(self._run(task, executor), name=f"task:{task.task_id}")
        self._runners.add(runner)
        runner.add_done_callback(self._runners.discard)
        await self._notify(coordination_key)
        logger.info("Spawned task %s on %s under '%s'", task.task_id, backend, coordination_key)
        return task.task_id

    async def _run(self, task: OrchestrationTask, executor: ExecutionBackend) -> None:
        task.status = TaskStatus.RUNNING
        request = ExecutionRequest(
            prompt=task.prompt,
            persona=task.persona,
            tools=task.tools,
            label=task.task_id,
        )
        try:
            output = await executor.run(request)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Task %s on %s failed: %s", task.task_id, task.backend, exc)
            failure = ExecutionResult.failure(str(exc) or type(exc).__name__)
            self._complete(task, TaskStatus.FAILED, failure)
        else:
            self._complete(task, TaskStatus.SUCCEEDED, ExecutionResult.success(output))
        await self._notify(task.coordination_key)

    @staticmethod
    def _complete(task: OrchestrationTask, status: TaskStatus, result: ExecutionResult) -> None:
        if task.status.is_terminal:
            raise RuntimeError(f"Task {task.task_id} already finished as {task.status.name}")
        task.result = result
        task.finished_at = utcnow()
        task.status = status

    async def _notify(self, coordination_key: str) -> None:
        group = self._groups.get(coordination_key)
        if group is None:
            return
        async with group.changed:
            group.changed.notify_all()

    def tasks(self, coordination_key: str) -> List[OrchestrationTask]:
        group = self._groups.get(coordination_key)
        return list(group.tasks.values()) if group is not None else []

    def get_task(self, task_id: str) -> Optional[OrchestrationTask]:
        return self._tasks.get(task_id)

    def pending_keys(self) -> FrozenSet[str]:
        """Keys with spawned tasks that have not been collected yet."""
        return frozenset(self._groups)

    async def collect(self, coordination_key: str, *, timeout: Optional[float] = None) -> CollectResult:
        """Wait until every task spawned under ``coordination_key`` is terminal.

        Tasks spawned under the key while waiting are part of the group if they
        finish before the deadline. On timeout ``CollectTimeoutError`` carries
        the terminal subset plus pending markers for the rest. Once a group is
        complete its tasks are released and later calls return the cached
        result until a new spawn reopens the key or the entry is evicted; only
        the most recently used ``max_cached_results`` groups are kept.
        """
        cached = self._collected.get(coordination_key)
        if cached is not None:
            self._collected.move_to_end(coordination_key)
            return cached

        group = self._groups.get(coordination_key)
        if group is None:
            return CollectResult(coordination_key=coordination_key, outcomes={}, complete=True)

        if not group.is_complete():
            try:
                async with group.changed:
                    await asyncio.wait_for(group.changed.wait_for(group.is_complete), timeout=timeout)
            except asyncio.TimeoutError:
                raise CollectTimeoutError(group.snapshot(coordination_key)) from None

        return self._finalize(coordination_key, group)

    def _finalize(self, coordination_key: str, group: _Group) -> CollectResult:
        result = group.snapshot(coordination_key)
        # Concurrent collectors of the same group all get the same snapshot;
        # only the first one releases the task records.
        if self._groups.get(coordination_key) is group:
            del self._groups[coordination_key]
            for task_id in group.tasks:
                self._tasks.pop(task_id, None)
            self._collected[coordination_key] = result
            while len(self._collected) > self._max_cached_results:
                evicted, _ = self._collected.popitem(last=False)
                logger.debug("Evicted cached result for '%s'", evicted)
        logger.info("Collected %d task(s) for '%s'", len(result.outcomes), coordination_key)
        return result

    async def shutdown(self, grace: Optional[float] = None) -> None:
        """Give dispatched tasks ``grace`` seconds to finish, then abandon them."""
        runners = list(self._runners)
        if not runners:
            return
        _, pending = await asyncio.wait(runners, timeout=grace)
        for runner in pending:
            logger.warning("Abandoning in-flight task %s", runner.get_name())
            runner.cancel()
        await asyncio.gather(*runners, return_exceptions=True)
