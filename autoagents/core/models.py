"""Core data models shared across the agent host components."""
from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING, Deque, Dict, FrozenSet, Optional, Tuple

if TYPE_CHECKING:
    from autoagents.scheduling.scheduler import ScheduleHandle

DEFAULT_INTERVAL_SECS = 1800


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolMode(Enum):
    """How a recipe declared its tools."""

    ABSENT = auto()
    NONE = auto()
    LOCAL = auto()
    EXPLICIT = auto()


@dataclass(frozen=True, slots=True)
class ToolSelection:
    """Raw tool declaration of a recipe, resolved against the catalog at execution time."""

    mode: ToolMode = ToolMode.ABSENT
    names: Tuple[str, ...] = ()
    raw: str = ""

    def describe(self) -> str:
        if self.mode is ToolMode.ABSENT:
            return "-"
        if self.mode is ToolMode.NONE:
            return "none"
        if self.mode is ToolMode.LOCAL:
            return "local"
        return ",".join(self.names)


@dataclass(frozen=True, slots=True)
class Recipe:
    """Validated, immutable definition of a background agent."""

    name: str
    description: str = ""
    interval_secs: int = DEFAULT_INTERVAL_SECS
    auto_start: bool = False
    tools: ToolSelection = field(default_factory=ToolSelection)
    persona: str = ""
    instructions: str = ""
    trigger_events: Tuple[str, ...] = ()
    trigger_variables: Tuple[str, ...] = ()
    path: Optional[Path] = None

    @property
    def has_trigger(self) -> bool:
        return bool(self.trigger_events or self.trigger_variables)

    def trigger_summary(self) -> Optional[str]:
        if not self.has_trigger:
            return None
        events = "|".join(self.trigger_events) or "VariableUpdate"
        variables = ",".join(self.trigger_variables) or "*"
        return f"{events}:{variables}"

    def matches_trigger(self, event_type: str, variable_name: Optional[str]) -> bool:
        """Check an external event against this recipe's trigger patterns."""
        if not self.has_trigger:
            return False

        if self.trigger_events:
            event_match = any(event.lower() == event_type.lower() for event in self.trigger_events)
        else:
            event_match = event_type.lower() == "variableupdate"
        if not event_match:
            return False

        if not self.trigger_variables:
            return True
        if variable_name is None:
            return False

        candidate = variable_name.lower()
        for pattern in self.trigger_variables:
            normalized = pattern.strip().lower()
            if not normalized:
                continue
            if normalized == "*":
                return True
            if normalized.endswith("*") and candidate.startswith(normalized[:-1]):
                return True
            if candidate == normalized:
                return True
        return False


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """One agent turn handed to an execution backend."""

    prompt: str
    persona: str = ""
    tools: FrozenSet[str] = frozenset()
    label: str = ""


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Text produced by a backend, or the failure it reported."""

    ok: bool
    output: str = ""
    error: Optional[str] = None

    @classmethod
    def success(cls, output: str) -> ExecutionResult:
        return cls(ok=True, output=output)

    @classmethod
    def failure(cls, error: str) -> ExecutionResult:
        return cls(ok=False, error=error)

    def summary(self, limit: int = 120) -> str:
        text = self.output if self.ok else f"error: {self.error}"
        text = " ".join(text.split())
        return text if len(text) <= limit else text[: limit - 3] + "..."


class AgentStatus(Enum):
    """Per-agent scheduling state."""

    STOPPED = auto()
    RUNNING = auto()
    CANCELLING = auto()


@dataclass(slots=True)
class RunRecord:
    """History entry for one execution of an agent."""

    agent: str
    trigger: str
    started_at: datetime
    finished_at: datetime
    result: ExecutionResult

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


@dataclass(slots=True)
class AgentState:
    """Run state kept by the registry for each known agent."""

    recipe: Recipe
    status: AgentStatus = AgentStatus.STOPPED
    last_run_at: Optional[datetime] = None
    last_result: Optional[ExecutionResult] = None
    history: Deque[RunRecord] = field(default_factory=lambda: deque(maxlen=50))
    handle: Optional[ScheduleHandle] = None
    execution_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    lifecycle_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def name(self) -> str:
        return self.recipe.name

    @property
    def running(self) -> bool:
        return self.status is AgentStatus.RUNNING

    def record(self, entry: RunRecord) -> None:
        self.last_run_at = entry.finished_at
        self.last_result = entry.result
        self.history.append(entry)


class TaskStatus(Enum):
    """Lifecycle of an orchestration task."""

    PENDING = auto()
    RUNNING = auto()
    SUCCEEDED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)


@dataclass(slots=True)
class OrchestrationTask:
    """Sub-agent execution spawned under a coordination key."""

    task_id: str
    coordination_key: str
    backend: str
    prompt: str
    persona: str = ""
    tools: FrozenSet[str] = frozenset()
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[ExecutionResult] = None
    created_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    """Snapshot of one task as seen by a collector."""

    task_id: str
    backend: str
    status: TaskStatus
    output: Optional[str] = None
    error: Optional[str] = None

    @property
    def pending(self) -> bool:
        return not self.status.is_terminal

    @classmethod
    def from_task(cls, task: OrchestrationTask) -> TaskOutcome:
        result = task.result
        return cls(
            task_id=task.task_id,
            backend=task.backend,
            status=task.status,
            output=result.output if result is not None and result.ok else None,
            error=result.error if result is not None and not result.ok else None,
        )


@dataclass(frozen=True, slots=True)
class CollectResult:
    """Results of a coordination group, keyed by task id in spawn order."""

    coordination_key: str
    outcomes: Dict[str, TaskOutcome]
    complete: bool

    @property
    def pending_ids(self) -> Tuple[str, ...]:
        return tuple(task_id for task_id, outcome in self.outcomes.items() if outcome.pending)
