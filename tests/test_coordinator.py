"""Tests for the planning coordinator."""
from __future__ import annotations

import json
from typing import List

import pytest

from autoagents.core.models import ExecutionRequest, TaskStatus
from autoagents.orchestration.coordinator import Coordinator, PlannedTask
from autoagents.orchestration.orchestrator import Orchestrator
from autoagents.services.backends import BackendRegistry, EchoBackend, ExecutionBackend


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class ScriptedPlanner(ExecutionBackend):
    """Returns a fixed plan first, then echoes the synthesis prompt."""

    def __init__(self, plan_reply: str) -> None:
        self.plan_reply = plan_reply
        self.requests: List[ExecutionRequest] = []

    async def run(self, request: ExecutionRequest) -> str:
        self.requests.append(request)
        if len(self.requests) == 1:
            return self.plan_reply
        return f"SYNTHESIS\n{request.prompt}"


def _coordinator(planner: ExecutionBackend) -> Coordinator:
    backends = BackendRegistry()
    backends.register("echo", EchoBackend())
    backends.register("agent", EchoBackend())
    return Coordinator(Orchestrator(backends=backends), planner, default_backend="agent", collect_timeout=5)


@pytest.mark.anyio
async def test_plan_is_spawned_collected_and_synthesized() -> None:
    plan = {"tasks": [{"backend": "echo", "prompt": "list files"}, {"backend": "agent", "prompt": "summarize"}]}
    planner = ScriptedPlanner(f"Here is the plan:\n```json\n{json.dumps(plan)}\n```")
    coordinator = _coordinator(planner)

    reply = await coordinator.handle("Tidy the repo", coordination_key="tidy")

    assert reply.coordination_key == "tidy"
    assert reply.plan == (PlannedTask("echo", "list files"), PlannedTask("agent", "summarize"))
    assert reply.results.complete
    assert all(outcome.status is TaskStatus.SUCCEEDED for outcome in reply.results.outcomes.values())
    assert reply.answer.startswith("SYNTHESIS")
    assert "Tidy the repo" in reply.answer
    assert "heard list files" in reply.answer

    planning_request = planner.requests[0]
    assert planning_request.tools == frozenset()
    assert "Available backends: agent, echo" in planning_request.persona


@pytest.mark.anyio
async def test_unusable_plan_delegates_whole_request() -> None:
    coordinator = _coordinator(ScriptedPlanner("I would rather not plan."))

    reply = await coordinator.handle("Write notes")

    assert reply.coordination_key.startswith("coord-")
    assert reply.plan == (PlannedTask("agent", "Write notes"),)
    assert len(reply.results.outcomes) == 1


def test_parse_plan_maps_unknown_backends_to_default() -> None:
    coordinator = _coordinator(ScriptedPlanner(""))
    content = json.dumps([{"backend": "gpu", "prompt": "train"}, {"prompt": ""}, "junk"])

    assert coordinator.parse_plan(content) == (PlannedTask("agent", "train"),)
    assert coordinator.parse_plan("not json") == ()
    assert coordinator.parse_plan('{"tasks": "nope"}') == ()
