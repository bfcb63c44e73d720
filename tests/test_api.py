"""HTTP API tests against in-memory hosts."""
from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from autoagents.agents.registry import AgentRegistry
from autoagents.api.orchestration import router as orchestration_router
from autoagents.api.routes import router as agents_router
from autoagents.host import AgentHost
from autoagents.main import app as main_app
from autoagents.orchestration.coordinator import Coordinator
from autoagents.orchestration.orchestrator import Orchestrator
from autoagents.recipes.store import RecipeStore
from autoagents.runtime import get_coordinator, get_host, get_orchestrator, get_tool_catalog
from autoagents.scheduling.scheduler import IntervalScheduler
from autoagents.services.backends import BackendRegistry, EchoBackend
from autoagents.services.tools import Capability, ToolCatalog


@pytest.fixture
def client(tmp_path: Path) -> Iterator[TestClient]:
    directory = tmp_path / "agents"
    directory.mkdir()
    directory.joinpath("digest.md").write_text(
        "---\ninterval_secs: 3600\ntrigger_variables: build_*\n---\nSummarize.\n", encoding="utf-8"
    )

    store = RecipeStore(directory)
    store.reload()

    async def read_file(arguments):
        return "contents"

    catalog = ToolCatalog()
    catalog.register(Capability(name="workspace_read_file", description="Read a file", handler=read_file))
    registry = AgentRegistry(EchoBackend(), catalog, IntervalScheduler())
    host = AgentHost(store, registry)

    backends = BackendRegistry()
    backends.register("echo", EchoBackend())
    orchestrator = Orchestrator(backends=backends)
    coordinator = Coordinator(orchestrator, EchoBackend(), default_backend="echo")

    app = FastAPI()
    app.include_router(agents_router)
    app.include_router(orchestration_router)
    app.dependency_overrides[get_host] = lambda: host
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_tool_catalog] = lambda: catalog

    with TestClient(app) as test_client:
        assert test_client.post("/agents/reload").status_code == 200
        yield test_client
        test_client.post("/agents/digest/stop")


def test_list_and_run_agent(client: TestClient) -> None:
    agents = client.get("/agents").json()
    assert [agent["name"] for agent in agents] == ["digest"]
    assert agents[0]["status"] == "STOPPED"
    assert agents[0]["trigger"] == "VariableUpdate:build_*"

    run = client.post("/agents/digest/run").json()
    assert run["ok"] is True
    assert run["trigger"] == "manual"
    assert run["output"] == "digest heard Summarize."

    history = client.get("/agents/digest/history").json()
    assert len(history) == 1


def test_start_stop_and_events(client: TestClient) -> None:
    assert client.post("/agents/digest/start").json()["status"] == "RUNNING"

    records = client.post("/agents/events", json={"event_type": "VariableUpdate", "variable_name": "build_1"})
    assert records.status_code == 200
    assert [record["trigger"] for record in records.json()] == ["event"]

    assert client.post("/agents/digest/stop").json()["status"] == "STOPPED"


def test_unknown_agent_is_404(client: TestClient) -> None:
    assert client.post("/agents/ghost/start").status_code == 404
    assert client.get("/agents/ghost/history").status_code == 404
    assert client.delete("/agents/ghost").status_code == 404


def test_delete_keeps_recipe_by_default(client: TestClient, tmp_path: Path) -> None:
    assert client.delete("/agents/digest").status_code == 204
    assert client.get("/agents").json() == []
    assert (tmp_path / "agents" / "digest.md").exists()


def test_spawn_and_collect(client: TestClient) -> None:
    spawned = client.post("/orchestrations/job/tasks", json={"backend": "echo", "prompt": "ping"})
    assert spawned.status_code == 202
    task_id = spawned.json()["task_id"]

    collected = client.get("/orchestrations/job", params={"timeout": 5}).json()
    assert collected["complete"] is True
    assert collected["results"][task_id]["status"] == "SUCCEEDED"
    assert collected["results"][task_id]["output"] == f"{task_id} heard ping"


def test_spawn_resolves_tools_against_catalog(client: TestClient) -> None:
    explicit = client.post(
        "/orchestrations/tooling/tasks",
        json={"backend": "echo", "prompt": "read", "tools": ["workspace_read_file", "foo"]},
    ).json()
    assert explicit["tools"] == ["workspace_read_file"]
    assert explicit["warnings"] == ["Unknown tool 'foo' ignored"]

    local = client.post(
        "/orchestrations/tooling/tasks",
        json={"backend": "echo", "prompt": "read", "tools": ["local"]},
    ).json()
    assert local["tools"] == ["workspace_read_file"]
    assert local["warnings"] == []

    bare = client.post("/orchestrations/tooling/tasks", json={"backend": "echo", "prompt": "x"}).json()
    assert bare["tools"] == []


def test_spawn_unknown_backend_is_400(client: TestClient) -> None:
    response = client.post("/orchestrations/job/tasks", json={"backend": "nope", "prompt": "x"})
    assert response.status_code == 400


def test_orchestrate_falls_back_to_single_task(client: TestClient) -> None:
    response = client.post("/orchestrate", json={"request": "Write notes", "coordination_key": "notes"})
    assert response.status_code == 200
    body = response.json()
    assert body["coordination_key"] == "notes"
    assert len(body["results"]["results"]) == 1
    assert body["answer"].startswith("coordinator heard")


def test_health() -> None:
    assert TestClient(main_app).get("/health").json() == {"status": "ok"}
