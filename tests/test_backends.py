"""Tests for execution backends and the LLM tool loop."""
from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from autoagents.core.errors import ExecutionFailure, UnknownBackendError
from autoagents.core.models import ExecutionRequest
from autoagents.services.backends import MAX_TOOL_LOOPS, BackendRegistry, EchoBackend, LLMBackend
from autoagents.services.llm_pool import LLMPool
from autoagents.services.tools import Capability, ToolCatalog


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _tool_call(call_id: str, name: str, arguments: Dict[str, Any]) -> SimpleNamespace:
    return SimpleNamespace(
        id=call_id,
        function=SimpleNamespace(name=name, arguments=json.dumps(arguments)),
    )


def _message(content: str = "", tool_calls: List[SimpleNamespace] = None) -> SimpleNamespace:
    return SimpleNamespace(content=content, tool_calls=tool_calls)


class ScriptedClient:
    """Mimics ``client.chat.completions.create`` with canned replies."""

    def __init__(self, replies: List[SimpleNamespace]) -> None:
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        message = self.replies.pop(0) if self.replies else self.replies_exhausted()
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    @staticmethod
    def replies_exhausted() -> SimpleNamespace:
        raise AssertionError("no scripted reply left")


@pytest.fixture
def catalog() -> ToolCatalog:
    async def read_file(arguments: Dict[str, Any]) -> str:
        return f"contents of {arguments['path']}"

    async def run_command(arguments: Dict[str, Any]) -> str:
        return "ran"

    catalog = ToolCatalog()
    catalog.register(Capability(name="workspace_read_file", description="Read a file", handler=read_file))
    catalog.register(Capability(name="workspace_run_command", description="Run", handler=run_command))
    return catalog


def _backend(client: ScriptedClient, catalog: ToolCatalog) -> LLMBackend:
    pool = LLMPool()
    pool.register_client("test-model", client, max_concurrent=2)
    return LLMBackend(pool, catalog, model="test-model")


@pytest.mark.anyio
async def test_echo_backend_uses_label() -> None:
    assert await EchoBackend().run(ExecutionRequest(prompt="hi", label="bob")) == "bob heard hi"
    assert await EchoBackend().run(ExecutionRequest(prompt="hi")) == "agent heard hi"


def test_registry_rejects_unknown_backend() -> None:
    registry = BackendRegistry()
    registry.register("echo", EchoBackend())
    assert registry.names() == ["echo"]
    with pytest.raises(UnknownBackendError):
        registry.get("missing")


@pytest.mark.anyio
async def test_plain_completion_without_tools(catalog: ToolCatalog) -> None:
    client = ScriptedClient([_message("all good")])
    backend = _backend(client, catalog)

    output = await backend.run(ExecutionRequest(prompt="status?", label="watcher"))

    assert output == "all good"
    call = client.calls[0]
    assert "tools" not in call
    system_prompt = call["messages"][0]["content"]
    assert "background autonomous agent named 'watcher'" in system_prompt
    assert "You have no tool access" in system_prompt


@pytest.mark.anyio
async def test_tool_loop_feeds_results_back(catalog: ToolCatalog) -> None:
    client = ScriptedClient(
        [
            _message(tool_calls=[_tool_call("c1", "workspace_read_file", {"path": "README.md"})]),
            _message("README summarized"),
        ]
    )
    backend = _backend(client, catalog)

    output = await backend.run(
        ExecutionRequest(prompt="summarize", persona="You read.", tools=frozenset({"workspace_read_file"}))
    )

    assert output == "README summarized"
    assert [tool["function"]["name"] for tool in client.calls[0]["tools"]] == ["workspace_read_file"]
    tool_message = client.calls[1]["messages"][-1]
    assert tool_message == {"role": "tool", "tool_call_id": "c1", "content": "contents of README.md"}


@pytest.mark.anyio
async def test_disallowed_tool_call_is_reported_to_the_model(catalog: ToolCatalog) -> None:
    client = ScriptedClient(
        [
            _message(tool_calls=[_tool_call("c1", "workspace_run_command", {"command": "rm -rf /"})]),
            _message("understood"),
        ]
    )
    backend = _backend(client, catalog)

    output = await backend.run(ExecutionRequest(prompt="clean", tools=frozenset({"workspace_read_file"})))

    assert output == "understood"
    assert client.calls[1]["messages"][-1]["content"].startswith("error: Capability 'workspace_run_command'")


@pytest.mark.anyio
async def test_endless_tool_calls_fail(catalog: ToolCatalog) -> None:
    replies = [
        _message(tool_calls=[_tool_call(f"c{index}", "workspace_read_file", {"path": "x"})])
        for index in range(MAX_TOOL_LOOPS)
    ]
    backend = _backend(ScriptedClient(replies), catalog)

    with pytest.raises(ExecutionFailure):
        await backend.run(ExecutionRequest(prompt="loop", tools=frozenset({"workspace_read_file"})))


@pytest.mark.anyio
async def test_pool_rejects_unregistered_model() -> None:
    pool = LLMPool()
    with pytest.raises(KeyError):
        async with pool.acquire("missing"):
            pass
