"""Execution backends: the external collaborators that run one agent turn."""
from __future__ import annotations

import abc
import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAIError

from autoagents.core.errors import CapabilityDeniedError, ExecutionFailure, UnknownBackendError
from autoagents.core.models import ExecutionRequest
from autoagents.prompts import default_persona, worker_system_prompt
from autoagents.services.llm_pool import LLMPool
from autoagents.services.tools import CapabilityGate, ToolCatalog

logger = logging.getLogger(__name__)

MAX_TOOL_LOOPS = 6


class ExecutionBackend(abc.ABC):
    """Runs one agent turn: persona + tool set + prompt -> text."""

    name: str = "backend"

    @abc.abstractmethod
    async def run(self, request: ExecutionRequest) -> str:
        """Execute the request, raising ``ExecutionFailure`` when the turn fails."""


class BackendRegistry:
    """Registry of execution backends by identifier."""

    def __init__(self) -> None:
        self._backends: Dict[str, ExecutionBackend] = {}

    def register(self, name: str, backend: ExecutionBackend) -> None:
        self._backends[name] = backend

    def get(self, name: str) -> ExecutionBackend:
        if name not in self._backends:
            raise UnknownBackendError(name)
        return self._backends[name]

    def names(self) -> List[str]:
        return sorted(self._backends)

    def __contains__(self, name: object) -> bool:
        return name in self._backends


class EchoBackend(ExecutionBackend):
    """Backend that echoes the prompt; used when no model is configured."""

    name = "echo"

    def __init__(self, delay: float = 0.0) -> None:
        self._delay = delay

    async def run(self, request: ExecutionRequest) -> str:
        if self._delay:
            await asyncio.sleep(self._delay)
        speaker = request.label or "agent"
        return f"{speaker} heard {request.prompt}"


class LLMBackend(ExecutionBackend):
    """Backend that runs the turn against a chat-completions model."""

    name = "llm"

    def __init__(
        self,
        llm_pool: LLMPool,
        catalog: ToolCatalog,
        *,
        model: str,
        temperature: float = 0.2,
        prompt_dirs: Sequence[Path] = (),
    ) -> None:
        self._llm_pool = llm_pool
        self._catalog = catalog
        self.model_name = model
        self.temperature = temperature
        self._prompt_dirs = tuple(prompt_dirs)

    async def run(self, request: ExecutionRequest) -> str:
        gate = self._catalog.gate(request.tools)
        tool_defs = gate.definitions()
        persona = request.persona or default_persona(request.label or "worker")
        now = datetime.now().astimezone().strftime("%Y-%m-%d %H:%M %Z")
        messages: List[Dict[str, Any]] = [
            {
                "role": "system",
                "content": worker_system_prompt(persona, now, bool(tool_defs), self._prompt_dirs),
            },
            {"role": "user", "content": request.prompt},
        ]

        for _ in range(MAX_TOOL_LOOPS):
            message = await self._complete(messages, tool_defs)
            tool_calls = getattr(message, "tool_calls", None) or []
            if not tool_calls:
                return message.content or ""

            messages.append(
                {
                    "role": "assistant",
                    "content": message.content or "",
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.function.name,
                                "arguments": call.function.arguments,
                            },
                        }
                        for call in tool_calls
                    ],
                }
            )
            for call in tool_calls:
                output = await self._invoke_tool(gate, call.function.name, call.function.arguments)
                messages.append({"role": "tool", "tool_call_id": call.id, "content": output})

        raise ExecutionFailure(f"Gave up after {MAX_TOOL_LOOPS} tool rounds")

    async def _complete(self, messages: List[Dict[str, Any]], tool_defs: List[Dict[str, Any]]) -> Any:
        kwargs: Dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "temperature": self.temperature,
        }
        if tool_defs:
            kwargs["tools"] = tool_defs
        try:
            async with self._llm_pool.acquire(self.model_name) as client:
                response = await client.chat.completions.create(**kwargs)
        except OpenAIError as exc:
            raise ExecutionFailure(f"Model call failed: {exc}") from exc
        return response.choices[0].message

    async def _invoke_tool(self, gate: CapabilityGate, name: str, raw_arguments: Optional[str]) -> str:
        try:
            arguments = json.loads(raw_arguments or "{}")
        except json.JSONDecodeError as exc:
            return f"error: invalid JSON arguments for {name}: {exc}"
        try:
            return await gate.invoke(name, arguments)
        except CapabilityDeniedError as exc:
            logger.warning("Denied tool call: %s", exc)
            return f"error: {exc}"
        except Exception as exc:  # noqa: BLE001
            logger.exception("Tool %s failed", name)
            return f"error: {name} failed: {exc}"
