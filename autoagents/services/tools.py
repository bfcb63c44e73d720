"""Workspace capability catalog and recipe tool resolution."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Tuple

from autoagents.core.errors import CapabilityDeniedError
from autoagents.core.models import ToolMode, ToolSelection

logger = logging.getLogger(__name__)

CapabilityHandler = Callable[[Dict[str, Any]], Awaitable[str]]


@dataclass(slots=True)
class Capability:
    """A tool implementation registered by the embedding application."""

    name: str
    description: str
    handler: CapabilityHandler
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def definition(self) -> Dict[str, Any]:
        """OpenAI function-tool definition for this capability."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolCatalog:
    """Registry of workspace capabilities available at execution time."""

    def __init__(self) -> None:
        self._capabilities: Dict[str, Capability] = {}

    def register(self, capability: Capability) -> None:
        self._capabilities[capability.name] = capability

    def unregister(self, name: str) -> None:
        self._capabilities.pop(name, None)

    def get(self, name: str) -> Capability:
        if name not in self._capabilities:
            raise KeyError(f"No capability registered as '{name}'")
        return self._capabilities[name]

    def names(self) -> FrozenSet[str]:
        return frozenset(self._capabilities)

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities

    def gate(self, allowed: FrozenSet[str]) -> CapabilityGate:
        return CapabilityGate(self, allowed)


class CapabilityGate:
    """Invocation interface restricted to one execution's allowed capabilities."""

    def __init__(self, catalog: ToolCatalog, allowed: FrozenSet[str]) -> None:
        self._catalog = catalog
        self.allowed = allowed

    def definitions(self) -> List[Dict[str, Any]]:
        return [
            self._catalog.get(name).definition()
            for name in sorted(self.allowed)
            if name in self._catalog
        ]

    async def invoke(self, name: str, arguments: Dict[str, Any]) -> str:
        if name not in self.allowed:
            raise CapabilityDeniedError(f"Capability '{name}' is not allowed for this agent")
        capability = self._catalog.get(name)
        return await capability.handler(arguments)


@dataclass(frozen=True, slots=True)
class ToolResolution:
    capabilities: FrozenSet[str]
    warnings: Tuple[str, ...] = ()


def resolve_tools(selection: ToolSelection, catalog: ToolCatalog) -> ToolResolution:
    """Map a recipe's tool declaration to the capabilities currently registered."""
    if selection.mode in (ToolMode.ABSENT, ToolMode.NONE):
        return ToolResolution(capabilities=frozenset())

    available = catalog.names()
    if selection.mode is ToolMode.LOCAL:
        return ToolResolution(capabilities=available)

    granted = frozenset(name for name in selection.names if name in available)
    warnings = tuple(
        f"Unknown tool '{name}' ignored" for name in selection.names if name not in available
    )
    return ToolResolution(capabilities=granted, warnings=warnings)
