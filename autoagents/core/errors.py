"""Exception types shared across the agent host."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from autoagents.core.models import CollectResult


class RecipeParseError(ValueError):
    """A recipe file could not be turned into a valid recipe."""

    def __init__(self, message: str, filename: Optional[str] = None) -> None:
        super().__init__(message)
        self.filename = filename


class AgentNotFoundError(KeyError):
    """Registry operation targeted an agent name that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown agent '{name}'")
        self.name = name


class UnknownBackendError(KeyError):
    """No execution backend is registered under the requested identifier."""

    def __init__(self, backend: str) -> None:
        super().__init__(f"No execution backend registered as '{backend}'")
        self.backend = backend


class ExecutionFailure(RuntimeError):
    """Raised by a backend when an agent turn fails."""


class CapabilityDeniedError(PermissionError):
    """A backend tried to invoke a capability outside its allowed set."""


class CollectTimeoutError(TimeoutError):
    """The collect deadline elapsed before the group became complete."""

    def __init__(self, result: CollectResult) -> None:
        pending = sum(1 for outcome in result.outcomes.values() if not outcome.status.is_terminal)
        super().__init__(
            f"Timed out collecting '{result.coordination_key}': {pending} task(s) still pending"
        )
        self.result = result
