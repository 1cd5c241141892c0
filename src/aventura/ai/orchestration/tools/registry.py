"""Tool registry for the agentic loop.

Maps tool names to their implementations and specs for one use case.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable

from .types import ToolSpec

__all__ = [
    "Tool",
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "ToolNotFoundError",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class DuplicateToolError(Exception):
    """Raised when attempting to register a tool with a name that already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolNotFoundError(Exception):
    """Raised when a requested tool is not found in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' not found")


# -----------------------------------------------------------------------------
# Tool Protocol
# -----------------------------------------------------------------------------


@runtime_checkable
class Tool(Protocol):
    """Anything the dispatcher can run: a named handler bound to a spec."""

    @property
    def name(self) -> str: ...

    @property
    def spec(self) -> ToolSpec: ...

    async def run(self, context: Any, params: Mapping[str, Any] | None = None) -> Any: ...


@dataclass(slots=True)
class ToolRegistration:
    """Record of a registered tool.

    Attributes:
        name: Tool name.
        tool: The tool implementation.
        spec: Tool specification.
        metadata: Additional registration metadata.
    """

    name: str
    tool: Tool
    spec: ToolSpec
    metadata: dict[str, Any] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry for managing tool registrations.

    Example:
        registry = ToolRegistry()
        registry.register(ListEntriesTool())
        tool = registry.get("list_entries")
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, ToolRegistration] = {}
        for tool in tools:
            self.register(tool)

    def register(
        self,
        tool: Tool,
        *,
        allow_override: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolRegistration:
        """Register a tool implementation.

        Raises:
            DuplicateToolError: If the name is taken and ``allow_override`` is False.
        """
        name = tool.name
        if name in self._tools and not allow_override:
            raise DuplicateToolError(name)

        registration = ToolRegistration(
            name=name,
            tool=tool,
            spec=tool.spec,
            metadata=dict(metadata) if metadata else {},
        )
        self._tools[name] = registration
        LOGGER.debug("Registered tool: %s", name)
        return registration

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError: If no tool with that name is registered.
        """
        registration = self._tools.get(name)
        if registration is None:
            raise ToolNotFoundError(name)
        return registration.tool

    def get_spec(self, name: str) -> ToolSpec:
        registration = self._tools.get(name)
        if registration is None:
            raise ToolNotFoundError(name)
        return registration.spec

    def has(self, name: str) -> bool:
        return name in self._tools

    def specs(self) -> list[ToolSpec]:
        """List registered tool specifications in registration order."""
        return [registration.spec for registration in self._tools.values()]

    def list_names(self) -> list[str]:
        return list(self._tools)

    def to_openai_tools(self) -> list[dict[str, Any]]:
        """Get tool definitions in OpenAI format."""
        return [registration.spec.to_openai_tool() for registration in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
