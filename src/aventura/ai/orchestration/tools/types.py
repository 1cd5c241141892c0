"""Tool specification types shared by the catalog, registry, and dispatcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

__all__ = [
    "ToolSpec",
    "ToolCategory",
    "UseCase",
]


class ToolCategory:
    """Standard tool categories for organization."""

    READ = "read"
    WRITE = "write"
    SEARCH = "search"
    CONTROL = "control"


class UseCase(str, Enum):
    """Agent use cases, each with a fixed toolset."""

    RETRIEVAL = "retrieval"
    LOREBOOK = "lorebook"


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Unique identifier for the tool within a registry.
        description: Human-readable description shown to the model.
        parameters: JSON Schema for the tool's parameters. Advisory only;
            handlers re-validate everything they receive.
        category: Tool category for organization.
        is_write: Whether the tool proposes a lorebook change.
        terminal: Whether a call to this tool ends the loop.
    """

    name: str
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    category: str = ToolCategory.READ
    is_write: bool = False
    terminal: bool = False

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters) if self.parameters else {
                    "type": "object",
                    "properties": {},
                },
            },
        }
