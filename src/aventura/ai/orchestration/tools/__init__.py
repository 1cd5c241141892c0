"""Tool catalog and registry for the agentic loop.

Example:
    from aventura.ai.orchestration.tools import UseCase, list_tools

    specs = list_tools(UseCase.RETRIEVAL)
"""

from .types import ToolCategory, ToolSpec, UseCase

from .registry import (
    DuplicateToolError,
    Tool,
    ToolNotFoundError,
    ToolRegistration,
    ToolRegistry,
)

from .catalog import ENTRY_FIELDS_SCHEMA, LOREBOOK_TOOLS, RETRIEVAL_TOOLS, list_tools

__all__ = [
    # types.py
    "ToolSpec",
    "ToolCategory",
    "UseCase",
    # registry.py
    "Tool",
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "ToolNotFoundError",
    # catalog.py
    "ENTRY_FIELDS_SCHEMA",
    "RETRIEVAL_TOOLS",
    "LOREBOOK_TOOLS",
    "list_tools",
]
