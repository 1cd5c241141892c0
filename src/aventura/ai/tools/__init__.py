"""Agent tool implementations.

Handlers are grouped by use case: :mod:`.retrieval` explores earlier
chapters, :mod:`.lorebook` inspects and proposes entry changes, and
:mod:`.fandom` researches wiki canon.
"""

from .base import (
    BaseTool,
    ChapterQuery,
    DomainSnapshot,
    MutatingTool,
    Proposal,
    ReadOnlyTool,
    ToolContext,
    ToolResult,
)
from .errors import (
    CollaboratorError,
    ErrorCode,
    InvalidIndexError,
    InvalidParameterError,
    MalformedArgumentsError,
    MissingParameterError,
    NotFoundError,
    ToolError,
    UnknownToolError,
)
from .fandom import build_fandom_tools
from .lorebook import build_lorebook_tools
from .retrieval import RetrievalSession, build_retrieval_tools

__all__ = [
    # base.py
    "BaseTool",
    "ReadOnlyTool",
    "MutatingTool",
    "ToolContext",
    "ToolResult",
    "DomainSnapshot",
    "Proposal",
    "ChapterQuery",
    # errors.py
    "ErrorCode",
    "ToolError",
    "MalformedArgumentsError",
    "MissingParameterError",
    "InvalidParameterError",
    "InvalidIndexError",
    "UnknownToolError",
    "NotFoundError",
    "CollaboratorError",
    # builders
    "RetrievalSession",
    "build_retrieval_tools",
    "build_lorebook_tools",
    "build_fandom_tools",
]
