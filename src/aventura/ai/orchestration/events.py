"""Progress events emitted by the streaming agentic loop.

A stream is a sequence of :class:`ThinkingEvent` / tool / message events that
ends in exactly one :class:`DoneEvent` or :class:`ErrorEvent`.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Mapping, Union

from .ledger import PendingChange
from .types import ToolCallDisplay

__all__ = [
    "ChatMessage",
    "ThinkingEvent",
    "ToolStartEvent",
    "ToolEndEvent",
    "MessageEvent",
    "DoneEvent",
    "ErrorEvent",
    "StreamEvent",
    "CANCELLED_MESSAGE",
]

CANCELLED_MESSAGE = "Request cancelled"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class ChatMessage:
    """Assistant message for one tool-laden iteration, shaped for display."""

    content: str = ""
    role: Literal["user", "assistant"] = "assistant"
    tool_calls: list[ToolCallDisplay] = field(default_factory=list)
    pending_changes: list[PendingChange] = field(default_factory=list)
    reasoning: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: int = field(default_factory=_now_ms)


@dataclass(slots=True, frozen=True)
class ThinkingEvent:
    """Emitted before every model call."""

    type: ClassVar[str] = "thinking"


@dataclass(slots=True, frozen=True)
class ToolStartEvent:
    tool_call_id: str
    tool_name: str
    args: Mapping[str, Any]
    type: ClassVar[str] = "tool_start"


@dataclass(slots=True, frozen=True)
class ToolEndEvent:
    tool_call: ToolCallDisplay
    type: ClassVar[str] = "tool_end"


@dataclass(slots=True, frozen=True)
class MessageEvent:
    message: ChatMessage
    type: ClassVar[str] = "message"


@dataclass(slots=True, frozen=True)
class DoneEvent:
    result: Any
    type: ClassVar[str] = "done"


@dataclass(slots=True, frozen=True)
class ErrorEvent:
    """Terminal failure; ``result`` carries partial loop output when available."""

    error: str
    result: Any = None
    type: ClassVar[str] = "error"


StreamEvent = Union[ThinkingEvent, ToolStartEvent, ToolEndEvent, MessageEvent, DoneEvent, ErrorEvent]
