"""Core type definitions for the agentic loop.

Conversation turns are modelled as a closed set of frozen variants keyed by
role, so every consumer can branch exhaustively on the turn kind. All types
convert to the OpenAI chat-completions wire shape via ``to_chat_param``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Iterable, Literal, Mapping, Union

from openai.types.chat import ChatCompletionMessageParam

__all__ = [
    # Tool calls
    "ToolCall",
    "ToolCallDisplay",
    # Conversation turns
    "SystemTurn",
    "UserTurn",
    "AssistantTurn",
    "ToolResultTurn",
    "Turn",
    # Model interaction
    "ModelResponse",
    # Loop
    "LoopState",
]


# -----------------------------------------------------------------------------
# Tool Calls
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Attributes:
        id: Opaque correlation token issued by the model.
        name: Name of the tool to call.
        arguments: JSON-encoded arguments exactly as received; may be malformed.
    """

    id: str
    name: str
    arguments: str = ""

    def to_wire(self) -> dict[str, Any]:
        """Return the function-calling wire shape echoed back to the model."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> ToolCall:
        function = payload.get("function") or {}
        return cls(
            id=str(payload.get("id") or ""),
            name=str(function.get("name") or ""),
            arguments=function.get("arguments") or "",
        )


@dataclass(slots=True, frozen=True)
class ToolCallDisplay:
    """Record of an executed tool call, shaped for UI display.

    Attributes:
        id: The tool call id.
        name: Tool name.
        args: Decoded arguments (empty when decoding failed).
        result: JSON-encoded result fed back to the model.
        pending_change: Change proposed by the call, if any.
    """

    id: str
    name: str
    args: Mapping[str, Any]
    result: str
    pending_change: Any | None = None


# -----------------------------------------------------------------------------
# Conversation Turns
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SystemTurn:
    """Fixed instructions for the use case; always the first turn."""

    content: str
    role: ClassVar[Literal["system"]] = "system"

    def to_chat_param(self) -> ChatCompletionMessageParam:
        return {"role": "system", "content": self.content}


@dataclass(slots=True, frozen=True)
class UserTurn:
    """User input, serialized domain context, or an informational note."""

    content: str
    role: ClassVar[Literal["user"]] = "user"

    def to_chat_param(self) -> ChatCompletionMessageParam:
        return {"role": "user", "content": self.content}


@dataclass(slots=True, frozen=True)
class AssistantTurn:
    """Model output; content may be ``None`` when tool calls are present."""

    content: str | None
    tool_calls: tuple[ToolCall, ...] = ()
    reasoning: str | None = None
    role: ClassVar[Literal["assistant"]] = "assistant"

    def __post_init__(self) -> None:
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_chat_param(self) -> ChatCompletionMessageParam:
        payload: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_wire() for call in self.tool_calls]
        return payload  # type: ignore[return-value]


@dataclass(slots=True, frozen=True)
class ToolResultTurn:
    """JSON-encoded result for exactly one prior tool call."""

    tool_call_id: str
    content: str
    role: ClassVar[Literal["tool"]] = "tool"

    def to_chat_param(self) -> ChatCompletionMessageParam:
        return {"role": "tool", "tool_call_id": self.tool_call_id, "content": self.content}


Turn = Union[SystemTurn, UserTurn, AssistantTurn, ToolResultTurn]


# -----------------------------------------------------------------------------
# Model Response
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ModelResponse:
    """Normalized response from a non-streaming tool-calling completion.

    Attributes:
        text: Text content, ``None`` when the model only called tools.
        tool_calls: Tool calls in the order the model returned them.
        finish_reason: Why the model stopped generating.
        reasoning: Provider-specific reasoning/thinking text, if any.
        prompt_tokens: Tokens used in the prompt.
        completion_tokens: Tokens used in the completion.
        reasoning_tokens: Reasoning tokens, when reported.
        model: Model that generated the response.
    """

    text: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    finish_reason: str | None = None
    reasoning: str | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    reasoning_tokens: int = 0
    model: str | None = None

    def __post_init__(self) -> None:
        # Tool results are matched by id, so ids must be present and unique.
        object.__setattr__(self, "tool_calls", _with_unique_ids(self.tool_calls))

    @property
    def has_tool_calls(self) -> bool:
        """Check if the response contains tool calls."""
        return len(self.tool_calls) > 0

    def to_turn(self) -> AssistantTurn:
        """Convert the response into the assistant turn appended to the log."""
        return AssistantTurn(
            content=self.text,
            tool_calls=self.tool_calls,
            reasoning=self.reasoning,
        )


def _with_unique_ids(calls: Iterable[ToolCall]) -> tuple[ToolCall, ...]:
    """Replace missing or repeated ids with ``call_<position>``."""

    unique: list[ToolCall] = []
    seen: set[str] = set()
    for position, call in enumerate(calls):
        call_id = call.id
        if not call_id or call_id in seen:
            call_id = f"call_{position}"
            while call_id in seen:
                call_id = f"{call_id}_"
            call = ToolCall(id=call_id, name=call.name, arguments=call.arguments)
        seen.add(call_id)
        unique.append(call)
    return tuple(unique)


# -----------------------------------------------------------------------------
# Loop State
# -----------------------------------------------------------------------------


class LoopState(str, Enum):
    """States of the agentic loop state machine."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    NEEDS_MORE_STEPS = "needs_more_steps"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (LoopState.IDLE, LoopState.RUNNING)
