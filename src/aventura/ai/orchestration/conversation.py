"""Append-only conversation log shared by the agentic loop and its services.

The log is the single source of truth replayed to the model on every
iteration. It enforces the tool-calling protocol as turns are appended:

* exactly one system turn, always first;
* every tool call in an assistant turn is answered by exactly one tool-result
  turn, in call order, before any further user or assistant turn.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Sequence

from openai.types.chat import ChatCompletionMessageParam

from .types import AssistantTurn, SystemTurn, ToolCall, ToolResultTurn, Turn, UserTurn

__all__ = ["Conversation", "ConversationStateError"]

LOGGER = logging.getLogger(__name__)


class ConversationStateError(RuntimeError):
    """Raised when an append would break the tool-calling protocol."""


class Conversation:
    """Ordered, append-only log of conversation turns."""

    def __init__(self, system_prompt: str) -> None:
        self._turns: list[Turn] = [SystemTurn(system_prompt)]
        self._outstanding: list[ToolCall] = []

    # ------------------------------------------------------------------
    # Appends
    # ------------------------------------------------------------------

    def append_user(self, content: str) -> UserTurn:
        self._require_no_outstanding("user turn")
        turn = UserTurn(content)
        self._turns.append(turn)
        return turn

    def append_note(self, content: str) -> UserTurn:
        """Append an informational note the model should see on its next call."""
        return self.append_user(content)

    def append_assistant(self, turn: AssistantTurn) -> AssistantTurn:
        self._require_no_outstanding("assistant turn")
        seen: set[str] = set()
        for call in turn.tool_calls:
            if call.id in seen:
                raise ConversationStateError(f"Duplicate tool call id {call.id!r} in one turn")
            seen.add(call.id)
        self._turns.append(turn)
        self._outstanding = list(turn.tool_calls)
        return turn

    def append_tool_result(self, tool_call_id: str, content: str) -> ToolResultTurn:
        if not self._outstanding:
            raise ConversationStateError(
                f"Tool result for {tool_call_id!r} has no outstanding tool call"
            )
        expected = self._outstanding[0]
        if expected.id != tool_call_id:
            raise ConversationStateError(
                f"Tool result for {tool_call_id!r} out of order; expected {expected.id!r}"
            )
        self._outstanding.pop(0)
        turn = ToolResultTurn(tool_call_id=tool_call_id, content=content)
        self._turns.append(turn)
        return turn

    def answer_outstanding(self, content: str) -> tuple[ToolCall, ...]:
        """Answer every unanswered call with ``content``; returns those calls."""
        answered = tuple(self._outstanding)
        for call in answered:
            self.append_tool_result(call.id, content)
        return answered

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def system_prompt(self) -> str:
        return self._turns[0].content  # type: ignore[return-value]

    @property
    def outstanding_calls(self) -> tuple[ToolCall, ...]:
        """Tool calls from the latest assistant turn still awaiting results."""
        return tuple(self._outstanding)

    @property
    def last_turn(self) -> Turn:
        return self._turns[-1]

    def to_chat_params(self) -> list[ChatCompletionMessageParam]:
        """Serialize every turn for the chat-completions API."""
        if self._outstanding:
            raise ConversationStateError(
                f"{len(self._outstanding)} tool call(s) still need results before the next model call"
            )
        return [turn.to_chat_param() for turn in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_no_outstanding(self, what: str) -> None:
        if self._outstanding:
            pending: Sequence[str] = [call.id for call in self._outstanding]
            raise ConversationStateError(
                f"Cannot append {what} while tool calls {list(pending)} await results"
            )
