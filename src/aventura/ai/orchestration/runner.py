"""Agentic loop: call the model, run its tool calls, repeat.

This module provides :class:`AgenticLoop`, the state machine shared by the
retrieval and lorebook agents::

    IDLE -> RUNNING -> COMPLETED | ABORTED | MAX_ITERATIONS_REACHED
                       | NEEDS_MORE_STEPS | CANCELLED

Each iteration sends the full conversation with the active toolset. A
response without tool calls completes the run. Otherwise every call is
executed in order and answered with exactly one tool result before the next
model call. A successful terminal tool (``finish_retrieval``) ends the run
once its siblings in the same response have been answered.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from ..ai_types import LoopConfig, ModelClient
from ..tools.base import ChapterQuery, DomainSnapshot
from .conversation import Conversation
from .dispatcher import ToolDispatcher
from .events import (
    CANCELLED_MESSAGE,
    ChatMessage,
    DoneEvent,
    ErrorEvent,
    MessageEvent,
    StreamEvent,
    ThinkingEvent,
    ToolEndEvent,
    ToolStartEvent,
)
from .json_repair import decode_tool_arguments
from .ledger import PendingChange, PendingChangeLedger
from .types import AssistantTurn, LoopState, ModelResponse, ToolCallDisplay

__all__ = [
    "AgenticLoop",
    "LoopResult",
    "LoopCancelledError",
]

LOGGER = logging.getLogger(__name__)


class LoopCancelledError(Exception):
    """Raised internally when the cancel event fires during a model call."""


# -----------------------------------------------------------------------------
# Loop Result
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class LoopResult:
    """Outcome of one loop run.

    Attributes:
        state: Terminal state of the run.
        output: Text of the final assistant turn ("" when there was none).
        summary: ``summary`` argument of a successful terminal tool call.
        iterations: Number of model calls made.
        tool_calls: Every executed tool call, in order.
        pending_changes: Changes proposed during the run.
        reasoning: Reasoning attached to the last model response.
        error: Error message for aborted or cancelled runs.
        run_id: Identifier used in log lines.
    """

    state: LoopState
    output: str = ""
    summary: str | None = None
    iterations: int = 0
    tool_calls: list[ToolCallDisplay] = field(default_factory=list)
    pending_changes: list[PendingChange] = field(default_factory=list)
    reasoning: str | None = None
    error: str | None = None
    run_id: str = ""

    @property
    def needs_more_steps(self) -> bool:
        return self.state is LoopState.NEEDS_MORE_STEPS


# -----------------------------------------------------------------------------
# Agentic Loop
# -----------------------------------------------------------------------------


class AgenticLoop:
    """Drives a conversation through repeated model calls and tool dispatch.

    Example:
        >>> loop = AgenticLoop(client, dispatcher, LoopConfig(max_iterations=10))
        >>> result = await loop.run(conversation, DomainSnapshot.of(entries, chapters))
        >>> result.state
        <LoopState.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        client: ModelClient,
        dispatcher: ToolDispatcher,
        config: LoopConfig | None = None,
    ) -> None:
        self._client = client
        self._dispatcher = dispatcher
        self._config = (config or LoopConfig()).clamp()
        self._state = LoopState.IDLE

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def config(self) -> LoopConfig:
        return self._config

    async def run(
        self,
        conversation: Conversation,
        snapshot: DomainSnapshot,
        *,
        ledger: PendingChangeLedger | None = None,
        session: Any = None,
        on_query_chapter: ChapterQuery | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> LoopResult:
        """Run the loop to completion and return its result.

        Raises:
            Exception: Whatever the model client raised, when
                ``propagate_model_errors`` is set.
        """
        result: LoopResult | None = None
        async for event in self._drive(
            conversation,
            snapshot,
            ledger=ledger,
            session=session,
            on_query_chapter=on_query_chapter,
            cancel_event=cancel_event,
        ):
            if isinstance(event, (DoneEvent, ErrorEvent)):
                result = event.result
        if result is None:
            raise RuntimeError("Agentic loop ended without a final event")
        return result

    def stream(
        self,
        conversation: Conversation,
        snapshot: DomainSnapshot,
        *,
        ledger: PendingChangeLedger | None = None,
        session: Any = None,
        on_query_chapter: ChapterQuery | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run the loop, yielding progress events.

        The stream ends with exactly one ``DoneEvent`` or ``ErrorEvent``.
        """
        return self._drive(
            conversation,
            snapshot,
            ledger=ledger,
            session=session,
            on_query_chapter=on_query_chapter,
            cancel_event=cancel_event,
        )

    # ------------------------------------------------------------------
    # Loop body
    # ------------------------------------------------------------------

    async def _drive(
        self,
        conversation: Conversation,
        snapshot: DomainSnapshot,
        *,
        ledger: PendingChangeLedger | None,
        session: Any,
        on_query_chapter: ChapterQuery | None,
        cancel_event: asyncio.Event | None,
    ) -> AsyncIterator[StreamEvent]:
        config = self._config
        result = LoopResult(state=LoopState.RUNNING, run_id=uuid.uuid4().hex[:12])
        self._state = LoopState.RUNNING
        LOGGER.debug("Loop %s starting with max_iterations=%s", result.run_id, config.max_iterations)

        while True:
            if _is_set(cancel_event):
                yield self._cancelled(result)
                return

            if config.max_iterations is not None and result.iterations >= config.max_iterations:
                result.state = (
                    LoopState.NEEDS_MORE_STEPS if config.resumable else LoopState.MAX_ITERATIONS_REACHED
                )
                LOGGER.warning(
                    "Loop %s reached max iterations (%d)",
                    result.run_id,
                    config.max_iterations,
                )
                break

            result.iterations += 1
            LOGGER.debug("Loop %s iteration %d", result.run_id, result.iterations)
            yield ThinkingEvent()

            try:
                response = await self._call_model(conversation, cancel_event)
            except LoopCancelledError:
                yield self._cancelled(result)
                return
            except Exception as exc:
                result.state = LoopState.ABORTED
                result.error = str(exc) or exc.__class__.__name__
                self._state = LoopState.ABORTED
                if config.propagate_model_errors:
                    LOGGER.debug("Loop %s model call failed; propagating", result.run_id)
                    raise
                LOGGER.warning("Loop %s model call failed: %s", result.run_id, exc, exc_info=True)
                break

            result.reasoning = response.reasoning
            LOGGER.debug(
                "Loop %s response: content=%s tool_calls=%d finish_reason=%s",
                result.run_id,
                bool(response.text),
                len(response.tool_calls),
                response.finish_reason,
            )

            turn = conversation.append_assistant(response.to_turn())
            if not response.has_tool_calls:
                result.output = response.text or ""
                result.state = LoopState.COMPLETED
                break

            message = ChatMessage(content=response.text or "", reasoning=response.reasoning)
            terminal_summary: str | None = None
            try:
                for call in turn.tool_calls:
                    yield ToolStartEvent(
                        tool_call_id=call.id,
                        tool_name=call.name,
                        args=decode_tool_arguments(call.arguments) or {},
                    )
                    dispatched = await self._dispatcher.execute(
                        call,
                        snapshot,
                        ledger,
                        session=session,
                        on_query_chapter=on_query_chapter,
                    )
                    conversation.append_tool_result(call.id, dispatched.result_json)

                    display = ToolCallDisplay(
                        id=call.id,
                        name=call.name,
                        args=dispatched.parsed_args,
                        result=dispatched.result_json,
                        pending_change=dispatched.side_effect,
                    )
                    message.tool_calls.append(display)
                    result.tool_calls.append(display)
                    if dispatched.side_effect is not None:
                        message.pending_changes.append(dispatched.side_effect)
                        result.pending_changes.append(dispatched.side_effect)
                    if dispatched.is_terminal and terminal_summary is None:
                        terminal_summary = _summary_from(dispatched.parsed_args)

                    yield ToolEndEvent(tool_call=display)

                    if _is_set(cancel_event):
                        self._answer_outstanding(conversation, turn)
                        yield self._cancelled(result)
                        return
            finally:
                # Reached with calls unanswered only when the consumer closed
                # the stream or the task was cancelled mid-batch.
                if self._answer_outstanding(conversation, turn):
                    result.state = LoopState.CANCELLED
                    self._state = LoopState.CANCELLED
                    LOGGER.info("Loop %s abandoned during a tool batch", result.run_id)

            yield MessageEvent(message=message)

            if terminal_summary is not None:
                result.summary = terminal_summary
                result.state = LoopState.COMPLETED
                break

        self._state = result.state
        LOGGER.debug(
            "Loop %s finished: state=%s iterations=%d tool_calls=%d",
            result.run_id,
            result.state.value,
            result.iterations,
            len(result.tool_calls),
        )
        if result.state is LoopState.ABORTED:
            yield ErrorEvent(error=result.error or "Model call failed", result=result)
        else:
            yield DoneEvent(result=result)

    async def _call_model(
        self,
        conversation: Conversation,
        cancel_event: asyncio.Event | None,
    ) -> ModelResponse:
        config = self._config
        request = self._client.generate_with_tools(
            conversation.to_chat_params(),
            tools=self._dispatcher.tool_definitions(),
            tool_choice=config.tool_choice,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            extra_body=config.extra_body or None,
        )
        if cancel_event is None:
            return await request

        model_task = asyncio.ensure_future(request)
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({model_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_task.cancel()
            if not model_task.done():
                model_task.cancel()

        if cancel_event.is_set():
            # Let the model task settle; a late response or failure is discarded.
            await asyncio.gather(model_task, return_exceptions=True)
            raise LoopCancelledError()
        return model_task.result()

    def _cancelled(self, result: LoopResult) -> ErrorEvent:
        result.state = LoopState.CANCELLED
        result.error = CANCELLED_MESSAGE
        self._state = LoopState.CANCELLED
        LOGGER.info("Loop %s cancelled after %d iteration(s)", result.run_id, result.iterations)
        return ErrorEvent(error=CANCELLED_MESSAGE, result=result)

    @staticmethod
    def _answer_outstanding(conversation: Conversation, turn: AssistantTurn) -> bool:
        """Answer this turn's unanswered calls as cancelled; True if any were."""

        outstanding = conversation.outstanding_calls
        # Calls from a later turn belong to another run.
        if not outstanding or not any(outstanding[0] is call for call in turn.tool_calls):
            return False
        conversation.answer_outstanding(json.dumps({"error": CANCELLED_MESSAGE}))
        return True


def _is_set(event: asyncio.Event | None) -> bool:
    return event is not None and event.is_set()


def _summary_from(arguments: dict[str, Any]) -> str:
    summary = arguments.get("summary")
    if summary is None:
        return ""
    return summary if isinstance(summary, str) else str(summary)
