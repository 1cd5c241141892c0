"""Interactive lorebook editing agent.

The user chats with the agent about a lorebook; the agent inspects entries,
researches wiki canon, and proposes changes. Proposals land in a
:class:`~aventura.ai.orchestration.ledger.PendingChangeLedger` and are only
applied to the caller's entries after :meth:`InteractiveLorebookService.handle_approval`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Sequence

from ...models import LorebookEntry
from ...services.fandom import KnowledgeLookup
from ...services.settings import LorebookAgentSettings
from ..ai_types import LoopConfig, ModelClient, build_extra_body
from ..orchestration.conversation import Conversation, ConversationStateError
from ..orchestration.dispatcher import ToolDispatcher
from ..orchestration.events import CANCELLED_MESSAGE, DoneEvent, ErrorEvent, StreamEvent
from ..orchestration.ledger import PendingChange, PendingChangeLedger
from ..orchestration.runner import AgenticLoop, LoopResult
from ..orchestration.tools.registry import ToolRegistry
from ..orchestration.types import ToolCallDisplay, Turn
from ..prompts import render_lorebook_prompt
from ..tools.base import BaseTool, DomainSnapshot
from ..tools.fandom import build_fandom_tools
from ..tools.lorebook import build_lorebook_tools

__all__ = [
    "InteractiveLorebookService",
    "SendMessageResult",
    "ServiceNotInitializedError",
    "NOT_INITIALIZED_MESSAGE",
]

LOGGER = logging.getLogger(__name__)

NOT_INITIALIZED_MESSAGE = "Service not initialized. Call initialize() first."


class ServiceNotInitializedError(RuntimeError):
    """Raised when the service is used before :meth:`initialize`."""

    def __init__(self, message: str = NOT_INITIALIZED_MESSAGE) -> None:
        super().__init__(message)


@dataclass(slots=True)
class SendMessageResult:
    """Outcome of one user message.

    ``needs_more_steps`` is set when the optional iteration cap stopped the
    agent early; :meth:`InteractiveLorebookService.continue_session` resumes it.
    """

    response: str = ""
    pending_changes: list[PendingChange] = field(default_factory=list)
    tool_calls: list[ToolCallDisplay] = field(default_factory=list)
    reasoning: str | None = None
    needs_more_steps: bool = False


class InteractiveLorebookService:
    """Conversational lorebook editor backed by the agentic loop."""

    def __init__(
        self,
        client: ModelClient,
        settings: LorebookAgentSettings | None = None,
        *,
        knowledge: KnowledgeLookup | None = None,
        registry: ToolRegistry | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or LorebookAgentSettings()
        if registry is None:
            tools: list[BaseTool] = build_lorebook_tools()
            if knowledge is not None:
                tools.extend(build_fandom_tools(knowledge))
            registry = ToolRegistry(tools)
        self._dispatcher = ToolDispatcher(registry)
        self._ledger = PendingChangeLedger()
        self._conversation: Conversation | None = None
        self._lorebook_name = ""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, lorebook_name: str, entry_count: int) -> None:
        """Start a fresh conversation about ``lorebook_name``."""

        prompt = render_lorebook_prompt(
            self._settings.system_prompt,
            lorebook_name=lorebook_name,
            entry_count=entry_count,
        )
        self._conversation = Conversation(prompt)
        self._ledger.clear()
        self._lorebook_name = lorebook_name
        LOGGER.info(
            "Initialized lorebook conversation for %r (%d entries, model=%s)",
            lorebook_name,
            entry_count,
            self._settings.model,
        )

    def is_initialized(self) -> bool:
        return self._conversation is not None

    def reset(self, lorebook_name: str, entry_count: int) -> None:
        """Drop the conversation and pending changes, keeping only a new system turn."""
        self.initialize(lorebook_name, entry_count)

    @property
    def ledger(self) -> PendingChangeLedger:
        return self._ledger

    @property
    def lorebook_name(self) -> str:
        return self._lorebook_name

    def get_messages(self) -> tuple[Turn, ...]:
        if self._conversation is None:
            return ()
        return self._conversation.turns

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(self, text: str, entries: Sequence[LorebookEntry]) -> SendMessageResult:
        """Send ``text`` and run the agent until it answers without tool calls.

        Raises:
            ServiceNotInitializedError: If :meth:`initialize` was never called.
            ProviderError: If a model call fails.
        """

        conversation = self._ready_conversation()
        conversation.append_user(text)
        LOGGER.debug("Sending lorebook message (%d chars, %d entries)", len(text), len(entries))
        outcome = await self._loop().run(conversation, DomainSnapshot.of(entries), ledger=self._ledger)
        return _to_send_result(outcome)

    async def continue_session(self, entries: Sequence[LorebookEntry]) -> SendMessageResult:
        """Resume a run that stopped with ``needs_more_steps`` without a new user turn."""

        conversation = self._ready_conversation()
        LOGGER.debug("Continuing lorebook session with %d entries", len(entries))
        outcome = await self._loop().run(conversation, DomainSnapshot.of(entries), ledger=self._ledger)
        return _to_send_result(outcome)

    async def send_message_streaming(
        self,
        text: str,
        entries: Sequence[LorebookEntry],
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Streaming variant of :meth:`send_message`.

        Failures, including a missing :meth:`initialize`, are reported as a
        final ``ErrorEvent`` instead of raising. The ``DoneEvent`` result has
        empty change and tool-call lists since those arrive per iteration in
        ``MessageEvent``.
        """

        if self._conversation is None:
            yield ErrorEvent(error=NOT_INITIALIZED_MESSAGE)
            return
        conversation = self._ready_conversation()
        conversation.append_user(text)
        async for event in self._stream(conversation, entries, cancel_event):
            yield event

    async def continue_session_streaming(
        self,
        entries: Sequence[LorebookEntry],
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        if self._conversation is None:
            yield ErrorEvent(error=NOT_INITIALIZED_MESSAGE)
            return
        async for event in self._stream(self._ready_conversation(), entries, cancel_event):
            yield event

    async def _stream(
        self,
        conversation: Conversation,
        entries: Sequence[LorebookEntry],
        cancel_event: asyncio.Event | None,
    ) -> AsyncIterator[StreamEvent]:
        stream = self._loop().stream(
            conversation,
            DomainSnapshot.of(entries),
            ledger=self._ledger,
            cancel_event=cancel_event,
        )
        try:
            async for event in stream:
                if isinstance(event, DoneEvent):
                    outcome: LoopResult = event.result
                    yield DoneEvent(
                        result=SendMessageResult(
                            response=outcome.output,
                            reasoning=outcome.reasoning,
                            needs_more_steps=outcome.needs_more_steps,
                        )
                    )
                else:
                    yield event
        except Exception as exc:
            LOGGER.warning("Lorebook agent stream failed: %s", exc, exc_info=True)
            yield ErrorEvent(error=str(exc) or exc.__class__.__name__)
        finally:
            await stream.aclose()

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def handle_approval(self, change: PendingChange, approved: bool, reason: str | None = None) -> None:
        """Record the user's decision and tell the agent about it.

        The decision is only recorded once the note can be appended, so the
        ledger and the conversation never disagree.

        Raises:
            ServiceNotInitializedError: If :meth:`initialize` was never called.
            ConversationStateError: If tool calls of a running turn still
                await results.
            ChangeNotFoundError: If ``change`` was not proposed in this session.
            ChangeStateError: If ``change`` was already decided.
        """

        conversation = self._require_conversation()
        outstanding = conversation.outstanding_calls
        if outstanding:
            raise ConversationStateError(
                f"Cannot record a decision while tool calls {[call.id for call in outstanding]} await results"
            )
        description = change.describe()
        if approved:
            self._ledger.approve(change.id, reason)
            note = f"[Change approved: {description}]"
        else:
            self._ledger.reject(change.id, reason)
            suffix = f". Reason: {reason}" if reason else ""
            note = f"[Change rejected: {description}{suffix}]"
        conversation.append_note(note)
        LOGGER.info("Handled approval for change %s: approved=%s", change.id, approved)

    def apply_change(self, change: PendingChange, entries: Sequence[LorebookEntry]) -> list[LorebookEntry]:
        """Return a new entry list with ``change`` applied; ``entries`` is untouched."""
        return self._ledger.apply(change, entries)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_conversation(self) -> Conversation:
        if self._conversation is None:
            raise ServiceNotInitializedError()
        return self._conversation

    def _ready_conversation(self) -> Conversation:
        """Return the conversation, closing calls left by an abandoned stream."""

        conversation = self._require_conversation()
        abandoned = conversation.answer_outstanding(json.dumps({"error": CANCELLED_MESSAGE}))
        if abandoned:
            LOGGER.warning(
                "Answered %d tool call(s) left unanswered by an abandoned stream",
                len(abandoned),
            )
        return conversation

    def _loop(self) -> AgenticLoop:
        settings = self._settings
        config = LoopConfig(
            max_iterations=settings.max_iterations,
            propagate_model_errors=True,
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            extra_body=build_extra_body(
                reasoning_effort=settings.reasoning_effort,
                provider_only=settings.provider_only,
                manual_body=settings.manual_body,
            ),
            resumable=True,
        )
        return AgenticLoop(self._client, self._dispatcher, config)


def _to_send_result(outcome: LoopResult) -> SendMessageResult:
    return SendMessageResult(
        response=outcome.output,
        pending_changes=list(outcome.pending_changes),
        tool_calls=list(outcome.tool_calls),
        reasoning=outcome.reasoning,
        needs_more_steps=outcome.needs_more_steps,
    )
