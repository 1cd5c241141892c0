"""Tests for the agentic loop state machine."""

from __future__ import annotations

import asyncio
import json

import pytest

from aventura.ai.ai_types import LoopConfig
from aventura.ai.orchestration.conversation import Conversation
from aventura.ai.orchestration.dispatcher import ToolDispatcher
from aventura.ai.orchestration.events import (
    CANCELLED_MESSAGE,
    DoneEvent,
    ErrorEvent,
    MessageEvent,
    ThinkingEvent,
    ToolEndEvent,
    ToolStartEvent,
)
from aventura.ai.orchestration.runner import AgenticLoop
from aventura.ai.orchestration.tools.registry import ToolRegistry
from aventura.ai.orchestration.types import AssistantTurn, LoopState, ToolResultTurn
from aventura.ai.tools.base import DomainSnapshot
from aventura.ai.tools.lorebook import build_lorebook_tools
from aventura.ai.tools.retrieval import RetrievalSession, build_retrieval_tools
from tests.helpers import HangingModelClient, ScriptedModelClient, make_call, text_response, tool_response


def _retrieval_loop(client, **config) -> AgenticLoop:
    return AgenticLoop(client, ToolDispatcher(ToolRegistry(build_retrieval_tools())), LoopConfig(**config))


def _lorebook_loop(client, **config) -> AgenticLoop:
    return AgenticLoop(client, ToolDispatcher(ToolRegistry(build_lorebook_tools())), LoopConfig(**config))


def _conversation() -> Conversation:
    conversation = Conversation("system")
    conversation.append_user("hello")
    return conversation


def _assert_every_call_answered(conversation: Conversation) -> None:
    turns = conversation.turns
    for position, turn in enumerate(turns):
        if not isinstance(turn, AssistantTurn) or not turn.tool_calls:
            continue
        answers = turns[position + 1 : position + 1 + len(turn.tool_calls)]
        assert [getattr(item, "tool_call_id", None) for item in answers] == [call.id for call in turn.tool_calls]
        assert all(isinstance(item, ToolResultTurn) for item in answers)
    assert conversation.outstanding_calls == ()


async def _collect(stream) -> list:
    return [event async for event in stream]


# -----------------------------------------------------------------------------
# Completion
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_response_without_tool_calls_completes(chapters) -> None:
    client = ScriptedModelClient([text_response("All set.", reasoning="hmm")])
    loop = _retrieval_loop(client)
    conversation = _conversation()

    result = await loop.run(conversation, DomainSnapshot.of((), chapters))

    assert result.state is LoopState.COMPLETED
    assert result.output == "All set."
    assert result.reasoning == "hmm"
    assert result.iterations == 1
    assert result.summary is None
    assert loop.state is LoopState.COMPLETED
    assert isinstance(conversation.last_turn, AssistantTurn)


@pytest.mark.asyncio
async def test_model_receives_conversation_and_tools(chapters) -> None:
    client = ScriptedModelClient([text_response("ok")])
    loop = _retrieval_loop(client, model="m-1", temperature=0.3, max_tokens=500)

    await loop.run(_conversation(), DomainSnapshot.of((), chapters))

    call = client.calls[0]
    assert call["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "hello"},
    ]
    assert [tool["function"]["name"] for tool in call["tools"]][-1] == "finish_retrieval"
    assert call["tool_choice"] == "auto"
    assert call["model"] == "m-1"
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 500
    assert call["extra_body"] is None


@pytest.mark.asyncio
async def test_terminal_tool_ends_after_siblings(chapters) -> None:
    session = RetrievalSession()
    client = ScriptedModelClient(
        [
            tool_response(
                make_call("list_chapters"),
                make_call("finish_retrieval", {"summary": "The toll is unpaid."}),
                make_call("query_chapter", {"chapter_number": 1, "question": "Who?"}),
            )
        ]
    )
    conversation = _conversation()

    result = await _retrieval_loop(client).run(conversation, DomainSnapshot.of((), chapters), session=session)

    assert result.state is LoopState.COMPLETED
    assert result.summary == "The toll is unpaid."
    assert result.iterations == 1
    assert [call.name for call in result.tool_calls] == ["list_chapters", "finish_retrieval", "query_chapter"]
    assert session.queried_chapters == [1]
    assert len(client.calls) == 1
    _assert_every_call_answered(conversation)


@pytest.mark.asyncio
async def test_failed_terminal_call_does_not_end_run(chapters) -> None:
    client = ScriptedModelClient(
        [
            tool_response(make_call("finish_retrieval", {})),
            text_response("giving up"),
        ]
    )

    result = await _retrieval_loop(client).run(_conversation(), DomainSnapshot.of((), chapters))

    assert result.summary is None
    assert result.output == "giving up"
    assert result.iterations == 2


# -----------------------------------------------------------------------------
# Iteration cap
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cap_stops_at_max_iterations(chapters) -> None:
    client = ScriptedModelClient([tool_response(make_call("list_chapters"))], repeat_last=True)
    conversation = _conversation()

    result = await _retrieval_loop(client, max_iterations=3).run(conversation, DomainSnapshot.of((), chapters))

    assert result.state is LoopState.MAX_ITERATIONS_REACHED
    assert result.iterations == 3
    assert len(client.calls) == 3
    assert result.output == ""
    _assert_every_call_answered(conversation)


@pytest.mark.asyncio
async def test_resumable_cap_needs_more_steps(entries) -> None:
    client = ScriptedModelClient([tool_response(make_call("list_entries"))], repeat_last=True)

    result = await _lorebook_loop(client, max_iterations=2, resumable=True).run(
        _conversation(), DomainSnapshot.of(entries)
    )

    assert result.state is LoopState.NEEDS_MORE_STEPS
    assert result.needs_more_steps
    assert result.iterations == 2


@pytest.mark.asyncio
async def test_uncapped_loop_runs_until_done(entries) -> None:
    script = [tool_response(make_call("list_entries"))] * 15 + [text_response("done")]
    client = ScriptedModelClient(script)

    result = await _lorebook_loop(client, max_iterations=None).run(_conversation(), DomainSnapshot.of(entries))

    assert result.state is LoopState.COMPLETED
    assert result.iterations == 16


# -----------------------------------------------------------------------------
# Model failures
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_model_error_aborts_when_not_propagating(chapters) -> None:
    client = ScriptedModelClient([RuntimeError("provider down")])

    result = await _retrieval_loop(client).run(_conversation(), DomainSnapshot.of((), chapters))

    assert result.state is LoopState.ABORTED
    assert result.error == "provider down"
    assert result.iterations == 1


@pytest.mark.asyncio
async def test_model_error_propagates_when_configured(entries) -> None:
    client = ScriptedModelClient([RuntimeError("provider down")])
    loop = _lorebook_loop(client, propagate_model_errors=True)

    with pytest.raises(RuntimeError, match="provider down"):
        await loop.run(_conversation(), DomainSnapshot.of(entries))
    assert loop.state is LoopState.ABORTED


@pytest.mark.asyncio
async def test_stream_reports_abort_as_error_event(chapters) -> None:
    client = ScriptedModelClient([tool_response(make_call("list_chapters")), ValueError("bad gateway")])

    events = await _collect(_retrieval_loop(client).stream(_conversation(), DomainSnapshot.of((), chapters)))

    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].error == "bad gateway"
    assert events[-1].result.state is LoopState.ABORTED
    assert not any(isinstance(event, DoneEvent) for event in events)


# -----------------------------------------------------------------------------
# Streaming
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stream_event_order(entries, ledger) -> None:
    client = ScriptedModelClient(
        [
            tool_response(
                make_call("get_entry", {"index": 0}, call_id="a"),
                make_call("delete_entry", {"index": 1}, call_id="b"),
                text="Checking.",
            ),
            text_response("Proposed a deletion."),
        ]
    )

    events = await _collect(
        _lorebook_loop(client).stream(_conversation(), DomainSnapshot.of(entries), ledger=ledger)
    )

    assert [event.type for event in events] == [
        "thinking",
        "tool_start",
        "tool_end",
        "tool_start",
        "tool_end",
        "message",
        "thinking",
        "done",
    ]
    starts = [event for event in events if isinstance(event, ToolStartEvent)]
    assert [(event.tool_call_id, event.tool_name) for event in starts] == [("a", "get_entry"), ("b", "delete_entry")]
    assert starts[0].args == {"index": 0}

    message = next(event for event in events if isinstance(event, MessageEvent)).message
    assert message.content == "Checking."
    assert [call.id for call in message.tool_calls] == ["a", "b"]
    assert len(message.pending_changes) == 1
    assert message.pending_changes[0] is ledger.pending()[0]

    done = events[-1]
    assert isinstance(done, DoneEvent)
    assert done.result.output == "Proposed a deletion."
    assert [change.kind.value for change in done.result.pending_changes] == ["delete"]


@pytest.mark.asyncio
async def test_bad_calls_are_still_answered(entries) -> None:
    client = ScriptedModelClient(
        [
            tool_response(
                make_call("get_entry", "{{{{", call_id="x1"),
                make_call("no_such_tool", call_id="x2"),
                make_call("get_entry", {"index": 40}, call_id="x3"),
            ),
            text_response("sorry"),
        ]
    )
    conversation = _conversation()

    result = await _lorebook_loop(client).run(conversation, DomainSnapshot.of(entries))

    assert result.state is LoopState.COMPLETED
    _assert_every_call_answered(conversation)
    tool_messages = [message for message in client.calls[1]["messages"] if message["role"] == "tool"]
    errors = [json.loads(message["content"])["error"] for message in tool_messages]
    assert errors == [
        "Invalid tool call arguments - malformed JSON",
        "Unknown tool: no_such_tool",
        "Invalid index 40. Valid range: 0-2",
    ]


# -----------------------------------------------------------------------------
# Cancellation
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cancel_before_start(chapters) -> None:
    client = ScriptedModelClient([])
    cancel = asyncio.Event()
    cancel.set()

    result = await _retrieval_loop(client).run(_conversation(), DomainSnapshot.of((), chapters), cancel_event=cancel)

    assert result.state is LoopState.CANCELLED
    assert result.error == CANCELLED_MESSAGE
    assert client.calls == []


@pytest.mark.asyncio
async def test_cancel_after_first_tool_end(entries) -> None:
    client = ScriptedModelClient(
        [
            tool_response(
                make_call("list_entries", call_id="first"),
                make_call("get_entry", {"index": 0}, call_id="second"),
            )
        ]
    )
    cancel = asyncio.Event()
    conversation = _conversation()
    events = []

    async for event in _lorebook_loop(client).stream(conversation, DomainSnapshot.of(entries), cancel_event=cancel):
        events.append(event)
        if isinstance(event, ToolEndEvent):
            cancel.set()

    assert [event.type for event in events] == ["thinking", "tool_start", "tool_end", "error"]
    assert events[-1].error == CANCELLED_MESSAGE
    assert events[-1].result.state is LoopState.CANCELLED
    assert len(client.calls) == 1

    _assert_every_call_answered(conversation)
    last = conversation.last_turn
    assert isinstance(last, ToolResultTurn)
    assert last.tool_call_id == "second"
    assert json.loads(last.content) == {"error": CANCELLED_MESSAGE}


@pytest.mark.asyncio
async def test_cancel_during_model_call(chapters) -> None:
    client = HangingModelClient()
    cancel = asyncio.Event()
    loop = _retrieval_loop(client)

    task = asyncio.ensure_future(loop.run(_conversation(), DomainSnapshot.of((), chapters), cancel_event=cancel))
    await asyncio.wait_for(client.started.wait(), timeout=1)
    cancel.set()
    result = await asyncio.wait_for(task, timeout=1)

    assert result.state is LoopState.CANCELLED
    assert result.error == CANCELLED_MESSAGE
    assert result.iterations == 1
    assert client.cancelled
    assert loop.state is LoopState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_event_unused_still_completes(chapters) -> None:
    client = ScriptedModelClient([text_response("fine")])

    result = await _retrieval_loop(client).run(
        _conversation(), DomainSnapshot.of((), chapters), cancel_event=asyncio.Event()
    )

    assert result.state is LoopState.COMPLETED
    assert result.output == "fine"


def test_config_is_clamped() -> None:
    loop = _retrieval_loop(ScriptedModelClient([]), max_iterations=0, temperature=5, tool_choice="sometimes")

    assert loop.config.max_iterations == 1
    assert loop.config.temperature == 2.0
    assert loop.config.tool_choice == "auto"
    assert loop.state is LoopState.IDLE


def test_thinking_event_type() -> None:
    assert ThinkingEvent().type == "thinking"


@pytest.mark.asyncio
async def test_closing_stream_mid_batch_answers_remaining_calls(entries, ledger) -> None:
    client = ScriptedModelClient(
        [
            tool_response(
                make_call("get_entry", {"index": 0}, call_id="a"),
                make_call("delete_entry", {"index": 1}, call_id="b"),
            )
        ]
    )
    conversation = _conversation()
    loop = _lorebook_loop(client)
    stream = loop.stream(conversation, DomainSnapshot.of(entries), ledger=ledger)

    first = await stream.__anext__()
    second = await stream.__anext__()
    await stream.aclose()

    assert isinstance(first, ThinkingEvent)
    assert isinstance(second, ToolStartEvent)
    assert loop.state is LoopState.CANCELLED
    _assert_every_call_answered(conversation)
    answers = [turn for turn in conversation.turns if isinstance(turn, ToolResultTurn)]
    assert [turn.tool_call_id for turn in answers] == ["a", "b"]
    assert all(json.loads(turn.content) == {"error": CANCELLED_MESSAGE} for turn in answers)
    assert len(ledger) == 0
    conversation.append_user("still usable")


# -----------------------------------------------------------------------------
# Tool call ids
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_repeated_call_ids_are_made_unique(chapters) -> None:
    client = ScriptedModelClient(
        [
            tool_response(
                make_call("list_chapters", call_id="dup"),
                make_call("list_chapters", call_id="dup"),
            ),
            text_response("done"),
        ]
    )
    conversation = _conversation()

    result = await _retrieval_loop(client).run(conversation, DomainSnapshot.of((), chapters))

    assert result.state is LoopState.COMPLETED
    assert [call.id for call in result.tool_calls] == ["dup", "call_1"]
    _assert_every_call_answered(conversation)
