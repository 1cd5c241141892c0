"""Tests for routing model tool calls to tool implementations."""

from __future__ import annotations

import json

import pytest

from aventura.ai.orchestration.dispatcher import ToolDispatcher
from aventura.ai.orchestration.tools.registry import ToolRegistry
from aventura.ai.tools.base import DomainSnapshot, ReadOnlyTool
from aventura.ai.tools.errors import ErrorCode
from aventura.ai.tools.lorebook import build_lorebook_tools
from aventura.ai.tools.retrieval import build_retrieval_tools
from aventura.ai.orchestration.tools.catalog import GET_ENTRY
from tests.helpers import make_call


class RecordingListener:
    def __init__(self) -> None:
        self.started: list[tuple[str, dict]] = []
        self.completed: list = []

    def on_tool_start(self, tool_name, arguments) -> None:
        self.started.append((tool_name, dict(arguments)))

    def on_tool_complete(self, result) -> None:
        self.completed.append(result)


class ExplodingTool(ReadOnlyTool):
    spec = GET_ENTRY

    def read(self, context, params):
        raise ZeroDivisionError("boom")


@pytest.fixture
def dispatcher() -> ToolDispatcher:
    return ToolDispatcher(ToolRegistry(build_lorebook_tools()))


@pytest.mark.asyncio
async def test_successful_call(dispatcher, entries) -> None:
    result = await dispatcher.execute(make_call("get_entry", {"index": 0}), DomainSnapshot.of(entries))

    assert result.success
    assert result.tool_name == "get_entry"
    assert result.parsed_args == {"index": 0}
    assert json.loads(result.result_json)["name"] == "Aria"
    assert result.side_effect is None
    assert not result.is_terminal


@pytest.mark.asyncio
async def test_malformed_arguments(dispatcher, entries) -> None:
    result = await dispatcher.execute(make_call("get_entry", "{{{{"), DomainSnapshot.of(entries))

    assert not result.success
    assert json.loads(result.result_json) == {
        "error": "Invalid tool call arguments - malformed JSON",
        "code": ErrorCode.MALFORMED_ARGUMENTS,
    }
    assert result.parsed_args == {}


@pytest.mark.asyncio
async def test_repairable_arguments_are_accepted(dispatcher, entries) -> None:
    result = await dispatcher.execute(make_call("get_entry", '{"index": 2,'), DomainSnapshot.of(entries))

    assert result.success
    assert json.loads(result.result_json)["name"] == "Silver Lute"


@pytest.mark.asyncio
async def test_unknown_tool(dispatcher, entries) -> None:
    result = await dispatcher.execute(make_call("summon_dragon"), DomainSnapshot.of(entries))

    assert not result.success
    assert json.loads(result.result_json)["error"] == "Unknown tool: summon_dragon"
    assert result.spec is None


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained(entries) -> None:
    dispatcher = ToolDispatcher(ToolRegistry([ExplodingTool()]))
    result = await dispatcher.execute(make_call("get_entry", {"index": 0}), DomainSnapshot.of(entries))

    assert not result.success
    payload = json.loads(result.result_json)
    assert payload["code"] == ErrorCode.INTERNAL_ERROR
    assert "boom" in payload["error"]


@pytest.mark.asyncio
async def test_write_call_records_change(dispatcher, entries, ledger) -> None:
    result = await dispatcher.execute(
        make_call("delete_entry", {"index": 1}, call_id="call_9"),
        DomainSnapshot.of(entries),
        ledger,
    )

    assert result.side_effect is not None
    assert result.side_effect.tool_call_id == "call_9"
    assert ledger.pending() == (result.side_effect,)
    assert result.to_dict()["pending_change"]["type"] == "delete"


@pytest.mark.asyncio
async def test_terminal_flag_requires_success(chapters) -> None:
    dispatcher = ToolDispatcher(ToolRegistry(build_retrieval_tools()))
    snapshot = DomainSnapshot.of((), chapters)

    done = await dispatcher.execute(make_call("finish_retrieval", {"summary": "s"}), snapshot)
    failed = await dispatcher.execute(make_call("finish_retrieval", {}), snapshot)

    assert done.is_terminal
    assert not failed.is_terminal


@pytest.mark.asyncio
async def test_listener_sees_start_and_completion(entries) -> None:
    listener = RecordingListener()
    dispatcher = ToolDispatcher(ToolRegistry(build_lorebook_tools()), listener=listener)

    await dispatcher.execute(make_call("list_entries", {"type": "item"}), DomainSnapshot.of(entries))
    await dispatcher.execute(make_call("nope"), DomainSnapshot.of(entries))

    assert listener.started == [("list_entries", {"type": "item"}), ("nope", {})]
    assert [item.tool_name for item in listener.completed] == ["list_entries", "nope"]


def test_tool_definitions(dispatcher) -> None:
    names = [item["function"]["name"] for item in dispatcher.tool_definitions()]
    assert names[0] == "list_entries"
    assert dispatcher.registry is not None
