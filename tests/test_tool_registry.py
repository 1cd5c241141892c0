"""Tests for the tool registry and the per-use-case catalog."""

from __future__ import annotations

import pytest

from aventura.ai.orchestration.tools import (
    DuplicateToolError,
    ToolNotFoundError,
    ToolRegistry,
    UseCase,
    list_tools,
)
from aventura.ai.orchestration.tools.catalog import FINISH_RETRIEVAL
from aventura.ai.tools.lorebook import GetEntryTool, ListEntriesTool, build_lorebook_tools
from aventura.ai.tools.retrieval import build_retrieval_tools


def test_register_and_lookup() -> None:
    registry = ToolRegistry([GetEntryTool()])

    assert registry.has("get_entry")
    assert "get_entry" in registry
    assert isinstance(registry.get("get_entry"), GetEntryTool)
    assert registry.get_spec("get_entry").name == "get_entry"
    assert len(registry) == 1


def test_duplicate_names_are_rejected_unless_overridden() -> None:
    registry = ToolRegistry([ListEntriesTool()])

    with pytest.raises(DuplicateToolError):
        registry.register(ListEntriesTool())

    replacement = ListEntriesTool()
    registry.register(replacement, allow_override=True, metadata={"source": "test"})
    assert registry.get("list_entries") is replacement


def test_missing_tool_raises() -> None:
    registry = ToolRegistry()
    with pytest.raises(ToolNotFoundError):
        registry.get("nope")
    with pytest.raises(ToolNotFoundError):
        registry.get_spec("nope")


def test_openai_definitions_keep_registration_order() -> None:
    registry = ToolRegistry(build_lorebook_tools())
    definitions = registry.to_openai_tools()

    assert [item["function"]["name"] for item in definitions] == registry.list_names()
    first = definitions[0]
    assert first["type"] == "function"
    assert first["function"]["parameters"]["type"] == "object"


@pytest.mark.parametrize(
    ("use_case", "names"),
    [
        (
            UseCase.RETRIEVAL,
            ["list_chapters", "query_chapter", "query_chapters", "list_entries", "finish_retrieval"],
        ),
        (
            "lorebook",
            [
                "list_entries",
                "get_entry",
                "create_entry",
                "update_entry",
                "delete_entry",
                "merge_entries",
                "search_fandom",
                "get_fandom_article_info",
                "fetch_fandom_section",
            ],
        ),
    ],
)
def test_catalog_toolsets(use_case, names) -> None:
    assert [spec.name for spec in list_tools(use_case)] == names


def test_only_finish_retrieval_is_terminal() -> None:
    terminal = [spec.name for case in UseCase for spec in list_tools(case) if spec.terminal]
    assert terminal == [FINISH_RETRIEVAL.name]


def test_implementations_match_catalog() -> None:
    assert [tool.spec for tool in build_retrieval_tools()] == list(list_tools(UseCase.RETRIEVAL))
    lorebook_specs = list_tools(UseCase.LOREBOOK)
    assert all(tool.spec in lorebook_specs for tool in build_lorebook_tools())


def test_write_tools_are_flagged() -> None:
    flagged = {spec.name for spec in list_tools(UseCase.LOREBOOK) if spec.is_write}
    assert flagged == {"create_entry", "update_entry", "delete_entry", "merge_entries"}
