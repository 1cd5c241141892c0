"""Tests for the wiki research tools."""

from __future__ import annotations

import pytest

from aventura.ai.tools.base import ToolContext
from aventura.ai.tools.errors import ErrorCode
from aventura.ai.tools.fandom import (
    ARTICLE_INFO_HINT,
    FetchFandomSectionTool,
    GetFandomArticleInfoTool,
    SearchFandomTool,
    build_fandom_tools,
)
from aventura.services.fandom import ArticleInfo, FandomError, SearchResult, Section, SectionContent


class FakeLookup:
    def __init__(self, *, fail: Exception | None = None) -> None:
        self.fail = fail
        self.calls: list[tuple] = []

    async def search(self, wiki, query, limit=10):
        self.calls.append(("search", wiki, query, limit))
        if self.fail:
            raise self.fail
        return [SearchResult(title="Hermione Granger", snippet="A witch", wordcount=1200)]

    async def get_article_info(self, wiki, title):
        self.calls.append(("info", wiki, title))
        if self.fail:
            raise self.fail
        return ArticleInfo(
            title=title,
            page_id=42,
            categories=tuple(f"Category {n}" for n in range(15)),
            sections=(Section(index="1", title="Biography", level=2),),
        )

    async def get_section(self, wiki, title, section_index):
        self.calls.append(("section", wiki, title, section_index))
        if self.fail:
            raise self.fail
        return SectionContent(title=title, section_title="Introduction", section_index=section_index, content="Text")


def test_build_fandom_tools_names() -> None:
    assert [tool.name for tool in build_fandom_tools(FakeLookup())] == [
        "search_fandom",
        "get_fandom_article_info",
        "fetch_fandom_section",
    ]


@pytest.mark.asyncio
async def test_search_defaults_limit() -> None:
    lookup = FakeLookup()
    result = await SearchFandomTool(lookup).run(ToolContext(), {"wiki": "harrypotter", "query": "Hermione"})

    assert lookup.calls == [("search", "harrypotter", "Hermione", 10)]
    assert result.data == {
        "wiki": "harrypotter",
        "query": "Hermione",
        "resultCount": 1,
        "results": [{"title": "Hermione Granger", "snippet": "A witch", "wordcount": 1200}],
    }


@pytest.mark.asyncio
async def test_search_requires_wiki_and_query() -> None:
    result = await SearchFandomTool(FakeLookup()).run(ToolContext(), {"wiki": "  ", "query": "x"})

    assert result.to_payload()["error"] == "Both wiki and query are required"


@pytest.mark.asyncio
async def test_search_rejects_non_numeric_limit() -> None:
    result = await SearchFandomTool(FakeLookup()).run(
        ToolContext(), {"wiki": "lotr", "query": "Frodo", "limit": "lots"}
    )

    assert result.error.error_code == ErrorCode.INVALID_PARAMETER


@pytest.mark.asyncio
async def test_article_info_caps_categories() -> None:
    result = await GetFandomArticleInfoTool(FakeLookup()).run(
        ToolContext(), {"wiki": "harrypotter", "title": "Hermione Granger"}
    )

    assert result.data["pageid"] == 42
    assert len(result.data["categories"]) == 10
    assert result.data["sections"] == [{"index": "1", "title": "Biography", "level": 2}]
    assert result.data["hint"] == ARTICLE_INFO_HINT


@pytest.mark.asyncio
async def test_fetch_section_accepts_numeric_index() -> None:
    lookup = FakeLookup()
    result = await FetchFandomSectionTool(lookup).run(
        ToolContext(), {"wiki": "harrypotter", "title": "Hermione Granger", "section_index": 0}
    )

    assert lookup.calls == [("section", "harrypotter", "Hermione Granger", "0")]
    assert result.data["sectionTitle"] == "Introduction"
    assert result.data["content"] == "Text"


@pytest.mark.asyncio
async def test_lookup_failure_becomes_error_payload() -> None:
    lookup = FakeLookup(fail=FandomError("Wiki 'nowhere' not found"))
    result = await GetFandomArticleInfoTool(lookup).run(ToolContext(), {"wiki": "nowhere", "title": "X"})

    assert not result.success
    assert result.to_payload() == {"error": "Wiki 'nowhere' not found", "code": ErrorCode.COLLABORATOR_FAILED}


@pytest.mark.asyncio
async def test_lookup_failure_without_message_uses_fallback() -> None:
    lookup = FakeLookup(fail=RuntimeError())
    result = await FetchFandomSectionTool(lookup).run(
        ToolContext(), {"wiki": "w", "title": "t", "section_index": "1"}
    )

    assert result.to_payload()["error"] == "Failed to fetch section"
