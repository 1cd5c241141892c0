"""Wiki tools that let the lorebook agent research established universes.

Each tool proxies to a :class:`~aventura.services.fandom.KnowledgeLookup`.
Lookup failures become error payloads for the model rather than exceptions.
"""

from __future__ import annotations

import logging
from typing import Any

from ...services.fandom import KnowledgeLookup
from ..orchestration.tools.catalog import (
    FETCH_FANDOM_SECTION,
    GET_FANDOM_ARTICLE_INFO,
    SEARCH_FANDOM,
)
from .arguments import format_arg
from .base import BaseTool, ToolContext
from .errors import CollaboratorError, InvalidParameterError, MissingParameterError

__all__ = [
    "SearchFandomTool",
    "GetFandomArticleInfoTool",
    "FetchFandomSectionTool",
    "build_fandom_tools",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 10
MAX_CATEGORIES = 10

ARTICLE_INFO_HINT = (
    'Use fetch_fandom_section with section_index="0" to get the introduction, '
    "or use other section indices to fetch specific sections."
)
SECTION_HINT = (
    "You can now use this information to create_entry for the lorebook. "
    "Synthesize the wiki content into a concise, useful lorebook entry."
)


def _text(params: dict[str, Any], name: str) -> str:
    value = params.get(name)
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_arg(value)
    return value.strip() if isinstance(value, str) else ""


class _FandomTool(BaseTool):
    def __init__(self, lookup: KnowledgeLookup) -> None:
        self._lookup = lookup


class SearchFandomTool(_FandomTool):
    spec = SEARCH_FANDOM

    async def execute(self, context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
        wiki, query = _text(params, "wiki"), _text(params, "query")
        if not wiki or not query:
            raise MissingParameterError(message="Both wiki and query are required")
        limit = params.get("limit")
        if limit is None:
            limit = DEFAULT_SEARCH_LIMIT
        elif isinstance(limit, bool) or not isinstance(limit, (int, float)):
            raise InvalidParameterError(message=f"Invalid limit {format_arg(limit)}", parameter="limit")

        try:
            results = await self._lookup.search(wiki, query, int(limit))
        except Exception as exc:
            LOGGER.info("Fandom search on %s failed: %s", wiki, exc)
            raise CollaboratorError.from_exception(exc, "Failed to search wiki") from exc

        return {
            "wiki": wiki,
            "query": query,
            "resultCount": len(results),
            "results": [
                {"title": item.title, "snippet": item.snippet, "wordcount": item.wordcount}
                for item in results
            ],
        }


class GetFandomArticleInfoTool(_FandomTool):
    spec = GET_FANDOM_ARTICLE_INFO

    async def execute(self, context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
        wiki, title = _text(params, "wiki"), _text(params, "title")
        if not wiki or not title:
            raise MissingParameterError(message="Both wiki and title are required")

        try:
            info = await self._lookup.get_article_info(wiki, title)
        except Exception as exc:
            LOGGER.info("Fandom article info for %r on %s failed: %s", title, wiki, exc)
            raise CollaboratorError.from_exception(exc, "Failed to get article info") from exc

        return {
            "title": info.title,
            "pageid": info.page_id,
            "categories": list(info.categories[:MAX_CATEGORIES]),
            "sections": [
                {"index": section.index, "title": section.title, "level": section.level}
                for section in info.sections
            ],
            "hint": ARTICLE_INFO_HINT,
        }


class FetchFandomSectionTool(_FandomTool):
    spec = FETCH_FANDOM_SECTION

    async def execute(self, context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
        wiki, title = _text(params, "wiki"), _text(params, "title")
        section_index = _text(params, "section_index")
        if not wiki or not title or not section_index:
            raise MissingParameterError(message="wiki, title, and section_index are all required")

        try:
            section = await self._lookup.get_section(wiki, title, section_index)
        except Exception as exc:
            LOGGER.info("Fandom section %s of %r on %s failed: %s", section_index, title, wiki, exc)
            raise CollaboratorError.from_exception(exc, "Failed to fetch section") from exc

        return {
            "title": section.title,
            "sectionTitle": section.section_title,
            "sectionIndex": section.section_index,
            "content": section.content,
            "hint": SECTION_HINT,
        }


def build_fandom_tools(lookup: KnowledgeLookup) -> list[BaseTool]:
    return [
        SearchFandomTool(lookup),
        GetFandomArticleInfoTool(lookup),
        FetchFandomSectionTool(lookup),
    ]
