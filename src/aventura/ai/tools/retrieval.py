"""Tools used by the retrieval agent to explore earlier chapters."""

from __future__ import annotations

import inspect
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from ..orchestration.tools.catalog import (
    FINISH_RETRIEVAL,
    LIST_CHAPTERS,
    LIST_ENTRIES_FOR_RETRIEVAL,
    QUERY_CHAPTER,
    QUERY_CHAPTERS,
)
from .arguments import coerce_number, optional_string, require_string
from .base import BaseTool, ReadOnlyTool, ToolContext
from .errors import NotFoundError

__all__ = [
    "RetrievalSession",
    "ListChaptersTool",
    "QueryChapterTool",
    "QueryChaptersTool",
    "ListEntriesForRetrievalTool",
    "FinishRetrievalTool",
    "build_retrieval_tools",
]

LOGGER = logging.getLogger(__name__)

_DESCRIPTION_PREVIEW = 150


@dataclass(slots=True)
class RetrievalSession:
    """Bookkeeping for one retrieval run; never persisted."""

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    iteration_count: int = 0
    queried_chapters: list[int | float] = field(default_factory=list)
    context: str = ""

    def record_chapter(self, number: int | float) -> None:
        if number not in self.queried_chapters:
            self.queried_chapters.append(number)


def _record(context: ToolContext, number: int | float) -> None:
    if context.session is not None:
        context.session.record_chapter(number)


class ListChaptersTool(ReadOnlyTool):
    spec = LIST_CHAPTERS

    def read(self, context: ToolContext, params: dict[str, Any]) -> list[dict[str, Any]]:
        return [chapter.to_dict() for chapter in context.chapters]


class QueryChapterTool(BaseTool):
    """Answer a question about one chapter.

    Uses the context's ``on_query_chapter`` callback when one is wired, and
    falls back to the stored summary when there is none or it fails. The
    chapter counts as queried even when it does not exist.
    """

    spec = QUERY_CHAPTER

    async def execute(self, context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
        number = coerce_number(params, "chapter_number")
        question = require_string(params, "question")
        _record(context, number)

        chapter = next((item for item in context.chapters if item.number == number), None)
        if chapter is None:
            raise NotFoundError(message=f"Chapter {number} not found")

        if context.on_query_chapter is not None:
            try:
                answer = context.on_query_chapter(chapter.number, question)
                if inspect.isawaitable(answer):
                    answer = await answer
            except Exception:
                LOGGER.warning(
                    "Chapter query for chapter %s failed; falling back to summary",
                    number,
                    exc_info=True,
                )
            else:
                return {"chapter": number, "question": question, "answer": answer}

        return {
            "chapter": number,
            "question": question,
            "answer": f"Based on chapter summary: {chapter.summary}",
            "characters": list(chapter.characters),
            "locations": list(chapter.locations),
        }


class QueryChaptersTool(ReadOnlyTool):
    spec = QUERY_CHAPTERS

    def read(self, context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
        start = coerce_number(params, "start_chapter")
        end = coerce_number(params, "end_chapter")
        question = require_string(params, "question")

        chapters = [item for item in context.chapters if start <= item.number <= end]
        for chapter in chapters:
            _record(context, chapter.number)
        if not chapters:
            raise NotFoundError(message="No chapters in specified range")

        combined = "\n\n".join(f"Chapter {item.number}: {item.summary}" for item in chapters)
        return {
            "range": {"start": start, "end": end},
            "question": question,
            "answer": f"Based on chapters {start}-{end}:\n{combined}",
        }


class ListEntriesForRetrievalTool(ReadOnlyTool):
    spec = LIST_ENTRIES_FOR_RETRIEVAL

    def read(self, context: ToolContext, params: dict[str, Any]) -> list[dict[str, Any]]:
        type_filter = optional_string(params, "type")
        return [
            {
                "name": entry.name,
                "type": entry.type.value,
                "description": entry.description[:_DESCRIPTION_PREVIEW],
            }
            for entry in context.entries
            if not type_filter or entry.type.value == type_filter
        ]


class FinishRetrievalTool(ReadOnlyTool):
    """Terminal tool; the loop reads ``summary`` from the call arguments."""

    spec = FINISH_RETRIEVAL

    def read(self, context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
        summary = params.get("summary")
        if not isinstance(summary, str):
            summary = require_string(params, "summary")
        if context.session is not None:
            context.session.context = summary
        return {
            "success": True,
            "message": "Retrieval complete",
            "summary_length": len(summary),
        }


def build_retrieval_tools() -> list[BaseTool]:
    return [
        ListChaptersTool(),
        QueryChapterTool(),
        QueryChaptersTool(),
        ListEntriesForRetrievalTool(),
        FinishRetrievalTool(),
    ]
