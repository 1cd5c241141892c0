"""Agentic retrieval: gather earlier-story context before the narrator responds."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from ...models import Chapter, LorebookEntry, StoryEntry
from ...services.settings import RetrievalSettings
from ..ai_types import LoopConfig, ModelClient
from ..orchestration.conversation import Conversation
from ..orchestration.dispatcher import ToolDispatcher
from ..orchestration.runner import AgenticLoop
from ..orchestration.tools.registry import ToolRegistry
from ..prompts import DEFAULT_AGENTIC_RETRIEVAL_PROMPT, build_retrieval_prompt
from ..tools.base import ChapterQuery, DomainSnapshot
from ..tools.retrieval import RetrievalSession, build_retrieval_tools

__all__ = [
    "RetrievalContext",
    "RetrievalResult",
    "AgenticRetrievalService",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RetrievalContext:
    """Story state the retrieval agent works from."""

    user_input: str
    recent_entries: Sequence[StoryEntry] = ()
    chapters: Sequence[Chapter] = ()
    entries: Sequence[LorebookEntry] = ()


@dataclass(slots=True)
class RetrievalResult:
    context: str = ""
    queried_chapters: list[int | float] = field(default_factory=list)
    iterations: int = 0
    session_id: str = ""


class AgenticRetrievalService:
    """Runs the retrieval agent over the chapter history.

    Model failures never escape :meth:`run_retrieval`; the run is cut short
    and whatever context was gathered (usually none) is returned.
    """

    def __init__(
        self,
        client: ModelClient,
        settings: RetrievalSettings | None = None,
        *,
        registry: ToolRegistry | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or RetrievalSettings()
        if registry is None:
            registry = ToolRegistry(build_retrieval_tools())
        self._dispatcher = ToolDispatcher(registry)

    @property
    def settings(self) -> RetrievalSettings:
        return self._settings

    @property
    def system_prompt(self) -> str:
        return self._settings.system_prompt or DEFAULT_AGENTIC_RETRIEVAL_PROMPT

    def should_run(self, chapter_count: int) -> bool:
        """Retrieval is only worth it once the story outgrows the threshold."""
        return self._settings.enabled and chapter_count > self._settings.agentic_threshold

    async def run_retrieval(
        self,
        context: RetrievalContext,
        on_query_chapter: ChapterQuery | None = None,
    ) -> RetrievalResult:
        session = RetrievalSession()
        LOGGER.debug(
            "Starting agentic retrieval %s: input=%d chars, chapters=%d, entries=%d",
            session.session_id,
            len(context.user_input),
            len(context.chapters),
            len(context.entries),
        )

        conversation = Conversation(self.system_prompt)
        conversation.append_user(
            build_retrieval_prompt(
                context.user_input,
                context.recent_entries,
                context.chapters,
                context.entries,
            )
        )
        loop = AgenticLoop(self._client, self._dispatcher, self._loop_config())
        outcome = await loop.run(
            conversation,
            DomainSnapshot.of(context.entries, context.chapters),
            session=session,
            on_query_chapter=on_query_chapter,
        )

        session.iteration_count = outcome.iterations
        # Only a finish_retrieval summary counts as context; free text does not.
        session.context = outcome.summary or ""
        LOGGER.info(
            "Agentic retrieval %s finished: state=%s iterations=%d chapters=%d context=%d chars",
            session.session_id,
            outcome.state.value,
            outcome.iterations,
            len(session.queried_chapters),
            len(session.context),
        )
        return RetrievalResult(
            context=session.context,
            queried_chapters=list(session.queried_chapters),
            iterations=session.iteration_count,
            session_id=session.session_id,
        )

    @staticmethod
    def format_for_prompt_injection(result: RetrievalResult) -> str:
        if not result.context:
            return ""
        return (
            "\n<retrieved_context>\n"
            "## From Earlier in the Story\n"
            f"{result.context}\n"
            "</retrieved_context>"
        )

    def _loop_config(self) -> LoopConfig:
        settings = self._settings
        return LoopConfig(
            max_iterations=settings.max_iterations,
            propagate_model_errors=False,
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
