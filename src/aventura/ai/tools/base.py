"""Base classes for agent tools.

This module standardizes how tool handlers are run: argument validation,
timing, and the conversion of :class:`~.errors.ToolError` (and any unexpected
exception) into the structured payload fed back to the model.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ClassVar, Mapping, Sequence, Union

from ...models import Chapter, LorebookEntry
from ..orchestration.ledger import PendingChange, PendingChangeLedger
from ..orchestration.tools.types import ToolSpec
from .errors import ErrorCode, ToolError

if TYPE_CHECKING:
    from .retrieval import RetrievalSession

LOGGER = logging.getLogger(__name__)

# (chapter_number, question) -> answer, sync or async.
ChapterQuery = Callable[[int, str], Union[str, Awaitable[str]]]


@dataclass(slots=True, frozen=True)
class DomainSnapshot:
    """Read-only view of the collections a run works against."""

    entries: tuple[LorebookEntry, ...] = ()
    chapters: tuple[Chapter, ...] = ()

    @classmethod
    def of(
        cls,
        entries: Sequence[LorebookEntry] = (),
        chapters: Sequence[Chapter] = (),
    ) -> DomainSnapshot:
        return cls(entries=tuple(entries), chapters=tuple(chapters))


@dataclass(slots=True)
class ToolContext:
    """Runtime context provided to tool execution.

    Attributes:
        snapshot: Entries and chapters as they were when the turn started.
        call_id: Id of the tool call being executed.
        ledger: Where proposed changes are recorded, if anywhere.
        session: Retrieval bookkeeping for the current run.
        on_query_chapter: Optional callback answering questions about a chapter.
    """

    snapshot: DomainSnapshot = field(default_factory=DomainSnapshot)
    call_id: str = ""
    ledger: PendingChangeLedger | None = None
    session: RetrievalSession | None = None
    on_query_chapter: ChapterQuery | None = None

    @property
    def entries(self) -> tuple[LorebookEntry, ...]:
        return self.snapshot.entries

    @property
    def chapters(self) -> tuple[Chapter, ...]:
        return self.snapshot.chapters


@dataclass(slots=True)
class ToolResult:
    """Standardized result container for tool execution.

    Attributes:
        success: Whether the tool completed successfully.
        data: JSON-serializable result data if successful.
        error: Error details if unsuccessful.
        duration_ms: Execution time in milliseconds.
        pending_change: Change proposed by a mutating tool.
    """

    success: bool
    data: Any = None
    error: ToolError | None = None
    duration_ms: float = 0.0
    pending_change: PendingChange | None = None

    def to_payload(self) -> Any:
        if self.success:
            return self.data if self.data is not None else {}
        if self.error is None:
            return {"error": "Unknown error", "code": ErrorCode.INTERNAL_ERROR}
        return self.error.to_dict()

    def to_json(self) -> str:
        """Serialize the result for the tool-result turn."""
        return json.dumps(self.to_payload(), ensure_ascii=False, default=str)


@dataclass(slots=True, frozen=True)
class Proposal:
    """A pending change together with the payload shown to the model."""

    change: PendingChange
    data: Mapping[str, Any]


class BaseTool(ABC):
    """Abstract base class for all agent tools.

    Subclasses set ``spec`` and implement ``execute()``, which may be a plain
    or an ``async`` method. Expected failures are raised as ``ToolError``;
    anything else is logged and reported as an internal error. Neither
    escapes :meth:`run`.

    Example:
        class GetEntryTool(ReadOnlyTool):
            spec = GET_ENTRY

            def read(self, context, params):
                return context.entries[0].to_dict()
    """

    spec: ClassVar[ToolSpec]

    @property
    def name(self) -> str:
        return self.spec.name

    async def run(
        self,
        context: ToolContext,
        params: Mapping[str, Any] | None = None,
    ) -> ToolResult:
        """Execute the tool with standardized error handling and timing."""
        start_time = time.perf_counter()
        params = dict(params) if params else {}

        try:
            self.validate(params)
            outcome = self.execute(context, params)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except ToolError as exc:
            return ToolResult(
                success=False,
                error=exc,
                duration_ms=(time.perf_counter() - start_time) * 1000.0,
            )
        except Exception as exc:
            LOGGER.exception("Tool %s failed unexpectedly", self.name)
            return ToolResult(
                success=False,
                error=ToolError(error_code=ErrorCode.INTERNAL_ERROR, message=f"Internal error: {exc}"),
                duration_ms=(time.perf_counter() - start_time) * 1000.0,
            )

        duration_ms = (time.perf_counter() - start_time) * 1000.0
        if isinstance(outcome, Proposal):
            return ToolResult(
                success=True,
                data=dict(outcome.data),
                duration_ms=duration_ms,
                pending_change=outcome.change,
            )
        return ToolResult(success=True, data=outcome, duration_ms=duration_ms)

    @abstractmethod
    def execute(self, context: ToolContext, params: dict[str, Any]) -> Any:
        """Execute the tool's core logic.

        Returns:
            JSON-serializable data, a :class:`Proposal`, or an awaitable of either.

        Raises:
            ToolError: For expected error conditions.
        """
        ...

    def validate(self, params: dict[str, Any]) -> None:
        """Validate tool parameters before execution. Raise ToolError for invalid inputs."""


class ReadOnlyTool(BaseTool):
    """Base class for tools that only read the snapshot."""

    def execute(self, context: ToolContext, params: dict[str, Any]) -> Any:
        return self.read(context, params)

    @abstractmethod
    def read(self, context: ToolContext, params: dict[str, Any]) -> Any:
        ...


class MutatingTool(BaseTool):
    """Base class for tools that propose lorebook changes.

    Mutating tools never modify the snapshot. They build a
    :class:`PendingChange`, record it in the context's ledger when one is
    present, and tell the model the change awaits approval.
    """

    def execute(self, context: ToolContext, params: dict[str, Any]) -> Proposal:
        proposal = self.propose(context, params)
        if context.ledger is not None:
            context.ledger.record(proposal.change)
        return proposal

    @abstractmethod
    def propose(self, context: ToolContext, params: dict[str, Any]) -> Proposal:
        ...


__all__ = [
    "BaseTool",
    "ReadOnlyTool",
    "MutatingTool",
    "ToolResult",
    "ToolContext",
    "DomainSnapshot",
    "Proposal",
    "ChapterQuery",
]
