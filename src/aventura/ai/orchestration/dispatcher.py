"""Tool call dispatcher for the agentic loop.

Routes one model-issued tool call to its registered implementation. Decoding,
lookup, and execution failures all come back as ``{"error": ...}`` results;
:meth:`ToolDispatcher.execute` never raises for a bad call, so the loop can
always answer every call it was given.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from ..tools.base import ChapterQuery, DomainSnapshot, ToolContext, ToolResult
from ..tools.errors import MalformedArgumentsError, ToolError, UnknownToolError
from .json_repair import decode_tool_arguments
from .ledger import PendingChange, PendingChangeLedger
from .tools.registry import ToolNotFoundError, ToolRegistry
from .tools.types import ToolSpec
from .types import ToolCall

__all__ = [
    "DispatchResult",
    "DispatchListener",
    "ToolDispatcher",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Dispatch Result
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class DispatchResult:
    """Result of a tool dispatch operation.

    Attributes:
        result_json: JSON string fed back to the model as the tool result.
        side_effect: Pending change proposed by the call, if any.
        parsed_args: Decoded arguments (empty when decoding failed).
        tool_name: Name of the tool called.
        execution_time_ms: Execution time in milliseconds.
        success: Whether the tool completed without error.
        spec: Spec of the executed tool; ``None`` for unknown tools.
    """

    result_json: str
    side_effect: PendingChange | None = None
    parsed_args: dict[str, Any] = field(default_factory=dict)
    tool_name: str = ""
    execution_time_ms: float = 0.0
    success: bool = True
    spec: ToolSpec | None = None

    @property
    def is_terminal(self) -> bool:
        """True when a terminal tool ran successfully."""
        return self.success and self.spec is not None and self.spec.terminal

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "tool_name": self.tool_name,
            "execution_time_ms": self.execution_time_ms,
            "result": self.result_json,
        }
        if self.side_effect is not None:
            data["pending_change"] = self.side_effect.to_dict()
        return data


# -----------------------------------------------------------------------------
# Dispatch Listener
# -----------------------------------------------------------------------------


class DispatchListener(Protocol):
    """Callback protocol for dispatch events."""

    def on_tool_start(self, tool_name: str, arguments: Mapping[str, Any]) -> None:
        ...

    def on_tool_complete(self, result: DispatchResult) -> None:
        ...


# -----------------------------------------------------------------------------
# Tool Dispatcher
# -----------------------------------------------------------------------------


class ToolDispatcher:
    """Dispatches tool calls to the implementations in a registry.

    Example:
        dispatcher = ToolDispatcher(ToolRegistry(build_lorebook_tools()))
        result = await dispatcher.execute(call, DomainSnapshot.of(entries), ledger)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        listener: DispatchListener | None = None,
    ) -> None:
        self._registry = registry
        self._listener = listener

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def tool_definitions(self) -> list[dict[str, Any]]:
        """Tool definitions in OpenAI format, for the model call."""
        return self._registry.to_openai_tools()

    async def execute(
        self,
        call: ToolCall,
        snapshot: DomainSnapshot,
        ledger: PendingChangeLedger | None = None,
        *,
        session: Any = None,
        on_query_chapter: ChapterQuery | None = None,
    ) -> DispatchResult:
        """Execute ``call`` against ``snapshot``; never raises for a bad call."""
        start_time = time.perf_counter()

        arguments = decode_tool_arguments(call.arguments)
        if arguments is None:
            LOGGER.warning("Malformed arguments for tool %s: %r", call.name, call.arguments[:200])
            return self._error_result(call.name, {}, MalformedArgumentsError(), start_time)

        self._notify_start(call.name, arguments)

        try:
            tool = self._registry.get(call.name)
        except ToolNotFoundError:
            LOGGER.warning("Model called unknown tool %s", call.name)
            return self._error_result(call.name, arguments, UnknownToolError.for_name(call.name), start_time)

        context = ToolContext(
            snapshot=snapshot,
            call_id=call.id,
            ledger=ledger,
            session=session,
            on_query_chapter=on_query_chapter,
        )
        outcome: ToolResult = await tool.run(context, arguments)
        result = DispatchResult(
            result_json=outcome.to_json(),
            side_effect=outcome.pending_change,
            parsed_args=arguments,
            tool_name=call.name,
            execution_time_ms=(time.perf_counter() - start_time) * 1000.0,
            success=outcome.success,
            spec=tool.spec,
        )
        LOGGER.debug("Tool %s completed in %.1fms", call.name, result.execution_time_ms)
        self._notify_complete(result)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _error_result(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        error: ToolError,
        start_time: float,
    ) -> DispatchResult:
        result = DispatchResult(
            result_json=json.dumps(error.to_dict()),
            parsed_args=arguments,
            tool_name=tool_name,
            execution_time_ms=(time.perf_counter() - start_time) * 1000.0,
            success=False,
        )
        self._notify_complete(result)
        return result

    def _notify_start(self, tool_name: str, arguments: Mapping[str, Any]) -> None:
        if self._listener is None:
            return
        try:
            self._listener.on_tool_start(tool_name, arguments)
        except Exception:
            LOGGER.debug("Listener on_tool_start failed", exc_info=True)

    def _notify_complete(self, result: DispatchResult) -> None:
        if self._listener is None:
            return
        try:
            self._listener.on_tool_complete(result)
        except Exception:
            LOGGER.debug("Listener on_tool_complete failed", exc_info=True)
