"""Agentic loop, tool dispatch, and pending-change bookkeeping."""

# Core types
from .types import (
    AssistantTurn,
    LoopState,
    ModelResponse,
    SystemTurn,
    ToolCall,
    ToolCallDisplay,
    ToolResultTurn,
    Turn,
    UserTurn,
)
from .json_repair import decode_tool_arguments, repair_json, try_parse_json_object
from .conversation import Conversation, ConversationStateError
from .ledger import (
    ChangeKind,
    ChangeNotFoundError,
    ChangeStateError,
    ChangeStatus,
    PendingChange,
    PendingChangeLedger,
    find_entry_index,
)

# Tool system
from .tools import (
    DuplicateToolError,
    Tool,
    ToolCategory,
    ToolNotFoundError,
    ToolRegistration,
    ToolRegistry,
    ToolSpec,
    UseCase,
    list_tools,
)

# Dispatch and loop (these import the tool handlers, so they come last)
from .dispatcher import DispatchListener, DispatchResult, ToolDispatcher
from .events import (
    CANCELLED_MESSAGE,
    ChatMessage,
    DoneEvent,
    ErrorEvent,
    MessageEvent,
    StreamEvent,
    ThinkingEvent,
    ToolEndEvent,
    ToolStartEvent,
)
from .runner import AgenticLoop, LoopCancelledError, LoopResult

__all__ = [
    # Core types
    "AssistantTurn",
    "LoopState",
    "ModelResponse",
    "SystemTurn",
    "ToolCall",
    "ToolCallDisplay",
    "ToolResultTurn",
    "Turn",
    "UserTurn",
    "decode_tool_arguments",
    "repair_json",
    "try_parse_json_object",
    "Conversation",
    "ConversationStateError",
    # Ledger
    "ChangeKind",
    "ChangeNotFoundError",
    "ChangeStateError",
    "ChangeStatus",
    "PendingChange",
    "PendingChangeLedger",
    "find_entry_index",
    # Tool system
    "DuplicateToolError",
    "Tool",
    "ToolCategory",
    "ToolNotFoundError",
    "ToolRegistration",
    "ToolRegistry",
    "ToolSpec",
    "UseCase",
    "list_tools",
    # Dispatch and loop
    "DispatchListener",
    "DispatchResult",
    "ToolDispatcher",
    "CANCELLED_MESSAGE",
    "ChatMessage",
    "DoneEvent",
    "ErrorEvent",
    "MessageEvent",
    "StreamEvent",
    "ThinkingEvent",
    "ToolEndEvent",
    "ToolStartEvent",
    "AgenticLoop",
    "LoopCancelledError",
    "LoopResult",
]
