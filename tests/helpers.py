"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Mapping, Sequence, Union

from aventura.ai.orchestration.types import ModelResponse, ToolCall
from aventura.models import Chapter, EntryType, LorebookEntry, StoryEntry


def make_call(name: str, arguments: Mapping[str, Any] | str | None = None, *, call_id: str | None = None) -> ToolCall:
    """Build a tool call; mapping arguments are JSON-encoded."""

    if arguments is None:
        raw = "{}"
    elif isinstance(arguments, str):
        raw = arguments
    else:
        raw = json.dumps(arguments)
    return ToolCall(id=call_id or f"call_{name}", name=name, arguments=raw)


def text_response(text: str, *, reasoning: str | None = None) -> ModelResponse:
    return ModelResponse(text=text, finish_reason="stop", reasoning=reasoning)


def tool_response(*calls: ToolCall, text: str | None = None, reasoning: str | None = None) -> ModelResponse:
    return ModelResponse(text=text, tool_calls=calls, finish_reason="tool_calls", reasoning=reasoning)


ScriptStep = Union[ModelResponse, BaseException, Callable[[], Any]]


class ScriptedModelClient:
    """Model client that replays a fixed script and records every request.

    Each step is a ``ModelResponse`` to return, an exception to raise, or a
    zero-argument callable (sync or async) producing either. With
    ``repeat_last`` the final step is replayed forever.
    """

    def __init__(self, script: Sequence[ScriptStep], *, repeat_last: bool = False) -> None:
        self._script = list(script)
        self._repeat_last = repeat_last
        self.calls: list[dict[str, Any]] = []

    async def generate_with_tools(self, messages, **kwargs: Any) -> ModelResponse:
        self.calls.append({"messages": [dict(message) for message in messages], **kwargs})
        index = len(self.calls) - 1
        if index >= len(self._script):
            if not self._repeat_last or not self._script:
                raise AssertionError(f"Model called {len(self.calls)} times; script has {len(self._script)} steps")
            index = len(self._script) - 1
        step = self._script[index]
        if isinstance(step, BaseException):
            raise step
        if callable(step) and not isinstance(step, ModelResponse):
            step = step()
            if asyncio.iscoroutine(step):
                step = await step
        return step


class HangingModelClient:
    """Model client whose calls block until cancelled."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.cancelled = False

    async def generate_with_tools(self, messages, **kwargs: Any) -> ModelResponse:
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        raise AssertionError("unreachable")


def sample_entries() -> list[LorebookEntry]:
    return [
        LorebookEntry(
            name="Aria",
            type=EntryType.CHARACTER,
            description="A wandering bard with a silver lute.",
            keywords=("Aria", "bard"),
            priority=5,
            group="Heroes",
        ),
        LorebookEntry(
            name="Blackmoor",
            type=EntryType.LOCATION,
            description="A fog-bound fen south of the capital.",
            keywords=("Blackmoor", "fen"),
            priority=2,
        ),
        LorebookEntry(
            name="Silver Lute",
            type=EntryType.ITEM,
            description="An heirloom instrument that hums near magic.",
            keywords=("lute",),
            priority=9,
            group="Artifacts",
        ),
    ]


def sample_chapters() -> list[Chapter]:
    return [
        Chapter(
            number=1,
            title="The Fen",
            summary="Aria crosses Blackmoor and meets the ferryman.",
            characters=("Aria", "Ferryman"),
            locations=("Blackmoor",),
            plot_threads=("The missing toll",),
        ),
        Chapter(
            number=2,
            title=None,
            summary="The lute wakes during a storm.",
            characters=("Aria",),
            locations=("Old Mill",),
        ),
        Chapter(
            number=3,
            title="Capital Gates",
            summary="Guards question Aria about the ferryman.",
            characters=("Aria", "Captain Voss"),
            locations=("Capital",),
        ),
    ]


def sample_story() -> list[StoryEntry]:
    return [
        StoryEntry(type="narration", content="Rain hammers the mill roof."),
        StoryEntry(type="user_action", content="I ask the captain about the ferryman."),
    ]
