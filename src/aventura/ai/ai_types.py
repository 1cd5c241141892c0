"""Shared typing contracts for AI infrastructure."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Protocol, Sequence

from openai.types.chat import ChatCompletionMessageParam

if TYPE_CHECKING:
    from .orchestration.types import ModelResponse

__all__ = [
    "ModelClient",
    "LoopConfig",
    "build_extra_body",
]

_REASONING_EFFORTS = ("minimal", "low", "medium", "high")


class ModelClient(Protocol):
    """Protocol describing a non-streaming, tool-calling chat client."""

    async def generate_with_tools(
        self,
        messages: Sequence[ChatCompletionMessageParam],
        *,
        tools: Sequence[Mapping[str, Any]],
        tool_choice: str = "auto",
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        extra_body: Mapping[str, Any] | None = None,
    ) -> ModelResponse:
        """Send the conversation and toolset; return content and/or tool calls."""
        ...


@dataclass(slots=True)
class LoopConfig:
    """Tunable parameters for one agentic loop run.

    ``max_iterations=None`` means no cap. With ``propagate_model_errors`` set,
    a failed model call is re-raised instead of ending the run as aborted.
    """

    max_iterations: int | None = 10
    propagate_model_errors: bool = False
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    tool_choice: str = "auto"
    extra_body: dict[str, Any] = field(default_factory=dict)
    # A cap reached with this set ends in NEEDS_MORE_STEPS rather than
    # MAX_ITERATIONS_REACHED, so the caller can resume.
    resumable: bool = False

    def clamp(self) -> LoopConfig:
        """Clamp values into safe operating ranges and return ``self``."""

        if self.max_iterations is not None:
            self.max_iterations = max(1, min(int(self.max_iterations), 200))
        if self.temperature is not None:
            self.temperature = max(0.0, min(float(self.temperature), 2.0))
        if self.max_tokens is not None:
            self.max_tokens = max(1, int(self.max_tokens))
        if self.tool_choice not in ("auto", "none", "required"):
            self.tool_choice = "auto"
        return self


def build_extra_body(
    *,
    reasoning_effort: str | None = None,
    provider_only: Sequence[str] | None = None,
    manual_body: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Provider extras for OpenRouter-style endpoints.

    ``manual_body`` is merged last and wins on conflicts.
    """

    body: dict[str, Any] = {}
    effort = (reasoning_effort or "").strip().lower()
    if effort in _REASONING_EFFORTS:
        body["reasoning"] = {"effort": effort}
    providers = [name for name in (provider_only or ()) if name]
    if providers:
        body["provider"] = {"only": list(providers)}
    if manual_body:
        _deep_merge(body, manual_body)
    return body


def _deep_merge(target: dict[str, Any], overrides: Mapping[str, Any]) -> None:
    for key, value in overrides.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            _deep_merge(current, value)
        else:
            target[key] = copy.deepcopy(value)
