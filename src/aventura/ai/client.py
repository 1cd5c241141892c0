"""Async AI client wrapper built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence, cast

import httpx
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI, RateLimitError
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .orchestration.types import ModelResponse, ToolCall

LOGGER = logging.getLogger(__name__)

__all__ = ["AIClient", "ClientSettings", "ProviderError"]


class ProviderError(RuntimeError):
    """Raised when the model provider fails or returns an unusable response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ProviderError":
        status = getattr(exc, "status_code", None)
        message = str(exc) or exc.__class__.__name__
        return cls(f"Model request failed: {message}", status_code=status)


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False


class AIClient:
    """Async client issuing non-streaming tool-calling completions with retries."""

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def generate_with_tools(
        self,
        messages: Sequence[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        tools: Sequence[Mapping[str, Any]],
        tool_choice: str = "auto",
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        extra_body: Mapping[str, Any] | None = None,
    ) -> ModelResponse:
        """Send ``messages`` with ``tools`` and return the normalized response.

        Raises:
            ProviderError: When the request fails after retries or the
                provider returns no choices.
        """

        payload = self._build_chat_payload(
            messages=self._copy_messages(messages),
            tools=tools,
            tool_choice=tool_choice,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            extra_body=extra_body,
        )
        LOGGER.debug(
            "Starting chat completion via %s with %s message(s) and %s tool(s)",
            payload["model"],
            len(payload["messages"]),
            len(payload.get("tools", ())),
        )
        if self._settings.debug_logging:
            self._dump_payload(payload)

        try:
            completion = None
            async for attempt in self._retrying():
                with attempt:
                    completion = await self._client.chat.completions.create(**payload)
        except (APIError, httpx.HTTPError) as exc:
            raise ProviderError.from_exception(exc) from exc

        return self._parse_completion(completion)

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
            max_retries=0,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    APIStatusError,
                    APIConnectionError,
                    RateLimitError,
                    httpx.TimeoutException,
                )
            ),
        )

    @staticmethod
    def _copy_messages(
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
    ) -> List[ChatCompletionMessageParam]:
        copied: List[ChatCompletionMessageParam] = []
        for message in messages:
            if not isinstance(message, Mapping):
                raise TypeError(f"Expected a mapping message, got {type(message).__name__}")
            copied.append(cast(ChatCompletionMessageParam, dict(message)))
        if not copied:
            raise ValueError("Cannot request a completion without messages")
        return copied

    def _build_chat_payload(
        self,
        *,
        messages: Sequence[ChatCompletionMessageParam],
        tools: Sequence[Mapping[str, Any]] | None,
        tool_choice: str | None,
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
        extra_body: Mapping[str, Any] | None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model or self._settings.model,
            "messages": list(messages),
        }

        if self._settings.metadata:
            payload["metadata"] = dict(self._settings.metadata)
        if tools:
            payload["tools"] = [dict(tool) for tool in tools]
            if tool_choice:
                payload["tool_choice"] = tool_choice
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if extra_body:
            payload["extra_body"] = dict(extra_body)

        return payload

    def _parse_completion(self, completion: Any) -> ModelResponse:
        choices = getattr(completion, "choices", None) or []
        if not choices:
            raise ProviderError("No response from model")
        choice = choices[0]
        message = getattr(choice, "message", None)
        if message is None:
            raise ProviderError("No response from model")

        tool_calls = _normalize_tool_calls(getattr(message, "tool_calls", None) or [])
        usage = getattr(completion, "usage", None)
        details = getattr(usage, "completion_tokens_details", None)

        return ModelResponse(
            text=getattr(message, "content", None),
            tool_calls=tool_calls,
            finish_reason=getattr(choice, "finish_reason", None),
            reasoning=_extract_reasoning(message),
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
            reasoning_tokens=int(getattr(details, "reasoning_tokens", 0) or 0),
            model=getattr(completion, "model", None),
        )

    def _dump_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            LOGGER.debug("Chat request body:\n%s", json.dumps(payload, ensure_ascii=False, indent=2))
        except (TypeError, ValueError):
            LOGGER.debug("Chat request body (not JSON serializable): %r", payload)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def _normalize_tool_calls(raw_calls: Sequence[Any]) -> list[ToolCall]:
    """Convert SDK tool calls; :class:`ModelResponse` repairs missing or repeated ids."""

    calls: list[ToolCall] = []
    for raw in raw_calls:
        function = getattr(raw, "function", None)
        name = getattr(function, "name", None) or ""
        arguments = getattr(function, "arguments", None) or ""
        call_id = getattr(raw, "id", None) or ""
        calls.append(ToolCall(id=call_id, name=name, arguments=arguments))
    return calls


def _extract_reasoning(message: Any) -> str | None:
    """Provider reasoning lives outside the OpenAI schema (``model_extra``)."""

    for attr in ("reasoning", "reasoning_content"):
        value = getattr(message, attr, None)
        if isinstance(value, str) and value:
            return value
    extra = getattr(message, "model_extra", None)
    if isinstance(extra, Mapping):
        for key in ("reasoning", "reasoning_content"):
            value = extra.get(key)
            if isinstance(value, str) and value:
                return value
    return None
