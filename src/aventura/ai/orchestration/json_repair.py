"""Best-effort repair for JSON emitted by models as tool-call arguments.

Models regularly truncate or decorate their argument payloads: a dangling
comma before a closing brace, a string cut off mid-sentence, a missing ``}``
at the end of a long description, or the whole thing wrapped in a Markdown
code fence. :func:`repair_json` fixes those cases and nothing more; anything
it cannot turn into valid JSON is reported as ``None``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping

__all__ = [
    "repair_json",
    "try_parse_json_object",
    "decode_tool_arguments",
]

LOGGER = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(?P<body>.*?)\s*(?:```)?$", re.IGNORECASE | re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


def repair_json(text: str) -> str | None:
    """Return a parseable version of ``text``, or ``None`` when unrecoverable.

    Already-valid JSON is returned unchanged.
    """
    if not isinstance(text, str):
        return None
    if _is_valid(text):
        return text

    candidate = _strip_code_fence(text.strip())
    candidate = _slice_from_first_container(candidate)
    if not candidate:
        return None
    if _is_valid(candidate):
        return candidate

    repaired = _balance(candidate)
    if _is_valid(repaired):
        return repaired
    return None


def try_parse_json_object(text: str) -> dict[str, Any] | None:
    """Parse ``text`` as a JSON object, repairing it when needed."""
    repaired = repair_json(text)
    if repaired is None:
        return None
    try:
        result = json.loads(repaired)
    except json.JSONDecodeError:
        return None
    if isinstance(result, dict):
        return result
    return None


def decode_tool_arguments(raw: str | Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Decode raw tool-call arguments into a dict.

    Empty input decodes to ``{}`` because tools without parameters are often
    called with an empty string. Returns ``None`` for anything that is not,
    and cannot be repaired into, a JSON object.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if not raw.strip():
        return {}
    parsed = try_parse_json_object(raw)
    if parsed is None:
        LOGGER.debug("Unable to decode tool arguments: %r", raw[:200])
    return parsed


# -----------------------------------------------------------------------------
# Internals
# -----------------------------------------------------------------------------


def _is_valid(text: str) -> bool:
    try:
        json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return False
    return True


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    match = _CODE_FENCE_RE.match(text)
    return match.group("body") if match else text


def _slice_from_first_container(text: str) -> str:
    positions = [pos for pos in (text.find("{"), text.find("[")) if pos >= 0]
    if not positions:
        return text
    return text[min(positions):]


def _balance(text: str) -> str:
    """Close unterminated strings and containers and drop trailing commas."""
    out: list[str] = []
    stack: list[str] = []
    in_string = False
    escaped = False

    for char in text:
        if in_string:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
            out.append(char)
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
            out.append(char)
        elif char in ("}", "]"):
            if char not in stack:
                # Stray closer with nothing to close.
                continue
            while stack:
                expected = stack.pop()
                _drop_trailing_separator(out)
                out.append(expected)
                if expected == char:
                    break
        else:
            out.append(char)

    if in_string:
        if escaped:
            out.pop()
        out.append('"')
    _drop_trailing_separator(out)
    if out and out[-1] == ":":
        out.append("null")
    while stack:
        _drop_trailing_separator(out)
        out.append(stack.pop())
    return "".join(out)


def _drop_trailing_separator(out: list[str]) -> None:
    while out and out[-1].isspace():
        out.pop()
    if out and out[-1] == ",":
        out.pop()
        while out and out[-1].isspace():
            out.pop()
