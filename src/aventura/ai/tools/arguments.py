"""Typed coercion helpers for tool arguments decoded from model output.

Models send indices as ``3``, ``3.0`` or ``"3"`` and occasionally as garbage.
These helpers accept the harmless variants and raise :mod:`.errors` types for
everything else, so handlers can assume well-typed values.
"""

from __future__ import annotations

import json
import math
from typing import Any, Mapping

from jsonschema import Draft7Validator, ValidationError

from ..orchestration.tools.catalog import ENTRY_FIELDS_SCHEMA
from .errors import InvalidIndexError, InvalidParameterError, MissingParameterError

__all__ = [
    "format_arg",
    "coerce_index",
    "coerce_indices",
    "check_index",
    "coerce_number",
    "require_string",
    "optional_string",
    "validate_entry_fields",
]

_ENTRY_FIELDS_VALIDATOR = Draft7Validator(ENTRY_FIELDS_SCHEMA)


def format_arg(value: Any) -> str:
    """Render an argument the way it appeared in the model's JSON."""
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = float(text)
        except ValueError:
            return None
        if math.isfinite(parsed) and parsed.is_integer():
            return int(parsed)
    return None


def coerce_index(value: Any) -> int:
    """Coerce a single entry index; range is checked separately."""
    index = _as_int(value)
    if index is None:
        raise InvalidIndexError.not_integer(format_arg(value))
    return index


def coerce_indices(value: Any) -> list[int]:
    """Coerce a list of indices, preserving order."""
    if not isinstance(value, (list, tuple)):
        raise InvalidIndexError(
            message=f"Invalid indices {format_arg(value)}. Expected an array of integers."
        )
    indices: list[int] = []
    for item in value:
        index = _as_int(item)
        if index is None:
            raise InvalidIndexError(
                message=f"Invalid indices {format_arg(value)}. Expected an array of integers."
            )
        indices.append(index)
    return indices


def check_index(index: int, length: int) -> int:
    if index < 0 or index >= length:
        raise InvalidIndexError.out_of_range(index, length)
    return index


def coerce_number(params: Mapping[str, Any], name: str) -> float | int:
    """Return a required numeric parameter, accepting numeric strings."""
    if name not in params or params[name] is None:
        raise MissingParameterError(message=f"Missing required parameter: {name}", parameter=name)
    value = params[name]
    if isinstance(value, bool):
        raise InvalidParameterError(message=f"{name} must be a number", parameter=name)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            parsed = math.nan
        if math.isfinite(parsed):
            return int(parsed) if parsed.is_integer() else parsed
    raise InvalidParameterError(
        message=f"{name} must be a number, got {format_arg(value)}",
        parameter=name,
    )


def require_string(params: Mapping[str, Any], name: str, message: str | None = None) -> str:
    value = params.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingParameterError(
            message=message or f"Missing required parameter: {name}",
            parameter=name,
        )
    if not isinstance(value, str):
        # Tolerate numbers where a string id is expected ("0" vs 0).
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return format_arg(value)
        raise InvalidParameterError(message=f"{name} must be a string", parameter=name)
    return value


def optional_string(params: Mapping[str, Any], name: str) -> str | None:
    value = params.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidParameterError(message=f"{name} must be a string", parameter=name)
    return value


def validate_entry_fields(fields: Mapping[str, Any]) -> None:
    """Check model-supplied entry fields (wire keys) against the entry schema."""
    try:
        _ENTRY_FIELDS_VALIDATOR.validate(dict(fields))
    except ValidationError as error:
        raise InvalidParameterError(
            message=_format_validation_error(error),
            parameter=".".join(str(part) for part in error.path) or None,
        ) from None


def _format_validation_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message
