"""Standardized error types for agent tools.

Tool handlers raise these; the tool base class converts them into the
``{"error": ...}`` payloads the model sees, so a bad call never escapes the
agentic loop as an exception.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes used in tool responses."""

    # Argument errors
    MALFORMED_ARGUMENTS = "malformed_arguments"
    MISSING_PARAMETER = "missing_parameter"
    INVALID_PARAMETER = "invalid_parameter"
    INVALID_INDEX = "invalid_index"

    # Lookup errors
    UNKNOWN_TOOL = "unknown_tool"
    NOT_FOUND = "not_found"

    # Collaborator/runtime errors
    COLLABORATOR_FAILED = "collaborator_failed"
    OPERATION_CANCELLED = "operation_cancelled"
    INTERNAL_ERROR = "internal_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description, surfaced to the model.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the tool-result payload.

        ``error`` carries the message so the model can read it directly.
        """
        result: dict[str, Any] = {
            "error": self.message,
            "code": self.error_code,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Argument Errors
# -----------------------------------------------------------------------------

@dataclass
class MalformedArgumentsError(ToolError):
    """Raised when tool arguments cannot be decoded, even after repair."""

    error_code: str = field(default=ErrorCode.MALFORMED_ARGUMENTS)
    message: str = field(default="Invalid tool call arguments - malformed JSON")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")


@dataclass
class MissingParameterError(ToolError):
    """Raised when a required parameter is absent or empty."""

    error_code: str = field(default=ErrorCode.MISSING_PARAMETER)
    message: str = field(default="A required parameter is missing")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    parameter: str | None = field(default=None)

    def __post_init__(self) -> None:
        if self.parameter and "parameter" not in self.details:
            self.details["parameter"] = self.parameter
        super().__post_init__()


@dataclass
class InvalidParameterError(ToolError):
    """Raised when a parameter has the wrong type or an unsupported value."""

    error_code: str = field(default=ErrorCode.INVALID_PARAMETER)
    message: str = field(default="Invalid parameter value")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    parameter: str | None = field(default=None)


@dataclass
class InvalidIndexError(ToolError):
    """Raised for non-integer or out-of-range entry indices."""

    error_code: str = field(default=ErrorCode.INVALID_INDEX)
    message: str = field(default="Invalid index")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Call list_entries to see the valid indices")

    @classmethod
    def not_integer(cls, formatted: str) -> InvalidIndexError:
        return cls(message=f"Invalid index {formatted}. Expected an integer.")

    @classmethod
    def out_of_range(cls, index: int, length: int) -> InvalidIndexError:
        return cls(
            message=f"Invalid index {index}. Valid range: 0-{length - 1}",
            details={"index": index, "valid_range": [0, length - 1]},
        )


# -----------------------------------------------------------------------------
# Lookup Errors
# -----------------------------------------------------------------------------

@dataclass
class UnknownToolError(ToolError):
    """Raised when the model calls a tool outside the active registry."""

    error_code: str = field(default=ErrorCode.UNKNOWN_TOOL)
    message: str = field(default="Unknown tool")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    @classmethod
    def for_name(cls, name: str) -> UnknownToolError:
        return cls(message=f"Unknown tool: {name}")


@dataclass
class NotFoundError(ToolError):
    """Raised when a referenced chapter or record does not exist."""

    error_code: str = field(default=ErrorCode.NOT_FOUND)
    message: str = field(default="Not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")


# -----------------------------------------------------------------------------
# Collaborator Errors
# -----------------------------------------------------------------------------

@dataclass
class CollaboratorError(ToolError):
    """Raised when an external lookup (wiki search/fetch) fails."""

    error_code: str = field(default=ErrorCode.COLLABORATOR_FAILED)
    message: str = field(default="External lookup failed")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    @classmethod
    def from_exception(cls, exc: BaseException, fallback: str) -> CollaboratorError:
        return cls(message=str(exc) or fallback)
