"""Use-case services built on the agentic loop."""

from .retrieval import AgenticRetrievalService, RetrievalContext, RetrievalResult
from .lorebook import (
    InteractiveLorebookService,
    SendMessageResult,
    ServiceNotInitializedError,
)

__all__ = [
    "AgenticRetrievalService",
    "RetrievalContext",
    "RetrievalResult",
    "InteractiveLorebookService",
    "SendMessageResult",
    "ServiceNotInitializedError",
]
