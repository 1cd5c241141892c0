"""AI client, agents, and tool wiring."""

# Orchestration first: the tool handlers it pulls in import its submodules.
from . import orchestration
from .ai_types import LoopConfig, ModelClient, build_extra_body
from .client import AIClient, ClientSettings, ProviderError

__all__ = [
    "orchestration",
    "AIClient",
    "ClientSettings",
    "ProviderError",
    "LoopConfig",
    "ModelClient",
    "build_extra_body",
]
