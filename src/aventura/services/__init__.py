"""Non-AI services: settings persistence and wiki lookups."""

from .fandom import (
    ArticleInfo,
    FandomError,
    FandomService,
    KnowledgeLookup,
    SearchResult,
    Section,
    SectionContent,
)
from .fandom_cache import FandomCache
from .settings import (
    FandomSettings,
    LorebookAgentSettings,
    RetrievalSettings,
    SecretVault,
    Settings,
    SettingsStore,
    redact_secret,
)

__all__ = [
    "ArticleInfo",
    "FandomError",
    "FandomService",
    "KnowledgeLookup",
    "SearchResult",
    "Section",
    "SectionContent",
    "FandomCache",
    "FandomSettings",
    "LorebookAgentSettings",
    "RetrievalSettings",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "redact_secret",
]
