"""Wire services from :class:`~aventura.services.settings.Settings`."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping, Optional

from .ai.client import AIClient, ClientSettings
from .ai.services.lorebook import InteractiveLorebookService
from .ai.services.retrieval import AgenticRetrievalService
from .services.fandom import FandomService
from .services.fandom_cache import FandomCache
from .services.settings import Settings, SettingsStore
from .utils import logging as logging_utils

__all__ = [
    "configure_logging",
    "load_settings",
    "build_client",
    "build_fandom_service",
    "build_retrieval_service",
    "build_lorebook_service",
]

_LOGGER = logging.getLogger(__name__)


def configure_logging(debug: bool = False, *, force: bool = False) -> Path:
    """Configure logging for an embedding application."""

    level = logging.DEBUG if debug else logging.INFO
    log_path = logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    return log_path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def build_client(settings: Settings, *, debug_logging: bool = False) -> AIClient:
    client_settings = ClientSettings(
        base_url=settings.base_url,
        api_key=settings.api_key,
        model=settings.model,
        organization=settings.organization,
        request_timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
        default_headers=settings.default_headers,
        metadata=settings.metadata,
        debug_logging=debug_logging or settings.debug_logging,
    )
    return AIClient(client_settings)


def build_fandom_service(settings: Settings, *, cache: FandomCache | None = None) -> FandomService:
    fandom = settings.fandom
    if cache is None:
        cache = FandomCache(
            max_entries=fandom.cache_max_entries,
            ttl_seconds=fandom.cache_ttl_seconds,
        )
    return FandomService(
        cache=cache,
        base_url_template=fandom.base_url_template,
        request_timeout=fandom.request_timeout,
    )


def build_retrieval_service(
    settings: Settings,
    *,
    client: AIClient | None = None,
) -> AgenticRetrievalService:
    """Retrieval agent using ``settings.retrieval``."""

    if client is None:
        client = build_client(settings)
    return AgenticRetrievalService(client, settings.retrieval)


def build_lorebook_service(
    settings: Settings,
    *,
    client: AIClient | None = None,
    fandom: FandomService | None = None,
) -> InteractiveLorebookService:
    """Lorebook agent with wiki tools backed by a cached :class:`FandomService`."""

    lorebook = settings.lorebook
    if lorebook.model is None:
        lorebook = replace(lorebook, model=settings.model)
    if client is None:
        client = build_client(settings)
    if fandom is None:
        fandom = build_fandom_service(settings)
    return InteractiveLorebookService(client, lorebook, knowledge=fandom)

