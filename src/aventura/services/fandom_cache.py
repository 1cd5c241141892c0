"""In-memory cache for Fandom wiki lookups.

One instance is shared by every lorebook session in the process, so all
access goes through an ``RLock``.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Dict, Hashable, MutableMapping

__all__ = ["FandomCache"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _CacheEntry:
    wiki: str
    key: Hashable
    value: Any
    created_at: float


class FandomCache:
    """TTL + capacity bounded cache keyed by ``(wiki, operation, *args)``."""

    def __init__(
        self,
        *,
        max_entries: int = 256,
        ttl_seconds: float | None = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_entries = max(1, int(max_entries))
        self._ttl_seconds = None if ttl_seconds is None else max(0.0, float(ttl_seconds))
        self._clock = clock
        self._entries: Dict[Hashable, _CacheEntry] = {}
        self._wiki_index: MutableMapping[str, set[Hashable]] = {}
        self._lock = RLock()

    @staticmethod
    def make_key(wiki: str, operation: str, *args: Any) -> tuple[Any, ...]:
        return (wiki.lower(), operation, *args)

    def get(self, key: tuple[Any, ...]) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._ttl_seconds and now - entry.created_at >= self._ttl_seconds:
                self._evict_locked(key)
                LOGGER.debug("Fandom cache entry expired: %s", key)
                return None
            return copy.deepcopy(entry.value)

    def store(self, key: tuple[Any, ...], value: Any) -> None:
        wiki = str(key[0]) if key else ""
        entry = _CacheEntry(wiki=wiki, key=key, value=copy.deepcopy(value), created_at=self._clock())
        with self._lock:
            self._purge_expired_locked()
            self._entries[key] = entry
            self._wiki_index.setdefault(wiki, set()).add(key)
            self._enforce_capacity_locked()

    def clear(self, *, wiki: str | None = None) -> None:
        with self._lock:
            if wiki is None:
                self._entries.clear()
                self._wiki_index.clear()
                return
            for key in self._wiki_index.pop(wiki.lower(), set()):
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired_locked(self) -> None:
        if not self._ttl_seconds:
            return
        now = self._clock()
        stale_keys = [key for key, entry in self._entries.items() if now - entry.created_at >= self._ttl_seconds]
        for key in stale_keys:
            self._evict_locked(key)

    def _enforce_capacity_locked(self) -> None:
        if len(self._entries) <= self._max_entries:
            return
        surplus = len(self._entries) - self._max_entries
        order = sorted(self._entries.values(), key=lambda entry: entry.created_at)
        for entry in order:
            if surplus <= 0:
                break
            self._evict_locked(entry.key)
            surplus -= 1

    def _evict_locked(self, key: Hashable) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        wiki_keys = self._wiki_index.get(entry.wiki)
        if wiki_keys is not None:
            wiki_keys.discard(key)
            if not wiki_keys:
                self._wiki_index.pop(entry.wiki, None)
