"""Domain value objects shared by the story, lorebook, and agent layers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

__all__ = [
    "EntryType",
    "InjectionMode",
    "LorebookEntry",
    "Chapter",
    "StoryEntry",
]


class EntryType(str, Enum):
    """Kinds of lorebook entries."""

    CHARACTER = "character"
    LOCATION = "location"
    ITEM = "item"
    FACTION = "faction"
    CONCEPT = "concept"
    EVENT = "event"


class InjectionMode(str, Enum):
    """Controls when an entry is injected into the narrator context."""

    ALWAYS = "always"
    KEYWORD = "keyword"
    RELEVANT = "relevant"
    NEVER = "never"


ENTRY_TYPE_VALUES: tuple[str, ...] = tuple(member.value for member in EntryType)
INJECTION_MODE_VALUES: tuple[str, ...] = tuple(member.value for member in InjectionMode)


@dataclass(slots=True, frozen=True)
class LorebookEntry:
    """Immutable lorebook entry.

    Equality is structural, which is what the pending-change ledger relies on
    when matching a captured snapshot against the current collection.
    """

    name: str
    type: EntryType
    description: str = ""
    keywords: tuple[str, ...] = ()
    injection_mode: InjectionMode = InjectionMode.KEYWORD
    priority: float = 10
    disabled: bool = False
    group: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, EntryType):
            object.__setattr__(self, "type", EntryType(self.type))
        if not isinstance(self.injection_mode, InjectionMode):
            object.__setattr__(self, "injection_mode", InjectionMode(self.injection_mode))
        if not isinstance(self.keywords, tuple):
            object.__setattr__(self, "keywords", tuple(self.keywords))

    @property
    def identity(self) -> tuple[str, EntryType, str | None]:
        """Semantic key used when the exact snapshot no longer matches."""
        return (self.name, self.type, self.group)

    def matches_identity(self, other: LorebookEntry) -> bool:
        return self.identity == other.identity

    def with_updates(self, updates: Mapping[str, Any]) -> LorebookEntry:
        """Return a copy with wire-format ``updates`` applied."""
        if not updates:
            return self
        changes: dict[str, Any] = {}
        for key, value in updates.items():
            attr = _WIRE_TO_ATTR.get(key, key)
            if attr not in _ENTRY_ATTRS:
                continue
            if attr == "keywords":
                value = tuple(value or ())
            changes[attr] = value
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase keys exposed to the model."""
        return {
            "name": self.name,
            "type": self.type.value,
            "description": self.description,
            "keywords": list(self.keywords),
            "injectionMode": self.injection_mode.value,
            "priority": self.priority,
            "disabled": self.disabled,
            "group": self.group,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> LorebookEntry:
        mode = payload.get("injectionMode", payload.get("injection_mode", InjectionMode.KEYWORD.value))
        return cls(
            name=str(payload.get("name", "")),
            type=EntryType(payload.get("type", EntryType.CONCEPT.value)),
            description=str(payload.get("description", "")),
            keywords=tuple(payload.get("keywords") or ()),
            injection_mode=InjectionMode(mode),
            priority=payload.get("priority", 10),
            disabled=bool(payload.get("disabled", False)),
            group=payload.get("group"),
        )


_WIRE_TO_ATTR = {"injectionMode": "injection_mode"}
_ENTRY_ATTRS = frozenset(LorebookEntry.__dataclass_fields__)


@dataclass(slots=True, frozen=True)
class Chapter:
    """Summarized chapter of a story."""

    number: int
    title: str | None = None
    summary: str = ""
    characters: tuple[str, ...] = ()
    locations: tuple[str, ...] = ()
    plot_threads: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "summary": self.summary,
            "characters": list(self.characters),
            "locations": list(self.locations),
            "plotThreads": list(self.plot_threads),
        }


@dataclass(slots=True, frozen=True)
class StoryEntry:
    """A single beat of the running story (user action or narration)."""

    type: str
    content: str
    id: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_user_action(self) -> bool:
        return self.type == "user_action"

