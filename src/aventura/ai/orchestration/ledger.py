"""Pending-change ledger for lorebook edits proposed by the agent.

Mutating tools never touch the authoritative entry collection. They record a
:class:`PendingChange` here; the caller approves or rejects it, and only then
calls :meth:`PendingChangeLedger.apply` against whatever the collection looks
like at that moment. Because the collection may have drifted in between,
targets are re-resolved by :func:`find_entry_index`.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping, Sequence

from ...models import LorebookEntry

__all__ = [
    "ChangeKind",
    "ChangeStatus",
    "PendingChange",
    "PendingChangeLedger",
    "ChangeNotFoundError",
    "ChangeStateError",
    "find_entry_index",
]

LOGGER = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MERGE = "merge"


class ChangeStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ChangeNotFoundError(KeyError):
    """Raised when a change id is not in the ledger."""


class ChangeStateError(RuntimeError):
    """Raised when a change is approved or rejected after it was decided."""


@dataclass(slots=True)
class PendingChange:
    """A proposed lorebook mutation awaiting a human decision.

    Attributes:
        kind: What the change does.
        tool_call_id: Id of the tool call that proposed it.
        entry: New entry for create/merge; updated preview for update.
        index: Target index at proposal time (update/delete).
        indices: Source indices at proposal time (merge).
        updates: Partial wire-format mapping (update).
        previous: Full snapshot of the target (update/delete).
        previous_entries: Snapshots of the merge sources.
        status: Decision state; ``approved`` and ``rejected`` are final.
        reason: Optional reason given with the decision.
    """

    kind: ChangeKind
    tool_call_id: str
    entry: LorebookEntry | None = None
    index: int | None = None
    indices: tuple[int, ...] = ()
    updates: Mapping[str, Any] = field(default_factory=dict)
    previous: LorebookEntry | None = None
    previous_entries: tuple[LorebookEntry, ...] = ()
    status: ChangeStatus = ChangeStatus.PENDING
    reason: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_pending(self) -> bool:
        return self.status is ChangeStatus.PENDING

    @property
    def target_name(self) -> str:
        if self.kind in (ChangeKind.UPDATE, ChangeKind.DELETE) and self.previous is not None:
            return self.previous.name
        return self.entry.name if self.entry is not None else ""

    def describe(self) -> str:
        """Short past-tense description used in approval notes."""
        name = self.target_name
        if self.kind is ChangeKind.CREATE:
            return f'Created entry "{name}"'
        if self.kind is ChangeKind.UPDATE:
            return f'Updated entry "{name}"'
        if self.kind is ChangeKind.DELETE:
            return f'Deleted entry "{name}"'
        return f'Merged {len(self.previous_entries)} entries into "{name}"'

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "toolCallId": self.tool_call_id,
            "status": self.status.value,
        }
        if self.entry is not None:
            payload["entry"] = self.entry.to_dict()
        if self.index is not None:
            payload["index"] = self.index
        if self.indices:
            payload["indices"] = list(self.indices)
        if self.updates:
            payload["updates"] = dict(self.updates)
        if self.previous is not None:
            payload["previous"] = self.previous.to_dict()
        if self.previous_entries:
            payload["previousEntries"] = [item.to_dict() for item in self.previous_entries]
        return payload


def find_entry_index(
    entries: Sequence[LorebookEntry],
    snapshot: LorebookEntry,
    original_index: int | None = None,
) -> int | None:
    """Locate ``snapshot`` in ``entries`` after possible drift.

    Exact structural equality is tried first. Failing that, entries with the
    same identity ``(name, type, group)`` qualify: the original slot wins
    when it is one of them, otherwise the first one does.
    """

    for position, candidate in enumerate(entries):
        if candidate == snapshot:
            return position
    if original_index is not None and 0 <= original_index < len(entries):
        if entries[original_index].matches_identity(snapshot):
            return original_index
    for position, candidate in enumerate(entries):
        if candidate.matches_identity(snapshot):
            return position
    return None


class PendingChangeLedger:
    """Ordered store of proposed changes and their decisions."""

    def __init__(self) -> None:
        self._changes: dict[str, PendingChange] = {}

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def record(self, change: PendingChange) -> PendingChange:
        self._changes[change.id] = change
        LOGGER.debug("Recorded %s change %s for %s", change.kind.value, change.id, change.target_name)
        return change

    def get(self, change_id: str) -> PendingChange:
        try:
            return self._changes[change_id]
        except KeyError:
            raise ChangeNotFoundError(change_id) from None

    def pending(self) -> tuple[PendingChange, ...]:
        return tuple(change for change in self._changes.values() if change.is_pending)

    def approve(self, change_id: str, reason: str | None = None) -> PendingChange:
        return self._decide(change_id, ChangeStatus.APPROVED, reason)

    def reject(self, change_id: str, reason: str | None = None) -> PendingChange:
        return self._decide(change_id, ChangeStatus.REJECTED, reason)

    def clear(self) -> None:
        self._changes.clear()

    def __iter__(self) -> Iterator[PendingChange]:
        return iter(tuple(self._changes.values()))

    def __len__(self) -> int:
        return len(self._changes)

    def __contains__(self, change_id: object) -> bool:
        return change_id in self._changes

    def _decide(self, change_id: str, status: ChangeStatus, reason: str | None) -> PendingChange:
        change = self.get(change_id)
        if not change.is_pending:
            raise ChangeStateError(f"Change {change_id} is already {change.status.value}")
        change.status = status
        change.reason = reason
        return change

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def apply(self, change: PendingChange, entries: Sequence[LorebookEntry]) -> list[LorebookEntry]:
        """Return a new entry list with ``change`` applied to ``entries``.

        ``entries`` is never mutated. Rejected changes and changes whose target
        can no longer be found leave the list as it was.
        """

        result = list(entries)
        if change.status is ChangeStatus.REJECTED:
            LOGGER.info("Skipping rejected change %s", change.id)
            return result

        if change.kind is ChangeKind.CREATE:
            if change.entry is not None:
                result.append(change.entry)
            return result

        if change.kind is ChangeKind.MERGE:
            return self._apply_merge(change, result)

        if change.previous is None:
            LOGGER.info("Change %s carries no snapshot; nothing to apply", change.id)
            return result
        position = find_entry_index(result, change.previous, change.index)
        if position is None:
            LOGGER.info(
                "Entry %r for %s change %s no longer exists; skipping",
                change.previous.name,
                change.kind.value,
                change.id,
            )
            return result

        if change.kind is ChangeKind.UPDATE:
            result[position] = result[position].with_updates(change.updates)
        else:
            del result[position]
        return result

    def _apply_merge(self, change: PendingChange, result: list[LorebookEntry]) -> list[LorebookEntry]:
        resolved: set[int] = set()
        for offset, source in enumerate(change.previous_entries):
            fallback = change.indices[offset] if offset < len(change.indices) else None
            position = find_entry_index(result, source, fallback)
            if position is None:
                LOGGER.info("Merge source %r for change %s not found", source.name, change.id)
                continue
            resolved.add(position)
        for position in sorted(resolved, reverse=True):
            del result[position]
        if change.entry is not None:
            result.append(change.entry)
        return result

