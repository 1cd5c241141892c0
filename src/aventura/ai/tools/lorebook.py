"""Tools used by the interactive lorebook agent.

Read tools inspect the entry snapshot. Write tools only propose changes;
each returns ``status: "pending_approval"`` and a :class:`PendingChange`
that the user must approve before it lands.
"""

from __future__ import annotations

from typing import Any

from ...models import EntryType, InjectionMode, LorebookEntry
from ..orchestration.ledger import ChangeKind, PendingChange
from ..orchestration.tools.catalog import (
    CREATE_ENTRY,
    DELETE_ENTRY,
    GET_ENTRY,
    LIST_ENTRIES,
    MERGE_ENTRIES,
    UPDATE_ENTRY,
)
from .arguments import (
    check_index,
    coerce_index,
    coerce_indices,
    optional_string,
    require_string,
    validate_entry_fields,
)
from .base import BaseTool, MutatingTool, Proposal, ReadOnlyTool, ToolContext
from .errors import InvalidParameterError, MissingParameterError

__all__ = [
    "ListEntriesTool",
    "GetEntryTool",
    "CreateEntryTool",
    "UpdateEntryTool",
    "DeleteEntryTool",
    "MergeEntriesTool",
    "build_lorebook_tools",
]

PENDING_APPROVAL = "pending_approval"

# Wire keys update_entry may change.
_UPDATABLE_FIELDS = (
    "name",
    "type",
    "description",
    "keywords",
    "injectionMode",
    "priority",
    "disabled",
    "group",
)


def _target(context: ToolContext, params: dict[str, Any]) -> tuple[int, LorebookEntry]:
    index = check_index(coerce_index(params.get("index")), len(context.entries))
    return index, context.entries[index]


class ListEntriesTool(ReadOnlyTool):
    spec = LIST_ENTRIES

    def read(self, context: ToolContext, params: dict[str, Any]) -> list[dict[str, Any]]:
        type_filter = optional_string(params, "type")
        return [
            {
                "index": index,
                "name": entry.name,
                "type": entry.type.value,
                "keywords": list(entry.keywords),
                "disabled": entry.disabled,
            }
            for index, entry in enumerate(context.entries)
            if not type_filter or entry.type.value == type_filter
        ]


class GetEntryTool(ReadOnlyTool):
    spec = GET_ENTRY

    def read(self, context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
        _, entry = _target(context, params)
        return entry.to_dict()


class CreateEntryTool(MutatingTool):
    spec = CREATE_ENTRY

    def propose(self, context: ToolContext, params: dict[str, Any]) -> Proposal:
        name = require_string(params, "name")
        entry_type = require_string(params, "type")
        if "description" not in params or params["description"] is None:
            raise MissingParameterError(
                message="Missing required parameter: description",
                parameter="description",
            )
        fields = {
            "name": name,
            "type": entry_type,
            "description": params["description"],
            "keywords": params.get("keywords") if params.get("keywords") is not None else [],
            "injectionMode": params.get("injectionMode") or InjectionMode.KEYWORD.value,
            "priority": params.get("priority") if params.get("priority") is not None else 10,
            "group": params.get("group"),
        }
        validate_entry_fields(fields)

        entry = LorebookEntry.from_dict({**fields, "disabled": False})
        change = PendingChange(kind=ChangeKind.CREATE, tool_call_id=context.call_id, entry=entry)
        return Proposal(
            change=change,
            data={
                "status": PENDING_APPROVAL,
                "message": f'Creating entry "{entry.name}" requires user approval.',
                "entry": entry.to_dict(),
            },
        )


class UpdateEntryTool(MutatingTool):
    spec = UPDATE_ENTRY

    def propose(self, context: ToolContext, params: dict[str, Any]) -> Proposal:
        index, previous = _target(context, params)
        updates = {key: params[key] for key in _UPDATABLE_FIELDS if key in params}
        # "group": null clears the group; every other null means "unchanged".
        updates = {
            key: value for key, value in updates.items() if value is not None or key == "group"
        }
        validate_entry_fields(updates)

        change = PendingChange(
            kind=ChangeKind.UPDATE,
            tool_call_id=context.call_id,
            entry=previous.with_updates(updates),
            index=index,
            updates=updates,
            previous=previous,
        )
        return Proposal(
            change=change,
            data={
                "status": PENDING_APPROVAL,
                "message": f'Updating entry "{previous.name}" requires user approval.',
                "updates": updates,
            },
        )


class DeleteEntryTool(MutatingTool):
    spec = DELETE_ENTRY

    def propose(self, context: ToolContext, params: dict[str, Any]) -> Proposal:
        index, entry = _target(context, params)
        change = PendingChange(
            kind=ChangeKind.DELETE,
            tool_call_id=context.call_id,
            index=index,
            previous=entry,
        )
        return Proposal(
            change=change,
            data={
                "status": PENDING_APPROVAL,
                "message": f'Deleting entry "{entry.name}" requires user approval.',
                "entry": entry.name,
            },
        )


class MergeEntriesTool(MutatingTool):
    """Propose merging two or more distinct entries into a new one.

    The merged entry takes the highest source priority and the first
    source's group; injection mode resets to ``keyword``.
    """

    spec = MERGE_ENTRIES

    def propose(self, context: ToolContext, params: dict[str, Any]) -> Proposal:
        indices = list(dict.fromkeys(coerce_indices(params.get("indices"))))
        for index in indices:
            check_index(index, len(context.entries))
        if len(indices) < 2:
            raise InvalidParameterError(message="Need at least 2 entries to merge", parameter="indices")

        fields = {
            "name": require_string(params, "merged_name"),
            "type": require_string(params, "merged_type"),
            "description": require_string(params, "merged_description"),
            "keywords": params.get("merged_keywords")
            if params.get("merged_keywords") is not None
            else [],
        }
        validate_entry_fields(fields)

        sources = tuple(context.entries[index] for index in indices)
        merged = LorebookEntry(
            name=fields["name"],
            type=EntryType(fields["type"]),
            description=fields["description"],
            keywords=tuple(fields["keywords"]),
            injection_mode=InjectionMode.KEYWORD,
            priority=max(source.priority for source in sources),
            disabled=False,
            group=sources[0].group,
        )
        change = PendingChange(
            kind=ChangeKind.MERGE,
            tool_call_id=context.call_id,
            entry=merged,
            indices=tuple(indices),
            previous_entries=sources,
        )
        return Proposal(
            change=change,
            data={
                "status": PENDING_APPROVAL,
                "message": f'Merging {len(indices)} entries into "{merged.name}" requires user approval.',
                "mergedEntry": merged.to_dict(),
                "sourceEntries": [source.name for source in sources],
            },
        )


def build_lorebook_tools() -> list[BaseTool]:
    """Entry tools for the lorebook agent; wiki tools are added separately."""
    return [
        ListEntriesTool(),
        GetEntryTool(),
        CreateEntryTool(),
        UpdateEntryTool(),
        DeleteEntryTool(),
        MergeEntriesTool(),
    ]
