"""Declarative tool catalog for each agent use case.

Pure data: the specs here describe the tools to the model. Behaviour lives in
:mod:`aventura.ai.tools`.
"""

from __future__ import annotations

from ....models import ENTRY_TYPE_VALUES, INJECTION_MODE_VALUES
from .types import ToolCategory, ToolSpec, UseCase

__all__ = [
    "RETRIEVAL_TOOLS",
    "LOREBOOK_TOOLS",
    "ENTRY_FIELDS_SCHEMA",
    "list_tools",
]

_ENTRY_TYPES = list(ENTRY_TYPE_VALUES)
_INJECTION_MODES = list(INJECTION_MODE_VALUES)

# Shape of entry fields a model may supply; checked with jsonschema at dispatch.
ENTRY_FIELDS_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "type": {"type": "string", "enum": _ENTRY_TYPES},
        "description": {"type": "string"},
        "keywords": {"type": "array", "items": {"type": "string"}},
        "injectionMode": {"type": "string", "enum": _INJECTION_MODES},
        "priority": {"type": "number"},
        "disabled": {"type": "boolean"},
        "group": {"type": ["string", "null"]},
    },
}


def _object(properties: dict | None = None, required: list[str] | None = None) -> dict:
    schema: dict = {"type": "object", "properties": properties or {}}
    if required:
        schema["required"] = required
    return schema


_TYPE_FILTER = {
    "type": {
        "type": "string",
        "description": "Optional filter by entry type",
        "enum": _ENTRY_TYPES,
    },
}


# -----------------------------------------------------------------------------
# Retrieval
# -----------------------------------------------------------------------------

LIST_CHAPTERS = ToolSpec(
    name="list_chapters",
    description="List all available chapters with their summaries, characters, and locations",
    parameters=_object(),
)

QUERY_CHAPTER = ToolSpec(
    name="query_chapter",
    description="Ask a specific question about a single chapter to get relevant information",
    parameters=_object(
        {
            "chapter_number": {"type": "number", "description": "The chapter number to query"},
            "question": {
                "type": "string",
                "description": "The specific question to answer about this chapter",
            },
        },
        ["chapter_number", "question"],
    ),
    category=ToolCategory.SEARCH,
)

QUERY_CHAPTERS = ToolSpec(
    name="query_chapters",
    description="Ask a question across a range of chapters for broader information",
    parameters=_object(
        {
            "start_chapter": {"type": "number", "description": "First chapter in the range"},
            "end_chapter": {"type": "number", "description": "Last chapter in the range"},
            "question": {"type": "string", "description": "The question to answer"},
        },
        ["start_chapter", "end_chapter", "question"],
    ),
    category=ToolCategory.SEARCH,
)

LIST_ENTRIES_FOR_RETRIEVAL = ToolSpec(
    name="list_entries",
    description="List lorebook entries for cross-referencing with story context",
    parameters=_object(dict(_TYPE_FILTER)),
)

FINISH_RETRIEVAL = ToolSpec(
    name="finish_retrieval",
    description="Signal that retrieval is complete and provide synthesized context",
    parameters=_object(
        {
            "summary": {
                "type": "string",
                "description": (
                    "Synthesized context from retrieved information that is relevant "
                    "to the current situation"
                ),
            },
        },
        ["summary"],
    ),
    category=ToolCategory.CONTROL,
    terminal=True,
)

RETRIEVAL_TOOLS: tuple[ToolSpec, ...] = (
    LIST_CHAPTERS,
    QUERY_CHAPTER,
    QUERY_CHAPTERS,
    LIST_ENTRIES_FOR_RETRIEVAL,
    FINISH_RETRIEVAL,
)


# -----------------------------------------------------------------------------
# Lorebook editing
# -----------------------------------------------------------------------------

_INDEX = {"type": "number", "description": "The index of the entry (0-based)"}

LIST_ENTRIES = ToolSpec(
    name="list_entries",
    description="List all entries in the lorebook, optionally filtered by type",
    parameters=_object(dict(_TYPE_FILTER)),
)

GET_ENTRY = ToolSpec(
    name="get_entry",
    description="Get full details of a specific entry by index",
    parameters=_object({"index": _INDEX}, ["index"]),
)

CREATE_ENTRY = ToolSpec(
    name="create_entry",
    description="Create a new lorebook entry. Requires user approval before being added.",
    parameters=_object(
        {
            "name": {"type": "string", "description": "Name of the entry"},
            "type": {"type": "string", "description": "Type of entry", "enum": _ENTRY_TYPES},
            "description": {"type": "string", "description": "Description of the entry"},
            "keywords": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Keywords that trigger this entry (optional)",
            },
            "injectionMode": {
                "type": "string",
                "description": "When to inject this entry into context",
                "enum": _INJECTION_MODES,
            },
            "priority": {
                "type": "number",
                "description": "Priority for injection ordering (higher = more important)",
            },
            "group": {"type": "string", "description": "Optional group to organize entries"},
        },
        ["name", "type", "description"],
    ),
    category=ToolCategory.WRITE,
    is_write=True,
)

UPDATE_ENTRY = ToolSpec(
    name="update_entry",
    description=(
        "Update an existing lorebook entry. Requires user approval before changes are applied."
    ),
    parameters=_object(
        {
            "index": {"type": "number", "description": "The index of the entry to update (0-based)"},
            "name": {"type": "string", "description": "New name (optional)"},
            "type": {"type": "string", "description": "New type (optional)", "enum": _ENTRY_TYPES},
            "description": {"type": "string", "description": "New description (optional)"},
            "keywords": {
                "type": "array",
                "items": {"type": "string"},
                "description": "New keywords (optional)",
            },
            "injectionMode": {
                "type": "string",
                "description": "New injection mode (optional)",
                "enum": _INJECTION_MODES,
            },
            "priority": {"type": "number", "description": "New priority (optional)"},
            "disabled": {
                "type": "boolean",
                "description": "Whether the entry is disabled (optional)",
            },
            "group": {"type": "string", "description": "New group (optional, null to remove)"},
        },
        ["index"],
    ),
    category=ToolCategory.WRITE,
    is_write=True,
)

DELETE_ENTRY = ToolSpec(
    name="delete_entry",
    description="Delete an entry from the lorebook. Requires user approval.",
    parameters=_object(
        {"index": {"type": "number", "description": "The index of the entry to delete (0-based)"}},
        ["index"],
    ),
    category=ToolCategory.WRITE,
    is_write=True,
)

MERGE_ENTRIES = ToolSpec(
    name="merge_entries",
    description="Merge multiple entries into one. Requires user approval.",
    parameters=_object(
        {
            "indices": {
                "type": "array",
                "items": {"type": "number"},
                "description": "Indices of entries to merge (0-based)",
            },
            "merged_name": {"type": "string", "description": "Name for the merged entry"},
            "merged_type": {
                "type": "string",
                "description": "Type for the merged entry",
                "enum": _ENTRY_TYPES,
            },
            "merged_description": {
                "type": "string",
                "description": "Description for the merged entry",
            },
            "merged_keywords": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Keywords for the merged entry (optional)",
            },
        },
        ["indices", "merged_name", "merged_type", "merged_description"],
    ),
    category=ToolCategory.WRITE,
    is_write=True,
)

_WIKI = {
    "type": "string",
    "description": 'The wiki name/subdomain (e.g., "harrypotter", "starwars")',
}

SEARCH_FANDOM = ToolSpec(
    name="search_fandom",
    description=(
        "Search for articles on a Fandom wiki. Use this to find characters, locations, items, "
        "or lore from established fictional universes."
    ),
    parameters=_object(
        {
            "wiki": {
                "type": "string",
                "description": (
                    'The wiki name/subdomain (e.g., "harrypotter", "starwars", "lotr", '
                    '"elderscrolls"). This is the part before .fandom.com in the URL.'
                ),
            },
            "query": {
                "type": "string",
                "description": (
                    'The search query (e.g., "Hermione Granger", "Mos Eisley", "Daedric Princes")'
                ),
            },
            "limit": {
                "type": "number",
                "description": "Maximum number of results to return (default: 10, max: 50)",
            },
        },
        ["wiki", "query"],
    ),
    category=ToolCategory.SEARCH,
)

GET_FANDOM_ARTICLE_INFO = ToolSpec(
    name="get_fandom_article_info",
    description=(
        "Get the structure of a Fandom wiki article including its sections and categories. "
        "Use this to understand what information is available before fetching specific sections."
    ),
    parameters=_object(
        {
            "wiki": dict(_WIKI),
            "title": {"type": "string", "description": "The exact article title from search results"},
        },
        ["wiki", "title"],
    ),
    category=ToolCategory.SEARCH,
)

FETCH_FANDOM_SECTION = ToolSpec(
    name="fetch_fandom_section",
    description=(
        "Fetch the content of a specific section from a Fandom wiki article. Use section index "
        '"0" for the introduction/lead section, or use section indices from get_fandom_article_info.'
    ),
    parameters=_object(
        {
            "wiki": dict(_WIKI),
            "title": {"type": "string", "description": "The exact article title"},
            "section_index": {
                "type": "string",
                "description": (
                    'The section index to fetch. Use "0" for the introduction, or indices from '
                    'get_fandom_article_info (e.g., "1", "2", "3").'
                ),
            },
        },
        ["wiki", "title", "section_index"],
    ),
    category=ToolCategory.SEARCH,
)

LOREBOOK_TOOLS: tuple[ToolSpec, ...] = (
    LIST_ENTRIES,
    GET_ENTRY,
    CREATE_ENTRY,
    UPDATE_ENTRY,
    DELETE_ENTRY,
    MERGE_ENTRIES,
    SEARCH_FANDOM,
    GET_FANDOM_ARTICLE_INFO,
    FETCH_FANDOM_SECTION,
)

_CATALOG: dict[UseCase, tuple[ToolSpec, ...]] = {
    UseCase.RETRIEVAL: RETRIEVAL_TOOLS,
    UseCase.LOREBOOK: LOREBOOK_TOOLS,
}


def list_tools(use_case: UseCase | str) -> tuple[ToolSpec, ...]:
    """Return the fixed toolset for ``use_case``."""
    return _CATALOG[UseCase(use_case)]
