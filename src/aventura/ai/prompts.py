"""Prompt templates for the retrieval and lorebook agents."""

from __future__ import annotations

from typing import Sequence

from ..models import Chapter, LorebookEntry, StoryEntry

RECENT_ENTRY_LIMIT = 5
RECENT_ENTRY_CHARS = 300
ENTRY_INDEX_LIMIT = 20

DEFAULT_AGENTIC_RETRIEVAL_PROMPT = """You are a context retrieval agent for an interactive story. Your job is to gather relevant past context that will help the narrator respond to the current situation.

Guidelines:
1. Start by reviewing the chapter list to understand the story structure
2. Query specific chapters that seem relevant to the current user input
3. Focus on gathering context about:
   - Characters mentioned or involved
   - Locations being revisited
   - Plot threads being referenced
   - Items or information from the past
   - Relationship history
4. Be selective - only gather truly relevant information
5. When you have enough context, call finish_retrieval with a synthesized summary

The context you provide will be injected into the narrator's prompt to help maintain story consistency."""


def interactive_lorebook_prompt(*, lorebook_name: str, entry_count: int) -> str:
    """System prompt for the interactive lorebook editor."""

    return f"""You are a lorebook assistant helping the user curate "{lorebook_name}", a lorebook for an interactive story. It currently holds {entry_count} entries.

## Available Tools

### Reading
- **list_entries** - List every entry with its index, name, type and keywords
- **get_entry** - Read the full details of one entry by index

### Editing (each change waits for user approval)
- **create_entry** - Add a new entry
- **update_entry** - Change fields of an existing entry
- **delete_entry** - Remove an entry
- **merge_entries** - Combine two or more entries into one

### Research
- **search_fandom** - Search a Fandom wiki for articles
- **get_fandom_article_info** - List the sections of a wiki article
- **fetch_fandom_section** - Read one section of a wiki article

## Workflow
1. Look before you edit: call list_entries or get_entry to find the right index.
2. Keep descriptions concise and written for a narrator, not an encyclopedia.
3. Choose keywords that will actually appear in the story text.
4. Proposed changes are not applied until the user approves them. Do not assume a change has been applied until you are told it was approved.
5. When you are done, reply with a short summary of what you proposed."""


def render_lorebook_prompt(template: str | None, *, lorebook_name: str, entry_count: int) -> str:
    """Render a custom template (``{lorebookName}``/``{entryCount}``) or the default."""

    if not template:
        return interactive_lorebook_prompt(lorebook_name=lorebook_name, entry_count=entry_count)
    return template.replace("{lorebookName}", lorebook_name).replace("{entryCount}", str(entry_count))


def build_retrieval_prompt(
    user_input: str,
    recent_entries: Sequence[StoryEntry],
    chapters: Sequence[Chapter],
    entries: Sequence[LorebookEntry],
) -> str:
    """Initial user turn for the retrieval agent."""

    recent = "\n\n".join(
        f"{'[ACTION]' if item.is_user_action else '[NARRATION]'} {item.content[:RECENT_ENTRY_CHARS]}..."
        for item in list(recent_entries)[-RECENT_ENTRY_LIMIT:]
    )
    chapter_lines = "\n".join(
        f"- Chapter {chapter.number}: {chapter.title or 'Untitled'} ({', '.join(chapter.characters)})"
        for chapter in chapters
    )
    entry_lines = "\n".join(f"- {entry.name} ({entry.type.value})" for entry in entries[:ENTRY_INDEX_LIMIT])
    overflow = f"...and {len(entries) - ENTRY_INDEX_LIMIT} more" if len(entries) > ENTRY_INDEX_LIMIT else ""

    return f"""# Current Situation

USER INPUT:
"{user_input}"

RECENT SCENE:
{recent}

# Available Chapters: {len(chapters)}
{chapter_lines}

# Lorebook Entries: {len(entries)}
{entry_lines}
{overflow}

Please gather relevant context from past chapters that will help respond to this situation. Focus on information that is actually needed - often, no retrieval is necessary for simple actions."""


__all__ = [
    "DEFAULT_AGENTIC_RETRIEVAL_PROMPT",
    "interactive_lorebook_prompt",
    "render_lorebook_prompt",
    "build_retrieval_prompt",
]
