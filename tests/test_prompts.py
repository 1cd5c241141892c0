"""Tests for agent prompt construction."""

from __future__ import annotations

from aventura.ai.prompts import (
    build_retrieval_prompt,
    interactive_lorebook_prompt,
    render_lorebook_prompt,
)
from aventura.models import EntryType, LorebookEntry, StoryEntry


def test_retrieval_prompt_layout(entries, chapters) -> None:
    story = [StoryEntry(type="narration", content=f"beat {n}") for n in range(7)]

    prompt = build_retrieval_prompt("Open the gate.", story, chapters, entries)

    assert prompt.startswith('# Current Situation\n\nUSER INPUT:\n"Open the gate."')
    assert "beat 0" not in prompt
    assert "beat 1" not in prompt
    assert "[NARRATION] beat 6..." in prompt
    assert "# Available Chapters: 3" in prompt
    assert "- Chapter 1: The Fen (Aria, Ferryman)" in prompt
    assert "- Silver Lute (item)" in prompt
    assert "more" not in prompt.split("# Lorebook Entries")[1].split("Please")[0]


def test_retrieval_prompt_truncates_long_beats_and_entry_index() -> None:
    story = [StoryEntry(type="user_action", content="x" * 400)]
    many = [LorebookEntry(name=f"E{n}", type=EntryType.CONCEPT) for n in range(23)]

    prompt = build_retrieval_prompt("go", story, [], many)

    assert f"[ACTION] {'x' * 300}..." in prompt
    assert "x" * 301 not in prompt
    assert "- E19 (concept)" in prompt
    assert "- E20 (concept)" not in prompt
    assert "...and 3 more" in prompt


def test_lorebook_prompt_names_tools() -> None:
    prompt = interactive_lorebook_prompt(lorebook_name="Fenlands", entry_count=12)

    assert '"Fenlands"' in prompt
    assert "12 entries" in prompt
    for tool in ("list_entries", "merge_entries", "fetch_fandom_section"):
        assert tool in prompt


def test_render_lorebook_prompt() -> None:
    assert render_lorebook_prompt(None, lorebook_name="A", entry_count=1) == interactive_lorebook_prompt(
        lorebook_name="A", entry_count=1
    )
    assert render_lorebook_prompt("{lorebookName}:{entryCount}", lorebook_name="A", entry_count=1) == "A:1"
