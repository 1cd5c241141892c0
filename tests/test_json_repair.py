"""Tests for tool-argument JSON repair."""

from __future__ import annotations

import json

import pytest

from aventura.ai.orchestration.json_repair import (
    decode_tool_arguments,
    repair_json,
    try_parse_json_object,
)


class TestRepairJson:
    """repair_json fixes common model damage and leaves valid JSON alone."""

    @pytest.mark.parametrize(
        "text",
        ['{"a": 1}', "[1, 2, 3]", '"plain"', '{"nested": {"list": [1, {"b": null}]}}'],
    )
    def test_valid_json_is_returned_unchanged(self, text: str) -> None:
        assert repair_json(text) == text

    def test_trailing_comma_is_dropped(self) -> None:
        assert json.loads(repair_json('{"a": 1, "b": [1, 2,],}')) == {"a": 1, "b": [1, 2]}

    def test_truncated_string_and_object_are_closed(self) -> None:
        repaired = repair_json('{"name": "Aria", "description": "A wander')
        assert json.loads(repaired) == {"name": "Aria", "description": "A wander"}

    def test_dangling_key_becomes_null(self) -> None:
        assert json.loads(repair_json('{"a": ')) == {"a": None}

    def test_code_fence_is_stripped(self) -> None:
        assert json.loads(repair_json('```json\n{"index": 2}\n```')) == {"index": 2}

    def test_leading_prose_is_skipped(self) -> None:
        assert json.loads(repair_json('Here you go: {"index": 2}')) == {"index": 2}

    def test_unrecoverable_text_returns_none(self) -> None:
        assert repair_json("not json at all") is None

    def test_non_string_returns_none(self) -> None:
        assert repair_json(None) is None  # type: ignore[arg-type]


class TestDecodeToolArguments:
    def test_empty_input_decodes_to_empty_dict(self) -> None:
        assert decode_tool_arguments("") == {}
        assert decode_tool_arguments("   ") == {}
        assert decode_tool_arguments(None) == {}

    def test_mapping_is_copied(self) -> None:
        source = {"index": 1}
        decoded = decode_tool_arguments(source)
        assert decoded == source
        assert decoded is not source

    def test_non_object_json_is_rejected(self) -> None:
        assert decode_tool_arguments("[1, 2]") is None
        assert try_parse_json_object('"text"') is None

    def test_damaged_object_is_repaired(self) -> None:
        assert decode_tool_arguments('{"indices": [0, 1') == {"indices": [0, 1]}

    def test_garbage_is_none(self) -> None:
        assert decode_tool_arguments("{{{{") is None
