"""Tests for tools/json_repair.py — staged JSON recovery."""

from __future__ import annotations

import json

import pytest
from pydantic import BaseModel

from course_content_generator.errors import ParseError
from course_content_generator.tools.json_repair import (
    extract_balanced,
    parse_llm_json,
    parse_llm_json_as,
    remove_trailing_commas,
    strip_fences,
)


class TestParseStages:
    def test_verbatim(self):
        assert parse_llm_json('{"a": 1}') == {"a": 1}

    def test_array_verbatim(self):
        assert parse_llm_json("[1, 2]") == [1, 2]

    def test_embedded_in_prose(self):
        text = 'Here is the result: {"score": 8, "ok": true} hope that helps'
        assert parse_llm_json(text) == {"score": 8, "ok": True}

    def test_fenced_with_trailing_comma(self):
        assert parse_llm_json('```json\n{"a":1,}\n```', {}) == {"a": 1}

    def test_trailing_comma_in_array(self):
        assert parse_llm_json('[{"a": 1}, {"b": 2},]') == [{"a": 1}, {"b": 2}]

    def test_smart_quotes(self):
        assert parse_llm_json("{“a”: “b”}") == {"a": "b"}

    def test_brackets_inside_strings(self):
        text = 'prefix {"code": "if (x) { return [1]; }", "n": 2} suffix'
        assert parse_llm_json(text) == {"code": "if (x) { return [1]; }", "n": 2}

    def test_nested_trailing_commas_after_stray_bracket(self):
        text = 'note ] then {"a": [1, 2,], }'
        assert parse_llm_json(text, None) == {"a": [1, 2]}


class TestFallbackAndErrors:
    @pytest.mark.parametrize("text", ["", "no json here", "{unclosed", "```\n```", "]]]"])
    def test_never_raises_with_fallback(self, text):
        sentinel = object()
        assert parse_llm_json(text, sentinel) is sentinel

    def test_none_is_a_valid_fallback(self):
        assert parse_llm_json("not json", None) is None

    def test_raises_without_fallback(self):
        with pytest.raises(ParseError) as exc_info:
            parse_llm_json("x" * 500)
        assert exc_info.value.snippet == "x" * 200

    def test_deterministic(self):
        text = '```json\n{"a": [1, 2,],}\n```'
        assert parse_llm_json(text, {}) == parse_llm_json(text, {})

    @pytest.mark.parametrize("text", ["[" * 100_000, "[" * 100_000 + "]" * 100_000, "{" * 50_000])
    def test_deep_nesting_uses_fallback(self, text):
        sentinel = object()
        assert parse_llm_json(text, sentinel) is sentinel

    @pytest.mark.parametrize("text", ["NaN", "Infinity", "-Infinity", '{"score": NaN}', "[1, Infinity]"])
    def test_non_standard_constants_rejected(self, text):
        assert parse_llm_json(text, {}) == {}

    @pytest.mark.parametrize("text", [
        '{"a": 1}',
        '```json\n{"a":1,}\n```',
        'Result: [1, 2, 3] done',
        "garbage",
        "NaN",
    ])
    def test_idempotent(self, text):
        first = parse_llm_json(text, {})
        assert parse_llm_json(json.dumps(first), {}) == first


class TestHelpers:
    def test_strip_fences(self):
        assert strip_fences("```json\n[1]\n```") == "[1]"

    def test_remove_trailing_commas(self):
        assert remove_trailing_commas('{"a": 1, }') == '{"a": 1}'

    def test_extract_balanced_first_span(self):
        assert extract_balanced('x {"a": {"b": 1}} y {"c": 2}') == '{"a": {"b": 1}}'

    def test_extract_balanced_unclosed(self):
        assert extract_balanced('{"a": 1') is None


class _Score(BaseModel):
    score: int


class TestParseAs:
    def test_validates(self):
        assert parse_llm_json_as('{"score": 3}', _Score).score == 3

    def test_validation_failure_uses_fallback(self):
        assert parse_llm_json_as('{"score": "high"}', _Score, None) is None

    def test_validation_failure_without_fallback_raises(self):
        with pytest.raises(ParseError):
            parse_llm_json_as('{"other": 1}', _Score)
