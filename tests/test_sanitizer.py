"""
Tests for JSON salvage of noisy completion output.
"""

import pytest

from tender_extraction.sanitizer import find_json_span, find_json_spans, salvage_json, sanitize


def identity(value):
    return value


def only_dicts(value):
    if not isinstance(value, dict):
        raise TypeError("expected object")
    return value


class TestSanitize:
    """Tests for fence stripping."""

    def test_strips_json_fence(self):
        assert sanitize('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strips_bare_fence(self):
        assert sanitize('```\n[1, 2]\n```') == "[1, 2]"

    def test_none_and_empty(self):
        assert sanitize(None) == ""
        assert sanitize("   ") == ""

    @pytest.mark.parametrize(
        "raw",
        [
            '```json\n{"a": 1}\n```',
            "  ```python```json\n[]\n``` ``` ",
            "plain text",
            "``````",
        ],
    )
    def test_idempotent(self, raw):
        once = sanitize(raw)
        assert sanitize(once) == once


class TestFindJsonSpan:
    """Tests for the bracket scanner."""

    def test_no_brackets(self):
        assert find_json_span("no json here") == ""

    def test_span_inside_prose(self):
        text = 'Here you go: {"a": [1, 2]} Hope this helps.'
        assert find_json_span(text) == '{"a": [1, 2]}'

    def test_brackets_in_strings_ignored(self):
        text = 'x {"a": "close } and ] here"} y'
        assert find_json_span(text) == '{"a": "close } and ] here"}'

    def test_escaped_quote_in_string(self):
        text = '{"a": "say \\"hi\\" }"}'
        assert find_json_span(text) == text

    def test_longest_span_wins(self):
        text = '{"a": 1} and then {"b": [1, 2, 3]}'
        assert find_json_span(text) == '{"b": [1, 2, 3]}'

    def test_unterminated_tail(self):
        text = 'Result: {"a": [1, 2'
        assert find_json_span(text) == '{"a": [1, 2'

    def test_all_spans_longest_first(self):
        text = 'see [note one] then {"a": [1, 2]} and [x]'
        assert find_json_spans(text) == ['{"a": [1, 2]}', "[note one]", "[x]"]


class TestSalvageJson:
    """Tests for salvage_json strategies."""

    def test_direct(self):
        result = salvage_json('{"a": 1}', identity)
        assert result.ok
        assert result.strategy == "direct"
        assert result.value == {"a": 1}

    def test_fenced_is_direct(self):
        result = salvage_json('```json\n{"a": 1}\n```', identity)
        assert result.strategy == "direct"
        assert result.value == {"a": 1}

    def test_span_with_prose(self):
        result = salvage_json('Sure! Here it is:\n{"a": 1}\nLet me know.', identity)
        assert result.strategy == "span"
        assert result.value == {"a": 1}

    def test_longer_bracketed_prose_does_not_hide_json(self):
        raw = (
            "Note [values below were taken from the notice inviting tender, pages three to five]:\n"
            '{"project_overview": "NH-44"}'
        )
        result = salvage_json(raw, only_dicts)
        assert result.strategy == "span"
        assert result.value == {"project_overview": "NH-44"}

    def test_truncated_array_of_objects(self):
        """A cut-off list keeps its complete leading elements."""
        raw = '[{"section_name": "A", "section_summary": "x"}, {"section_name": "B", "sec'
        result = salvage_json(raw, identity)
        assert result.strategy == "truncated"
        assert result.value[0] == {"section_name": "A", "section_summary": "x"}
        assert result.value[-1]["section_name"] == "B"

    def test_truncated_inside_string_value(self):
        raw = '{"project_overview": "Four-laning of NH-4'
        result = salvage_json(raw, identity)
        assert result.ok
        assert result.value == {"project_overview": "Four-laning of NH-4"}

    def test_truncated_after_colon(self):
        raw = '{"a": "x", "b":'
        result = salvage_json(raw, identity)
        assert result.value == {"a": "x"}

    def test_parse_rejection_moves_on(self):
        """A value the parser rejects is not reported as success."""
        result = salvage_json("[1, 2, 3]", only_dicts)
        assert not result.ok
        assert result.value is None

    @pytest.mark.parametrize(
        "raw",
        [None, "", "no json at all", "{{{{", "]]]]", '{"a": "\\', "```", "[}", '"just a string'],
    )
    def test_never_raises(self, raw):
        result = salvage_json(raw, only_dicts)
        assert result.ok in (True, False)

    def test_no_brackets_is_failure(self):
        result = salvage_json("I cannot help with that.", identity)
        assert not result.ok
        assert result.strategy == "none"
