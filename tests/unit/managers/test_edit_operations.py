"""Unit tests for edit operation decoding and application."""

from __future__ import annotations

import pytest

from harbor.errors import ValidationError
from harbor.managers.workspace.operations import (
    AppendOperation,
    InsertLineOperation,
    RegexReplaceOperation,
    parse_edit_operation,
)


class TestParseEditOperation:
    def test_decodes_by_type(self):
        op = parse_edit_operation({"type": "insert_line", "content": "x", "line": 2})
        assert isinstance(op, InsertLineOperation)
        assert op.line == 2

    def test_passes_through_decoded_operation(self):
        op = AppendOperation(content="x")
        assert parse_edit_operation(op) is op

    @pytest.mark.parametrize(
        "raw",
        [
            {"type": "explode"},
            {"type": "insert_line", "content": "x"},
            {"type": "regex_replace", "search": "a"},
            {"content": "no type"},
            {"type": "replace", "content": "x", "unexpected": 1},
            "replace",
        ],
    )
    def test_invalid_operations(self, raw):
        with pytest.raises(ValidationError):
            parse_edit_operation(raw)


class TestApply:
    @pytest.mark.parametrize(
        ("raw", "prior", "expected"),
        [
            ({"type": "replace", "content": "new"}, "old", "new"),
            ({"type": "append", "content": "b"}, "a", "a\nb"),
            ({"type": "append", "content": "b"}, "", "b"),
            ({"type": "prepend", "content": "a"}, "b", "a\nb"),
            ({"type": "prepend", "content": "a"}, "", "a"),
            ({"type": "insert_line", "content": "x", "line": 2}, "a\nb", "a\nx\nb"),
            ({"type": "insert_line", "content": "x", "line": 3}, "a\nb", "a\nb\nx"),
            ({"type": "insert_offset", "content": "-", "position": 1}, "ab", "a-b"),
            ({"type": "delete_line", "line": 1}, "a\nb", "b"),
            (
                {"type": "regex_replace", "search": r"(\w+)@", "replace": r"<\1>"},
                "me@ you@",
                "<me> <you>",
            ),
        ],
    )
    def test_content(self, raw, prior, expected):
        new_content, _ = parse_edit_operation(raw).apply(prior)
        assert new_content == expected

    def test_regex_replace_counts_substitutions(self):
        _, changes = RegexReplaceOperation(search="o", replace="0").apply("foo boo")
        assert changes == 4

    @pytest.mark.parametrize(
        "raw",
        [
            {"type": "insert_line", "content": "x", "line": 0},
            {"type": "insert_line", "content": "x", "line": 4},
            {"type": "insert_offset", "content": "x", "position": 10},
            {"type": "delete_line", "line": 3},
            {"type": "regex_replace", "search": "(", "replace": ""},
        ],
    )
    def test_out_of_range_is_validation_error(self, raw):
        with pytest.raises(ValidationError):
            parse_edit_operation(raw).apply("a\nb")
