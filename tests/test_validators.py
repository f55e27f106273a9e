"""Tests for todo_sync.validators."""

import pytest

from todo_sync.validators import (
    format_validation_error,
    normalize_file_name,
    validate_file_name,
    validate_task_text,
)


def test_format_validation_error():
    assert format_validation_error("File name", "cannot be empty") == (
        "File name cannot be empty"
    )


class TestValidateFileName:
    @pytest.mark.parametrize("name", ["work", "work.txt", "/work.txt", "  Groceries 2024 "])
    def test_accepted(self, name):
        assert validate_file_name(name) == (True, "")

    @pytest.mark.parametrize("name", ["", "   ", "/", ".txt", "/.TXT"])
    def test_empty(self, name):
        ok, error = validate_file_name(name)
        assert not ok
        assert error == "File name cannot be empty"

    @pytest.mark.parametrize("name", ["a/b", "a\\b", "what?", "x*y", 'say "hi"'])
    def test_forbidden_characters(self, name):
        ok, error = validate_file_name(name)
        assert not ok
        assert "cannot contain" in error

    @pytest.mark.parametrize("name", [".hidden", "a..b"])
    def test_dots(self, name):
        ok, error = validate_file_name(name)
        assert not ok
        assert "'..'" in error

    def test_too_long(self):
        ok, error = validate_file_name("a" * 256)
        assert not ok
        assert "255" in error


class TestNormalizeFileName:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("work", "/work.txt"),
            ("work.txt", "/work.txt"),
            ("/work.txt", "/work.txt"),
            (" Work.TXT ", "/Work.TXT"),
            ("my list", "/my list.txt"),
        ],
    )
    def test_normalized(self, name, expected):
        assert normalize_file_name(name) == expected

    def test_invalid_raises(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            normalize_file_name("  ")


class TestValidateTaskText:
    def test_accepted(self):
        assert validate_task_text("(A) Call Mom +family @phone") == (True, "")

    @pytest.mark.parametrize("text", ["", "  "])
    def test_empty(self, text):
        assert validate_task_text(text) == (False, "Task text cannot be empty")

    @pytest.mark.parametrize("text", ["one\ntwo", "one\rtwo"])
    def test_line_breaks(self, text):
        ok, error = validate_task_text(text)
        assert not ok
        assert "line breaks" in error
