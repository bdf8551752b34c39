from __future__ import annotations

from pathlib import Path

import allure
import pytest

from opencoder.sanitization import (
    InputValidationError,
    sanitize_preview,
    sanitize_single_line,
    strip_control_characters,
    validate_hint,
    validate_idea_content,
    validate_model_name,
    validate_project_path,
)

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Input Sanitization"),
]


def test_sanitize_preview_redacts_tokens() -> None:
    text = (
        "Authorization: Bearer abcdefghijklmnop\n"
        "OPENAI_API_KEY=sk-abcdefgh12345678\n"
        "url https://example.com/?token=secret123&x=1"
    )

    preview = sanitize_preview(text)

    assert "abcdefghijklmnop" not in preview
    assert "sk-abcdefgh12345678" not in preview
    assert "secret123" not in preview
    assert "?token=[redacted]" in preview


def test_sanitize_preview_clamps_length() -> None:
    assert sanitize_preview("a" * 50, max_chars=10) == "a" * 10
    assert sanitize_preview("   ") == ""


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "a" * 5000, "dir/\x00name", "../etc", "proj/../../etc"],
)
def test_validate_project_path_rejects_unsafe_paths(raw: str) -> None:
    with pytest.raises(InputValidationError):
        validate_project_path(raw)


def test_validate_project_path_allows_spaces() -> None:
    assert validate_project_path("/tmp/my project") == Path("/tmp/my project")


@pytest.mark.parametrize(
    "name",
    ["anthropic/claude-sonnet-4", "openai/gpt-4o", "local/llama3:8b", "org/team.model@v2"],
)
def test_validate_model_name_accepts_common_ids(name: str) -> None:
    assert validate_model_name(name) == name


@pytest.mark.parametrize("name", ["", "a" * 300, "a/b c", "a/b;rm", "a/b\n"])
def test_validate_model_name_rejects_bad_ids(name: str) -> None:
    with pytest.raises(InputValidationError):
        validate_model_name(name)


def test_validate_hint_and_idea_flatten_newlines() -> None:
    assert validate_hint("one\ntwo\tthree\r") == "one two three "
    assert validate_idea_content("idea\nbody") == "idea body"


@pytest.mark.parametrize(
    ("validator", "limit"),
    [(validate_hint, 2048), (validate_idea_content, 8192)],
)
def test_length_limits(validator, limit: int) -> None:
    assert validator("x" * limit) == "x" * limit
    with pytest.raises(InputValidationError):
        validator("x" * (limit + 1))


def test_control_characters_are_rejected() -> None:
    with pytest.raises(InputValidationError):
        validate_hint("bell\x07")
    with pytest.raises(InputValidationError):
        validate_idea_content("escape\x1b[31m")


def test_sanitize_single_line_never_raises() -> None:
    assert sanitize_single_line("  a\n\nb\t c\x00d  ") == "a b cd"
    assert sanitize_single_line("x" * 20, max_length=10) == "xxxxxxx..."
    assert sanitize_single_line("") == ""


def test_strip_control_characters_keeps_line_structure() -> None:
    assert strip_control_characters("a\x00b\x1b[1m\r\n\tc\x7f") == "ab[1m\r\n\tc"
    assert strip_control_characters("plain") == "plain"
