"""Validation and redaction for text crossing into logs, prompts, paths and git."""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

_MAX_PREVIEW_CHARS = 2_000

MAX_PATH_LENGTH = 4_096
MAX_HINT_LENGTH = 2_048
MAX_IDEA_LENGTH = 8_192
MAX_MODEL_NAME_LENGTH = 256
MAX_COMMIT_DESCRIPTION_LENGTH = 200

_MODEL_NAME_PATTERN = re.compile(r"[A-Za-z0-9\-_./:@]+")
_WHITESPACE_CONTROL = frozenset("\n\r\t")

_Replacement = str | Callable[[re.Match[str]], str]

_REPLACEMENTS: tuple[tuple[re.Pattern[str], _Replacement], ...] = (
    (
        re.compile(r"(?i)\b(bearer)\s+[a-z0-9._\-]{8,}\b"),
        r"\1 [redacted-token]",
    ),
    (
        re.compile(r"(?i)\b(sk-[a-z0-9\-]{8,})\b"),
        "[redacted-token]",
    ),
    (
        re.compile(
            r"(?i)\b(opencode|openai|anthropic|gemini|github)[a-z0-9_]*_?(api_)?(key|token)\b"
            r"\s*[:=]\s*['\"]?[^'\" \n\r\t]+['\"]?",
        ),
        "[redacted-secret]",
    ),
    (
        re.compile(r"(?i)([?&](?:token|key|signature|auth)=[^&\s]+)"),
        lambda match: match.group(1).split("=")[0] + "=[redacted]",
    ),
)


class InputValidationError(ValueError):
    """Raised when external text is unsafe to pass further."""


def sanitize_preview(text: str, *, max_chars: int = _MAX_PREVIEW_CHARS) -> str:
    """Redact obvious secrets and clamp payload size."""

    compact = text.strip()
    if not compact:
        return ""

    redacted = compact
    for pattern, replacement in _REPLACEMENTS:
        redacted = pattern.sub(replacement, redacted)

    if len(redacted) <= max_chars:
        return redacted
    return redacted[:max_chars]


def validate_project_path(raw_path: str | Path) -> Path:
    """Reject empty, oversized, control-character or traversal paths."""

    value = str(raw_path)
    if not value.strip():
        raise InputValidationError("Project path must not be empty.")
    if len(value) > MAX_PATH_LENGTH:
        raise InputValidationError(f"Project path exceeds {MAX_PATH_LENGTH} characters.")
    if _contains_control_character(value, allow_whitespace=False):
        raise InputValidationError("Project path contains control characters.")
    if any(part == ".." for part in Path(value).parts):
        raise InputValidationError(f"Project path must not traverse parent directories: {value!r}")
    return Path(value)


def validate_model_name(name: str) -> str:
    """Check a ``provider/model`` identifier for length and allowed characters."""

    if not name or len(name) > MAX_MODEL_NAME_LENGTH:
        raise InputValidationError(
            f"Model name must be 1..{MAX_MODEL_NAME_LENGTH} characters, got {len(name)}.",
        )
    if not _MODEL_NAME_PATTERN.fullmatch(name):
        raise InputValidationError(f"Model name contains invalid characters: {name!r}")
    return name


def validate_hint(hint: str) -> str:
    """Validate a user hint and flatten it onto one line."""

    return _validate_flattened(hint, max_length=MAX_HINT_LENGTH, label="Hint")


def validate_idea_content(content: str) -> str:
    """Validate queued idea text and flatten it onto one line."""

    return _validate_flattened(content, max_length=MAX_IDEA_LENGTH, label="Idea")


def sanitize_single_line(text: str, *, max_length: int = MAX_COMMIT_DESCRIPTION_LENGTH) -> str:
    """Drop control characters, flatten whitespace controls, clamp length.

    Unlike the ``validate_*`` helpers this never raises: the result is
    always safe to hand to a subprocess argument.
    """

    cleaned = "".join(
        " " if char in _WHITESPACE_CONTROL else char
        for char in text
        if char in _WHITESPACE_CONTROL or not _is_control(char)
    )
    cleaned = " ".join(cleaned.split())
    if len(cleaned) <= max_length:
        return cleaned
    return cleaned[: max_length - 3].rstrip() + "..."


def strip_control_characters(text: str) -> str:
    """Drop control characters other than newline, carriage return and tab."""

    return "".join(char for char in text if char in _WHITESPACE_CONTROL or not _is_control(char))


def _validate_flattened(text: str, *, max_length: int, label: str) -> str:
    if len(text) > max_length:
        raise InputValidationError(f"{label} exceeds {max_length} characters.")
    if _contains_control_character(text, allow_whitespace=True):
        raise InputValidationError(f"{label} contains control characters.")
    return "".join(" " if char in _WHITESPACE_CONTROL else char for char in text)


def _contains_control_character(text: str, *, allow_whitespace: bool) -> bool:
    for char in text:
        if allow_whitespace and char in _WHITESPACE_CONTROL:
            continue
        if _is_control(char):
            return True
    return False


def _is_control(char: str) -> bool:
    code = ord(char)
    return code < 32 or code == 127
