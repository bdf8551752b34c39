"""User-queued ideas the planner picks up before inventing its own work.

Ideas are plain markdown files in ``.opencoder/ideas/``. File names sort
chronologically (``ideas add`` prefixes them with a UTC timestamp), so the
first file in name order is the oldest idea.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from opencoder.sanitization import InputValidationError, validate_idea_content
from opencoder.workdir import FileTooLargeError, read_text_bounded, write_text_atomic

logger = logging.getLogger(__name__)

IDEA_SUFFIX = ".md"
_SUMMARY_CHARS = 100
_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


@dataclass(slots=True, frozen=True)
class Idea:
    path: Path
    content: str

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def summary(self) -> str:
        """First non-empty line, clipped for listings."""

        stripped = self.content.strip()
        if not stripped:
            return "(empty)"
        first_line = stripped.splitlines()[0]
        if len(first_line) <= _SUMMARY_CHARS:
            return first_line
        return first_line[: _SUMMARY_CHARS - 3] + "..."


def load_ideas(ideas_dir: Path, *, max_bytes: int) -> list[Idea]:
    """Return queued ideas oldest first; empty or unreadable files are deleted."""

    if not ideas_dir.is_dir():
        return []
    ideas: list[Idea] = []
    for path in sorted(ideas_dir.iterdir()):
        if not path.is_file() or path.suffix != IDEA_SUFFIX:
            continue
        try:
            content = read_text_bounded(path, max_bytes=max_bytes)
        except (OSError, UnicodeDecodeError, FileTooLargeError) as error:
            logger.warning("Discarding unreadable idea %s: %s", path.name, error)
            _discard(path)
            continue
        if not content.strip():
            logger.info("Discarding empty idea %s", path.name)
            _discard(path)
            continue
        ideas.append(Idea(path=path, content=content))
    return ideas


def next_idea(ideas_dir: Path, *, max_bytes: int) -> tuple[Idea, str] | None:
    """Pick the oldest usable idea and its prompt-safe text."""

    for idea in load_ideas(ideas_dir, max_bytes=max_bytes):
        try:
            return idea, validate_idea_content(idea.content.strip())
        except InputValidationError as error:
            logger.warning("Discarding unsafe idea %s: %s", idea.filename, error)
            _discard(idea.path)
    return None


def remove_idea(idea: Idea) -> None:
    """Delete a consumed idea; a file that is already gone is fine."""

    try:
        idea.path.unlink()
    except FileNotFoundError:
        return
    except OSError as error:
        logger.warning("Could not remove consumed idea %s: %s", idea.filename, error)
        return
    logger.info("Consumed idea %s", idea.filename)


def add_idea(ideas_dir: Path, text: str, *, now: datetime | None = None) -> Path:
    """Queue a new idea; raises ``InputValidationError`` for unsafe text."""

    content = text.strip()
    if not content:
        raise InputValidationError("Idea is empty.")
    validate_idea_content(content)
    timestamp = (now or datetime.now(tz=UTC)).strftime("%Y%m%dT%H%M%S%f")
    slug = _SLUG_PATTERN.sub("-", content.splitlines()[0].lower()).strip("-")[:40] or "idea"
    ideas_dir.mkdir(parents=True, exist_ok=True)
    path = ideas_dir / f"{timestamp}-{slug}{IDEA_SUFFIX}"
    write_text_atomic(path, content + "\n")
    return path


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except OSError as error:
        logger.warning("Could not delete idea file %s: %s", path.name, error)
