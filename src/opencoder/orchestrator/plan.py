"""Markdown plan parsing, validation and line-addressed mutation.

A plan is free-form markdown; only checkbox lines count as tasks::

    ## Tasks
    - [ ] Add retry to the HTTP client
    - [x] Write the README

Line numbers are 1-based and refer to ``text.split("\\n")`` so that they
stay stable across a parse -> mark -> parse round.
"""

from __future__ import annotations

import re
from pathlib import Path

from opencoder.orchestrator.models import PlanValidationError, Task
from opencoder.workdir import FileTooLargeError, read_text_bounded, write_text_atomic

_TASK_PATTERN = re.compile(
    r"^(?P<prefix>\s*[-*]\s+\[)(?P<mark>[ xX])(?P<suffix>\]\s+)(?P<text>\S.*)$",
)
_FENCED_BLOCK_PATTERN = re.compile(r"```[^\n]*\n(?P<body>.*?)```", re.DOTALL)


class PlanTooLargeError(FileTooLargeError):
    """Raised when a plan exceeds the configured size limit."""


def parse_tasks(text: str) -> list[Task]:
    """Return every checkbox task in source order."""

    tasks: list[Task] = []
    for index, raw_line in enumerate(text.split("\n"), start=1):
        match = _TASK_PATTERN.match(raw_line.rstrip("\r"))
        if match is None:
            continue
        tasks.append(
            Task(
                description=match.group("text").strip(),
                completed=match.group("mark") in {"x", "X"},
                line_number=index,
            ),
        )
    return tasks


def uncompleted_tasks(text: str) -> list[Task]:
    return [task for task in parse_tasks(text) if not task.completed]


def count_total_tasks(text: str) -> int:
    return len(parse_tasks(text))


def count_completed_tasks(text: str) -> int:
    return sum(1 for task in parse_tasks(text) if task.completed)


def validate_plan(text: str) -> PlanValidationError | None:
    """Return why the plan is not executable, or ``None`` when it is."""

    if not text.strip():
        return PlanValidationError.EMPTY_PLAN
    tasks = parse_tasks(text)
    if not tasks:
        return PlanValidationError.NO_ACTIONABLE_TASKS
    if all(task.completed for task in tasks):
        return PlanValidationError.ALL_TASKS_COMPLETED
    return None


def mark_task_complete(text: str, line_number: int) -> str:
    """Check the box on ``line_number``; any other input returns ``text`` as is."""

    lines = text.split("\n")
    if line_number < 1 or line_number > len(lines):
        return text
    raw_line = lines[line_number - 1]
    body = raw_line.rstrip("\r")
    match = _TASK_PATTERN.match(body)
    if match is None or match.group("mark") != " ":
        return text
    lines[line_number - 1] = (
        body[: match.start("mark")] + "x" + body[match.end("mark") :] + raw_line[len(body) :]
    )
    return "\n".join(lines)


def extract_plan_from_response(raw: str) -> str:
    """Pull the plan out of a conversational answer.

    The first fenced block wins; without one the whole answer is used.
    """

    match = _FENCED_BLOCK_PATTERN.search(raw)
    if match is not None:
        return match.group("body").strip()
    return raw.strip()


def read_plan_file(path: Path, *, max_bytes: int) -> str:
    """Read the plan, rejecting files over ``max_bytes``."""

    try:
        return read_text_bounded(path, max_bytes=max_bytes)
    except FileTooLargeError as error:
        raise PlanTooLargeError(path=path, size=error.size, max_bytes=max_bytes) from error


def write_plan_file(path: Path, text: str, *, max_bytes: int) -> None:
    """Atomically persist the plan, refusing to write an oversized one."""

    size = len(text.encode("utf-8"))
    if size > max_bytes:
        raise PlanTooLargeError(path=path, size=size, max_bytes=max_bytes)
    write_text_atomic(path, text)
