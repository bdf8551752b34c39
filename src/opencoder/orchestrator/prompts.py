"""Prompt builders for the planning, execution and evaluation phases."""

from __future__ import annotations

from pathlib import Path

from opencoder.sanitization import strip_control_characters

PLAN_FORMAT_EXAMPLE = """\
# Plan: <short title>

## Context
<what you learned about the project>

## Tasks
- [ ] <first concrete task>
- [ ] <second concrete task>

## Notes
<optional>"""


def planning_title(cycle: int) -> str:
    return f"Opencoder Planning Cycle {cycle}"


def execution_title(cycle: int) -> str:
    return f"Opencoder Execution Cycle {cycle}"


def evaluation_title(cycle: int) -> str:
    return f"Opencoder Evaluation Cycle {cycle}"


def build_planning_prompt(
    *,
    cycle: int,
    hint: str | None = None,
    idea: str | None = None,
    previous_reason: str | None = None,
) -> str:
    """Ask the planning model for a fresh markdown checklist."""

    parts = [
        f"You are planning development cycle {cycle} for the project in the current directory.",
        "Inspect the codebase and write a plan of 3-7 small, independently committable tasks.",
    ]
    if idea:
        parts.append(
            "A queued idea takes priority in this cycle. Build the plan around it:\n"
            f"<idea>\n{idea}\n</idea>",
        )
    if hint:
        parts.append(f"Overall goal from the user: {hint}")
    if previous_reason:
        parts.append(
            "The previous plan was evaluated as unfinished. "
            f"Address this feedback: {strip_control_characters(previous_reason)}",
        )
    parts.append(
        "Reply with the plan as markdown inside a single fenced code block, "
        "using exactly this structure with one '- [ ]' checkbox per task:\n"
        f"```markdown\n{PLAN_FORMAT_EXAMPLE}\n```",
    )
    return "\n\n".join(parts)


def build_execution_prompt(
    *,
    task: str,
    task_number: int,
    total_tasks: int,
    plan_path: Path,
    hint: str | None = None,
) -> str:
    """Ask the execution model to carry out one task."""

    parts = [
        strip_control_characters(task),
        f"This is task {task_number} of {total_tasks} from the plan in {plan_path}.",
        "Implement only this task. Keep the project building and its tests passing.",
    ]
    if hint:
        parts.append(f"Overall goal from the user: {hint}")
    return "\n\n".join(parts)


def build_evaluation_prompt(*, cycle: int, plan_path: Path) -> str:
    """Ask whether the cycle's work is done, in a machine-checkable form."""

    return (
        f"Review the work done in development cycle {cycle} against the plan in {plan_path}.\n"
        "\n"
        "Answer with exactly one of these words on the first line:\n"
        "COMPLETE - every task is implemented and working\n"
        "NEEDS_WORK - something is missing or broken\n"
        "\n"
        "Then add one line starting with 'Reason:' that explains the verdict."
    )


def build_verdict_reminder(previous_answer: str) -> str:
    """Re-ask after an answer that named no verdict."""

    excerpt = strip_control_characters(previous_answer).strip()[:500]
    return (
        "Your previous answer did not contain a verdict:\n"
        f"{excerpt}\n"
        "\n"
        "Reply with COMPLETE or NEEDS_WORK on the first line, "
        "then a line starting with 'Reason:'."
    )
