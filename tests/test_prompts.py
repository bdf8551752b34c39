from __future__ import annotations

from pathlib import Path

import allure

from opencoder.orchestrator.prompts import (
    build_evaluation_prompt,
    build_execution_prompt,
    build_planning_prompt,
    build_verdict_reminder,
    evaluation_title,
    execution_title,
    planning_title,
)

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Agent Prompts"),
]


def test_titles_name_phase_and_cycle() -> None:
    assert planning_title(3) == "Opencoder Planning Cycle 3"
    assert execution_title(3) == "Opencoder Execution Cycle 3"
    assert evaluation_title(3) == "Opencoder Evaluation Cycle 3"


def test_planning_prompt_includes_optional_context() -> None:
    bare = build_planning_prompt(cycle=2)
    full = build_planning_prompt(
        cycle=2,
        hint="speed up the CLI",
        idea="Cache parsed configs",
        previous_reason="tests are missing",
    )

    assert "cycle 2" in bare
    assert "- [ ]" in bare
    assert "speed up the CLI" not in bare
    assert "speed up the CLI" in full
    assert "<idea>\nCache parsed configs\n</idea>" in full
    assert "tests are missing" in full


def test_execution_prompt_starts_with_task() -> None:
    prompt = build_execution_prompt(
        task="Add a --dry-run flag",
        task_number=2,
        total_tasks=4,
        plan_path=Path("/p/.opencoder/current_plan.md"),
    )

    assert prompt.startswith("Add a --dry-run flag\n")
    assert "task 2 of 4" in prompt
    assert "/p/.opencoder/current_plan.md" in prompt


def test_evaluation_prompt_asks_for_markers() -> None:
    prompt = build_evaluation_prompt(cycle=1, plan_path=Path("plan.md"))

    assert "COMPLETE" in prompt
    assert "NEEDS_WORK" in prompt
    assert "Reason:" in prompt


def test_agent_text_is_stripped_of_control_characters() -> None:
    execution = build_execution_prompt(
        task="Add\x00parser\x1b[0m",
        task_number=1,
        total_tasks=1,
        plan_path=Path("plan.md"),
    )
    planning = build_planning_prompt(cycle=1, previous_reason="missing\x07 tests")
    reminder = build_verdict_reminder("Looks fine\x00\nmostly")

    assert execution.startswith("Addparser[0m\n")
    assert "missing tests" in planning
    assert "Looks fine\nmostly" in reminder
    for prompt in (execution, planning, reminder):
        assert "\x00" not in prompt
        assert "\x07" not in prompt
        assert "\x1b" not in prompt
