"""Domain models for the orchestration loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class Phase(str, Enum):
    """Loop phase persisted in ``state.json``."""

    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    EVALUATING = "evaluating"


class Verdict(str, Enum):
    """Evaluation outcome; NEEDS_WORK is the safe default."""

    COMPLETE = "COMPLETE"
    NEEDS_WORK = "NEEDS_WORK"


class PlanValidationError(str, Enum):
    """Reasons a plan cannot be executed."""

    EMPTY_PLAN = "Plan is empty"
    NO_ACTIONABLE_TASKS = "Plan has no actionable tasks"
    ALL_TASKS_COMPLETED = "All tasks are already completed"


@dataclass(slots=True, frozen=True)
class Task:
    """One checkbox item of a plan."""

    description: str
    completed: bool
    line_number: int


@dataclass(slots=True)
class ExecutionState:
    """Durable loop position."""

    cycle: int = 0
    phase: Phase = Phase.IDLE
    current_task_index: int = 0
    total_tasks: int = 0
    last_update: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_payload(self) -> dict[str, object]:
        return {
            "cycle": self.cycle,
            "phase": self.phase.value,
            "totalTasks": self.total_tasks,
            "currentTaskIndex": self.current_task_index,
            "lastUpdate": self.last_update.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> ExecutionState:
        """Build a state from JSON, raising ``ValueError`` on bad fields."""

        cycle = _non_negative_int(payload, "cycle")
        total = _non_negative_int(payload, "totalTasks")
        current = _non_negative_int(payload, "currentTaskIndex")
        raw_phase = payload.get("phase")
        if not isinstance(raw_phase, str):
            raise ValueError(f"State field 'phase' must be a string, got {raw_phase!r}")
        phase = Phase(raw_phase.strip().lower())
        last_update = datetime.now(tz=UTC)
        raw_update = payload.get("lastUpdate")
        if isinstance(raw_update, str) and raw_update:
            parsed = datetime.fromisoformat(raw_update)
            last_update = parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
        return cls(
            cycle=cycle,
            phase=phase,
            current_task_index=current,
            total_tasks=total,
            last_update=last_update,
        )


@dataclass(slots=True)
class LoopRunSummary:
    """Aggregate counters for CLI reporting."""

    cycles_started: int = 0
    cycles_completed: int = 0
    cycles_aborted: int = 0
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    commits: int = 0
    pushes: int = 0
    replans: int = 0
    cancelled: bool = False
    degraded: bool = False


def _non_negative_int(payload: dict[str, object], key: str) -> int:
    value = payload.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"State field {key!r} must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"State field {key!r} must be >= 0, got {value}")
    return value
