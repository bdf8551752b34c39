"""Durable loop state stored as ``state.json`` next to the plan."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

from opencoder.orchestrator.models import ExecutionState, Phase
from opencoder.orchestrator.plan import (
    PlanTooLargeError,
    count_completed_tasks,
    count_total_tasks,
    read_plan_file,
    validate_plan,
)
from opencoder.workdir import FileTooLargeError, read_text_bounded, write_text_atomic

logger = logging.getLogger(__name__)


class StateStoreError(RuntimeError):
    """The state file exists but cannot be read or trusted."""


class StateStore:
    """Load, reconcile and atomically save :class:`ExecutionState`."""

    def __init__(self, state_file: Path, *, max_bytes: int) -> None:
        self.state_file = state_file
        self.max_bytes = max_bytes

    def load(self) -> ExecutionState | None:
        """Return the stored state, or ``None`` for a fresh run.

        Raises:
            StateStoreError: the file is unreadable, oversized or malformed.
        """

        if not self.state_file.exists():
            return None
        try:
            raw = read_text_bounded(self.state_file, max_bytes=self.max_bytes)
        except FileTooLargeError as error:
            raise StateStoreError(str(error)) from error
        except OSError as error:
            raise StateStoreError(f"Cannot read state file {self.state_file}: {error}") from error
        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise TypeError(f"Expected JSON object in {self.state_file}")
            return ExecutionState.from_payload(payload)
        except (TypeError, ValueError) as error:
            raise StateStoreError(f"Malformed state file {self.state_file}: {error}") from error

    def save(self, state: ExecutionState) -> None:
        """Atomically write ``state``; ``OSError`` propagates to the caller."""

        state.last_update = datetime.now(tz=UTC)
        write_text_atomic(
            self.state_file,
            json.dumps(state.to_payload(), indent=2, sort_keys=True) + "\n",
        )

    def load_for_resume(self, plan_path: Path) -> tuple[ExecutionState, str | None]:
        """Load the state and reconcile it against the plan on disk.

        Returns the reconciled state and the plan text (``None`` when there
        is no usable plan).
        """

        stored = self.load()
        state = stored if stored is not None else ExecutionState()
        if stored is None:
            logger.info("Starting fresh (no previous state)")
        else:
            logger.info("Resuming: cycle %d, phase %s", stored.cycle, stored.phase.value)

        plan_text: str | None = None
        if plan_path.exists():
            try:
                plan_text = read_plan_file(plan_path, max_bytes=self.max_bytes)
            except PlanTooLargeError as error:
                logger.error("Rejecting oversized plan file: %s", error)
            except OSError as error:
                logger.warning("Cannot read plan file %s: %s", plan_path, error)
        return reconcile(state, plan_text), plan_text


def reconcile(state: ExecutionState, plan_text: str | None) -> ExecutionState:
    """Recompute task counters from the plan instead of trusting the record."""

    if plan_text is None:
        if state.phase in {Phase.EXECUTING, Phase.EVALUATING}:
            logger.warning(
                "State says %s but no plan is available; re-planning cycle %d",
                state.phase.value,
                state.cycle,
            )
            return replace(state, phase=Phase.PLANNING, current_task_index=0, total_tasks=0)
        return state

    total = count_total_tasks(plan_text)
    completed = count_completed_tasks(plan_text)
    reconciled = replace(state, total_tasks=total, current_task_index=completed)
    if (total, completed) != (state.total_tasks, state.current_task_index):
        logger.info("Recalculated: %d completed of %d total tasks", completed, total)

    if reconciled.phase is Phase.EXECUTING and validate_plan(plan_text) is not None:
        if total == 0:
            return replace(reconciled, phase=Phase.PLANNING)
        return replace(reconciled, phase=Phase.EVALUATING)
    return reconciled
