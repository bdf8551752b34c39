"""Plan -> Execute -> Evaluate -> Commit cycles driven by an external agent.

Every state transition is persisted (plan first, then state) before the next
agent call, so the process can be killed at any point and resumed from the
first uncompleted task of the current plan.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from opencoder.config import Settings
from opencoder.logs import RunLog
from opencoder.orchestrator.backend.base import AgentBackend
from opencoder.orchestrator.backend.cli_backend import backoff_delay
from opencoder.orchestrator.cancellation import CancellationToken
from opencoder.orchestrator.evaluator import extract_reason, find_verdict_marker, is_complete
from opencoder.orchestrator.git import GitCollaborator, generate_commit_message
from opencoder.orchestrator.ideas import next_idea, remove_idea
from opencoder.orchestrator.models import ExecutionState, LoopRunSummary, Phase, Verdict
from opencoder.orchestrator.plan import (
    PlanTooLargeError,
    count_completed_tasks,
    count_total_tasks,
    extract_plan_from_response,
    mark_task_complete,
    parse_tasks,
    uncompleted_tasks,
    validate_plan,
    write_plan_file,
)
from opencoder.orchestrator.prompts import (
    build_evaluation_prompt,
    build_execution_prompt,
    build_planning_prompt,
    build_verdict_reminder,
    evaluation_title,
    execution_title,
    planning_title,
)
from opencoder.orchestrator.state import StateStore
from opencoder.sanitization import sanitize_single_line
from opencoder.workdir import WorkspacePaths, write_text_atomic

logger = logging.getLogger(__name__)


class OrchestrationLoop:
    """Single-threaded controller of the autonomous development loop."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: Settings,
        paths: WorkspacePaths,
        runner: AgentBackend,
        git: GitCollaborator,
        store: StateStore,
        token: CancellationToken,
        run_log: RunLog | None = None,
        sleep: Callable[[float], bool] | None = None,
    ) -> None:
        self.settings = settings
        self.paths = paths
        self.runner = runner
        self.git = git
        self.store = store
        self.token = token
        self.run_log = run_log
        self._sleep = sleep or token.sleep
        self._summary = LoopRunSummary()
        self._regenerations = 0
        self._previous_reason: str | None = None
        self._started_cycle: int | None = None
        self._cycles_finished = 0

    def run(self) -> LoopRunSummary:
        """Run cycles until cancelled or ``max_cycles`` cycles have finished.

        Raises:
            StateStoreError: the stored state cannot be loaded.
        """

        state, plan_text = self.store.load_for_resume(self.paths.current_plan)
        if state.cycle < 1:
            state.cycle = 1
        if state.phase is Phase.IDLE:
            state.phase = Phase.PLANNING
            self._save(state)

        while not self.token.requested:
            if self._cycle_limit_reached():
                logger.info("Reached the limit of %d cycles", self.settings.max_cycles)
                break
            self._enter_cycle(state.cycle)

            if state.phase is Phase.PLANNING:
                plan_text = self._plan(state)
                if plan_text is None:
                    if self.token.requested:
                        break
                    self._abort_cycle(state)
                    continue

            if state.phase is Phase.EXECUTING and plan_text is None:
                state.phase = Phase.PLANNING
                continue

            if state.phase is Phase.EXECUTING:
                plan_text = self._execute(state, plan_text)
                if self.token.requested:
                    break
                state.phase = Phase.EVALUATING
                self._save(state)

            if state.phase is Phase.EVALUATING:
                outcome = self._evaluate(state)
                if outcome is None:
                    break
                verdict, reason = outcome
                self._finish_evaluation(state, plan_text, verdict, reason)

        self._save(state)
        self._summary.cancelled = self.token.requested
        if self._summary.cancelled:
            logger.info("Shutdown requested (%s); state saved", self.token.reason)
        return self._summary

    def _plan(self, state: ExecutionState) -> str | None:
        """Generate, validate and persist a plan; ``None`` when it cannot."""

        picked = next_idea(self.paths.ideas_dir, max_bytes=self.settings.max_file_size_bytes)
        idea_text = None
        if picked is not None:
            logger.info("Planning around queued idea %s", picked[0].filename)
            idea_text = picked[1]

        attempts = self.settings.max_retries
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                delay = backoff_delay(self.settings.backoff_base_seconds, attempt)
                logger.info(
                    "Retrying planning in %.1fs (attempt %d/%d)",
                    delay,
                    attempt,
                    attempts,
                )
                if not self._sleep(delay):
                    return None
            if self.token.requested:
                return None

            logger.info("Cycle %d: planning", state.cycle)
            result = self.runner.run(
                self.settings.planning_model,
                planning_title(state.cycle),
                build_planning_prompt(
                    cycle=state.cycle,
                    hint=self.settings.user_hint,
                    idea=idea_text,
                    previous_reason=self._previous_reason,
                ),
            )
            if self.token.requested:
                return None
            if not result.ok:
                logger.warning("Planning run failed: %s", result.reason)
                continue

            candidate = extract_plan_from_response(result.output)
            problem = validate_plan(candidate)
            if problem is not None:
                logger.warning("Planning produced an unusable plan: %s", problem.value)
                continue
            candidate += "\n"
            persisted = True
            try:
                write_plan_file(
                    self.paths.current_plan,
                    candidate,
                    max_bytes=self.settings.max_file_size_bytes,
                )
            except PlanTooLargeError as error:
                logger.warning("Planning produced an oversized plan: %s", error)
                continue
            except OSError as error:
                persisted = False
                self._mark_degraded(f"plan could not be written: {error}")

            if picked is not None and persisted:
                remove_idea(picked[0])
            state.phase = Phase.EXECUTING
            state.total_tasks = count_total_tasks(candidate)
            state.current_task_index = count_completed_tasks(candidate)
            self._save(state)
            logger.info("Plan ready: %d tasks", state.total_tasks)
            return candidate

        logger.critical(
            "Planning failed for cycle %d after %d attempts; skipping the cycle",
            state.cycle,
            attempts,
        )
        return None

    def _execute(self, state: ExecutionState, plan_text: str) -> str:
        """Run every uncompleted task in order; returns the updated plan."""

        tasks = parse_tasks(plan_text)
        numbers = {task.line_number: number for number, task in enumerate(tasks, start=1)}
        pending = uncompleted_tasks(plan_text)
        logger.info("Cycle %d: %d of %d tasks to run", state.cycle, len(pending), len(tasks))
        for executed, task in enumerate(pending):
            if self.token.requested:
                return plan_text
            if executed > 0 and not self._sleep(self.settings.task_pause_seconds):
                return plan_text
            number = numbers[task.line_number]

            description = sanitize_single_line(task.description)
            logger.info("Task %d/%d: %s", number, len(tasks), description)
            result = self.runner.run(
                self.settings.execution_model,
                execution_title(state.cycle),
                build_execution_prompt(
                    task=task.description,
                    task_number=number,
                    total_tasks=len(tasks),
                    plan_path=self.paths.current_plan,
                    hint=self.settings.user_hint,
                ),
            )
            if not result.ok:
                if self.token.requested:
                    return plan_text
                self._summary.tasks_failed += 1
                logger.error("Task %d failed: %s", number, result.reason)
                continue

            plan_text = mark_task_complete(plan_text, task.line_number)
            self._persist_plan(plan_text)
            state.current_task_index = count_completed_tasks(plan_text)
            self._save(state)
            self._summary.tasks_succeeded += 1
            self._commit(task.description)
        return plan_text

    def _evaluate(self, state: ExecutionState) -> tuple[Verdict, str | None] | None:
        """Ask for a verdict; ``None`` means the run was cancelled."""

        logger.info("Cycle %d: evaluating", state.cycle)
        base_prompt = build_evaluation_prompt(cycle=state.cycle, plan_path=self.paths.current_plan)
        prompt = base_prompt
        for attempt in range(1, self.settings.max_retries + 1):
            if self.token.requested:
                return None
            result = self.runner.run(
                self.settings.planning_model,
                evaluation_title(state.cycle),
                prompt,
            )
            if self.token.requested:
                return None
            if not result.ok:
                logger.warning("Evaluation run failed (attempt %d): %s", attempt, result.reason)
                continue
            verdict = find_verdict_marker(result.output)
            if verdict is not None:
                return verdict, extract_reason(result.output)
            logger.warning("Evaluation answer named no verdict (attempt %d)", attempt)
            prompt = f"{base_prompt}\n\n{build_verdict_reminder(result.output)}"

        logger.warning("No usable verdict after %d attempts; assuming NEEDS_WORK", attempt)
        return Verdict.NEEDS_WORK, None

    def _finish_evaluation(
        self,
        state: ExecutionState,
        plan_text: str | None,
        verdict: Verdict,
        reason: str | None,
    ) -> None:
        if is_complete(verdict):
            suffix = f": {reason}" if reason else ""
            logger.info("Cycle %d complete%s", state.cycle, suffix)
            if self.settings.auto_push and self.git.push(self.settings.project_dir):
                self._summary.pushes += 1
            if plan_text is not None:
                self._archive_plan(state.cycle, plan_text)
            self._summary.cycles_completed += 1
            self._advance(state)
            return

        self._regenerations += 1
        self._summary.replans += 1
        if self._regenerations >= self.settings.max_retries:
            logger.warning(
                "Cycle %d still needs work after %d plans; moving on to the next cycle",
                state.cycle,
                self._regenerations,
            )
            self._advance(state)
            return
        suffix = f": {reason}" if reason else ""
        logger.info("Cycle %d needs work%s; re-planning", state.cycle, suffix)
        self._previous_reason = reason
        state.phase = Phase.PLANNING
        state.total_tasks = 0
        state.current_task_index = 0
        self._save(state)

    def _abort_cycle(self, state: ExecutionState) -> None:
        self._summary.cycles_aborted += 1
        self._sleep(self.settings.backoff_base_seconds)
        self._advance(state)

    def _advance(self, state: ExecutionState) -> None:
        self._cycles_finished += 1
        self._regenerations = 0
        self._previous_reason = None
        state.cycle += 1
        state.phase = Phase.PLANNING
        state.total_tasks = 0
        state.current_task_index = 0
        self._save(state)

    def _enter_cycle(self, cycle: int) -> None:
        if self._started_cycle == cycle:
            return
        self._started_cycle = cycle
        self._summary.cycles_started += 1
        if self.run_log is not None:
            self.run_log.set_cycle(cycle)
        logger.info("Starting cycle %d", cycle)

    def _cycle_limit_reached(self) -> bool:
        limit = self.settings.max_cycles
        return limit is not None and self._cycles_finished >= limit

    def _commit(self, description: str) -> None:
        project_dir = self.settings.project_dir
        if not self.settings.auto_commit or not self.git.has_changes(project_dir):
            return
        message = generate_commit_message(description)
        if self.git.commit(project_dir, message, signoff=self.settings.commit_signoff):
            self._summary.commits += 1

    def _archive_plan(self, cycle: int, plan_text: str) -> None:
        try:
            write_text_atomic(self.paths.history_plan(cycle), plan_text)
        except OSError as error:
            logger.warning("Could not archive plan for cycle %d: %s", cycle, error)

    def _persist_plan(self, plan_text: str) -> None:
        try:
            write_plan_file(
                self.paths.current_plan,
                plan_text,
                max_bytes=self.settings.max_file_size_bytes,
            )
        except (OSError, PlanTooLargeError) as error:
            self._mark_degraded(f"plan could not be written: {error}")

    def _save(self, state: ExecutionState) -> None:
        try:
            self.store.save(state)
        except OSError as error:
            self._mark_degraded(f"state could not be saved: {error}")

    def _mark_degraded(self, detail: str) -> None:
        if not self._summary.degraded:
            logger.error("Continuing without durable progress, resume is unsafe: %s", detail)
        else:
            logger.warning("Still degraded: %s", detail)
        self._summary.degraded = True
