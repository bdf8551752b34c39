"""Controllers for opencoder CLI commands."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from opencoder.config import (
    DEFAULT_MAX_FILE_SIZE_BYTES,
    Settings,
    SettingsOverrides,
    resolve_project_dir,
)
from opencoder.logs import RunLog
from opencoder.orchestrator.backend import AgentRunner
from opencoder.orchestrator.cancellation import CancellationToken, install_signal_handlers
from opencoder.orchestrator.git import GitCollaborator
from opencoder.orchestrator.ideas import add_idea, load_ideas
from opencoder.orchestrator.loop import OrchestrationLoop
from opencoder.orchestrator.models import LoopRunSummary
from opencoder.orchestrator.state import StateStore
from opencoder.workdir import WorkspacePaths, init_workspace

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunCommand:
    hint: str | None = None
    overrides: SettingsOverrides = field(default_factory=SettingsOverrides)


@dataclass(slots=True)
class StatusCommand:
    project_dir: Path | None = None


@dataclass(slots=True)
class IdeasCommand:
    project_dir: Path | None = None
    text: str | None = None


class OpencoderCliController:
    """Coordinates the loop, status and ideas CLI operations."""

    def run(self, command: RunCommand) -> list[str]:
        """Run the orchestration loop until interrupted or the cycle limit."""

        settings = Settings.from_env(overrides=command.overrides, user_hint=command.hint)
        paths = init_workspace(settings.project_dir)
        token = CancellationToken()
        with RunLog(
            paths,
            verbose=settings.verbose,
            buffer_bytes=settings.log_buffer_bytes,
        ) as run_log:
            removed = run_log.cleanup(settings.log_retention_days)
            if removed:
                logger.debug("Removed %d expired cycle logs", removed)
            logger.info("Project: %s", settings.project_dir)
            logger.info("Plan model: %s", settings.planning_model)
            logger.info("Build model: %s", settings.execution_model)
            if settings.user_hint:
                logger.info("Hint: %s", settings.user_hint)

            runner = AgentRunner(
                command_template=settings.agent_command_template,
                project_dir=settings.project_dir,
                max_retries=settings.max_retries,
                backoff_base_seconds=settings.backoff_base_seconds,
                token=token,
            )
            loop = OrchestrationLoop(
                settings=settings,
                paths=paths,
                runner=runner,
                git=GitCollaborator(),
                store=StateStore(paths.state_file, max_bytes=settings.max_file_size_bytes),
                token=token,
                run_log=run_log,
            )
            with install_signal_handlers(token):
                try:
                    summary = loop.run()
                finally:
                    runner.cancel()
        return _summary_lines(summary, paths)

    def status(self, command: StatusCommand) -> list[str]:
        """Describe the persisted loop position without touching the agent."""

        project_dir = _project_dir(command.project_dir)
        paths = WorkspacePaths.for_project(project_dir)
        if not paths.root.exists():
            return [f"No opencoder workspace in {project_dir}"]
        store = StateStore(paths.state_file, max_bytes=DEFAULT_MAX_FILE_SIZE_BYTES)
        state, plan_text = store.load_for_resume(paths.current_plan)
        ideas = load_ideas(paths.ideas_dir, max_bytes=DEFAULT_MAX_FILE_SIZE_BYTES)
        return [
            f"Project: {project_dir}",
            f"Cycle: {state.cycle}",
            f"Phase: {state.phase.value}",
            f"Tasks: {state.current_task_index}/{state.total_tasks} completed",
            f"Plan: {paths.current_plan if plan_text is not None else '-'}",
            f"Last update: {state.last_update.isoformat(timespec='seconds')}",
            f"Queued ideas: {len(ideas)}",
        ]

    def list_ideas(self, command: IdeasCommand) -> list[str]:
        paths = WorkspacePaths.for_project(_project_dir(command.project_dir))
        ideas = load_ideas(paths.ideas_dir, max_bytes=DEFAULT_MAX_FILE_SIZE_BYTES)
        if not ideas:
            return ["No queued ideas."]
        lines = [f"Queued ideas ({len(ideas)}):"]
        lines.extend(f"  {idea.filename}: {idea.summary}" for idea in ideas)
        return lines

    def add_idea(self, command: IdeasCommand) -> list[str]:
        paths = init_workspace(_project_dir(command.project_dir))
        path = add_idea(paths.ideas_dir, command.text or "")
        return [f"Idea queued: {path.name}"]


def _project_dir(explicit: Path | None) -> Path:
    return resolve_project_dir(explicit or os.getenv("OPENCODER_PROJECT_DIR"))


def _summary_lines(summary: LoopRunSummary, paths: WorkspacePaths) -> list[str]:
    lines = [
        "Run summary: "
        f"cycles_started={summary.cycles_started} completed={summary.cycles_completed} "
        f"aborted={summary.cycles_aborted} replans={summary.replans}",
        "Tasks: "
        f"succeeded={summary.tasks_succeeded} failed={summary.tasks_failed} "
        f"commits={summary.commits} pushes={summary.pushes}",
    ]
    if summary.cancelled:
        lines.append(f"Stopped on request; resume with `opencoder run` (state in {paths.root}).")
    if summary.degraded:
        lines.append("WARNING: progress could not be persisted; the next run may repeat work.")
    return lines
