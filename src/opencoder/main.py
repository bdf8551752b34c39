"""CLI entrypoint for opencoder."""

from collections.abc import Callable
from pathlib import Path

import rich_click as click

from opencoder import __version__
from opencoder.config import ConfigError, SettingsOverrides
from opencoder.controllers import (
    IdeasCommand,
    OpencoderCliController,
    RunCommand,
    StatusCommand,
)
from opencoder.orchestrator.state import StateStoreError
from opencoder.sanitization import InputValidationError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = OpencoderCliController()

_PROJECT_OPTION = click.option(
    "--project",
    "-p",
    "project_dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Project directory (default: current directory or OPENCODER_PROJECT_DIR).",
)


@click.group()
@click.version_option(version=__version__, prog_name="opencoder")
def opencoder() -> None:
    """Autonomous Plan -> Execute -> Evaluate -> Commit loop around `opencode`."""


@opencoder.command("run")
@click.argument("hint", required=False)
@_PROJECT_OPTION
@click.option("--model", "-m", default=None, help="Model for both planning and building.")
@click.option("--plan-model", "-P", default=None, help="Model for planning and evaluation.")
@click.option("--build-model", "-E", default=None, help="Model for executing tasks.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Show debug output.")
@click.option(
    "--max-cycles",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many cycles (default: run until interrupted).",
)
@click.option(
    "--auto-commit/--no-auto-commit",
    default=None,
    help="Commit after each completed task.",
)
@click.option(
    "--auto-push/--no-auto-push",
    default=None,
    help="Push after each completed cycle.",
)
@click.option("--signoff", is_flag=True, default=False, help="Add Signed-off-by to commits.")
def run(  # noqa: PLR0913
    hint: str | None,
    project_dir: Path | None,
    model: str | None,
    plan_model: str | None,
    build_model: str | None,
    verbose: bool,
    max_cycles: int | None,
    auto_commit: bool | None,
    auto_push: bool | None,
    signoff: bool,
) -> None:
    """Run development cycles, optionally steered by a free-text HINT.

    Interrupt with Ctrl+C; the next `opencoder run` resumes where it stopped.
    """

    _emit_lines(
        _guarded(
            lambda: CONTROLLER.run(
                RunCommand(
                    hint=hint,
                    overrides=SettingsOverrides(
                        project_dir=project_dir,
                        model=model,
                        plan_model=plan_model,
                        build_model=build_model,
                        verbose=True if verbose else None,
                        max_cycles=max_cycles,
                        auto_commit=auto_commit,
                        auto_push=auto_push,
                        commit_signoff=True if signoff else None,
                    ),
                ),
            ),
        ),
    )


@opencoder.command("status")
@_PROJECT_OPTION
def status(project_dir: Path | None) -> None:
    """Show the persisted cycle, phase and task progress."""

    _emit_lines(_guarded(lambda: CONTROLLER.status(StatusCommand(project_dir=project_dir))))


@opencoder.group()
def ideas() -> None:
    """Manage the queue of ideas the planner picks up first."""


@ideas.command("list")
@_PROJECT_OPTION
def ideas_list(project_dir: Path | None) -> None:
    """List queued ideas, oldest first."""

    _emit_lines(_guarded(lambda: CONTROLLER.list_ideas(IdeasCommand(project_dir=project_dir))))


@ideas.command("add")
@click.argument("text")
@_PROJECT_OPTION
def ideas_add(text: str, project_dir: Path | None) -> None:
    """Queue TEXT as a new idea."""

    _emit_lines(
        _guarded(lambda: CONTROLLER.add_idea(IdeasCommand(project_dir=project_dir, text=text))),
    )


def _guarded(action: Callable[[], list[str]]) -> list[str]:
    try:
        return action()
    except (ConfigError, InputValidationError, StateStoreError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    opencoder()
