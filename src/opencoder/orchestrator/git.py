"""Git collaboration: dirty-tree check, conventional commits and push."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from opencoder.sanitization import MAX_COMMIT_DESCRIPTION_LENGTH, sanitize_single_line

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 120

# Checked in this order; the first list with a substring match wins.
_COMMIT_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("fix", ("fix", "bug", "resolve", "issue")),
    ("test", ("test", "spec", "coverage")),
    ("docs", ("docs", "documentation", "readme", "comment")),
    ("refactor", ("refactor", "rewrite", "restructure", "improve")),
)
_DEFAULT_COMMIT_TYPE = "feat"


def classify_commit_type(description: str) -> str:
    lowered = description.lower()
    for commit_type, keywords in _COMMIT_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return commit_type
    return _DEFAULT_COMMIT_TYPE


def generate_commit_message(description: str) -> str:
    """Build ``<type>: <description>`` with a single-line, bounded description."""

    safe = sanitize_single_line(description, max_length=MAX_COMMIT_DESCRIPTION_LENGTH)
    return f"{classify_commit_type(description)}: {safe or 'update'}"


class GitCollaborator:
    """Thin wrapper over the ``git`` CLI; failures are logged, never raised."""

    def __init__(self, *, git_executable: str = "git") -> None:
        self.git_executable = git_executable

    def has_changes(self, project_dir: Path) -> bool:
        result = self._git(project_dir, "status", "--porcelain")
        if result is None or result.returncode != 0:
            return False
        return bool(result.stdout.strip())

    def commit(self, project_dir: Path, message: str, *, signoff: bool = False) -> bool:
        staged = self._git(project_dir, "add", "-A")
        if staged is None or staged.returncode != 0:
            logger.error("Failed to stage changes: %s", _stderr(staged))
            return False
        args = ["commit"]
        if signoff:
            args.append("-s")
        args.extend(["-m", message])
        committed = self._git(project_dir, *args)
        if committed is None or committed.returncode != 0:
            logger.error("Failed to commit changes: %s", _stderr(committed))
            return False
        logger.info("Committed: %s", message)
        return True

    def push(self, project_dir: Path) -> bool:
        pushed = self._git(project_dir, "push")
        if pushed is None or pushed.returncode != 0:
            logger.error("Failed to push changes: %s", _stderr(pushed))
            return False
        logger.info("Pushed changes to remote")
        return True

    def _git(self, project_dir: Path, *args: str) -> subprocess.CompletedProcess[str] | None:
        try:
            return subprocess.run(  # noqa: S603
                [self.git_executable, *args],
                cwd=project_dir,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as error:
            logger.warning("git %s failed to run: %s", args[0], error)
            return None


def _stderr(result: subprocess.CompletedProcess[str] | None) -> str:
    if result is None:
        return "git could not be executed"
    return (result.stderr or result.stdout or f"exit code {result.returncode}").strip()
