"""Workspace layout and file helpers under ``<project>/.opencoder``."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

WORKSPACE_DIRNAME = ".opencoder"


@dataclass(slots=True, frozen=True)
class WorkspacePaths:
    """Deterministic file layout for one project."""

    project_dir: Path
    root: Path
    state_file: Path
    current_plan: Path
    alerts_file: Path
    logs_dir: Path
    main_log: Path
    cycle_log_dir: Path
    history_dir: Path
    ideas_dir: Path

    @classmethod
    def for_project(cls, project_dir: Path) -> WorkspacePaths:
        root = project_dir / WORKSPACE_DIRNAME
        logs_dir = root / "logs"
        return cls(
            project_dir=project_dir,
            root=root,
            state_file=root / "state.json",
            current_plan=root / "current_plan.md",
            alerts_file=root / "alerts.log",
            logs_dir=logs_dir,
            main_log=logs_dir / "main.log",
            cycle_log_dir=logs_dir / "cycles",
            history_dir=root / "history",
            ideas_dir=root / "ideas",
        )

    def cycle_log(self, cycle: int) -> Path:
        return self.cycle_log_dir / f"cycle_{cycle:03d}.log"

    def history_plan(self, cycle: int) -> Path:
        return self.history_dir / f"plan_cycle_{cycle:03d}.md"


def init_workspace(project_dir: Path) -> WorkspacePaths:
    """Create the workspace directories and return their paths."""

    paths = WorkspacePaths.for_project(project_dir)
    for directory in (
        paths.root,
        paths.logs_dir,
        paths.cycle_log_dir,
        paths.history_dir,
        paths.ideas_dir,
    ):
        directory.mkdir(parents=True, exist_ok=True)
    return paths


def write_text_atomic(path: Path, text: str) -> None:
    """Write ``text`` to a sibling temp file, fsync it, then replace ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)


def read_text_bounded(path: Path, *, max_bytes: int) -> str:
    """Read a UTF-8 file, refusing files larger than ``max_bytes``."""

    size = path.stat().st_size
    if size > max_bytes:
        raise FileTooLargeError(path=path, size=size, max_bytes=max_bytes)
    return path.read_text("utf-8")


class FileTooLargeError(ValueError):
    """Raised instead of truncating an oversized workspace file."""

    def __init__(self, *, path: Path, size: int, max_bytes: int) -> None:
        super().__init__(f"{path} is {size} bytes, larger than the {max_bytes} byte limit")
        self.path = path
        self.size = size
        self.max_bytes = max_bytes
