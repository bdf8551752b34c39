from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import allure
import pytest

from opencoder.orchestrator.git import (
    GitCollaborator,
    classify_commit_type,
    generate_commit_message,
)

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Git Collaboration"),
]

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


@pytest.mark.parametrize(
    ("description", "expected"),
    [
        ("Fix crash on empty input", "fix: Fix crash on empty input"),
        ("Add fix for login bug", "fix: Add fix for login bug"),
        ("Resolve issue #12", "fix: Resolve issue #12"),
        ("Improve test coverage", "test: Improve test coverage"),
        ("Add unit tests", "test: Add unit tests"),
        ("Add documentation for API", "docs: Add documentation for API"),
        ("Update README", "docs: Update README"),
        ("Refactor the parser", "refactor: Refactor the parser"),
        ("Improve startup time", "refactor: Improve startup time"),
        ("Implement new exporter", "feat: Implement new exporter"),
        ("Update dependencies", "feat: Update dependencies"),
    ],
)
def test_generate_commit_message_precedence(description: str, expected: str) -> None:
    assert generate_commit_message(description) == expected


def test_commit_message_is_single_line_and_bounded() -> None:
    message = generate_commit_message("Add parser\nwith\ttabs\x07 and " + "x" * 500)

    assert "\n" not in message
    assert "\t" not in message
    assert "\x07" not in message
    assert message.startswith("feat: Add parser with tabs and ")
    assert len(message) <= len("feat: ") + 200
    assert message.endswith("...")


def test_classify_commit_type_defaults_to_feat() -> None:
    assert classify_commit_type("") == "feat"
    assert classify_commit_type("Bump version") == "feat"


def _git(repo: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args],
        cwd=repo,
        check=True,
        capture_output=True,
        text=True,
    ).stdout


@pytest.fixture()
def repo(tmp_path: Path) -> Path:
    path = tmp_path / "repo"
    path.mkdir()
    _git(path, "init", "-q")
    _git(path, "config", "user.email", "dev@example.com")
    _git(path, "config", "user.name", "Dev")
    _git(path, "config", "commit.gpgsign", "false")
    return path


@requires_git
def test_commit_with_signoff(repo: Path) -> None:
    git = GitCollaborator()
    assert git.has_changes(repo) is False

    (repo / "module.py").write_text("print('hi')\n", "utf-8")
    assert git.has_changes(repo) is True

    assert git.commit(repo, "feat: Add module", signoff=True) is True
    assert git.has_changes(repo) is False
    body = _git(repo, "log", "-1", "--format=%B")
    assert body.startswith("feat: Add module")
    assert "Signed-off-by: Dev <dev@example.com>" in body


@requires_git
def test_commit_message_is_passed_verbatim_without_shell(repo: Path) -> None:
    (repo / "a.txt").write_text("a", "utf-8")
    message = 'fix: handle "quotes" and $(whoami) `ticks`'

    assert GitCollaborator().commit(repo, message) is True
    assert _git(repo, "log", "-1", "--format=%s").strip() == message


@requires_git
def test_push_without_remote_fails_softly(repo: Path) -> None:
    (repo / "a.txt").write_text("a", "utf-8")
    git = GitCollaborator()
    git.commit(repo, "feat: a")

    assert git.push(repo) is False


def test_has_changes_outside_repository_is_false(tmp_path: Path) -> None:
    assert GitCollaborator(git_executable="definitely-not-git").has_changes(tmp_path) is False
