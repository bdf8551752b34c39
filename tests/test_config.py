from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from opencoder.config import (
    CONFIG_FILE_RELATIVE_PATH,
    DEFAULT_AGENT_COMMAND_TEMPLATE,
    ConfigError,
    Settings,
    SettingsOverrides,
)

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings Resolution"),
]


def _write_config(project_dir: Path, payload: object) -> None:
    path = project_dir / CONFIG_FILE_RELATIVE_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), "utf-8")


def test_defaults_with_models_from_env(project_dir: Path, monkeypatch) -> None:
    monkeypatch.setenv("OPENCODER_PLAN_MODEL", "anthropic/claude-sonnet-4")
    monkeypatch.setenv("OPENCODER_BUILD_MODEL", "openai/gpt-4o")

    settings = Settings.from_env(SettingsOverrides(project_dir=project_dir))

    assert settings.planning_model == "anthropic/claude-sonnet-4"
    assert settings.execution_model == "openai/gpt-4o"
    assert settings.project_dir == project_dir.resolve()
    assert settings.max_retries == 3
    assert settings.backoff_base_seconds == 10
    assert settings.task_pause_seconds == 2
    assert settings.log_retention_days == 30
    assert settings.max_file_size_bytes == 1024 * 1024
    assert settings.auto_commit is True
    assert settings.auto_push is True
    assert settings.commit_signoff is False
    assert settings.verbose is False
    assert settings.user_hint is None
    assert settings.max_cycles is None
    assert settings.agent_command_template == DEFAULT_AGENT_COMMAND_TEMPLATE


def test_model_option_sets_both_models(project_dir: Path) -> None:
    settings = Settings.from_env(SettingsOverrides(project_dir=project_dir, model="a/b"))

    assert (settings.planning_model, settings.execution_model) == ("a/b", "a/b")


def test_precedence_cli_over_env_over_file(project_dir: Path, monkeypatch) -> None:
    _write_config(
        project_dir,
        {
            "planModel": "file/plan",
            "buildModel": "file/build",
            "maxRetries": 7,
            "backoffBase": 1.5,
            "autoPush": False,
            "verbose": True,
        },
    )
    monkeypatch.setenv("OPENCODER_BUILD_MODEL", "env/build")
    monkeypatch.setenv("OPENCODER_MAX_RETRIES", "5")

    settings = Settings.from_env(
        SettingsOverrides(project_dir=project_dir, plan_model="cli/plan", verbose=False),
    )

    assert settings.planning_model == "cli/plan"
    assert settings.execution_model == "env/build"
    assert settings.max_retries == 5
    assert settings.backoff_base_seconds == 1.5
    assert settings.auto_push is False
    assert settings.verbose is False


def test_project_dir_from_env(project_dir: Path, monkeypatch) -> None:
    monkeypatch.setenv("OPENCODER_PROJECT_DIR", str(project_dir))

    settings = Settings.from_env(SettingsOverrides(model="a/b"))

    assert settings.project_dir == project_dir.resolve()


def test_invalid_numbers_in_env_fall_back(project_dir: Path, monkeypatch) -> None:
    monkeypatch.setenv("OPENCODER_MAX_RETRIES", "many")
    monkeypatch.setenv("OPENCODER_BACKOFF_BASE", "soon")

    settings = Settings.from_env(SettingsOverrides(project_dir=project_dir, model="a/b"))

    assert settings.max_retries == 3
    assert settings.backoff_base_seconds == 10


def test_invalid_config_file_is_ignored(project_dir: Path) -> None:
    path = project_dir / CONFIG_FILE_RELATIVE_PATH
    path.parent.mkdir(parents=True)
    path.write_text("{ not json", "utf-8")

    settings = Settings.from_env(SettingsOverrides(project_dir=project_dir, model="a/b"))

    assert settings.max_retries == 3


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"build_model": "a/b"}, "Missing plan model"),
        ({"plan_model": "a/b"}, "Missing build model"),
        ({"model": "no-provider"}, "Invalid plan model format"),
        ({"plan_model": "a/b", "build_model": "a/"}, "Invalid build model format"),
        ({"model": "a/b c"}, "invalid characters"),
    ],
)
def test_model_errors(project_dir: Path, overrides: dict[str, str], message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        Settings.from_env(SettingsOverrides(project_dir=project_dir, **overrides))


def test_nonexistent_project_dir(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Project directory does not exist"):
        Settings.from_env(SettingsOverrides(project_dir=tmp_path / "missing", model="a/b"))


def test_project_dir_traversal_is_rejected(project_dir: Path) -> None:
    with pytest.raises(ConfigError, match="parent directories"):
        Settings.from_env(SettingsOverrides(project_dir=project_dir / ".." / "x", model="a/b"))


def test_invalid_boolean_env_is_an_error(project_dir: Path, monkeypatch) -> None:
    monkeypatch.setenv("OPENCODER_AUTO_COMMIT", "maybe")

    with pytest.raises(ConfigError, match="OPENCODER_AUTO_COMMIT"):
        Settings.from_env(SettingsOverrides(project_dir=project_dir, model="a/b"))


@pytest.mark.parametrize(("raw", "expected"), [("off", False), ("YES", True), ("0", False)])
def test_boolean_env_values(project_dir: Path, monkeypatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("OPENCODER_COMMIT_SIGNOFF", raw)

    settings = Settings.from_env(SettingsOverrides(project_dir=project_dir, model="a/b"))

    assert settings.commit_signoff is expected


def test_hint_is_flattened_and_validated(project_dir: Path) -> None:
    overrides = SettingsOverrides(project_dir=project_dir, model="a/b")

    settings = Settings.from_env(overrides, user_hint="  build the\nCLI  ")
    assert settings.user_hint == "build the CLI"

    with pytest.raises(ConfigError, match="Invalid hint"):
        Settings.from_env(overrides, user_hint="x" * 3000)


def test_validate_rejects_bad_bounds(project_dir: Path, monkeypatch) -> None:
    monkeypatch.setenv("OPENCODER_MAX_RETRIES", "0")

    with pytest.raises(ConfigError, match="MAX_RETRIES"):
        Settings.from_env(SettingsOverrides(project_dir=project_dir, model="a/b"))


def test_agent_command_template_requires_placeholders(project_dir: Path, monkeypatch) -> None:
    monkeypatch.setenv("OPENCODER_AGENT_COMMAND", "opencode run {prompt}")

    with pytest.raises(ConfigError, match="model"):
        Settings.from_env(SettingsOverrides(project_dir=project_dir, model="a/b"))
