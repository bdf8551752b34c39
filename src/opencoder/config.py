"""Runtime configuration merged from CLI options, environment and config file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from opencoder.sanitization import (
    InputValidationError,
    validate_hint,
    validate_model_name,
    validate_project_path,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_RELATIVE_PATH = Path(".opencode") / "opencoder" / "config.json"
DEFAULT_AGENT_COMMAND_TEMPLATE = "opencode run --model {model} --title {title} {prompt}"
DEFAULT_MAX_FILE_SIZE_BYTES = 1024 * 1024


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid before the loop starts."""


@dataclass(slots=True, frozen=True)
class SettingsOverrides:
    """Values passed explicitly on the command line; ``None`` means not given."""

    project_dir: Path | None = None
    model: str | None = None
    plan_model: str | None = None
    build_model: str | None = None
    verbose: bool | None = None
    max_cycles: int | None = None
    auto_commit: bool | None = None
    auto_push: bool | None = None
    commit_signoff: bool | None = None


@dataclass(slots=True, frozen=True)
class Settings:
    """Immutable configuration snapshot for one process lifetime."""

    planning_model: str
    execution_model: str
    project_dir: Path
    max_retries: int = 3
    backoff_base_seconds: float = 10.0
    task_pause_seconds: float = 2.0
    log_retention_days: int = 30
    max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES
    log_buffer_bytes: int = 2048
    user_hint: str | None = None
    verbose: bool = False
    auto_commit: bool = True
    auto_push: bool = True
    commit_signoff: bool = False
    agent_command_template: str = DEFAULT_AGENT_COMMAND_TEMPLATE
    max_cycles: int | None = None

    @classmethod
    def from_env(
        cls,
        overrides: SettingsOverrides | None = None,
        user_hint: str | None = None,
    ) -> Settings:
        """Merge CLI overrides, ``OPENCODER_*`` variables and the project config file.

        Precedence is CLI > environment > config file > defaults.

        Raises:
            ConfigError: a model is missing or malformed, the project directory
                does not exist, the hint is unsafe, or a numeric bound is invalid.
        """

        cli = overrides or SettingsOverrides()
        project_dir = resolve_project_dir(cli.project_dir or os.getenv("OPENCODER_PROJECT_DIR"))
        file_values = _load_config_file(project_dir / CONFIG_FILE_RELATIVE_PATH)

        planning_model = (
            cli.plan_model
            or cli.model
            or os.getenv("OPENCODER_PLAN_MODEL")
            or _file_str(file_values, "planModel")
        )
        execution_model = (
            cli.build_model
            or cli.model
            or os.getenv("OPENCODER_BUILD_MODEL")
            or _file_str(file_values, "buildModel")
        )
        if not planning_model:
            raise ConfigError(
                "Missing plan model. Pass --model/--plan-model, set OPENCODER_PLAN_MODEL, "
                f"or add planModel to {CONFIG_FILE_RELATIVE_PATH}.",
            )
        if not execution_model:
            raise ConfigError(
                "Missing build model. Pass --model/--build-model, set OPENCODER_BUILD_MODEL, "
                f"or add buildModel to {CONFIG_FILE_RELATIVE_PATH}.",
            )
        _validate_model_id(planning_model, label="plan")
        _validate_model_id(execution_model, label="build")

        hint: str | None = None
        if user_hint is not None and user_hint.strip():
            try:
                hint = validate_hint(user_hint.strip())
            except InputValidationError as error:
                raise ConfigError(f"Invalid hint: {error}") from error

        settings = cls(
            planning_model=planning_model,
            execution_model=execution_model,
            project_dir=project_dir,
            max_retries=_int_setting("OPENCODER_MAX_RETRIES", file_values, "maxRetries", 3),
            backoff_base_seconds=_float_setting(
                "OPENCODER_BACKOFF_BASE",
                file_values,
                "backoffBase",
                10.0,
            ),
            task_pause_seconds=_float_setting(
                "OPENCODER_TASK_PAUSE_SECONDS",
                file_values,
                "taskPauseSeconds",
                2.0,
            ),
            log_retention_days=_int_setting(
                "OPENCODER_LOG_RETENTION",
                file_values,
                "logRetention",
                30,
            ),
            max_file_size_bytes=_int_setting(
                "OPENCODER_MAX_FILE_SIZE",
                file_values,
                "maxFileSize",
                DEFAULT_MAX_FILE_SIZE_BYTES,
            ),
            user_hint=hint,
            verbose=_bool_setting(cli.verbose, "OPENCODER_VERBOSE", file_values, "verbose", False),
            auto_commit=_bool_setting(
                cli.auto_commit,
                "OPENCODER_AUTO_COMMIT",
                file_values,
                "autoCommit",
                True,
            ),
            auto_push=_bool_setting(
                cli.auto_push,
                "OPENCODER_AUTO_PUSH",
                file_values,
                "autoPush",
                True,
            ),
            commit_signoff=_bool_setting(
                cli.commit_signoff,
                "OPENCODER_COMMIT_SIGNOFF",
                file_values,
                "commitSignoff",
                False,
            ),
            agent_command_template=(
                os.getenv("OPENCODER_AGENT_COMMAND")
                or _file_str(file_values, "agentCommand")
                or DEFAULT_AGENT_COMMAND_TEMPLATE
            ),
            max_cycles=cli.max_cycles,
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise ``ConfigError`` if numeric bounds are out of range."""

        if self.max_retries < 1:
            raise ConfigError("OPENCODER_MAX_RETRIES must be >= 1.")
        if self.backoff_base_seconds < 0:
            raise ConfigError("OPENCODER_BACKOFF_BASE must be >= 0.")
        if self.task_pause_seconds < 0:
            raise ConfigError("OPENCODER_TASK_PAUSE_SECONDS must be >= 0.")
        if self.log_retention_days < 0:
            raise ConfigError("OPENCODER_LOG_RETENTION must be >= 0.")
        if self.max_file_size_bytes <= 0:
            raise ConfigError("OPENCODER_MAX_FILE_SIZE must be > 0.")
        if self.max_cycles is not None and self.max_cycles < 1:
            raise ConfigError("--max-cycles must be >= 1.")
        for placeholder in ("{model}", "{title}", "{prompt}"):
            if placeholder not in self.agent_command_template:
                raise ConfigError(f"Agent command template must include {placeholder}.")


def resolve_project_dir(raw: str | Path | None) -> Path:
    try:
        candidate = validate_project_path(raw) if raw is not None else Path.cwd()
    except InputValidationError as error:
        raise ConfigError(str(error)) from error
    resolved = candidate.expanduser().resolve()
    if not resolved.is_dir():
        raise ConfigError(f"Project directory does not exist: {candidate}")
    return resolved


def _validate_model_id(value: str, *, label: str) -> None:
    provider, _, model = value.partition("/")
    if not provider or not model:
        raise ConfigError(
            f"Invalid {label} model format: {value!r}. Expected 'provider/model'.",
        )
    try:
        validate_model_name(value)
    except InputValidationError as error:
        raise ConfigError(f"Invalid {label} model: {error}") from error


def _load_config_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        payload = json.loads(path.read_text("utf-8"))
    except (OSError, ValueError) as error:
        logger.warning("Ignoring unreadable config file %s: %s", path, error)
        return {}
    if not isinstance(payload, dict):
        logger.warning("Ignoring config file %s: expected a JSON object", path)
        return {}
    return payload


def _file_str(values: dict[str, Any], key: str) -> str | None:
    value = values.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _int_setting(env_name: str, file_values: dict[str, Any], key: str, default: int) -> int:
    raw_env = os.getenv(env_name)
    if raw_env is not None:
        try:
            return int(raw_env.strip())
        except ValueError:
            logger.warning("Ignoring non-integer %s=%r", env_name, raw_env)
    value = file_values.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return default


def _float_setting(env_name: str, file_values: dict[str, Any], key: str, default: float) -> float:
    raw_env = os.getenv(env_name)
    if raw_env is not None:
        try:
            return float(raw_env.strip())
        except ValueError:
            logger.warning("Ignoring non-numeric %s=%r", env_name, raw_env)
    value = file_values.get(key)
    if isinstance(value, int | float) and not isinstance(value, bool):
        return float(value)
    return default


def _bool_setting(
    cli_value: bool | None,
    env_name: str,
    file_values: dict[str, Any],
    key: str,
    default: bool,
) -> bool:
    if cli_value is not None:
        return cli_value
    env_value = _env_bool(env_name)
    if env_value is not None:
        return env_value
    value = file_values.get(key)
    if isinstance(value, bool):
        return value
    return default


def _env_bool(name: str) -> bool | None:
    value = os.getenv(name)
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid boolean value for {name}: {value!r}")
