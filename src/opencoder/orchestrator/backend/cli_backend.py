"""Subprocess-based runner for the code-generation agent CLI."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import IO

from opencoder.orchestrator.backend.base import AgentRunResult
from opencoder.orchestrator.cancellation import POLL_INTERVAL_SECONDS, CancellationToken
from opencoder.sanitization import sanitize_preview

logger = logging.getLogger(__name__)

GRACEFUL_TERMINATE_SECONDS = 2
_EXIT_CODE_HINTS: dict[int, str] = {
    1: "general error (check arguments, authentication or agent configuration)",
    2: "model not found or invalid arguments",
    126: "agent CLI is not executable",
    127: "agent CLI not found on PATH",
}


class BackendRunError(RuntimeError):
    """Agent start-up error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class AgentRunner:
    """Run ``opencode run``-style commands with retry, backoff and cancellation."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        command_template: str,
        project_dir: Path,
        max_retries: int,
        backoff_base_seconds: float,
        token: CancellationToken,
        sleep: Callable[[float], bool] | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self.command_template = command_template
        self.project_dir = project_dir
        self.max_retries = max(1, max_retries)
        self.backoff_base_seconds = backoff_base_seconds
        self.token = token
        self._sleep = sleep or token.sleep
        self._env = env
        self._process: subprocess.Popen[str] | None = None

    def run(self, model: str, title: str, prompt: str) -> AgentRunResult:
        """Invoke the agent until it exits 0 or attempts run out."""

        try:
            run_args = _build_run_args(
                command_template=self.command_template,
                model=model,
                title=title,
                prompt=prompt,
            )
        except BackendRunError as error:
            logger.error("%s", error)
            return AgentRunResult(ok=False, reason=str(error))

        reason = "agent was not started"
        exit_code: int | None = None
        attempt = 0
        for attempt in range(1, self.max_retries + 1):
            if attempt > 1:
                delay = backoff_delay(self.backoff_base_seconds, attempt)
                logger.info(
                    "Retrying %s in %.1fs (attempt %d/%d)",
                    title,
                    delay,
                    attempt,
                    self.max_retries,
                )
                if not self._sleep(delay):
                    return _cancelled(attempt - 1, exit_code)
            if self.token.requested:
                return _cancelled(attempt - 1, exit_code)

            logger.debug("Running agent: %s (model %s, attempt %d)", title, model, attempt)
            try:
                exit_code, output = self._run_once(run_args)
            except BackendRunError as error:
                reason = str(error)
                logger.warning("%s: %s", title, reason)
                if not error.transient:
                    return AgentRunResult(ok=False, reason=reason, attempts=attempt)
                continue

            if exit_code == 0:
                logger.debug("Agent output preview: %s", sanitize_preview(output, max_chars=500))
                return AgentRunResult(ok=True, output=output, attempts=attempt, exit_code=0)
            if self.token.requested:
                return _cancelled(attempt, exit_code)

            reason = describe_exit_code(exit_code)
            logger.warning("%s failed: %s", title, reason)

        logger.error("%s failed after %d attempts: %s", title, attempt, reason)
        return AgentRunResult(ok=False, reason=reason, attempts=attempt, exit_code=exit_code)

    def cancel(self) -> None:
        """Terminate the in-flight agent process; a finished one is ignored."""

        process = self._process
        if process is not None and process.poll() is None:
            logger.info("Terminating agent process %d", process.pid)
            _terminate_process(process)

    def _run_once(self, run_args: list[str]) -> tuple[int, str]:
        env = os.environ.copy() if self._env is None else dict(self._env)
        with tempfile.TemporaryFile(mode="w+", encoding="utf-8", errors="replace") as stdout:
            try:
                process = subprocess.Popen(  # noqa: S603
                    run_args,
                    cwd=self.project_dir,
                    env=env,
                    stdin=subprocess.DEVNULL,
                    stdout=stdout,
                    text=True,
                )
            except FileNotFoundError as error:
                raise BackendRunError(
                    f"Agent command not found: {run_args[0]}",
                    transient=True,
                ) from error
            except OSError as error:
                raise BackendRunError(f"Agent failed to start: {error}", transient=True) from error
            except ValueError as error:
                raise BackendRunError(
                    f"Agent arguments rejected: {error}",
                    transient=False,
                ) from error

            self._process = process
            try:
                returncode = self._wait(process)
            finally:
                self._process = None
            return returncode, _read_all(stdout)

    def _wait(self, process: subprocess.Popen[str]) -> int:
        while True:
            returncode = process.poll()
            if returncode is not None:
                return returncode
            if self.token.requested:
                _terminate_process(process)
                return process.returncode if process.returncode is not None else -1
            time.sleep(POLL_INTERVAL_SECONDS)


def backoff_delay(base_seconds: float, attempt: int) -> float:
    """Delay before ``attempt`` (2-based): base, 2*base, 4*base, ..."""

    if attempt <= 1:
        return 0.0
    return base_seconds * 2 ** (attempt - 2)


def describe_exit_code(exit_code: int) -> str:
    if exit_code < 0:
        return f"agent terminated by signal {-exit_code}"
    hint = _EXIT_CODE_HINTS.get(exit_code)
    if hint is None:
        return f"agent exited with code {exit_code}"
    return f"agent exited with code {exit_code}: {hint}"


def _build_run_args(
    *,
    command_template: str,
    model: str,
    title: str,
    prompt: str,
) -> list[str]:
    stripped = command_template.strip()
    if not stripped:
        raise BackendRunError("Agent command template is empty.", transient=False)
    if "{prompt}" not in stripped:
        raise BackendRunError("Agent command template must include {prompt}.", transient=False)
    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            title=shlex.quote(title),
            prompt=shlex.quote(prompt),
        )
    except (KeyError, IndexError) as error:
        raise BackendRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise BackendRunError("Agent command template rendered empty command.", transient=False)
    return argv


def _read_all(handle: IO[str]) -> str:
    handle.flush()
    handle.seek(0)
    return handle.read()


def _cancelled(attempts: int, exit_code: int | None) -> AgentRunResult:
    return AgentRunResult(ok=False, reason="cancelled", attempts=attempts, exit_code=exit_code)


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=GRACEFUL_TERMINATE_SECONDS)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=GRACEFUL_TERMINATE_SECONDS)
