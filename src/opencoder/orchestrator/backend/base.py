"""Agent runner interface used by the orchestration loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True)
class AgentRunResult:
    """Outcome of one logical agent invocation, retries included."""

    ok: bool
    output: str = ""
    reason: str | None = None
    attempts: int = 0
    exit_code: int | None = None


class AgentBackend(Protocol):
    """Protocol implemented by agent runners."""

    def run(self, model: str, title: str, prompt: str) -> AgentRunResult:
        """Run the agent and return its captured output; never raises."""

    def cancel(self) -> None:
        """Stop the in-flight invocation, if any."""
