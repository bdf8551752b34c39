"""Agent runner implementations."""

from opencoder.orchestrator.backend.base import AgentBackend, AgentRunResult
from opencoder.orchestrator.backend.cli_backend import AgentRunner, BackendRunError

__all__ = [
    "AgentBackend",
    "AgentRunResult",
    "AgentRunner",
    "BackendRunError",
]
