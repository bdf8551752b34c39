"""Cooperative shutdown shared by the loop and the agent runner."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.1


class CancellationToken:
    """A flag that signal handlers may set and workers poll.

    Setting it is a single attribute assignment, so it is safe to call from
    a signal handler running on the control thread.
    """

    def __init__(self) -> None:
        self._requested = False
        self._reason: str | None = None

    @property
    def requested(self) -> bool:
        return self._requested

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._requested:
            self._reason = reason
        self._requested = True

    def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return ``False`` if cancelled meanwhile."""

        deadline = time.monotonic() + max(0.0, seconds)
        while not self._requested and time.monotonic() < deadline:
            time.sleep(min(POLL_INTERVAL_SECONDS, max(0.0, deadline - time.monotonic())))
        return not self._requested


@contextmanager
def install_signal_handlers(token: CancellationToken) -> Iterator[None]:
    """Route SIGINT/SIGTERM to ``token`` for the duration of the block."""

    if not hasattr(signal, "SIGINT"):
        yield
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        token.cancel(name)

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        logger.debug("Signal handlers not installed outside the main thread")
        yield
        return
    try:
        yield
    finally:
        try:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
        except ValueError:
            pass
