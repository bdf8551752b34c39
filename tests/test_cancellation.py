from __future__ import annotations

import os
import signal
import threading
import time

import allure
import pytest

from opencoder.orchestrator.cancellation import CancellationToken, install_signal_handlers

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Graceful Shutdown"),
]


def test_token_records_first_reason() -> None:
    token = CancellationToken()
    assert token.requested is False
    assert token.reason is None

    token.cancel("SIGINT")
    token.cancel("SIGTERM")

    assert token.requested is True
    assert token.reason == "SIGINT"


def test_sleep_completes_when_not_cancelled() -> None:
    assert CancellationToken().sleep(0.05) is True
    assert CancellationToken().sleep(0) is True


def test_sleep_wakes_up_on_cancel() -> None:
    token = CancellationToken()
    timer = threading.Timer(0.2, token.cancel)

    started = time.monotonic()
    timer.start()
    completed = token.sleep(30)

    assert completed is False
    assert time.monotonic() - started < 5


@pytest.mark.skipif(not hasattr(signal, "SIGTERM"), reason="POSIX signals required")
def test_signal_handlers_set_token_and_are_restored() -> None:
    token = CancellationToken()
    original = signal.getsignal(signal.SIGTERM)

    with install_signal_handlers(token):
        os.kill(os.getpid(), signal.SIGTERM)
        deadline = time.monotonic() + 5
        while not token.requested and time.monotonic() < deadline:
            time.sleep(0.01)

    assert token.requested is True
    assert token.reason == "SIGTERM"
    assert signal.getsignal(signal.SIGTERM) is original
