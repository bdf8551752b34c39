"""Deterministic stand-in for the ``opencode`` CLI used by integration tests.

Invoked as ``python -m opencoder.orchestrator.backend.echo_agent --model M
--title T PROMPT``. Behaviour is steered with environment variables:

``OPENCODER_ECHO_FAIL_FIRST``
    Exit 1 for the first N matching invocations (needs ``OPENCODER_ECHO_COUNTER_FILE``).
``OPENCODER_ECHO_FAIL_TITLE``
    Only invocations whose title contains this text count towards failures.
``OPENCODER_ECHO_SLEEP``
    Seconds to sleep before answering.
``OPENCODER_ECHO_TASKS``
    Number of tasks in generated plans (default 2).
``OPENCODER_ECHO_VERDICT``
    Evaluation answer (default ``COMPLETE``).
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path

CHANGES_FILE = "echo_changes.txt"


def main(argv: list[str] | None = None) -> int:
    """Answer one planning, execution or evaluation request."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--model", required=True)
    parser.add_argument("--title", required=True)
    parser.add_argument("prompt")
    args = parser.parse_args(argv)

    delay = float(os.getenv("OPENCODER_ECHO_SLEEP", "0") or 0)
    if delay > 0:
        time.sleep(delay)

    if _should_fail(args.title):
        print(f"echo_agent: simulated failure for {args.title}", file=sys.stderr)
        return 1

    print(f"echo_agent: {args.title} with {args.model}", file=sys.stderr)
    if "Planning" in args.title:
        print(_plan(int(os.getenv("OPENCODER_ECHO_TASKS", "2"))))
    elif "Execution" in args.title:
        first_line = args.prompt.strip().splitlines()[0] if args.prompt.strip() else ""
        with Path(CHANGES_FILE).open("a", encoding="utf-8") as handle:
            handle.write(f"{args.title}: {first_line}\n")
        print("Done.")
    elif "Evaluation" in args.title:
        verdict = os.getenv("OPENCODER_ECHO_VERDICT", "COMPLETE")
        print(f"{verdict}\nReason: evaluated by echo agent")
    else:
        print(args.prompt)
    return 0


def _plan(task_count: int) -> str:
    tasks = "\n".join(f"- [ ] Echo task {index}" for index in range(1, task_count + 1))
    return f"Here is the plan:\n\n```markdown\n# Plan\n\n## Tasks\n{tasks}\n```\n"


def _should_fail(title: str) -> bool:
    fail_first = int(os.getenv("OPENCODER_ECHO_FAIL_FIRST", "0") or 0)
    counter_file = os.getenv("OPENCODER_ECHO_COUNTER_FILE")
    if fail_first <= 0 or not counter_file:
        return False
    title_filter = os.getenv("OPENCODER_ECHO_FAIL_TITLE")
    if title_filter and title_filter not in title:
        return False
    path = Path(counter_file)
    seen = int(path.read_text("utf-8").strip() or 0) if path.exists() else 0
    path.write_text(str(seen + 1), "utf-8")
    return seen < fail_first


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
