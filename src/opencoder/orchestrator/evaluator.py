"""Deterministic classification of free-text evaluation answers."""

from __future__ import annotations

import re

from opencoder.orchestrator.models import Verdict

_FENCE_LINE_PATTERN = re.compile(r"^\s*```.*$", re.MULTILINE)
_COMPLETE_PATTERN = re.compile(r"(?<![A-Z_])COMPLETE(?![A-Z_])")
_NEEDS_WORK_PATTERN = re.compile(r"(?<![A-Z_])NEEDS_WORK(?![A-Z_])")
_REASON_PATTERN = re.compile(r"reason:[ \t]*(?P<reason>[^\r\n]*)", re.IGNORECASE)


def find_verdict_marker(raw: str) -> Verdict | None:
    """Return the verdict named by the answer, or ``None`` if it names none.

    COMPLETE wins only when no NEEDS_WORK appears before it.
    """

    normalized = _normalize(raw)
    complete = _COMPLETE_PATTERN.search(normalized)
    needs_work = _NEEDS_WORK_PATTERN.search(normalized)
    if complete is not None and (needs_work is None or complete.start() < needs_work.start()):
        return Verdict.COMPLETE
    if needs_work is not None:
        return Verdict.NEEDS_WORK
    return None


def parse_verdict(raw: str) -> Verdict:
    """Classify the answer; anything unrecognized is NEEDS_WORK."""

    return find_verdict_marker(raw) or Verdict.NEEDS_WORK


def is_complete(verdict: Verdict) -> bool:
    return verdict is Verdict.COMPLETE


def extract_reason(raw: str) -> str | None:
    """Text after ``Reason:`` up to the end of that line."""

    match = _REASON_PATTERN.search(raw)
    if match is None:
        return None
    reason = match.group("reason").strip()
    return reason or None


def _normalize(raw: str) -> str:
    without_fences = _FENCE_LINE_PATTERN.sub(" ", raw)
    return " ".join(without_fences.split()).upper()
