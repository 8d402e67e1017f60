"""
End-of-test summary.

Prints a human-readable results table for CI logs (same layout as the
performance gate scripts: fixed-width columns between dashed rules) and
optionally writes the same data as JSON for archiving or later diffing.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, TextIO

from .runner import RunResult

logger = logging.getLogger(__name__)

RULE = "-" * 72


def _fmt(value: float | None) -> str:
    if value is None:
        return "n/a"
    if value == int(value) and abs(value) < 1e12:
        return str(int(value))
    return f"{value:.2f}"


def summary_dict(result: RunResult) -> dict[str, Any]:
    """Serialisable form of a :class:`~crocload.runner.RunResult`."""
    snapshot = result.snapshot
    return {
        "passed": result.passed,
        "aborted": result.aborted,
        "duration_seconds": round(snapshot.duration, 3),
        "scenarios": {name: dict(stats) for name, stats in result.scenarios.items()},
        "errors": dict(result.errors),
        "checks": [
            {"name": check.name, "passes": check.passes, "fails": check.fails}
            for check in result.checks
        ],
        "metrics": {
            name: snapshot.summary(name).to_dict() for name in snapshot.metric_names()
        },
        "thresholds": [
            {
                "metric": item.rule.metric,
                "expression": item.rule.expression,
                "actual": item.actual,
                "passed": item.passed,
            }
            for item in result.thresholds.results
        ],
    }


def print_summary(result: RunResult, stream: TextIO | None = None) -> None:
    """Print the summary table to *stream* (stdout by default)."""
    out = stream or sys.stdout

    def emit(line: str = "") -> None:
        print(line, file=out)

    snapshot = result.snapshot
    emit("Load Test Summary")
    emit(RULE)
    emit(f"{'Scenario':<28}{'Executor':<24}{'Peak VUs':>10}{'Dropped':>10}")
    emit(RULE)
    for name, stats in result.scenarios.items():
        emit(
            f"{name:<28}{stats['executor']:<24}"
            f"{stats.get('peak_vus', 0):>10}{stats.get('dropped', 0):>10}"
        )

    if result.checks:
        emit(RULE)
        emit(f"{'Check':<48}{'Passes':>12}{'Fails':>12}")
        emit(RULE)
        for check in result.checks:
            mark = "✓" if check.fails == 0 else "✗"
            emit(f"{mark} {check.name:<46}{check.passes:>12}{check.fails:>12}")

    emit(RULE)
    emit(f"{'Metric':<28}{'Values':<44}")
    emit(RULE)
    for name in snapshot.metric_names():
        values = snapshot.summary(name).to_dict()
        values.pop("type")
        rendered = " ".join(f"{key}={_fmt(value)}" for key, value in values.items())
        emit(f"{name:<28}{rendered}")

    if result.thresholds.results:
        emit(RULE)
        emit(f"{'Threshold':<40}{'Actual':>12}{'Status':>12}")
        emit(RULE)
        for item in result.thresholds.results:
            label = f"{item.rule.metric}: {item.rule.expression}"
            status = "PASS" if item.passed else "FAIL"
            emit(f"{label:<40}{_fmt(item.actual):>12}{status:>12}")

    for name, error in result.errors.items():
        emit(f"Scenario {name} failed: {error}")

    emit(RULE)
    suffix = " (aborted)" if result.aborted else ""
    emit(f"Overall: {'PASS' if result.passed else 'FAIL'}{suffix}")


def write_summary_json(result: RunResult, path: str | Path) -> Path:
    """Write :func:`summary_dict` to *path* and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(summary_dict(result), handle, indent=2, sort_keys=True)
    logger.info("Summary written to %s", path)
    return path
