"""
Unit tests for the end-of-test summary.
"""

from __future__ import annotations

import io
import json

import pytest

from crocload.metrics import BUILTIN_METRICS, HTTP_REQ_DURATION, HTTP_REQ_FAILED, HTTP_REQS
from crocload.report import print_summary, summary_dict, write_summary_json
from crocload.runner import RunResult
from crocload.thresholds import evaluate, parse_thresholds

pytestmark = pytest.mark.unit


@pytest.fixture
def result(metrics, checks) -> RunResult:
    for status, duration in ((200, 120.0), (200, 80.0), (500, 900.0)):
        tags = {"scenario": "spike", "status": str(status)}
        metrics.add(HTTP_REQS, 1, tags)
        metrics.add(HTTP_REQ_DURATION, duration, tags)
        metrics.add(HTTP_REQ_FAILED, status >= 400, tags)
    checks.register("retrieved crocs status")
    checks.record("retrieved crocs status", True)
    checks.record("retrieved crocs status", False)

    snapshot = metrics.snapshot()
    rules = parse_thresholds(
        {"http_req_failed": ["rate<0.01"], "http_req_duration": ["p(95)<2000"]},
        BUILTIN_METRICS,
    )
    return RunResult(
        snapshot=snapshot,
        checks=tuple(checks.summary()),
        thresholds=evaluate(snapshot, rules),
        scenarios={
            "spike": {"executor": "constant-arrival-rate", "exec": "spikeWorkload", "peak_vus": 3, "dropped": 1}
        },
    )


def test_summary_dict_contents(result):
    data = summary_dict(result)

    assert data["passed"] is False
    assert data["checks"] == [{"name": "retrieved crocs status", "passes": 1, "fails": 1}]
    assert data["metrics"][HTTP_REQS]["count"] == 3
    assert data["metrics"][HTTP_REQ_DURATION]["max"] == 900.0
    assert [item["passed"] for item in data["thresholds"]] == [False, True]
    assert data["scenarios"]["spike"]["dropped"] == 1


def test_print_summary_layout(result):
    # Arrange
    out = io.StringIO()

    # Act
    print_summary(result, out)

    # Assert
    text = out.getvalue()
    assert text.startswith("Load Test Summary")
    assert "✗ retrieved crocs status" in text
    assert "http_req_failed: rate<0.01" in text
    assert "FAIL" in text and "PASS" in text
    assert text.rstrip().endswith("Overall: FAIL")


def test_errors_are_printed(result):
    crashed = RunResult(
        snapshot=result.snapshot,
        checks=result.checks,
        thresholds=result.thresholds,
        scenarios=result.scenarios,
        aborted=True,
        errors={"spike": "RuntimeError: boom"},
    )
    out = io.StringIO()

    print_summary(crashed, out)

    assert "Scenario spike failed: RuntimeError: boom" in out.getvalue()
    assert out.getvalue().rstrip().endswith("Overall: FAIL (aborted)")


def test_write_summary_json_creates_parent_dirs(result, tmp_path):
    path = write_summary_json(result, tmp_path / "reports" / "summary.json")

    assert json.loads(path.read_text(encoding="utf-8"))["passed"] is False
