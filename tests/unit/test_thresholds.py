"""
Unit tests for threshold parsing and evaluation.
"""

from __future__ import annotations

import pytest

from crocload.errors import ConfigurationError
from crocload.metrics import BUILTIN_METRICS, HTTP_REQ_DURATION, HTTP_REQ_FAILED
from crocload.thresholds import evaluate, parse_rule, parse_thresholds

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("expression", "aggregation", "op", "target"),
    [
        ("rate<0.01", "rate", "<", 0.01),
        ("p(95)<500", "p(95)", "<", 500.0),
        ("p(99.9) <= 1500", "p(99.9)", "<=", 1500.0),
        ("count==0", "count", "==", 0.0),
        ("avg<=200", "avg", "<=", 200.0),
        ("min > 1", "min", ">", 1.0),
    ],
)
def test_parse_rule(expression, aggregation, op, target):
    rule = parse_rule("http_req_duration", expression)

    assert (rule.aggregation, rule.operator, rule.target) == (aggregation, op, target)
    assert rule.expression == expression


@pytest.mark.parametrize(
    ("metric", "expression"),
    [
        ("http_req_failed", "rate"),
        ("http_req_failed", "rate<<1"),
        ("http_req_failed", "p(95)<1"),
        ("http_req_duration", "p(150)<1000"),
        ("http_reqs", "avg<1"),
        ("no_such_metric", "count<1"),
    ],
)
def test_invalid_rules_are_rejected_against_known_metrics(metric, expression):
    with pytest.raises(ConfigurationError):
        parse_rule(metric, expression, BUILTIN_METRICS)


def test_evaluate_passes_and_fails(metrics):
    # Arrange
    for failed in [0] * 99 + [1]:
        metrics.add(HTTP_REQ_FAILED, failed)
    for value in (100, 200, 900):
        metrics.add(HTTP_REQ_DURATION, value, {"name": "Login"})
    rules = parse_thresholds(
        {
            "http_req_failed": ["rate<0.01"],
            "http_req_duration{name:Login}": ["max<1000", "avg<300"],
        },
        BUILTIN_METRICS,
    )

    # Act
    report = evaluate(metrics.snapshot(), rules)

    # Assert
    assert [result.passed for result in report.results] == [False, True, False]
    assert report.passed is False
    assert len(report.failures) == 2
    assert report.results[0].actual == pytest.approx(0.01)


def test_evaluation_is_idempotent(metrics):
    for value in (12, 40, 7, 300, 41):
        metrics.add(HTTP_REQ_DURATION, value)
    snapshot = metrics.snapshot()
    rules = parse_thresholds({"http_req_duration": ["p(95)<250", "med<50"]}, BUILTIN_METRICS)

    first = evaluate(snapshot, rules)
    second = evaluate(snapshot, rules)

    assert first == second


def test_trend_without_samples_fails_with_message(metrics):
    rules = parse_thresholds({"http_req_duration": ["p(95)<500"]}, BUILTIN_METRICS)

    report = evaluate(metrics.snapshot(), rules)

    assert report.passed is False
    assert "no samples" in report.results[0].message


def test_rate_without_samples_is_zero(metrics):
    rules = parse_thresholds(
        {"http_req_failed": ["rate<0.01"], "dropped_iterations": ["count==0"]},
        BUILTIN_METRICS,
    )

    report = evaluate(metrics.snapshot(), rules)

    assert report.passed is True
