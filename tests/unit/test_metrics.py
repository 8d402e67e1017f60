"""
Unit tests for metric recording and aggregation.
"""

from __future__ import annotations

import pytest

from crocload.errors import ConfigurationError
from crocload.metrics import (
    CHECKS,
    DROPPED_ITERATIONS,
    HTTP_REQ_DURATION,
    HTTP_REQ_FAILED,
    HTTP_REQS,
    MetricType,
    parse_selector,
    percentile,
)

pytestmark = pytest.mark.unit


def test_parse_selector_with_and_without_tags():
    assert parse_selector("http_reqs") == ("http_reqs", {})
    assert parse_selector("http_req_duration{name:Login, method:POST}") == (
        "http_req_duration",
        {"name": "Login", "method": "POST"},
    )


@pytest.mark.parametrize("selector", ["", "1metric", "http_reqs{name}", "http_reqs{:x}"])
def test_parse_selector_rejects_malformed(selector):
    with pytest.raises(ConfigurationError):
        parse_selector(selector)


def test_percentile_interpolates_linearly():
    values = (10.0, 20.0, 30.0, 40.0)

    assert percentile(values, 0) == 10.0
    assert percentile(values, 50) == 25.0
    assert percentile(values, 100) == 40.0
    assert percentile((5.0,), 95) == 5.0


def test_trend_aggregations(metrics):
    # Arrange
    for value in (100, 300, 200, 400):
        metrics.add(HTTP_REQ_DURATION, value, {"name": "Login"})
    metrics.add(HTTP_REQ_DURATION, 5000, {"name": "Other"})

    # Act
    summary = metrics.snapshot().summary("http_req_duration{name:Login}")

    # Assert
    assert summary.count == 4
    assert summary.aggregate("avg") == 250.0
    assert summary.aggregate("min") == 100.0
    assert summary.aggregate("max") == 400.0
    assert summary.aggregate("med") == 250.0
    assert summary.aggregate("p(95)") == pytest.approx(385.0)


def test_rate_and_counter_aggregations(metrics):
    for failed in (0, 0, 0, 1):
        metrics.add(HTTP_REQ_FAILED, failed)
        metrics.add(HTTP_REQS, 1)

    snapshot = metrics.snapshot()

    assert snapshot.summary(HTTP_REQ_FAILED).aggregate("rate") == 0.25
    assert snapshot.summary(HTTP_REQ_FAILED).aggregate("fails") == 1.0
    assert snapshot.summary(HTTP_REQ_FAILED).aggregate("passes") == 3.0
    assert snapshot.summary(HTTP_REQS).aggregate("count") == 4.0


def test_metrics_without_samples(metrics):
    snapshot = metrics.snapshot()

    assert snapshot.summary(DROPPED_ITERATIONS).aggregate("count") == 0
    assert snapshot.summary(CHECKS).aggregate("rate") == 0.0
    assert snapshot.summary(HTTP_REQ_DURATION).aggregate("p(95)") is None


def test_invalid_aggregation_for_type(metrics):
    summary = metrics.snapshot().summary(HTTP_REQS)

    with pytest.raises(ConfigurationError, match="not valid for counter"):
        summary.aggregate("p(95)")


def test_unknown_metric_is_rejected(metrics):
    with pytest.raises(ConfigurationError):
        metrics.add("no_such_metric", 1)
    with pytest.raises(ConfigurationError):
        metrics.snapshot().summary("no_such_metric")


def test_declare_custom_metric(metrics):
    metrics.declare("crocs_created", MetricType.COUNTER)
    metrics.add("crocs_created", 2)

    assert metrics.snapshot().summary("crocs_created").aggregate("count") == 2.0
    with pytest.raises(ConfigurationError):
        metrics.declare("crocs_created", MetricType.TREND)


def test_snapshot_is_frozen(metrics):
    metrics.add(HTTP_REQS, 1)
    snapshot = metrics.snapshot()

    metrics.add(HTTP_REQS, 1)

    assert snapshot.summary(HTTP_REQS).aggregate("count") == 1.0
    assert metrics.snapshot().summary(HTTP_REQS).aggregate("count") == 2.0


def test_tag_values_and_metric_names(metrics):
    metrics.add(HTTP_REQS, 1, {"name": "Login"})
    metrics.add(HTTP_REQ_FAILED, 0, {"name": "Login"})
    metrics.add(HTTP_REQS, 1, {"name": "Fetch Public Crocs"})

    snapshot = metrics.snapshot()

    assert snapshot.metric_names() == [HTTP_REQS, HTTP_REQ_FAILED]
    assert snapshot.tag_values(HTTP_REQS, "name") == ["Login", "Fetch Public Crocs"]
