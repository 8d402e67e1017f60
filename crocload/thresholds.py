"""
Threshold evaluation.

Thresholds are pass/fail criteria over the aggregated metrics of a whole
run, written as ``<aggregation> <operator> <target>`` expressions keyed by
a metric selector::

    http_req_failed: ["rate<0.01"]
    http_req_duration{name:Login}: ["p(95)<800", "avg<400"]
    dropped_iterations: ["count==0"]

Evaluation happens once, after every executor has finished, against an
immutable :class:`~crocload.metrics.MetricsSnapshot`.  :func:`evaluate` is a
pure function of its inputs, so evaluating the same snapshot twice always
gives the same report.  A failing threshold changes the process exit
status; it never stops workers.

Key Concepts Demonstrated:
- Small expression grammar parsed with a single regular expression
- Operator dispatch through the ``operator`` module
- Report objects that separate *what* was measured from *how* it is printed
"""

from __future__ import annotations

import logging
import operator
import re
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from .errors import ConfigurationError
from .metrics import MetricsSnapshot, MetricType, parse_selector

logger = logging.getLogger(__name__)

_EXPRESSION = re.compile(
    r"^\s*(?P<aggregation>[a-z]+|p\(\d+(?:\.\d+)?\))\s*"
    r"(?P<op><=|>=|==|!=|<|>)\s*"
    r"(?P<target>-?\d+(?:\.\d+)?(?:[eE]-?\d+)?)\s*$"
)

OPERATORS: Mapping[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

VALID_AGGREGATIONS: Mapping[MetricType, frozenset[str]] = {
    MetricType.COUNTER: frozenset({"count", "rate"}),
    MetricType.RATE: frozenset({"rate", "passes", "fails"}),
    MetricType.TREND: frozenset({"avg", "min", "max", "med", "count"}),
}


@dataclass(frozen=True)
class ThresholdRule:
    """
    One parsed threshold expression.

    Attributes:
        metric: Metric selector, including any ``{tag:value}`` filter.
        aggregation: ``rate``, ``count``, ``avg``, ``p(95)`` ...
        operator: Comparison operator as written.
        target: Right-hand side of the comparison.
        expression: Original text, kept for reporting.
    """

    metric: str
    aggregation: str
    operator: str
    target: float
    expression: str


@dataclass(frozen=True)
class ThresholdResult:
    """Outcome of one rule against one snapshot."""

    rule: ThresholdRule
    actual: float | None
    passed: bool
    message: str


@dataclass(frozen=True)
class ThresholdReport:
    """All threshold outcomes of a run."""

    results: tuple[ThresholdResult, ...]

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.results)

    @property
    def failures(self) -> tuple[ThresholdResult, ...]:
        return tuple(result for result in self.results if not result.passed)


def parse_rule(
    metric: str,
    expression: str,
    known_metrics: Mapping[str, MetricType] | None = None,
) -> ThresholdRule:
    """
    Parse one threshold expression.

    Args:
        metric: Metric selector the expression applies to.
        expression: Text such as ``"rate<0.01"`` or ``"p(95) < 500"``.
        known_metrics: When given, the metric must be one of these and the
            aggregation must suit its type.

    Raises:
        ConfigurationError: If the expression or selector is invalid.
    """
    match = _EXPRESSION.match(expression)
    if not match:
        raise ConfigurationError(f"Invalid threshold expression for {metric}: {expression!r}")

    name, _ = parse_selector(metric)
    aggregation = match.group("aggregation")
    if aggregation.startswith("p(") and float(aggregation[2:-1]) > 100:
        raise ConfigurationError(f"Percentile out of range for {metric}: {aggregation}")

    if known_metrics is not None:
        metric_type = known_metrics.get(name)
        if metric_type is None:
            raise ConfigurationError(f"Threshold on unknown metric: {name}")
        is_percentile = aggregation.startswith("p(")
        valid = aggregation in VALID_AGGREGATIONS[metric_type] or (
            is_percentile and metric_type is MetricType.TREND
        )
        if not valid:
            raise ConfigurationError(
                f"Aggregation '{aggregation}' is not valid for {metric_type.value} metric '{name}'"
            )

    return ThresholdRule(
        metric=metric,
        aggregation=aggregation,
        operator=match.group("op"),
        target=float(match.group("target")),
        expression=expression,
    )


def parse_thresholds(
    thresholds: Mapping[str, Sequence[str]],
    known_metrics: Mapping[str, MetricType] | None = None,
) -> list[ThresholdRule]:
    """Parse every expression of a ``{metric: [expressions]}`` mapping, in order."""
    return [
        parse_rule(metric, expression, known_metrics)
        for metric, expressions in thresholds.items()
        for expression in expressions
    ]


def evaluate_rule(snapshot: MetricsSnapshot, rule: ThresholdRule) -> ThresholdResult:
    """Evaluate a single rule; trends without samples fail with an explanation."""
    summary = snapshot.summary(rule.metric)
    actual = summary.aggregate(rule.aggregation)
    if actual is None:
        return ThresholdResult(
            rule=rule,
            actual=None,
            passed=False,
            message=f"{rule.metric}: no samples recorded for {rule.aggregation}",
        )

    passed = OPERATORS[rule.operator](actual, rule.target)
    verdict = "ok" if passed else "crossed"
    return ThresholdResult(
        rule=rule,
        actual=actual,
        passed=passed,
        message=f"{rule.metric}: {rule.aggregation}={actual:.4g} {verdict} ({rule.expression})",
    )


def evaluate(snapshot: MetricsSnapshot, rules: Sequence[ThresholdRule]) -> ThresholdReport:
    """
    Evaluate every rule against a frozen snapshot.

    Args:
        snapshot: Final metrics of the run.
        rules: Parsed threshold rules.

    Returns:
        A :class:`ThresholdReport`; ``report.passed`` is the overall verdict.
    """
    results = tuple(evaluate_rule(snapshot, rule) for rule in rules)
    for result in results:
        if result.passed:
            logger.info("Threshold passed - %s", result.message)
        else:
            logger.warning("Threshold failed - %s", result.message)
    return ThresholdReport(results=results)
