"""
Metric samples and their aggregation.

Workers push samples into a single :class:`MetricsRegistry`; appends are
guarded by one lock, which is all the coordination the append-only stream
needs.  At the end of a run the registry is frozen into a
:class:`MetricsSnapshot`, and everything downstream (threshold evaluation,
the printed summary, the JSON export) reads only the snapshot, so those
steps are repeatable.

Three metric types are supported, mirroring the workload's vocabulary:

- **counter**: sums values (``http_reqs``, ``iterations``,
  ``dropped_iterations`` ...)
- **rate**: fraction of non-zero values (``http_req_failed``, ``checks``)
- **trend**: distribution of values (``http_req_duration``,
  ``iteration_duration``)

Snapshots can be narrowed by tags, e.g. ``http_req_duration{name:Login}``.
"""

from __future__ import annotations

import math
import re
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from .errors import ConfigurationError


class MetricType(str, Enum):
    """How samples of a metric are aggregated."""

    COUNTER = "counter"
    RATE = "rate"
    TREND = "trend"


HTTP_REQS = "http_reqs"
HTTP_REQ_DURATION = "http_req_duration"
HTTP_REQ_FAILED = "http_req_failed"
ITERATIONS = "iterations"
ITERATION_DURATION = "iteration_duration"
ITERATION_ERRORS = "iteration_errors"
ABORTED_ITERATIONS = "aborted_iterations"
DROPPED_ITERATIONS = "dropped_iterations"
CHECKS = "checks"

BUILTIN_METRICS: Mapping[str, MetricType] = MappingProxyType(
    {
        HTTP_REQS: MetricType.COUNTER,
        HTTP_REQ_DURATION: MetricType.TREND,
        HTTP_REQ_FAILED: MetricType.RATE,
        ITERATIONS: MetricType.COUNTER,
        ITERATION_DURATION: MetricType.TREND,
        ITERATION_ERRORS: MetricType.COUNTER,
        ABORTED_ITERATIONS: MetricType.COUNTER,
        DROPPED_ITERATIONS: MetricType.COUNTER,
        CHECKS: MetricType.RATE,
    }
)

_SELECTOR = re.compile(r"^(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:\{(?P<tags>[^}]*)\})?$")
_PERCENTILE = re.compile(r"^p\((?P<value>\d+(?:\.\d+)?)\)$")


@dataclass(frozen=True)
class Sample:
    """A single observation of a metric."""

    metric: str
    value: float
    tags: Mapping[str, str]
    timestamp: float


def parse_selector(selector: str) -> tuple[str, dict[str, str]]:
    """
    Split ``metric{tag:value,tag2:value2}`` into its name and tag filter.

    Raises:
        ConfigurationError: If the selector is malformed.
    """
    match = _SELECTOR.match(selector.strip())
    if not match:
        raise ConfigurationError(f"Invalid metric selector: {selector!r}")

    tags: dict[str, str] = {}
    raw_tags = match.group("tags")
    if raw_tags:
        for part in raw_tags.split(","):
            key, sep, value = part.partition(":")
            if not sep or not key.strip():
                raise ConfigurationError(f"Invalid tag filter {part!r} in {selector!r}")
            tags[key.strip()] = value.strip()
    return match.group("name"), tags


def percentile(sorted_values: tuple[float, ...], pct: float) -> float:
    """Linear-interpolated percentile of already sorted values."""
    if not sorted_values:
        raise ValueError("percentile of empty data")
    if len(sorted_values) == 1:
        return sorted_values[0]
    rank = (pct / 100.0) * (len(sorted_values) - 1)
    low = math.floor(rank)
    high = math.ceil(rank)
    fraction = rank - low
    return sorted_values[low] + (sorted_values[high] - sorted_values[low]) * fraction


@dataclass(frozen=True)
class MetricSummary:
    """
    Aggregated view of one metric (optionally filtered by tags).

    ``values`` holds every observation, sorted, so any percentile can be
    computed later without going back to the registry.
    """

    name: str
    type: MetricType
    values: tuple[float, ...]
    duration: float

    @property
    def count(self) -> int:
        return len(self.values)

    def aggregate(self, aggregation: str) -> float | None:
        """
        Compute one aggregation of this metric.

        Counter: ``count`` (sum of values) and ``rate`` (per second).
        Rate: ``rate`` (fraction of non-zero samples), ``passes``,
        ``fails``.  Trend: ``avg``, ``min``, ``max``, ``med``, ``count``
        and ``p(N)``.

        Returns:
            The value, or ``None`` when a trend has no samples.

        Raises:
            ConfigurationError: If the aggregation does not apply to this
                metric type.
        """
        if self.type is MetricType.COUNTER:
            total = sum(self.values)
            if aggregation == "count":
                return total
            if aggregation == "rate":
                return total / self.duration if self.duration > 0 else 0.0
        elif self.type is MetricType.RATE:
            passes = sum(1 for value in self.values if value)
            if aggregation == "rate":
                return passes / len(self.values) if self.values else 0.0
            if aggregation == "passes":
                return float(passes)
            if aggregation == "fails":
                return float(len(self.values) - passes)
        else:
            if aggregation == "count":
                return float(len(self.values))
            percentile_match = _PERCENTILE.match(aggregation)
            if aggregation in ("avg", "min", "max", "med") or percentile_match:
                if not self.values:
                    return None
                if aggregation == "avg":
                    return sum(self.values) / len(self.values)
                if aggregation == "min":
                    return self.values[0]
                if aggregation == "max":
                    return self.values[-1]
                if aggregation == "med":
                    return percentile(self.values, 50)
                pct = float(percentile_match.group("value"))
                if pct > 100:
                    raise ConfigurationError(f"Percentile out of range: {aggregation}")
                return percentile(self.values, pct)

        raise ConfigurationError(
            f"Aggregation '{aggregation}' is not valid for {self.type.value} metric '{self.name}'"
        )

    def to_dict(self) -> dict[str, Any]:
        """Summary values used by the printed report and the JSON export."""
        if self.type is MetricType.COUNTER:
            keys = ("count", "rate")
        elif self.type is MetricType.RATE:
            keys = ("rate", "passes", "fails")
        else:
            keys = ("avg", "min", "med", "max", "p(90)", "p(95)")
        return {"type": self.type.value, **{key: self.aggregate(key) for key in keys}}


@dataclass(frozen=True)
class MetricsSnapshot:
    """
    Immutable copy of everything recorded during a run.

    Attributes:
        samples: Every sample, in recording order.
        types: Metric name mapped to its type.
        duration: Wall-clock length of the run in seconds.
    """

    samples: tuple[Sample, ...]
    types: Mapping[str, MetricType]
    duration: float
    _cache: dict = field(default_factory=dict, compare=False, repr=False)

    def summary(self, selector: str) -> MetricSummary:
        """
        Aggregate one metric, optionally narrowed by a ``{tag:value}`` filter.

        Raises:
            ConfigurationError: If the metric is unknown.
        """
        if selector in self._cache:
            return self._cache[selector]

        name, tags = parse_selector(selector)
        metric_type = self.types.get(name)
        if metric_type is None:
            raise ConfigurationError(f"Unknown metric: {name}")

        values = sorted(
            sample.value
            for sample in self.samples
            if sample.metric == name
            and all(sample.tags.get(key) == value for key, value in tags.items())
        )
        result = MetricSummary(name, metric_type, tuple(values), self.duration)
        self._cache[selector] = result
        return result

    def metric_names(self) -> list[str]:
        """Metrics that received at least one sample, in first-seen order."""
        seen: dict[str, None] = {}
        for sample in self.samples:
            seen.setdefault(sample.metric, None)
        return list(seen)

    def tag_values(self, metric: str, tag: str) -> list[str]:
        """Distinct values of *tag* seen on *metric*, in first-seen order."""
        seen: dict[str, None] = {}
        for sample in self.samples:
            if sample.metric == metric and tag in sample.tags:
                seen.setdefault(sample.tags[tag], None)
        return list(seen)


class MetricsRegistry:
    """
    Process-wide, append-only sample store shared by all workers.

    Custom metrics can be declared with :meth:`declare` before the run;
    the built-in metrics are always available.
    """

    def __init__(self) -> None:
        self._types: dict[str, MetricType] = dict(BUILTIN_METRICS)
        self._samples: list[Sample] = []
        self._lock = threading.Lock()
        self._started = time.monotonic()

    def declare(self, name: str, metric_type: MetricType) -> None:
        """Register a custom metric; re-declaring with another type is an error."""
        existing = self._types.get(name)
        if existing is not None and existing is not metric_type:
            raise ConfigurationError(
                f"Metric '{name}' already declared as {existing.value}"
            )
        self._types[name] = metric_type

    @property
    def types(self) -> Mapping[str, MetricType]:
        return MappingProxyType(dict(self._types))

    def is_known(self, name: str) -> bool:
        return name in self._types

    def add(self, metric: str, value: float, tags: Mapping[str, str] | None = None) -> None:
        """
        Append one sample.

        Raises:
            ConfigurationError: If *metric* was never declared.
        """
        if metric not in self._types:
            raise ConfigurationError(f"Unknown metric: {metric}")
        sample = Sample(
            metric=metric,
            value=float(value),
            tags=MappingProxyType(dict(tags or {})),
            timestamp=time.time(),
        )
        with self._lock:
            self._samples.append(sample)

    def restart_clock(self) -> None:
        """Mark the start of the measured run (used for per-second rates)."""
        self._started = time.monotonic()

    def snapshot(self) -> MetricsSnapshot:
        """Freeze the samples recorded so far."""
        with self._lock:
            samples = tuple(self._samples)
        return MetricsSnapshot(
            samples=samples,
            types=MappingProxyType(dict(self._types)),
            duration=time.monotonic() - self._started,
        )
