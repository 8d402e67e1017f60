"""
Declarative run options: scenario profiles and thresholds.

A run is described by a small document with exactly two top-level keys,
``scenarios`` and ``thresholds``, written in the same shape as the k6
``options`` block the Crocodiles workload was first authored against::

    thresholds:
      http_req_failed: ["rate<0.01"]
    scenarios:
      spikeWorkload:
        executor: constant-arrival-rate
        exec: spikeWorkload
        startTime: 10m
        duration: 1m
        rate: 30
        timeUnit: 1s
        preAllocatedVUs: 30
        maxVUs: 30

The document is validated once, up front, into frozen dataclasses.  Only
enumerated keys are accepted; anything else is a
:class:`~crocload.errors.ConfigurationError` so that a typo cannot silently
turn into a default.

Key Concepts Demonstrated:
- Tagged union of immutable profiles (``RampingProfile`` /
  ``ArrivalRateProfile``) selected by the ``executor`` key
- Human-readable durations (``500ms``, ``30s``, ``5m``, ``1m30s``)
- YAML loading with ``yaml.safe_load``
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Union

import yaml

from .errors import ConfigurationError

RAMPING_EXECUTOR = "ramping-vus"
ARRIVAL_RATE_EXECUTOR = "constant-arrival-rate"

DEFAULT_GRACEFUL_STOP = 30.0
DEFAULT_GRACEFUL_RAMP_DOWN = 30.0

TOP_LEVEL_KEYS = frozenset({"scenarios", "thresholds"})
COMMON_SCENARIO_KEYS = frozenset({"executor", "exec", "startTime", "gracefulStop"})
RAMPING_KEYS = COMMON_SCENARIO_KEYS | {"startVUs", "stages", "gracefulRampDown"}
ARRIVAL_RATE_KEYS = COMMON_SCENARIO_KEYS | {
    "rate",
    "timeUnit",
    "duration",
    "preAllocatedVUs",
    "maxVUs",
}
STAGE_KEYS = frozenset({"duration", "target"})

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """
    Convert a duration value to seconds.

    Numbers are taken as seconds.  Strings are one or more
    ``<number><unit>`` parts with units ``ms``, ``s``, ``m`` or ``h``
    (``"1m30s"`` is 90 seconds); a bare numeric string is seconds.

    Args:
        value: The raw option value.

    Returns:
        The duration in seconds (never negative).

    Raises:
        ConfigurationError: If the value cannot be parsed or is negative.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            parts = _DURATION_PART.findall(text)
            if not parts or "".join(number + unit for number, unit in parts) != text:
                raise ConfigurationError(f"Invalid duration: {value!r}") from None
            seconds = sum(float(number) * _UNIT_SECONDS[unit] for number, unit in parts)
    else:
        raise ConfigurationError(f"Invalid duration: {value!r}")

    if seconds < 0 or math.isnan(seconds):
        raise ConfigurationError(f"Duration must not be negative: {value!r}")
    return seconds


@dataclass(frozen=True)
class Stage:
    """One ramping stage: move towards ``target`` workers over ``duration`` seconds."""

    duration: float
    target: int


@dataclass(frozen=True)
class RampingProfile:
    """
    Concurrency-controlled profile (``ramping-vus``).

    Attributes:
        exec_name: Registered workload function to run.
        stages: Ordered stages; targets are interpolated linearly.
        start_vus: Worker count at the start of the first stage.
        graceful_ramp_down: Seconds a worker retired during a ramp-down may
            spend finishing its iteration before being interrupted.
        graceful_stop: Same allowance once the last stage has ended.
        start_time: Offset from run start before the first stage begins.
    """

    exec_name: str
    stages: tuple[Stage, ...]
    start_vus: int = 0
    graceful_ramp_down: float = DEFAULT_GRACEFUL_RAMP_DOWN
    graceful_stop: float = DEFAULT_GRACEFUL_STOP
    start_time: float = 0.0

    executor = RAMPING_EXECUTOR

    @property
    def duration(self) -> float:
        """Total length of all stages in seconds."""
        return sum(stage.duration for stage in self.stages)

    @property
    def max_vus(self) -> int:
        """Peak concurrency the profile can ever ask for."""
        return max([self.start_vus, *(stage.target for stage in self.stages)])


@dataclass(frozen=True)
class ArrivalRateProfile:
    """
    Arrival-rate-controlled profile (``constant-arrival-rate``).

    Attributes:
        exec_name: Registered workload function to run.
        rate: Iteration starts per ``time_unit``.
        time_unit: Length of the rate window in seconds.
        duration: How long arrivals are scheduled for, in seconds.
        pre_allocated_vus: Workers created before the first arrival.
        max_vus: Hard ceiling on the worker pool.
        start_time: Offset from run start before the first arrival.
        graceful_stop: Allowance for in-flight iterations after
            ``duration`` has elapsed.
    """

    exec_name: str
    rate: int
    time_unit: float
    duration: float
    pre_allocated_vus: int
    max_vus: int
    start_time: float = 0.0
    graceful_stop: float = DEFAULT_GRACEFUL_STOP

    executor = ARRIVAL_RATE_EXECUTOR

    @property
    def interval(self) -> float:
        """Seconds between two consecutive arrivals."""
        return self.time_unit / self.rate


ScenarioProfile = Union[RampingProfile, ArrivalRateProfile]


@dataclass(frozen=True)
class RunOptions:
    """
    Validated run options.

    Attributes:
        scenarios: Scenario name mapped to its profile (read-only view).
        thresholds: Metric name mapped to its threshold expressions.
    """

    scenarios: Mapping[str, ScenarioProfile]
    thresholds: Mapping[str, tuple[str, ...]]


# =====================================================================
# Validation helpers
# =====================================================================


def _reject_unknown_keys(data: Mapping[str, Any], allowed: frozenset, where: str) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigurationError(f"{where}: unrecognised option(s) {unknown}")


def _positive_int(data: Mapping[str, Any], key: str, where: str, *, allow_zero: bool = False) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{where}: '{key}' must be an integer, got {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigurationError(f"{where}: '{key}' must be positive, got {value}")
    return value


def _required(data: Mapping[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise ConfigurationError(f"{where}: '{key}' is required")
    return data[key]


def _parse_stages(raw: Any, where: str) -> tuple[Stage, ...]:
    if not isinstance(raw, list) or not raw:
        raise ConfigurationError(f"{where}: 'stages' must be a non-empty list")

    stages = []
    for index, item in enumerate(raw):
        stage_where = f"{where}.stages[{index}]"
        if not isinstance(item, Mapping):
            raise ConfigurationError(f"{stage_where}: must be a mapping")
        _reject_unknown_keys(item, STAGE_KEYS, stage_where)
        duration = parse_duration(_required(item, "duration", stage_where))
        target = _positive_int(item, "target", stage_where, allow_zero=True)
        stages.append(Stage(duration=duration, target=target))
    return tuple(stages)


def parse_scenario(name: str, data: Mapping[str, Any]) -> ScenarioProfile:
    """
    Validate one scenario block and build its profile.

    Args:
        name: Scenario name (used in error messages and as the default
            ``exec`` function name).
        data: The raw scenario mapping.

    Returns:
        A :class:`RampingProfile` or :class:`ArrivalRateProfile`.

    Raises:
        ConfigurationError: On unknown executors, unknown keys, missing
            required keys or out-of-range values.
    """
    where = f"scenarios.{name}"
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{where}: must be a mapping")

    executor = _required(data, "executor", where)
    exec_name = data.get("exec", name)
    if not isinstance(exec_name, str) or not exec_name:
        raise ConfigurationError(f"{where}: 'exec' must be a non-empty string")

    start_time = parse_duration(data.get("startTime", 0))
    graceful_stop = parse_duration(data.get("gracefulStop", DEFAULT_GRACEFUL_STOP))

    if executor == RAMPING_EXECUTOR:
        _reject_unknown_keys(data, RAMPING_KEYS, where)
        start_vus = 0
        if "startVUs" in data:
            start_vus = _positive_int(data, "startVUs", where, allow_zero=True)
        return RampingProfile(
            exec_name=exec_name,
            stages=_parse_stages(_required(data, "stages", where), where),
            start_vus=start_vus,
            graceful_ramp_down=parse_duration(
                data.get("gracefulRampDown", DEFAULT_GRACEFUL_RAMP_DOWN)
            ),
            graceful_stop=graceful_stop,
            start_time=start_time,
        )

    if executor == ARRIVAL_RATE_EXECUTOR:
        _reject_unknown_keys(data, ARRIVAL_RATE_KEYS, where)
        for key in ("rate", "duration", "preAllocatedVUs"):
            _required(data, key, where)
        rate = _positive_int(data, "rate", where)
        time_unit = parse_duration(data.get("timeUnit", "1s"))
        duration = parse_duration(data["duration"])
        pre_allocated = _positive_int(data, "preAllocatedVUs", where, allow_zero=True)
        max_vus = pre_allocated
        if "maxVUs" in data:
            max_vus = _positive_int(data, "maxVUs", where)
        if time_unit <= 0:
            raise ConfigurationError(f"{where}: 'timeUnit' must be positive")
        if duration <= 0:
            raise ConfigurationError(f"{where}: 'duration' must be positive")
        if max_vus < pre_allocated:
            raise ConfigurationError(
                f"{where}: 'maxVUs' ({max_vus}) must be >= 'preAllocatedVUs' ({pre_allocated})"
            )
        if max_vus == 0:
            raise ConfigurationError(f"{where}: at least one VU must be allowed")
        return ArrivalRateProfile(
            exec_name=exec_name,
            rate=rate,
            time_unit=time_unit,
            duration=duration,
            pre_allocated_vus=pre_allocated,
            max_vus=max_vus,
            start_time=start_time,
            graceful_stop=graceful_stop,
        )

    raise ConfigurationError(
        f"{where}: unsupported executor {executor!r} "
        f"(expected {RAMPING_EXECUTOR!r} or {ARRIVAL_RATE_EXECUTOR!r})"
    )


def _parse_thresholds(raw: Any) -> dict[str, tuple[str, ...]]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError("thresholds: must be a mapping of metric -> expressions")

    thresholds: dict[str, tuple[str, ...]] = {}
    for metric, expressions in raw.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        if not isinstance(expressions, list) or not all(
            isinstance(item, str) for item in expressions
        ):
            raise ConfigurationError(
                f"thresholds.{metric}: must be a string or a list of strings"
            )
        thresholds[str(metric)] = tuple(expressions)
    return thresholds


def parse_options(data: Mapping[str, Any]) -> RunOptions:
    """
    Validate a raw options mapping into :class:`RunOptions`.

    Threshold expressions are only checked for shape here; their grammar
    is validated by :func:`crocload.thresholds.parse_thresholds`.

    Raises:
        ConfigurationError: If the document is malformed.
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError("Run options must be a mapping")
    _reject_unknown_keys(data, TOP_LEVEL_KEYS, "options")

    raw_scenarios = data.get("scenarios")
    if not isinstance(raw_scenarios, Mapping) or not raw_scenarios:
        raise ConfigurationError("options: 'scenarios' must be a non-empty mapping")

    scenarios = {
        str(name): parse_scenario(str(name), body) for name, body in raw_scenarios.items()
    }
    return RunOptions(
        scenarios=MappingProxyType(scenarios),
        thresholds=MappingProxyType(_parse_thresholds(data.get("thresholds"))),
    )


def load_options(path: str | Path) -> RunOptions:
    """
    Read a YAML options file and validate it.

    Raises:
        ConfigurationError: If the file is missing, is not valid YAML, or
            fails validation.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigurationError(f"Unable to read options file '{path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Options file '{path}' is not valid YAML: {exc}") from exc
    return parse_options(data)
