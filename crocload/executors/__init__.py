"""
Scenario executors, keyed by the ``executor`` option value.
"""

from __future__ import annotations

from ..errors import ConfigurationError
from ..harness import Workload
from ..options import ARRIVAL_RATE_EXECUTOR, RAMPING_EXECUTOR, ScenarioProfile
from .arrival_rate import ArrivalRateExecutor, arrival_offsets
from .base import DEFAULT_TICK_SECONDS, Executor, Runtime, VirtualUser
from .ramping import RampingExecutor, target_at

EXECUTORS: dict[str, type[Executor]] = {
    RAMPING_EXECUTOR: RampingExecutor,
    ARRIVAL_RATE_EXECUTOR: ArrivalRateExecutor,
}


def build_executor(
    name: str,
    profile: ScenarioProfile,
    workload: Workload,
    runtime: Runtime,
    *,
    tick: float = DEFAULT_TICK_SECONDS,
) -> Executor:
    """Instantiate the executor class matching *profile*."""
    try:
        executor_class = EXECUTORS[profile.executor]
    except KeyError:
        raise ConfigurationError(f"Unsupported executor: {profile.executor}") from None
    return executor_class(name, profile, workload, runtime, tick=tick)


__all__ = [
    "ArrivalRateExecutor",
    "DEFAULT_TICK_SECONDS",
    "EXECUTORS",
    "Executor",
    "RampingExecutor",
    "Runtime",
    "VirtualUser",
    "arrival_offsets",
    "build_executor",
    "target_at",
]
