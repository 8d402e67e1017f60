"""
Check/assertion collector.

A check is a named boolean outcome recorded inline by a workload
(``'Logged in successfully'``, ``'Croc created correctly'`` ...).  A failed
check never raises and never stops the iteration; it is only counted.

Results are appended to one lock-protected list.  Ordering across workers
is whatever the scheduler produced; ordering within a single worker
follows the order in which that worker recorded its checks.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

from .errors import UnknownCheckError
from .metrics import CHECKS, MetricsRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckResult:
    """One recorded check outcome."""

    name: str
    passed: bool
    scenario: str | None
    vu_id: int | None
    iteration: int | None
    group: str | None
    timestamp: float


@dataclass(frozen=True)
class CheckSummary:
    """Pass/fail totals for one check name."""

    name: str
    passes: int
    fails: int

    @property
    def total(self) -> int:
        return self.passes + self.fails

    @property
    def pass_rate(self) -> float:
        return self.passes / self.total if self.total else 0.0


class CheckCollector:
    """
    Append-only store of :class:`CheckResult` values.

    Names must be registered before results can be recorded against them
    so that aggregation never meets a key it does not know.
    """

    def __init__(self, metrics: MetricsRegistry | None = None) -> None:
        self._metrics = metrics
        self._names: dict[str, None] = {}
        self._results: list[CheckResult] = []
        self._lock = threading.Lock()

    def register(self, name: str) -> None:
        """Declare a check name (idempotent)."""
        with self._lock:
            self._names.setdefault(name, None)

    def is_registered(self, name: str) -> bool:
        with self._lock:
            return name in self._names

    def record(
        self,
        name: str,
        passed: bool,
        *,
        scenario: str | None = None,
        vu_id: int | None = None,
        iteration: int | None = None,
        group: str | None = None,
    ) -> CheckResult:
        """
        Append a check outcome.

        Raises:
            UnknownCheckError: If *name* was never registered.
        """
        result = CheckResult(
            name=name,
            passed=bool(passed),
            scenario=scenario,
            vu_id=vu_id,
            iteration=iteration,
            group=group,
            timestamp=time.time(),
        )
        with self._lock:
            if name not in self._names:
                raise UnknownCheckError(name)
            self._results.append(result)

        if self._metrics is not None:
            tags = {"check": name}
            if scenario:
                tags["scenario"] = scenario
            if group:
                tags["group"] = group
            self._metrics.add(CHECKS, 1.0 if result.passed else 0.0, tags)
        return result

    def results(self) -> tuple[CheckResult, ...]:
        """Snapshot of every result recorded so far."""
        with self._lock:
            return tuple(self._results)

    def summary(self) -> list[CheckSummary]:
        """Per-check totals in first-registration order."""
        with self._lock:
            names = list(self._names)
            results = list(self._results)

        passes = dict.fromkeys(names, 0)
        fails = dict.fromkeys(names, 0)
        for result in results:
            if result.passed:
                passes[result.name] += 1
            else:
                fails[result.name] += 1
        return [CheckSummary(name, passes[name], fails[name]) for name in names]
