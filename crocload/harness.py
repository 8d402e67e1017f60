"""
Workload function harness.

A workload is a plain function taking an :class:`IterationContext`; it is
registered under the name scenarios refer to with ``exec``::

    @workload("spikeWorkload")
    def spike_workload(ctx: IterationContext) -> None:
        res = ctx.http.get("/public/crocodiles/", tags={"name": "Fetch Public Crocs"})
        ctx.check(res, {"retrieved crocs status": lambda r: r.status == 200})

The harness runs one iteration at a time on behalf of a worker and
classifies its outcome:

- **completed**: the function returned (including early returns after a
  failed check: an early ``return`` ends the iteration, never the worker)
- **failed**: the function raised; the exception is logged and counted
  in ``iteration_errors`` and the worker carries on
- **aborted**: the worker was interrupted (ramp-down or run stop grace
  period exhausted) at a think-time sleep or before a request

Key Concepts Demonstrated:
- Decorator-based registry of named workload functions
- ``contextmanager`` groups that tag every request and check
- Interruptible think time built on ``threading.Event.wait``
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .checks import CheckCollector
from .client import HttpClient
from .context import WorkerIdentity, WorkerLocalState
from .errors import ConfigurationError, IterationInterrupted
from .fixtures import FixtureRow, FixtureSet
from .metrics import (
    ABORTED_ITERATIONS,
    ITERATION_DURATION,
    ITERATION_ERRORS,
    ITERATIONS,
    MetricsRegistry,
)

logger = logging.getLogger(__name__)

GROUP_SEPARATOR = "::"


class IterationOutcome(str, Enum):
    """How a single iteration ended."""

    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Workload:
    """A registered workload function."""

    name: str
    func: Callable[["IterationContext"], Any]
    uses_fixture: bool = False


class WorkloadRegistry:
    """Maps ``exec`` names to workload functions."""

    def __init__(self) -> None:
        self._workloads: dict[str, Workload] = {}

    def register(
        self,
        name: str,
        func: Callable[["IterationContext"], Any],
        *,
        uses_fixture: bool = False,
    ) -> Workload:
        if name in self._workloads and self._workloads[name].func is not func:
            raise ConfigurationError(f"Workload '{name}' is already registered")
        registered = Workload(name=name, func=func, uses_fixture=uses_fixture)
        self._workloads[name] = registered
        return registered

    def get(self, name: str) -> Workload:
        """
        Look up a workload by name.

        Raises:
            ConfigurationError: If nothing is registered under *name*.
        """
        try:
            return self._workloads[name]
        except KeyError:
            known = ", ".join(sorted(self._workloads)) or "none"
            raise ConfigurationError(
                f"No workload registered as '{name}' (known: {known})"
            ) from None

    def names(self) -> list[str]:
        return sorted(self._workloads)


REGISTRY = WorkloadRegistry()


def workload(name: str, *, uses_fixture: bool = False, registry: WorkloadRegistry = REGISTRY):
    """Decorator registering a function as the workload called *name*."""

    def decorator(func: Callable[["IterationContext"], Any]):
        registry.register(name, func, uses_fixture=uses_fixture)
        return func

    return decorator


class IterationContext:
    """
    Everything a workload function may touch during one iteration.

    Attributes:
        identity: The worker's identity (read-only by convention).
        state: The worker's private state; survives across iterations.
        http: The worker's HTTP client.
        settings: Run settings (``BASE_URL``, ``THINK_TIME_SECONDS`` ...).
        iteration: 0-based index of this iteration within the worker.
    """

    def __init__(
        self,
        *,
        identity: WorkerIdentity,
        state: WorkerLocalState,
        http: HttpClient,
        checks: CheckCollector,
        settings: Mapping[str, Any],
        fixture: FixtureSet | None,
        interrupt: threading.Event,
        iteration: int,
    ) -> None:
        self.identity = identity
        self.state = state
        self.http = http
        self.settings = settings
        self.iteration = iteration
        self._checks = checks
        self._fixture = fixture
        self._interrupt = interrupt
        self._groups: list[str] = []

    @property
    def current_group(self) -> str | None:
        if not self._groups:
            return None
        return GROUP_SEPARATOR + GROUP_SEPARATOR.join(self._groups)

    @contextmanager
    def group(self, name: str) -> Iterator[None]:
        """Tag everything recorded inside the block with this group (groups nest)."""
        self._groups.append(name)
        self.http.group = self.current_group
        try:
            yield
        finally:
            self._groups.pop()
            self.http.group = self.current_group

    def check(self, value: Any, predicates: Mapping[str, Callable[[Any], Any]]) -> bool:
        """
        Evaluate named predicates against *value* and record each outcome.

        Every predicate runs even after one fails.  A predicate that raises
        counts as failed.

        Returns:
            ``True`` only if every predicate passed.
        """
        all_passed = True
        for name, predicate in predicates.items():
            try:
                passed = bool(predicate(value))
            except Exception as exc:
                logger.debug("Check %r raised %s: %s", name, type(exc).__name__, exc)
                passed = False

            self._checks.register(name)
            self._checks.record(
                name,
                passed,
                scenario=self.identity.scenario,
                vu_id=self.identity.id_in_test,
                iteration=self.iteration,
                group=self.current_group,
            )
            if not passed:
                all_passed = False
                logger.warning(
                    "Check failed: %r (scenario=%s vu=%s iteration=%s)",
                    name,
                    self.identity.scenario,
                    self.identity.id_in_test,
                    self.iteration,
                )
        return all_passed

    def sleep(self, seconds: float) -> None:
        """
        Think time.  Suspends only this worker.

        Raises:
            IterationInterrupted: If the worker is interrupted while waiting.
        """
        if seconds <= 0:
            if self._interrupt.is_set():
                raise IterationInterrupted("interrupted during think time")
            return
        if self._interrupt.wait(seconds):
            raise IterationInterrupted("interrupted during think time")

    def fixture_row(self) -> FixtureRow:
        """
        Return the fixture row bound to this worker.

        Raises:
            ConfigurationError: If the workload was not registered with
                ``uses_fixture=True`` (so no fixture was loaded).
            FixtureError: If the worker has no matching row.
        """
        if self._fixture is None:
            raise ConfigurationError("This workload was not given a fixture")
        return self._fixture.row_for(self.identity)


def run_iteration(
    target: Workload,
    ctx: IterationContext,
    metrics: MetricsRegistry,
) -> IterationOutcome:
    """
    Execute one iteration of *target* and record its outcome.

    Args:
        target: The workload to run.
        ctx: Context prepared for this iteration.
        metrics: Registry receiving ``iterations``/``iteration_duration``
            (completed and failed iterations), ``iteration_errors`` and
            ``aborted_iterations``.

    Returns:
        The :class:`IterationOutcome`.
    """
    tags = {"scenario": ctx.identity.scenario}
    started = time.perf_counter()
    try:
        target.func(ctx)
    except IterationInterrupted as exc:
        logger.info(
            "Iteration %s of VU %s (%s) aborted: %s",
            ctx.iteration,
            ctx.identity.id_in_test,
            ctx.identity.scenario,
            exc,
        )
        metrics.add(ABORTED_ITERATIONS, 1, tags)
        return IterationOutcome.ABORTED
    except Exception:
        logger.exception(
            "Iteration %s of VU %s (%s) raised",
            ctx.iteration,
            ctx.identity.id_in_test,
            ctx.identity.scenario,
        )
        outcome = IterationOutcome.FAILED
        metrics.add(ITERATION_ERRORS, 1, tags)
    else:
        outcome = IterationOutcome.COMPLETED
    finally:
        ctx.http.group = None

    metrics.add(ITERATIONS, 1, tags)
    metrics.add(ITERATION_DURATION, (time.perf_counter() - started) * 1000.0, tags)
    return outcome
