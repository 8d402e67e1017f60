"""
Run orchestration.

:class:`LoadTestRun` takes validated :class:`~crocload.options.RunOptions`
and settings through two phases:

1. **Setup** (:meth:`LoadTestRun.prepare`): resolve every scenario's
   workload, parse thresholds against the known metrics, load the fixture
   if any workload needs one and check it has a row for every worker the
   profiles can ask for.  Any problem here is fatal and raised before a
   single worker starts.
2. **Execution** (:meth:`LoadTestRun.run`): every scenario's executor runs
   in its own thread; executors never coordinate.  When all of them have
   finished, the metrics are frozen and thresholds evaluated once.

:meth:`LoadTestRun.abort` may be called from any thread (the CLI calls it
from its signal handler): no new iterations start, and in-flight ones get
their scenario's ``gracefulStop`` before being interrupted.

Key Concepts Demonstrated:
- Fail-fast setup separated from execution
- One thread per scenario, joined with a timeout so signals stay responsive
- Immutable result object handed to reporting
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

import requests

from .checks import CheckCollector, CheckSummary
from .client import SessionFactory
from .errors import CrocloadError, FixtureError
from .executors import DEFAULT_TICK_SECONDS, Executor, Runtime, build_executor
from .fixtures import FixtureSet, load_fixture
from .harness import REGISTRY, Workload, WorkloadRegistry
from .metrics import MetricsRegistry, MetricsSnapshot
from .options import RunOptions
from .thresholds import ThresholdReport, ThresholdRule, evaluate, parse_thresholds

logger = logging.getLogger(__name__)

_JOIN_POLL_SECONDS = 0.5


@dataclass(frozen=True)
class RunResult:
    """
    Everything a finished run produced.

    Attributes:
        snapshot: Frozen metrics.
        checks: Per-check totals in registration order.
        thresholds: Threshold verdicts.
        scenarios: Per-scenario executor figures.
        aborted: ``True`` when the run was stopped early.
        errors: Scenario name mapped to the error that crashed its executor.
    """

    snapshot: MetricsSnapshot
    checks: tuple[CheckSummary, ...]
    thresholds: ThresholdReport
    scenarios: Mapping[str, Mapping[str, Any]]
    aborted: bool = False
    errors: Mapping[str, str] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.thresholds.passed and not self.errors


class LoadTestRun:
    """
    One execution of a set of scenarios.

    Args:
        options: Validated scenarios and thresholds.
        settings: Flattened settings from :func:`crocload.config.load_settings`.
        registry: Where ``exec`` names are looked up.
        session_factory: Builds each worker's ``requests.Session``.
        tick: Control-loop period handed to every executor.
    """

    def __init__(
        self,
        options: RunOptions,
        settings: Mapping[str, Any],
        *,
        registry: WorkloadRegistry = REGISTRY,
        session_factory: SessionFactory = requests.Session,
        tick: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        self.options = options
        self.settings = settings
        self.registry = registry
        self.session_factory = session_factory
        self.tick = tick
        self.metrics = MetricsRegistry()
        self.checks = CheckCollector(self.metrics)
        self.stop = threading.Event()
        self.rules: list[ThresholdRule] = []
        self.executors: dict[str, Executor] = {}
        self._errors: dict[str, str] = {}
        self._aborted = False
        self._prepared = False

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _resolve_workloads(self) -> dict[str, Workload]:
        return {
            name: self.registry.get(profile.exec_name)
            for name, profile in self.options.scenarios.items()
        }

    def _load_fixture(self, workloads: Mapping[str, Workload]) -> FixtureSet | None:
        needing = [name for name, target in workloads.items() if target.uses_fixture]
        if not needing:
            return None

        fixture = load_fixture(self.settings["FIXTURE_PATH"])
        for name in needing:
            wanted = self.options.scenarios[name].max_vus
            if wanted > len(fixture):
                raise FixtureError(
                    f"Scenario '{name}' can run {wanted} VUs but fixture "
                    f"'{fixture.source}' only has {len(fixture)} rows"
                )
        return fixture

    def prepare(self) -> None:
        """
        Validate everything that can be validated before workers start.

        Raises:
            ConfigurationError: Unknown ``exec`` name or invalid threshold.
            FixtureError: Missing or invalid fixture, or too few rows.
        """
        if self._prepared:
            return

        workloads = self._resolve_workloads()
        self.rules = parse_thresholds(self.options.thresholds, self.metrics.types)
        fixture = self._load_fixture(workloads)

        runtime = Runtime(
            settings=self.settings,
            metrics=self.metrics,
            checks=self.checks,
            stop=self.stop,
            fixture=fixture,
            session_factory=self.session_factory,
        )
        self.executors = {
            name: build_executor(name, profile, workloads[name], runtime, tick=self.tick)
            for name, profile in self.options.scenarios.items()
        }
        self._prepared = True
        logger.info(
            "Prepared %d scenario(s) against %s: %s",
            len(self.executors),
            self.settings["BASE_URL"],
            ", ".join(self.executors),
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def abort(self) -> None:
        """Stop the run: no new iterations, graceful stop for in-flight ones."""
        if not self.stop.is_set():
            logger.warning("Run aborted, stopping all scenarios")
        self._aborted = True
        self.stop.set()

    def _run_executor(self, name: str, executor: Executor) -> None:
        try:
            executor.run()
        except CrocloadError as exc:
            logger.error("Scenario %s failed: %s", name, exc)
            self._errors[name] = str(exc)
        except Exception as exc:
            logger.exception("Scenario %s crashed", name)
            self._errors[name] = f"{type(exc).__name__}: {exc}"

    def run(self) -> RunResult:
        """
        Execute every scenario and evaluate thresholds.

        Returns:
            The :class:`RunResult`.
        """
        self.prepare()
        self.metrics.restart_clock()
        started = time.monotonic()

        threads = [
            threading.Thread(
                target=self._run_executor,
                args=(name, executor),
                name=f"executor-{name}",
                daemon=True,
            )
            for name, executor in self.executors.items()
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            while thread.is_alive():
                thread.join(_JOIN_POLL_SECONDS)

        snapshot = self.metrics.snapshot()
        logger.info("All scenarios finished in %.1fs", time.monotonic() - started)
        report = evaluate(snapshot, self.rules)
        return RunResult(
            snapshot=snapshot,
            checks=tuple(self.checks.summary()),
            thresholds=report,
            scenarios={name: executor.stats() for name, executor in self.executors.items()},
            aborted=self._aborted,
            errors=dict(self._errors),
        )
