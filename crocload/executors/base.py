"""
Shared executor plumbing: the run-wide runtime, virtual users and the
graceful-then-forced shutdown used by both executor variants.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import requests

from ..checks import CheckCollector
from ..client import HttpClient, SessionFactory
from ..context import IdentityAllocator, SlotPool, WorkerIdentity, WorkerLocalState
from ..fixtures import FixtureSet
from ..harness import IterationContext, IterationOutcome, Workload, run_iteration
from ..metrics import MetricsRegistry
from ..options import ScenarioProfile

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 0.1


@dataclass
class Runtime:
    """
    Objects shared by every executor of one run.

    Only ``fixture`` (read-only) and the append-only ``metrics``/``checks``
    stores are ever touched by more than one worker.

    Attributes:
        settings: Flattened run settings (see :func:`crocload.config.load_settings`).
        metrics: Sample store.
        checks: Check store.
        allocator: Source of run-wide unique worker ids.
        stop: Run-level stop flag: once set, no new iteration starts.
        fixture: Credential rows, when any scenario needs them.
        session_factory: Builds one ``requests.Session`` per worker.
    """

    settings: Mapping[str, Any]
    metrics: MetricsRegistry
    checks: CheckCollector
    allocator: IdentityAllocator = field(default_factory=IdentityAllocator)
    stop: threading.Event = field(default_factory=threading.Event)
    fixture: FixtureSet | None = None
    session_factory: SessionFactory = requests.Session


class VirtualUser:
    """
    One worker: identity, private state and HTTP client.

    A virtual user is created when a worker starts and closed when it
    retires; its slot in the scenario is then free for the next worker.
    """

    def __init__(self, runtime: Runtime, scenario: str, workload: Workload, slots: SlotPool):
        self.runtime = runtime
        self.workload = workload
        self._slots = slots
        self.identity = WorkerIdentity(
            id_in_test=runtime.allocator.next_id(),
            id_in_scenario=slots.acquire(),
            scenario=scenario,
        )
        self.state = WorkerLocalState()
        self.interrupt = threading.Event()
        self.http = HttpClient(
            str(runtime.settings["BASE_URL"]),
            runtime.metrics,
            session=runtime.session_factory(),
            timeout=float(runtime.settings["HTTP_TIMEOUT_SECONDS"]),
            default_tags={"scenario": scenario},
            interrupt=self.interrupt,
        )
        self._closed = False

    def run_once(self) -> IterationOutcome:
        """Run a single iteration of the workload for this worker."""
        ctx = IterationContext(
            identity=self.identity,
            state=self.state,
            http=self.http,
            checks=self.runtime.checks,
            settings=self.runtime.settings,
            fixture=self.runtime.fixture if self.workload.uses_fixture else None,
            interrupt=self.interrupt,
            iteration=self.identity.next_iteration(),
        )
        return run_iteration(self.workload, ctx, self.runtime.metrics)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.http.close()
        self._slots.release(self.identity.id_in_scenario)


class WorkerHandle:
    """A virtual user plus the thread driving it."""

    def __init__(self, vu: VirtualUser):
        self.vu = vu
        self.deadline: float | None = None
        self.thread = threading.Thread(
            target=self._run,
            name=f"{vu.identity.scenario}-vu-{vu.identity.id_in_test}",
            daemon=True,
        )

    def _run(self) -> None:
        try:
            self.loop()
        finally:
            self.vu.close()

    def loop(self) -> None:  # pragma: no cover - overridden
        raise NotImplementedError

    def start(self) -> None:
        self.thread.start()

    @property
    def alive(self) -> bool:
        return self.thread.is_alive()

    def overdue(self, now: float) -> bool:
        return self.deadline is not None and now >= self.deadline and not self.vu.interrupt.is_set()


class Executor(ABC):
    """
    Base class for scenario executors.

    Attributes:
        name: Scenario name.
        profile: The scenario's immutable profile.
        workload: The workload function the scenario runs.
        runtime: Shared run objects.
        tick: Control-loop period in seconds.
    """

    def __init__(
        self,
        name: str,
        profile: ScenarioProfile,
        workload: Workload,
        runtime: Runtime,
        *,
        tick: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        self.name = name
        self.profile = profile
        self.workload = workload
        self.runtime = runtime
        self.tick = tick
        self.slots = SlotPool()
        self.interrupted_workers = 0

    @abstractmethod
    def run(self) -> None:
        """Drive the scenario to completion (blocks the calling thread)."""

    def stats(self) -> dict[str, Any]:
        """Per-scenario figures for the end-of-run summary."""
        return {
            "executor": self.profile.executor,
            "exec": self.workload.name,
            "interrupted_vus": self.interrupted_workers,
        }

    def new_vu(self) -> VirtualUser:
        return VirtualUser(self.runtime, self.name, self.workload, self.slots)

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; returns ``True`` early if the run is stopping."""
        if seconds <= 0:
            return self.runtime.stop.is_set()
        return self.runtime.stop.wait(seconds)

    def interrupt_overdue(self, handles: Iterable[WorkerHandle]) -> None:
        """Interrupt every worker whose grace period has run out."""
        now = time.monotonic()
        for handle in handles:
            if handle.overdue(now):
                logger.warning(
                    "Scenario %s: VU %s exceeded its grace period, interrupting",
                    self.name,
                    handle.vu.identity.id_in_test,
                )
                handle.vu.interrupt.set()
                self.interrupted_workers += 1

    def drain(self, handles: list[WorkerHandle], grace: float) -> None:
        """
        Wait for *handles* to exit, interrupting them after *grace* seconds.

        Callers must already have told the workers to stop after their
        current iteration.  Interrupted iterations end at their next
        checkpoint; one that is stuck inside a request ends at the latest
        when the request times out.
        """
        now = time.monotonic()
        for handle in handles:
            if handle.deadline is None or handle.deadline > now + grace:
                handle.deadline = now + grace

        hard_limit = now + grace + float(self.runtime.settings["HTTP_TIMEOUT_SECONDS"]) + 1.0
        pending = [handle for handle in handles if handle.alive]
        while pending:
            self.interrupt_overdue(pending)
            pending[0].thread.join(self.tick)
            pending = [handle for handle in pending if handle.alive]
            if pending and time.monotonic() > hard_limit:
                logger.error(
                    "Scenario %s: %d VU(s) did not stop, abandoning them",
                    self.name,
                    len(pending),
                )
                break
