"""
Ramping executor (``ramping-vus``).

Controls *concurrency*: the number of live workers follows a piecewise
linear target built from the profile's stages.  Each live worker loops
over the workload function on its own until it is retired.

Ramp-down is graceful.  A retired worker finishes the iteration it is in;
if that takes longer than ``gracefulRampDown`` the worker is interrupted
and the iteration is counted as aborted.  When the last stage ends every
remaining worker gets ``gracefulStop`` to finish.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Sequence

from ..options import RampingProfile, Stage
from .base import Executor, VirtualUser, WorkerHandle

logger = logging.getLogger(__name__)


def target_at(stages: Sequence[Stage], elapsed: float, start_vus: int = 0) -> int:
    """
    Worker count the profile asks for *elapsed* seconds into the scenario.

    Each stage moves linearly from the previous target (``start_vus`` for
    the first stage) to its own target; after the last stage the final
    target holds.
    """
    previous = start_vus
    offset = 0.0
    if elapsed < 0:
        return start_vus

    for stage in stages:
        end = offset + stage.duration
        if elapsed < end:
            fraction = (elapsed - offset) / stage.duration
            return math.floor(previous + (stage.target - previous) * fraction + 0.5)
        previous = stage.target
        offset = end
    return previous


class _RampingWorker(WorkerHandle):
    def __init__(self, vu: VirtualUser, executor: "RampingExecutor"):
        super().__init__(vu)
        self.executor = executor
        self.retiring = False

    def loop(self) -> None:
        stop = self.executor.runtime.stop
        while not self.retiring and not stop.is_set():
            self.vu.run_once()


class RampingExecutor(Executor):
    """
    Runs a :class:`~crocload.options.RampingProfile`.

    Attributes:
        history: ``(elapsed, live_workers, target)`` recorded on every tick.
        peak_workers: Highest number of live workers observed.
    """

    profile: RampingProfile

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._workers: list[_RampingWorker] = []
        self.history: list[tuple[float, int, int]] = []
        self.peak_workers = 0

    @property
    def live_workers(self) -> int:
        return sum(1 for worker in self._workers if worker.alive)

    def stats(self) -> dict[str, Any]:
        return {**super().stats(), "peak_vus": self.peak_workers}

    def _active(self) -> list[_RampingWorker]:
        return [worker for worker in self._workers if not worker.retiring]

    def _retire(self, workers: Sequence[_RampingWorker], grace: float) -> None:
        deadline = time.monotonic() + grace
        for worker in workers:
            worker.retiring = True
            worker.deadline = deadline

    def _reconcile(self, target: int) -> None:
        active = self._active()
        if len(active) < target:
            # Retiring workers are taken back before new ones start; each
            # still holds its slot until its thread exits.
            for worker in self._workers:
                if len(active) >= target:
                    break
                if worker.retiring and worker.alive and not worker.vu.interrupt.is_set():
                    worker.retiring = False
                    worker.deadline = None
                    active.append(worker)

            room = self.profile.max_vus - self.live_workers
            for _ in range(min(target - len(active), room)):
                worker = _RampingWorker(self.new_vu(), self)
                self._workers.append(worker)
                worker.start()
        elif len(active) > target:
            # Most recently started workers go first.
            excess = active[target:]
            self._retire(excess, self.profile.graceful_ramp_down)
            logger.debug("Scenario %s: retiring %d VU(s)", self.name, len(excess))

    def _reap(self) -> None:
        self._workers = [worker for worker in self._workers if worker.alive]

    def run(self) -> None:
        profile = self.profile
        if self.wait(profile.start_time):
            logger.info("Scenario %s: run stopped before start", self.name)
            return

        logger.info(
            "Scenario %s: ramping-vus over %d stage(s), %.1fs total",
            self.name,
            len(profile.stages),
            profile.duration,
        )
        started = time.monotonic()
        while not self.runtime.stop.is_set():
            elapsed = time.monotonic() - started
            if elapsed >= profile.duration:
                break

            target = target_at(profile.stages, elapsed, profile.start_vus)
            self._reconcile(target)
            self.interrupt_overdue(self._workers)
            self._reap()

            live = self.live_workers
            self.peak_workers = max(self.peak_workers, live)
            self.history.append((elapsed, live, target))
            if self.wait(self.tick):
                break

        if self.runtime.stop.is_set():
            logger.info("Scenario %s: run stopping, draining %d VU(s)", self.name, len(self._workers))

        self._retire(self._active(), profile.graceful_stop)
        self.drain(list(self._workers), profile.graceful_stop)
        self._workers.clear()
        logger.info(
            "Scenario %s: finished (peak %d VUs, %d interrupted)",
            self.name,
            self.peak_workers,
            self.interrupted_workers,
        )
