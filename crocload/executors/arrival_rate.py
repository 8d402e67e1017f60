"""
Constant-arrival-rate executor (``constant-arrival-rate``).

Controls *throughput*: a new iteration starts every ``timeUnit / rate``
seconds no matter how long earlier iterations take.  Iterations are handed
to idle workers from a bounded pool:

1. ``preAllocatedVUs`` workers are created before the first arrival.
2. When an arrival is due and every worker is busy, the pool grows by one,
   up to ``maxVUs``.
3. When ``maxVUs`` workers are all busy, the arrival is dropped and counted
   in ``dropped_iterations``.  A sleeping worker (think time) is busy.

Arrivals are strictly periodic.  A scheduler that falls behind catches up
by dispatching overdue arrivals immediately rather than skipping them.
"""

from __future__ import annotations

import logging
import math
import queue
import threading
import time
from collections import deque
from collections.abc import Iterator
from typing import Any

from ..metrics import DROPPED_ITERATIONS
from ..options import ArrivalRateProfile
from .base import Executor, VirtualUser, WorkerHandle

logger = logging.getLogger(__name__)

_STOP = object()


def arrival_count(profile: ArrivalRateProfile) -> int:
    """Number of arrivals scheduled strictly before ``duration`` elapses."""
    return math.ceil(round(profile.duration * profile.rate / profile.time_unit, 9))


def arrival_offsets(profile: ArrivalRateProfile) -> Iterator[float]:
    """Offsets (seconds from scenario start) of every scheduled arrival."""
    for index in range(arrival_count(profile)):
        yield index * profile.time_unit / profile.rate


class _PooledWorker(WorkerHandle):
    def __init__(self, vu: VirtualUser, executor: "ArrivalRateExecutor"):
        super().__init__(vu)
        self.executor = executor
        self.jobs: queue.SimpleQueue = queue.SimpleQueue()

    def loop(self) -> None:
        while True:
            job = self.jobs.get()
            if job is _STOP:
                return
            try:
                self.vu.run_once()
            finally:
                self.executor._release(self)


class ArrivalRateExecutor(Executor):
    """
    Runs an :class:`~crocload.options.ArrivalRateProfile`.

    Attributes:
        dispatched: Arrivals handed to a worker.
        dropped: Arrivals dropped because the pool was exhausted.
        dispatch_offsets: Seconds since scenario start of every dispatch.
    """

    profile: ArrivalRateProfile

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._lock = threading.Lock()
        self._idle: deque[_PooledWorker] = deque()
        self._pool: list[_PooledWorker] = []
        self.dispatched = 0
        self.dropped = 0
        self.dispatch_offsets: list[float] = []

    @property
    def pool_size(self) -> int:
        with self._lock:
            return len(self._pool)

    def stats(self) -> dict[str, Any]:
        return {
            **super().stats(),
            "started": self.dispatched,
            "dropped": self.dropped,
            "peak_vus": self.pool_size,
        }

    def _spawn(self) -> _PooledWorker:
        """Create and start one worker; caller holds ``_lock``."""
        worker = _PooledWorker(self.new_vu(), self)
        self._pool.append(worker)
        worker.start()
        return worker

    def _release(self, worker: _PooledWorker) -> None:
        with self._lock:
            self._idle.append(worker)

    def _acquire(self) -> _PooledWorker | None:
        with self._lock:
            if self._idle:
                return self._idle.popleft()
            if len(self._pool) < self.profile.max_vus:
                worker = self._spawn()
                logger.info(
                    "Scenario %s: all VUs busy, pool grown to %d/%d",
                    self.name,
                    len(self._pool),
                    self.profile.max_vus,
                )
                return worker
        return None

    def _dispatch(self, offset: float) -> None:
        worker = self._acquire()
        if worker is None:
            self.dropped += 1
            self.runtime.metrics.add(DROPPED_ITERATIONS, 1, {"scenario": self.name})
            if self.dropped == 1:
                logger.warning(
                    "Scenario %s: all %d VUs busy, dropping iterations",
                    self.name,
                    self.profile.max_vus,
                )
            return
        self.dispatched += 1
        self.dispatch_offsets.append(offset)
        worker.jobs.put(True)

    def run(self) -> None:
        profile = self.profile
        with self._lock:
            for _ in range(profile.pre_allocated_vus):
                self._idle.append(self._spawn())

        try:
            if self.wait(profile.start_time):
                logger.info("Scenario %s: run stopped before start", self.name)
                return

            logger.info(
                "Scenario %s: %d iterations per %.3gs for %.1fs (%d-%d VUs)",
                self.name,
                profile.rate,
                profile.time_unit,
                profile.duration,
                profile.pre_allocated_vus,
                profile.max_vus,
            )
            started = time.monotonic()
            for offset in arrival_offsets(profile):
                delay = started + offset - time.monotonic()
                if self.wait(delay):
                    break
                self._dispatch(time.monotonic() - started)

            # Hold the scenario open for its full duration even when the
            # last arrival was dispatched early.
            self.wait(started + profile.duration - time.monotonic())
        finally:
            self._shutdown()

        logger.info(
            "Scenario %s: finished (%d started, %d dropped, pool %d)",
            self.name,
            self.dispatched,
            self.dropped,
            len(self._pool),
        )

    def _shutdown(self) -> None:
        with self._lock:
            workers = list(self._pool)
        for worker in workers:
            worker.jobs.put(_STOP)
        self.drain(workers, self.profile.graceful_stop)
