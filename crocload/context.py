"""
Per-worker runtime context.

Every virtual user owns exactly one :class:`WorkerIdentity` and one
:class:`WorkerLocalState`.  Neither is ever handed to another worker, so
neither needs locking; the only synchronised objects here are the two
allocators that hand out identifiers.
"""

from __future__ import annotations

import heapq
import itertools
import threading
from dataclasses import dataclass, field
from typing import Any


@dataclass
class WorkerIdentity:
    """
    Stable identity of one virtual user.

    Attributes:
        id_in_test: 1-based id, unique across every scenario of the run and
            never reused.
        id_in_scenario: 1-based slot inside the owning scenario.  A slot is
            only handed out again after its previous holder has retired, so
            slots never exceed the scenario's peak concurrency; fixture rows
            are selected by this value.
        scenario: Name of the scenario the worker belongs to.
        iterations: Number of iterations started so far.
    """

    id_in_test: int
    id_in_scenario: int
    scenario: str
    iterations: int = 0

    def next_iteration(self) -> int:
        """Advance the iteration counter and return the new iteration index (0-based)."""
        index = self.iterations
        self.iterations += 1
        return index


@dataclass
class WorkerLocalState:
    """
    Mutable bag owned by a single worker for its whole lifetime.

    Attributes:
        token: Cached access token; ``None`` until the first successful
            login, so the login step runs once per worker, not per
            iteration.
        refresh_token: Token used by the ``refresh-on-401`` policy.
        data: Free-form storage for workloads.
    """

    token: str | None = None
    refresh_token: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def forget_credentials(self) -> None:
        """Drop cached tokens so the next iteration logs in again."""
        self.token = None
        self.refresh_token = None


class IdentityAllocator:
    """Thread-safe source of run-wide unique worker ids."""

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            return next(self._counter)


class SlotPool:
    """
    Hands out the lowest free 1-based slot number within one scenario.

    Released slots are reused lowest-first, which keeps worker N bound to
    fixture row N while concurrency goes up and down.
    """

    def __init__(self) -> None:
        self._free: list[int] = []
        self._next = 1
        self._lock = threading.Lock()

    def acquire(self) -> int:
        with self._lock:
            if self._free:
                return heapq.heappop(self._free)
            slot = self._next
            self._next += 1
            return slot

    def release(self, slot: int) -> None:
        with self._lock:
            heapq.heappush(self._free, slot)

    @property
    def high_water_mark(self) -> int:
        """Largest slot ever issued."""
        with self._lock:
            return self._next - 1
