"""
Unit tests for the check collector.
"""

from __future__ import annotations

import threading

import pytest

from crocload.errors import UnknownCheckError
from crocload.metrics import CHECKS

pytestmark = pytest.mark.unit


def test_record_requires_registration(checks):
    with pytest.raises(UnknownCheckError):
        checks.record("Logged in successfully", True)

    assert checks.results() == ()


def test_summary_in_registration_order(checks):
    # Arrange
    checks.register("Logged in successfully")
    checks.register("Croc created correctly")

    # Act
    checks.record("Croc created correctly", False)
    checks.record("Logged in successfully", True)
    checks.record("Logged in successfully", True)

    # Assert
    summary = checks.summary()
    assert [item.name for item in summary] == ["Logged in successfully", "Croc created correctly"]
    assert (summary[0].passes, summary[0].fails) == (2, 0)
    assert (summary[1].passes, summary[1].fails) == (0, 1)
    assert summary[1].pass_rate == 0.0


def test_register_is_idempotent(checks):
    checks.register("Update worked")
    checks.register("Update worked")

    assert [item.name for item in checks.summary()] == ["Update worked"]


def test_results_carry_context_and_feed_checks_metric(checks, metrics):
    checks.register("Update worked")

    result = checks.record(
        "Update worked", True, scenario="std", vu_id=4, iteration=2, group="::03. Update the croc"
    )

    assert (result.scenario, result.vu_id, result.iteration) == ("std", 4, 2)
    summary = metrics.snapshot().summary("checks{check:Update worked}")
    assert summary.aggregate("rate") == 1.0
    assert metrics.snapshot().summary(CHECKS).count == 1


def test_concurrent_recording_keeps_per_worker_order(checks):
    # Arrange
    checks.register("step")

    def worker(vu_id: int) -> None:
        for iteration in range(100):
            checks.record("step", True, vu_id=vu_id, iteration=iteration)

    threads = [threading.Thread(target=worker, args=(vu_id,)) for vu_id in range(1, 6)]

    # Act
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # Assert
    results = checks.results()
    assert len(results) == 500
    for vu_id in range(1, 6):
        iterations = [r.iteration for r in results if r.vu_id == vu_id]
        assert iterations == list(range(100))
