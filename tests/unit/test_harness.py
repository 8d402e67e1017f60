"""
Unit tests for the workload harness: registry, groups, checks, think time
and iteration outcomes.
"""

from __future__ import annotations

import threading

import pytest

from crocload.errors import ConfigurationError, IterationInterrupted
from crocload.harness import IterationOutcome, run_iteration, workload
from crocload.metrics import ABORTED_ITERATIONS, ITERATION_ERRORS, ITERATIONS

pytestmark = pytest.mark.unit


def test_workload_decorator_registers_function(registry):
    @workload("browse", uses_fixture=True, registry=registry)
    def browse(ctx):
        return None

    registered = registry.get("browse")
    assert registered.func is browse
    assert registered.uses_fixture is True
    assert registry.names() == ["browse"]


def test_registry_rejects_conflicts_and_unknown_names(registry):
    registry.register("browse", lambda ctx: None)

    with pytest.raises(ConfigurationError, match="already registered"):
        registry.register("browse", lambda ctx: None)
    with pytest.raises(ConfigurationError, match="known: browse"):
        registry.get("checkout")


def test_check_runs_every_predicate(make_context, checks):
    # Arrange
    ctx = make_context()

    # Act
    passed = ctx.check(
        {"name": "Bert"},
        {
            "has name": lambda v: v["name"] == "Bert",
            "has id": lambda v: v["id"] > 0,
            "is dict": lambda v: isinstance(v, dict),
        },
    )

    # Assert
    assert passed is False
    outcomes = {item.name: (item.passes, item.fails) for item in checks.summary()}
    assert outcomes == {"has name": (1, 0), "has id": (0, 1), "is dict": (1, 0)}


def test_groups_nest_and_tag_requests(make_context, checks, metrics):
    ctx = make_context()

    with ctx.group("01. Create"):
        with ctx.group("inner"):
            assert ctx.current_group == "::01. Create::inner"
            ctx.http.get("/x/")
            ctx.check(1, {"one": lambda v: v == 1})
        assert ctx.current_group == "::01. Create"
    assert ctx.current_group is None
    assert ctx.http.group is None

    assert metrics.snapshot().samples[0].tags["group"] == "::01. Create::inner"
    assert checks.results()[0].group == "::01. Create::inner"


def test_sleep_is_interruptible(make_context):
    interrupt = threading.Event()
    ctx = make_context(interrupt=interrupt)
    threading.Timer(0.05, interrupt.set).start()

    with pytest.raises(IterationInterrupted):
        ctx.sleep(5)


def test_fixture_row_without_fixture_is_a_configuration_error(make_context):
    with pytest.raises(ConfigurationError):
        make_context().fixture_row()


def test_run_iteration_outcomes(make_context, metrics, registry):
    # Arrange
    registry.register("ok", lambda ctx: None)
    registry.register("early", lambda ctx: ctx.check(0, {"never": bool}) or None)

    def broken(ctx):
        raise RuntimeError("boom")

    def interrupted(ctx):
        raise IterationInterrupted("stop")

    registry.register("broken", broken)
    registry.register("interrupted", interrupted)

    # Act
    outcomes = [
        run_iteration(registry.get(name), make_context(), metrics)
        for name in ("ok", "early", "broken", "interrupted")
    ]

    # Assert
    assert outcomes == [
        IterationOutcome.COMPLETED,
        IterationOutcome.COMPLETED,
        IterationOutcome.FAILED,
        IterationOutcome.ABORTED,
    ]
    snapshot = metrics.snapshot()
    assert snapshot.summary(ITERATIONS).aggregate("count") == 3
    assert snapshot.summary(ITERATION_ERRORS).aggregate("count") == 1
    assert snapshot.summary(ABORTED_ITERATIONS).aggregate("count") == 1


def test_run_iteration_resets_group_after_exception(make_context, metrics, registry):
    def fails_in_group(ctx):
        with ctx.group("00. Login"):
            raise RuntimeError("boom")

    registry.register("fails", fails_in_group)
    ctx = make_context()

    run_iteration(registry.get("fails"), ctx, metrics)

    assert ctx.http.group is None
