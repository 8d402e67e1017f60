"""
Crocodile API workloads.

Two workloads are registered:

``standardWorkloadMix``
    The typical user journey: log in (once per worker), create a private
    crocodile, list private crocodiles, rename the new crocodile and delete
    it, with think time between steps.  Each worker logs in with its own
    row of the credentials fixture.

``spikeWorkload``
    A single anonymous ``GET /public/crocodiles/``, the request that sees
    sudden bursts in production.
"""

from __future__ import annotations

import logging

from ..harness import IterationContext, workload
from .helpers import (
    PRIVATE_CROCS_PATH,
    PUBLIC_CROCS_PATH,
    json_list_length,
    login,
    new_croc_payload,
    private_request,
)

logger = logging.getLogger(__name__)

UPDATED_NAME = "New name"


@workload("standardWorkloadMix", uses_fixture=True)
def standard_workload_mix(ctx: IterationContext) -> None:
    think_time = float(ctx.settings.get("THINK_TIME_SECONDS", 1))

    with ctx.group("00. Login"):
        # Log in only once per worker; the token lives in worker state.
        if ctx.state.token is None and not login(ctx):
            return

    with ctx.group("01. Create a new crocodile"):
        res = private_request(
            ctx, "POST", PRIVATE_CROCS_PATH, new_croc_payload(), name="Create Private Croc"
        )
        if not ctx.check(res, {"Croc created correctly": lambda r: r.status == 201}):
            logger.warning("Unable to create a Croc %s %s", res.status, res.body[:200])
            return
        croc_id = res.json("id")

    ctx.sleep(think_time)

    with ctx.group("02. Fetch private crocs"):
        res = private_request(ctx, "GET", PRIVATE_CROCS_PATH, name="Fetch Private Crocs")
        ctx.check(res, {"retrieved crocs status": lambda r: r.status == 200})
        ctx.check(res, {"retrieved crocs list": lambda r: json_list_length(r) > 0})

    ctx.sleep(think_time)

    with ctx.group("03. Update the croc"):
        res = private_request(
            ctx,
            "PATCH",
            f"{PRIVATE_CROCS_PATH}{croc_id}/",
            {"name": UPDATED_NAME},
            name="Update Private Croc",
        )
        updated = ctx.check(
            res,
            {
                "Update worked": lambda r: r.status == 200,
                "Updated name is correct": lambda r: r.json("name") == UPDATED_NAME,
            },
        )
        if not updated:
            logger.warning("Unable to update the croc %s %s", res.status, res.body[:200])

    ctx.sleep(think_time)

    with ctx.group("04. Delete the croc"):
        res = private_request(
            ctx, "DELETE", f"{PRIVATE_CROCS_PATH}{croc_id}/", name="Delete Private Croc"
        )
        if not ctx.check(res, {"Croc was deleted correctly": lambda r: r.status == 204}):
            logger.warning("Croc %s was not deleted properly (%s)", croc_id, res.status)

    ctx.sleep(think_time)


@workload("spikeWorkload")
def spike_workload(ctx: IterationContext) -> None:
    res = ctx.http.get(
        PUBLIC_CROCS_PATH,
        tags={"name": "Fetch Public Crocs", "my_custom_tag": "spikeWorkload"},
    )
    ctx.check(res, {"retrieved crocs status": lambda r: r.status == 200})
    ctx.check(res, {"retrieved crocs list": lambda r: json_list_length(r) > 0})
