"""
Helper utilities shared by the Crocodile workloads.

Provides the building blocks every workload relies on: random names,
payload factories, bearer headers and the login/refresh round trips that
keep a worker's token in its :class:`~crocload.context.WorkerLocalState`.

Key Concepts Demonstrated:
- Token caching in worker-local state (log in once per worker)
- Opt-in refresh-on-401 with a single retry
- Randomised payloads to defeat server-side caching
"""

from __future__ import annotations

import logging
import random
import string
from typing import Any

from ..client import HttpResponse
from ..config import TokenPolicy
from ..harness import IterationContext

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/token/login/"
REFRESH_PATH = "/auth/token/refresh/"
PRIVATE_CROCS_PATH = "/my/crocodiles/"
PUBLIC_CROCS_PATH = "/public/crocodiles/"

PRIVATE_CROCS_TAG = "PrivateCrocs"

_CHARSET = string.ascii_lowercase + string.digits


def random_string(length: int, charset: str = _CHARSET) -> str:
    """Random string of *length* characters drawn from *charset*."""
    return "".join(random.choices(charset, k=length))


def new_croc_payload() -> dict[str, str]:
    """Form payload for ``POST /my/crocodiles/``."""
    return {
        "name": f"Name {random_string(10)}",
        "sex": "M",
        "date_of_birth": "2022-01-01",
    }


def auth_header(token: str) -> dict[str, str]:
    """Bearer ``Authorization`` header for the private API."""
    return {"Authorization": f"Bearer {token}"}


def json_list_length(res: HttpResponse) -> int:
    """Length of a JSON array body; ``0`` for anything else."""
    try:
        body = res.json()
    except ValueError:
        return 0
    return len(body) if isinstance(body, list) else 0


def login(ctx: IterationContext) -> bool:
    """
    Log the worker in with its fixture credentials.

    On success the access and refresh tokens are stored in ``ctx.state``.

    Returns:
        ``True`` when the ``Logged in successfully`` check passed.
    """
    row = ctx.fixture_row()
    res = ctx.http.post(
        LOGIN_PATH,
        {"username": row["username"], "password": row["password"]},
        tags={"name": "Login"},
    )
    if not ctx.check(res, {"Logged in successfully": lambda r: r.status == 200}):
        logger.warning("Unable to Login %s %s", res.status, res.body[:200])
        ctx.state.forget_credentials()
        return False

    ctx.state.token = res.json("access")
    ctx.state.refresh_token = res.json("refresh")
    return bool(ctx.state.token)


def refresh_token(ctx: IterationContext) -> bool:
    """
    Exchange the cached refresh token for a new access token, falling back
    to a full login when that is not possible.
    """
    if ctx.state.refresh_token:
        res = ctx.http.post(
            REFRESH_PATH,
            {"refresh": ctx.state.refresh_token},
            tags={"name": "Refresh Token"},
        )
        access = res.json("access") if res.status == 200 else None
        if access:
            ctx.state.token = access
            return True
        logger.info("Token refresh failed with status %s, logging in again", res.status)

    ctx.state.forget_credentials()
    return login(ctx)


def private_request(
    ctx: IterationContext,
    method: str,
    url: str,
    body: Any = None,
    *,
    name: str,
) -> HttpResponse:
    """
    Send an authenticated request to the private API.

    Under :attr:`TokenPolicy.REFRESH_ON_401` a ``401`` triggers one token
    refresh and a single retry; otherwise the response is returned as is.
    """
    tags = {"name": name, "api": PRIVATE_CROCS_TAG}
    res = ctx.http.request(method, url, body, headers=auth_header(ctx.state.token or ""), tags=tags)

    policy = ctx.settings.get("TOKEN_REFRESH_POLICY", TokenPolicy.NEVER)
    if res.status == 401 and policy == TokenPolicy.REFRESH_ON_401:
        logger.info("VU %s got 401 on %s, refreshing token", ctx.identity.id_in_test, name)
        if refresh_token(ctx):
            res = ctx.http.request(
                method, url, body, headers=auth_header(ctx.state.token or ""), tags=tags
            )
    return res
