"""
Outbound HTTP collaborator used by workloads.

Each virtual user owns one :class:`HttpClient`, wrapping its own
``requests.Session`` (connection reuse stays per worker, so workers never
share a socket).  Every call is timed and recorded as three samples:

- ``http_reqs``: one per request
- ``http_req_duration``: wall-clock milliseconds
- ``http_req_failed``: ``1`` when the status is ``0`` (transport error)
  or ``>= 400``

Requests never raise on HTTP or transport errors; a timeout or refused
connection comes back as an :class:`HttpResponse` with ``status == 0`` and
``error`` set, so a workload's checks see the failure the same way they
see a ``500``.

Key Concepts Demonstrated:
- Thin facade over ``requests`` returning an immutable response object
- Form-encoded bodies for dicts (``json=`` for JSON payloads)
- Dotted-path JSON selectors (``res.json("access")``)
- Cooperative interruption checkpoint before each request
"""

from __future__ import annotations

import json as jsonlib
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping
from urllib.parse import urlparse

import requests

from .errors import IterationInterrupted
from .metrics import HTTP_REQ_DURATION, HTTP_REQ_FAILED, HTTP_REQS, MetricsRegistry

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class HttpResponse:
    """
    Result of one outbound request.

    Attributes:
        method: HTTP verb that was sent.
        url: Absolute URL that was requested.
        name: Value of the ``name`` tag the request was recorded under.
        status: HTTP status code, or ``0`` when no response was received.
        body: Decoded response body (empty on transport errors).
        headers: Response headers.
        elapsed_ms: Time from send to full response, in milliseconds.
        error: Transport error description, if any.
    """

    method: str
    url: str
    name: str
    status: int
    body: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0
    error: str | None = None

    @property
    def failed(self) -> bool:
        """``True`` for transport errors and 4xx/5xx responses."""
        return self.status == 0 or self.status >= 400

    def json(self, path: str | None = None) -> Any:
        """
        Parse the body as JSON, optionally selecting a nested value.

        Args:
            path: Dotted selector such as ``"access"`` or ``"items.0.id"``.
                A missing key or index yields ``None``.

        Returns:
            The decoded document or the selected value.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        document = jsonlib.loads(self.body)
        if path is None:
            return document

        current: Any = document
        for part in path.split("."):
            if isinstance(current, Mapping):
                current = current.get(part, _MISSING)
            elif isinstance(current, list) and part.lstrip("-").isdigit():
                index = int(part)
                current = current[index] if -len(current) <= index < len(current) else _MISSING
            else:
                current = _MISSING
            if current is _MISSING:
                return None
        return current


class HttpClient:
    """
    Per-worker HTTP client that records request metrics.

    Attributes:
        base_url: Prefix for relative request paths.
        default_tags: Tags attached to every sample (``scenario`` ...).
        group: Current workload group; maintained by the harness and
            added as the ``group`` tag when set.
    """

    def __init__(
        self,
        base_url: str,
        metrics: MetricsRegistry,
        *,
        session: requests.Session | None = None,
        timeout: float = 60.0,
        default_tags: Mapping[str, str] | None = None,
        interrupt: threading.Event | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.metrics = metrics
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.default_tags = dict(default_tags or {})
        self.interrupt = interrupt
        self.group: str | None = None

    def _absolute(self, url: str) -> str:
        if urlparse(url).scheme:
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    def request(
        self,
        method: str,
        url: str,
        body: Any = None,
        *,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        """
        Send one request and record its metrics.

        Args:
            method: HTTP verb.
            url: Absolute URL or path relative to :attr:`base_url`.
            body: Request body; dicts are form-encoded.
            json: JSON-serialisable payload (mutually exclusive with *body*).
            headers: Extra request headers.
            tags: Extra sample tags; ``name`` overrides the default name
                (the URL without its query string).

        Returns:
            An :class:`HttpResponse`; never raises for HTTP/transport errors.

        Raises:
            IterationInterrupted: If the worker was interrupted before the
                request could be sent.
        """
        if self.interrupt is not None and self.interrupt.is_set():
            raise IterationInterrupted(f"{method} {url} not sent: worker interrupted")

        absolute_url = self._absolute(url)
        sample_tags = {
            **self.default_tags,
            "name": absolute_url.split("?", 1)[0],
            **(tags or {}),
            "method": method.upper(),
        }
        if self.group and "group" not in sample_tags:
            sample_tags["group"] = self.group

        started = time.perf_counter()
        try:
            raw = self.session.request(
                method=method.upper(),
                url=absolute_url,
                data=body,
                json=json,
                headers=dict(headers or {}),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            logger.warning("Request failed: %s %s - %s", method.upper(), absolute_url, exc)
            response = HttpResponse(
                method=method.upper(),
                url=absolute_url,
                name=sample_tags["name"],
                status=0,
                elapsed_ms=elapsed_ms,
                error=str(exc),
            )
        else:
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            response = HttpResponse(
                method=method.upper(),
                url=absolute_url,
                name=sample_tags["name"],
                status=raw.status_code,
                body=raw.text,
                headers=dict(raw.headers),
                elapsed_ms=elapsed_ms,
            )

        sample_tags["status"] = str(response.status)
        self.metrics.add(HTTP_REQS, 1, sample_tags)
        self.metrics.add(HTTP_REQ_DURATION, response.elapsed_ms, sample_tags)
        self.metrics.add(HTTP_REQ_FAILED, 1 if response.failed else 0, sample_tags)
        return response

    def get(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, body: Any = None, **kwargs: Any) -> HttpResponse:
        return self.request("POST", url, body, **kwargs)

    def put(self, url: str, body: Any = None, **kwargs: Any) -> HttpResponse:
        return self.request("PUT", url, body, **kwargs)

    def patch(self, url: str, body: Any = None, **kwargs: Any) -> HttpResponse:
        return self.request("PATCH", url, body, **kwargs)

    def delete(self, url: str, body: Any = None, **kwargs: Any) -> HttpResponse:
        return self.request("DELETE", url, body, **kwargs)

    def close(self) -> None:
        self.session.close()


SessionFactory = Callable[[], requests.Session]
