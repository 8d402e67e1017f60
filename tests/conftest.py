"""
Shared pytest fixtures for the crocload test suite.

Unit tests get fresh, isolated engine objects (metrics registry, check
collector, workload registry).  Integration tests additionally get a live
stand-in Crocodiles API served from a background thread, seeded with the
same Faker-generated credentials file the load generator logs in with.

Key Concepts Demonstrated:
- Fixture scopes (function, session)
- Fixture dependencies
- Test data generation with Faker
- Live server in a daemon thread with clean shutdown
"""

from __future__ import annotations

import csv
import threading
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from faker import Faker
from werkzeug.serving import make_server

from crocload.checks import CheckCollector
from crocload.client import HttpClient
from crocload.config import load_settings
from crocload.context import WorkerIdentity, WorkerLocalState
from crocload.fixtures import clear_fixture_cache
from crocload.harness import IterationContext, WorkloadRegistry
from crocload.metrics import MetricsRegistry
from mock_api import create_app
from mock_api.config import generate_key_pair
from tests.fakes import FakeSession

# Initialize Faker for generating test data
fake = Faker()

FIXTURE_ROWS = 25


# -----------------------------------------------------------------------------
# Test Data Fixtures
# -----------------------------------------------------------------------------


def write_users_csv(path: Path, rows: int) -> list[dict[str, str]]:
    """Write *rows* unique Faker credentials to *path* and return them."""
    users = [
        {"username": f"{fake.unique.user_name()}_{index}", "password": fake.password(length=12)}
        for index in range(1, rows + 1)
    ]
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=["username", "password"])
        writer.writeheader()
        writer.writerows(users)
    return users


@pytest.fixture(scope="session")
def users_csv(tmp_path_factory) -> Path:
    """Credentials CSV shared by the stand-in API and the load generator."""
    path = tmp_path_factory.mktemp("fixtures") / "test-users.csv"
    write_users_csv(path, FIXTURE_ROWS)
    return path


@pytest.fixture(autouse=True)
def _fresh_fixture_cache():
    """Every test starts without cached fixture files."""
    clear_fixture_cache()
    yield
    clear_fixture_cache()


# -----------------------------------------------------------------------------
# Engine Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def checks(metrics) -> CheckCollector:
    return CheckCollector(metrics)


@pytest.fixture
def registry() -> WorkloadRegistry:
    """An empty workload registry, isolated from the built-in workloads."""
    return WorkloadRegistry()


@pytest.fixture
def settings(users_csv) -> dict:
    """Testing settings pointing at an unreachable host and the Faker fixture."""
    return load_settings("testing", FIXTURE_PATH=str(users_csv))


@pytest.fixture
def make_context(metrics, checks, settings) -> Callable[..., IterationContext]:
    """
    Factory for an :class:`IterationContext` outside of any executor.

    Example:
        def test_something(make_context):
            ctx = make_context(session=FakeSession())
            ctx.check(1, {"is one": lambda v: v == 1})
    """

    def _make(
        *,
        session: FakeSession | None = None,
        scenario: str = "unit",
        id_in_scenario: int = 1,
        fixture=None,
        interrupt: threading.Event | None = None,
        settings_overrides: dict | None = None,
        base_url: str = "http://crocs.test",
    ) -> IterationContext:
        interrupt = interrupt or threading.Event()
        identity = WorkerIdentity(id_in_test=id_in_scenario, id_in_scenario=id_in_scenario, scenario=scenario)
        http = HttpClient(
            base_url,
            metrics,
            session=session or FakeSession(),
            default_tags={"scenario": scenario},
            interrupt=interrupt,
        )
        return IterationContext(
            identity=identity,
            state=WorkerLocalState(),
            http=http,
            checks=checks,
            settings={**settings, **(settings_overrides or {})},
            fixture=fixture,
            interrupt=interrupt,
            iteration=identity.next_iteration(),
        )

    return _make


# -----------------------------------------------------------------------------
# Live Stand-in API
# -----------------------------------------------------------------------------


@pytest.fixture(scope="session")
def api_app(tmp_path_factory, users_csv):
    """Stand-in Crocodiles API on a throwaway SQLite database."""
    private_key, public_key = generate_key_pair()
    database = tmp_path_factory.mktemp("db") / "crocodiles.db"
    return create_app(
        "testing",
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{database}?check_same_thread=False",
        SEED_USERS_CSV=str(users_csv),
        JWT_PRIVATE_KEY=private_key,
        JWT_PUBLIC_KEY=public_key,
    )


@pytest.fixture
def api_client(api_app):
    """Flask test client for direct endpoint tests (no sockets)."""
    with api_app.test_client() as test_client:
        yield test_client


@pytest.fixture(scope="session")
def live_server(api_app) -> Generator[str, None, None]:
    """
    Serve the stand-in API from a background thread.

    Binds to an ephemeral port so parallel sessions never collide, and
    shuts the server down when the session ends.

    Yields:
        str: Base URL of the running server.
    """
    server = make_server("127.0.0.1", 0, api_app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, name="mock-api", daemon=True)
    thread.start()

    yield f"http://127.0.0.1:{server.server_port}"

    server.shutdown()
    thread.join(timeout=5)


@pytest.fixture
def live_settings(live_server, users_csv) -> dict:
    """Testing settings targeting the live stand-in API."""
    return load_settings("testing", BASE_URL=live_server, FIXTURE_PATH=str(users_csv))
