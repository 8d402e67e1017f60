"""
Configuration Classes for the load generator.

Centralises the environment-dependent settings of a run (target base URL,
fixture location, HTTP timeout, think time, token policy, log level) into
a small hierarchy of configuration classes.  The base ``Config`` class
holds the defaults used against the public Crocodiles API, while
subclasses override only what differs per environment.

Scenario profiles and thresholds are *not* configured here: they are part
of the run options document loaded by :mod:`crocload.options`.

Key Concepts Demonstrated:
- Class-based configuration with inheritance
- Environment-variable overrides for twelve-factor compliance
- Enumerated policy values validated at lookup time
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from .errors import ConfigurationError

BASE_DIR = Path(__file__).resolve().parent.parent


class TokenPolicy(str, Enum):
    """
    What a worker does when an authenticated request comes back ``401``.

    ``NEVER`` keeps the behaviour of the original workload: log in once
    per worker and live with whatever happens when the token expires.
    """

    NEVER = "never"
    REFRESH_ON_401 = "refresh-on-401"


class Config:
    """
    Base configuration with defaults aimed at the public test API.

    Attributes:
        BASE_URL: Scheme and host every workload path is joined to.
        FIXTURE_PATH: CSV file holding the ``username``/``password`` rows.
        HTTP_TIMEOUT_SECONDS: Per-request timeout handed to ``requests``.
        THINK_TIME_SECONDS: Pause between workload groups.
        TOKEN_REFRESH_POLICY: See :class:`TokenPolicy`.
        LOG_LEVEL: Root logging level name.
    """

    BASE_URL: str = os.environ.get("CROCLOAD_BASE_URL", "https://test-api.k6.io")
    FIXTURE_PATH: str = os.environ.get(
        "CROCLOAD_FIXTURE_PATH", str(BASE_DIR / "data" / "test-users.csv")
    )
    HTTP_TIMEOUT_SECONDS: float | str = os.environ.get("CROCLOAD_HTTP_TIMEOUT", "60")
    THINK_TIME_SECONDS: float | str = os.environ.get("CROCLOAD_THINK_TIME", "1")
    TOKEN_REFRESH_POLICY: TokenPolicy | str = os.environ.get(
        "CROCLOAD_TOKEN_REFRESH_POLICY", TokenPolicy.NEVER.value
    )
    LOG_LEVEL: str = os.environ.get("CROCLOAD_LOG_LEVEL", "INFO")


class DevelopmentConfig(Config):
    """
    Development configuration.

    Points at a locally running stand-in API (see :mod:`mock_api`) so that
    profiles can be exercised without touching the shared public service.
    """

    BASE_URL: str = os.environ.get("CROCLOAD_BASE_URL", "http://localhost:5000")
    LOG_LEVEL: str = os.environ.get("CROCLOAD_LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    """
    Testing configuration.

    Short timeouts and no think time keep the suite fast; the base URL is
    normally replaced by the live-server fixture.
    """

    BASE_URL: str = os.environ.get("TEST_CROCLOAD_BASE_URL", "http://127.0.0.1:5001")
    HTTP_TIMEOUT_SECONDS: float = 5.0
    THINK_TIME_SECONDS: float = 0.0


class ProductionConfig(Config):
    """Runs against the real API; everything comes from ``Config``."""


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": ProductionConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Look up and return the configuration class for the given environment.

    Args:
        env: Environment name (``"development"``, ``"testing"``,
            ``"production"``).  When ``None``, falls back to the
            ``CROCLOAD_ENV`` environment variable, defaulting to
            ``"production"``.

    Returns:
        The configuration class (not an instance) for that environment.
    """
    if env is None:
        env = os.environ.get("CROCLOAD_ENV", "production")
    return config.get(env, config["default"])


def load_settings(env: str | None = None, **overrides: object) -> dict[str, object]:
    """
    Flatten a configuration class into a plain settings mapping.

    Mirrors ``app.config.from_object``: every upper-case attribute of the
    selected class becomes a key.  Keyword overrides (for instance values
    supplied on the command line) win over class defaults; ``None``
    overrides are ignored so optional CLI flags can be passed straight
    through.

    Args:
        env: Environment name handed to :func:`get_config`.
        **overrides: Upper-case setting names mapped to replacement values.

    Returns:
        A new dictionary of settings.

    Raises:
        KeyError: If an override names a setting that does not exist.
        ConfigurationError: If a numeric setting or the token policy has
            an invalid value.
    """
    config_class = get_config(env)
    settings = {
        key: getattr(config_class, key) for key in dir(config_class) if key.isupper()
    }
    for key, value in overrides.items():
        if key not in settings:
            raise KeyError(f"Unknown setting: {key}")
        if value is not None:
            settings[key] = value
    for key in ("HTTP_TIMEOUT_SECONDS", "THINK_TIME_SECONDS"):
        try:
            settings[key] = float(settings[key])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"{key} must be numeric, got {settings[key]!r}") from exc
    try:
        settings["TOKEN_REFRESH_POLICY"] = TokenPolicy(settings["TOKEN_REFRESH_POLICY"])
    except ValueError as exc:
        choices = ", ".join(policy.value for policy in TokenPolicy)
        raise ConfigurationError(
            f"TOKEN_REFRESH_POLICY must be one of {choices}, got {settings['TOKEN_REFRESH_POLICY']!r}"
        ) from exc
    return settings
