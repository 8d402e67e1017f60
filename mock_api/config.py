"""
Configuration Classes for the stand-in Crocodiles API.

Centralises the environment-dependent settings of the local service
(database URI, JWT keys and lifetimes, seed data, artificial latency) into
a hierarchy of configuration classes.  The base ``Config`` class defines
development defaults, while subclasses override only what differs per
environment.

Key Concepts Demonstrated:
- Class-based configuration with inheritance
- Environment-variable overrides for twelve-factor app compliance
- PEM keys from the environment, with an ephemeral RSA pair as fallback
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

BASE_DIR = Path(__file__).resolve().parent
REPO_DIR = BASE_DIR.parent

logger = logging.getLogger(__name__)


def _read_key(raw_env_var: str, path_env_var: str) -> str | None:
    """Load a PEM key from direct env content or from a path env variable."""
    raw_key = os.environ.get(raw_env_var, "").strip()
    if raw_key:
        return raw_key

    key_path = os.environ.get(path_env_var, "").strip()
    if key_path:
        try:
            return Path(key_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise RuntimeError(
                f"Unable to read JWT key file at '{key_path}' from {path_env_var}."
            ) from exc
    return None


def generate_key_pair() -> tuple[str, str]:
    """Generate a throwaway RSA key pair as ``(private_pem, public_pem)``."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem.decode("ascii"), public_pem.decode("ascii")


def load_key_pair() -> tuple[str, str]:
    """
    Resolve the signing key pair.

    Both keys come from ``JWT_PRIVATE_KEY``/``JWT_PUBLIC_KEY`` (or their
    ``*_PATH`` variants).  When neither is configured a fresh pair is
    generated, which invalidates every token on restart.

    Raises:
        RuntimeError: If only one half of the pair is configured.
    """
    private_key = _read_key("JWT_PRIVATE_KEY", "JWT_PRIVATE_KEY_PATH")
    public_key = _read_key("JWT_PUBLIC_KEY", "JWT_PUBLIC_KEY_PATH")
    if private_key and public_key:
        return private_key, public_key
    if private_key or public_key:
        raise RuntimeError("Configure both JWT_PRIVATE_KEY and JWT_PUBLIC_KEY, or neither.")

    logger.info("No JWT keys configured, generating an ephemeral RSA key pair")
    return generate_key_pair()


class Config:
    """
    Base configuration with development-safe defaults.

    Attributes:
        SECRET_KEY: Flask session signing key.
        SQLALCHEMY_DATABASE_URI: Database connection string (default: local
            SQLite file).
        ACCESS_TOKEN_MINUTES: Lifetime of access tokens.
        REFRESH_TOKEN_HOURS: Lifetime of refresh tokens.
        JWT_CLOCK_SKEW_SECONDS: Allowed clock drift when validating
            ``exp`` / ``iat``.
        PASSWORD_HASH_METHOD: Werkzeug hashing method; kept cheap because
            every virtual user logs in through this service.
        SEED_USERS_CSV: Credentials file whose rows become user accounts.
        SEED_PUBLIC_CROCODILES: Whether to create the public crocodiles.
        RESPONSE_DELAY_MS: Fixed delay added to every response.
    """

    SECRET_KEY: str = os.environ.get("SECRET_KEY", "mock-api-dev-secret-change-in-production")
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'instance' / 'crocodiles.db'}",
    )
    SQLALCHEMY_ENGINE_OPTIONS: dict = {"connect_args": {"timeout": 30}}

    ACCESS_TOKEN_MINUTES: float = float(os.environ.get("ACCESS_TOKEN_MINUTES", "5"))
    REFRESH_TOKEN_HOURS: float = float(os.environ.get("REFRESH_TOKEN_HOURS", "24"))
    JWT_CLOCK_SKEW_SECONDS: int = int(os.environ.get("JWT_CLOCK_SKEW_SECONDS", "30"))
    PASSWORD_HASH_METHOD: str = os.environ.get("PASSWORD_HASH_METHOD", "pbkdf2:sha256:1000")

    SEED_USERS_CSV: str = os.environ.get(
        "SEED_USERS_CSV", str(REPO_DIR / "data" / "test-users.csv")
    )
    SEED_PUBLIC_CROCODILES: bool = True
    RESPONSE_DELAY_MS: float = float(os.environ.get("RESPONSE_DELAY_MS", "0"))


class DevelopmentConfig(Config):
    """Enables debug mode for auto-reloading and verbose error pages."""

    DEBUG: bool = True
    TESTING: bool = False


class TestingConfig(Config):
    """
    Testing environment configuration.

    Uses an isolated SQLite database so that tests do not pollute
    development data.
    """

    DEBUG: bool = False
    TESTING: bool = True
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "TEST_DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'instance' / 'test_crocodiles.db'}?check_same_thread=False",
    )
    SQLALCHEMY_ENGINE_OPTIONS: dict = {"connect_args": {"timeout": 30}, "pool_pre_ping": True}


class ProductionConfig(Config):
    """All secrets and URIs come from environment variables."""

    DEBUG: bool = False
    TESTING: bool = False


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Look up and return the configuration class for the given environment.

    Args:
        env: Environment name.  When ``None``, falls back to the
            ``FLASK_ENV`` environment variable, defaulting to
            ``"development"``.
    """
    if env is None:
        env = os.environ.get("FLASK_ENV", "development")
    return config.get(env, config["default"])
