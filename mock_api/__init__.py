"""
Stand-in Crocodiles API: Flask application factory.

A small local implementation of the endpoints the Crocodile workloads
call, used by the test suite and for dry runs that should not touch the
shared public service.  On startup the factory creates the tables, turns
every row of the credentials CSV into a user account and fills the public
crocodile catalogue.

Key Concepts Demonstrated:
- Application factory pattern (``create_app``)
- SQLAlchemy integration with Flask via ``flask_sqlalchemy``
- Idempotent seeding from the same CSV the load generator logs in with
- ``before_request`` hook for artificial latency
"""

from __future__ import annotations

import csv
import logging
import os
import time
from datetime import date
from pathlib import Path
from typing import Any

from flask import Flask, current_app
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import func, select

from .config import get_config, load_key_pair

db = SQLAlchemy()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

PUBLIC_CROCODILES = (
    ("Bert", "M", date(2010, 6, 27)),
    ("Ed", "M", date(1995, 2, 27)),
    ("Lyle the Crocodile", "M", date(1985, 3, 3)),
    ("Solomon", "M", date(1993, 12, 25)),
    ("Sobek", "F", date(1854, 9, 2)),
    ("Curious George", "M", date(1981, 1, 3)),
    ("Sang Buaya", "F", date(2006, 1, 28)),
    ("Kaya", "F", date(2012, 1, 1)),
)


def _ensure_sqlite_db_parent_exists(database_uri: str) -> None:
    """Create parent directories for file-based SQLite URIs when missing."""
    sqlite_prefix = "sqlite:///"
    if not database_uri.startswith(sqlite_prefix):
        return

    sqlite_path = database_uri[len(sqlite_prefix) :].split("?", 1)[0]
    if sqlite_path == ":memory:":
        return

    Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)


def seed_users(csv_path: str | Path) -> int:
    """
    Create an account for every ``username,password`` row not yet present.

    Returns:
        Number of accounts created.
    """
    from .models import User

    path = Path(csv_path)
    if not path.is_file():
        logger.warning("Seed users file %s not found, no accounts created", path)
        return 0

    with path.open("r", encoding="utf-8", newline="") as handle:
        rows = [row for row in csv.DictReader(handle) if row.get("username")]

    existing = set(db.session.scalars(select(User.username)).all())
    created = 0
    for row in rows:
        username = row["username"].strip()
        if username in existing:
            continue
        user = User(username=username)
        user.set_password(row.get("password") or "")
        db.session.add(user)
        existing.add(username)
        created += 1
    db.session.commit()
    logger.info("Seeded %d user(s) from %s", created, path)
    return created


def seed_public_crocodiles() -> int:
    """Fill the public catalogue when it is empty; returns crocodiles created."""
    from .models import Crocodile

    count = db.session.scalar(
        select(func.count()).select_from(Crocodile).where(Crocodile.owner_id.is_(None))
    )
    if count:
        return 0
    for name, sex, born in PUBLIC_CROCODILES:
        db.session.add(Crocodile(name=name, sex=sex, date_of_birth=born))
    db.session.commit()
    return len(PUBLIC_CROCODILES)


def _response_delay() -> None:
    delay_ms = float(current_app.config.get("RESPONSE_DELAY_MS", 0) or 0)
    if delay_ms > 0:
        time.sleep(delay_ms / 1000.0)


def create_app(config_name: str | None = None, **overrides: Any) -> Flask:
    """
    Create and configure the stand-in API.

    Args:
        config_name: Configuration environment name (``"development"``,
            ``"testing"``, ``"production"``).  When *None*, the value is
            read from ``FLASK_ENV``.
        **overrides: Upper-case config keys applied after the
            configuration class (used by tests for temporary databases,
            seed files and latency).

    Returns:
        A configured Flask application with tables created and seeded.
    """
    app = Flask(__name__, instance_relative_config=True)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    app.config.update(overrides)

    if not app.config.get("JWT_PRIVATE_KEY") or not app.config.get("JWT_PUBLIC_KEY"):
        private_key, public_key = load_key_pair()
        app.config["JWT_PRIVATE_KEY"] = private_key
        app.config["JWT_PUBLIC_KEY"] = public_key

    logger.info("Creating Crocodiles stand-in app with config: %s", config_class.__name__)

    os.makedirs(app.instance_path, exist_ok=True)
    _ensure_sqlite_db_parent_exists(app.config.get("SQLALCHEMY_DATABASE_URI", ""))

    db.init_app(app)

    from .routes import api_bp

    app.register_blueprint(api_bp)
    app.before_request(_response_delay)

    with app.app_context():
        db.create_all()
        if app.config.get("SEED_USERS_CSV"):
            seed_users(app.config["SEED_USERS_CSV"])
        if app.config.get("SEED_PUBLIC_CROCODILES"):
            seed_public_crocodiles()

    return app
