"""
JWT helpers for the stand-in Crocodiles API.

The service issues two kinds of RS256-signed tokens, distinguished by the
``token_type`` claim:

- ``access`` tokens authorise calls to ``/my/crocodiles/`` and expire
  after ``ACCESS_TOKEN_MINUTES``
- ``refresh`` tokens are exchanged at ``/auth/token/refresh/`` for a new
  access token

Key Concepts Demonstrated:
- RS256 asymmetric signing with PyJWT
- Canonical JWT claims (iat, exp) plus a token-type claim
- Decorator pattern for endpoint authentication (``require_auth``)
- Using ``flask.g`` to store request-scoped user identity
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any

import jwt
from flask import Response, current_app, g, jsonify, request

ACCESS = "access"
REFRESH = "refresh"

ALLOWED_ALGORITHMS = ["RS256"]
REQUIRED_TOKEN_CLAIMS = ["user_id", "username", "token_type", "iat", "exp"]


def create_token(
    user_id: int,
    username: str,
    private_key: str,
    token_type: str,
    lifetime: timedelta,
) -> str:
    """
    Create an RS256-signed JWT.

    Args:
        user_id: Primary key of the authenticated user.
        username: Login name of the user.
        private_key: RSA private key in PEM format.
        token_type: ``"access"`` or ``"refresh"``.
        lifetime: How long the token stays valid.

    Raises:
        ValueError: If *user_id* is not positive or *token_type* is unknown.
    """
    if int(user_id) <= 0:
        raise ValueError("user_id must be a positive integer")
    if token_type not in (ACCESS, REFRESH):
        raise ValueError(f"Unknown token type: {token_type}")

    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "user_id": int(user_id),
        "username": username,
        "token_type": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


def issue_token_pair(user_id: int, username: str) -> dict[str, str]:
    """Access and refresh tokens for a user, using the app's configuration."""
    config = current_app.config
    return {
        REFRESH: create_token(
            user_id,
            username,
            config["JWT_PRIVATE_KEY"],
            REFRESH,
            timedelta(hours=config["REFRESH_TOKEN_HOURS"]),
        ),
        ACCESS: create_token(
            user_id,
            username,
            config["JWT_PRIVATE_KEY"],
            ACCESS,
            timedelta(minutes=config["ACCESS_TOKEN_MINUTES"]),
        ),
    }


def verify_token(token: str, expected_type: str) -> dict[str, Any] | None:
    """
    Decode and validate a JWT of the expected type.

    Returns:
        The decoded payload, or ``None`` if the token is invalid, expired
        or of the wrong type.
    """
    try:
        decoded = jwt.decode(
            token,
            current_app.config["JWT_PUBLIC_KEY"],
            algorithms=ALLOWED_ALGORITHMS,
            options={"require": REQUIRED_TOKEN_CLAIMS},
            leeway=int(current_app.config.get("JWT_CLOCK_SKEW_SECONDS", 30)),
        )
    except jwt.InvalidTokenError:
        return None

    if decoded.get("token_type") != expected_type:
        return None
    if not isinstance(decoded.get("user_id"), int) or decoded["user_id"] <= 0:
        return None
    return decoded


def require_auth(view_func: Callable[..., tuple[Response, int] | Response]):
    """
    Reject the request with ``401`` unless it carries a valid access token.

    On success ``g.user_id`` and ``g.username`` hold the caller's identity.
    """

    @wraps(view_func)
    def wrapper(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else ""
        if not token:
            return jsonify({"detail": "Authentication credentials were not provided."}), 401

        payload = verify_token(token, ACCESS)
        if payload is None:
            return jsonify({"detail": "Given token not valid for any token type"}), 401

        g.user_id = payload["user_id"]
        g.username = payload["username"]
        return view_func(*args, **kwargs)

    return wrapper
