"""
HTTP endpoints of the stand-in Crocodiles API.

Request bodies may be form-encoded (what the load generator sends) or
JSON.  Error bodies follow the public API: ``{"detail": "..."}`` for
authentication problems and ``{"field": ["message"]}`` for validation.

Endpoints:
    GET    /health                          - Liveness probe (public)
    POST   /user/register/                  - Create an account
    POST   /auth/token/login/               - Issue access + refresh tokens
    POST   /auth/token/refresh/             - Exchange a refresh token
    GET    /public/crocodiles/              - Public catalogue
    GET    /public/crocodiles/<id>/         - One public crocodile
    GET    /my/crocodiles/                  - Caller's crocodiles
    POST   /my/crocodiles/                  - Create a crocodile
    GET    /my/crocodiles/<id>/             - One of the caller's crocodiles
    PATCH  /my/crocodiles/<id>/             - Partial update
    PUT    /my/crocodiles/<id>/             - Full update
    DELETE /my/crocodiles/<id>/             - Delete (``204``)
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from flask import Blueprint, Response, g, jsonify, request
from sqlalchemy import select

from . import db
from .auth import ACCESS, REFRESH, issue_token_pair, require_auth, verify_token
from .models import Crocodile, Sex, User

logger = logging.getLogger(__name__)

api_bp = Blueprint("crocodiles_api", __name__)

CROC_FIELDS = ("name", "sex", "date_of_birth")
REQUIRED_MESSAGE = "This field is required."


# =====================================================================
# Helper Functions
# =====================================================================


def _request_data() -> dict[str, Any]:
    """Parsed request body, accepting JSON or form encoding."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def validate_croc_data(data: dict[str, Any], *, partial: bool) -> dict[str, list[str]]:
    """
    Validate a crocodile payload.

    Args:
        data: Request body.
        partial: When ``True`` (PATCH) missing fields are allowed.

    Returns:
        Field name mapped to its error messages; empty when valid.
    """
    errors: dict[str, list[str]] = {}
    for field in CROC_FIELDS:
        if field not in data and not partial:
            errors[field] = [REQUIRED_MESSAGE]

    if "name" in data:
        name = data["name"]
        if not isinstance(name, str) or not name.strip():
            errors["name"] = ["This field may not be blank."]
        elif len(name) > 100:
            errors["name"] = ["Ensure this field has no more than 100 characters."]

    if "sex" in data and data["sex"] not in [sex.value for sex in Sex]:
        errors["sex"] = [f'"{data["sex"]}" is not a valid choice.']

    if "date_of_birth" in data:
        try:
            born = date.fromisoformat(str(data["date_of_birth"]))
        except ValueError:
            errors["date_of_birth"] = ["Date has wrong format. Use YYYY-MM-DD."]
        else:
            if born > date.today():
                errors["date_of_birth"] = ["Date of birth cannot be in the future."]
    return errors


def _apply_croc_data(croc: Crocodile, data: dict[str, Any]) -> None:
    if "name" in data:
        croc.name = data["name"].strip()
    if "sex" in data:
        croc.sex = data["sex"]
    if "date_of_birth" in data:
        croc.date_of_birth = date.fromisoformat(str(data["date_of_birth"]))


def _own_croc(croc_id: int) -> Crocodile | None:
    """The caller's crocodile with this id, or ``None``."""
    return db.session.scalar(
        select(Crocodile).where(Crocodile.id == croc_id, Crocodile.owner_id == g.user_id)
    )


def _not_found() -> tuple[Response, int]:
    return jsonify({"detail": "Not found."}), 404


# =====================================================================
# Public Endpoints
# =====================================================================


@api_bp.route("/health", methods=["GET"])
def health_check() -> tuple[Response, int]:
    return jsonify({"status": "healthy", "service": "crocodiles"}), 200


@api_bp.route("/user/register/", methods=["POST"])
def register() -> tuple[Response, int]:
    """
    Create an account.

    Returns:
        201 with the user on success, 400 on validation errors (including
        a taken username).
    """
    data = _request_data()
    errors = {
        field: [REQUIRED_MESSAGE]
        for field in ("username", "password")
        if not str(data.get(field, "")).strip()
    }
    if errors:
        return jsonify(errors), 400

    username = str(data["username"]).strip()
    if db.session.scalar(select(User).where(User.username == username)):
        return jsonify({"username": ["A user with that username already exists."]}), 400

    user = User(
        username=username,
        first_name=str(data.get("first_name", "")),
        last_name=str(data.get("last_name", "")),
        email=str(data.get("email", "")),
    )
    user.set_password(str(data["password"]))
    db.session.add(user)
    db.session.commit()
    logger.info("Registered user %s", username)
    return jsonify(user.to_dict()), 201


@api_bp.route("/auth/token/login/", methods=["POST"])
def login() -> tuple[Response, int]:
    """
    Authenticate and return ``{"refresh": ..., "access": ...}``.

    Returns:
        200 on success, 400 if a field is missing, 401 on bad credentials.
    """
    data = _request_data()
    errors = {
        field: [REQUIRED_MESSAGE]
        for field in ("username", "password")
        if not str(data.get(field, "")).strip()
    }
    if errors:
        return jsonify(errors), 400

    user = db.session.scalar(select(User).where(User.username == str(data["username"]).strip()))
    if user is None or not user.check_password(str(data["password"])):
        return jsonify({"detail": "No active account found with the given credentials"}), 401

    return jsonify(issue_token_pair(user.id, user.username)), 200


@api_bp.route("/auth/token/refresh/", methods=["POST"])
def refresh() -> tuple[Response, int]:
    """Exchange a refresh token for a new access token."""
    data = _request_data()
    token = str(data.get(REFRESH, "")).strip()
    if not token:
        return jsonify({REFRESH: [REQUIRED_MESSAGE]}), 400

    payload = verify_token(token, REFRESH)
    if payload is None or db.session.get(User, payload["user_id"]) is None:
        return jsonify({"detail": "Token is invalid or expired"}), 401

    tokens = issue_token_pair(payload["user_id"], payload["username"])
    return jsonify({ACCESS: tokens[ACCESS]}), 200


@api_bp.route("/public/crocodiles/", methods=["GET"])
def list_public_crocodiles() -> tuple[Response, int]:
    crocs = db.session.scalars(
        select(Crocodile).where(Crocodile.owner_id.is_(None)).order_by(Crocodile.id)
    ).all()
    return jsonify([croc.to_dict() for croc in crocs]), 200


@api_bp.route("/public/crocodiles/<int:croc_id>/", methods=["GET"])
def get_public_crocodile(croc_id: int) -> tuple[Response, int]:
    croc = db.session.scalar(
        select(Crocodile).where(Crocodile.id == croc_id, Crocodile.owner_id.is_(None))
    )
    if croc is None:
        return _not_found()
    return jsonify(croc.to_dict()), 200


# =====================================================================
# Private Endpoints
# =====================================================================


@api_bp.route("/my/crocodiles/", methods=["GET"])
@require_auth
def list_my_crocodiles() -> tuple[Response, int]:
    crocs = db.session.scalars(
        select(Crocodile).where(Crocodile.owner_id == g.user_id).order_by(Crocodile.id)
    ).all()
    return jsonify([croc.to_dict() for croc in crocs]), 200


@api_bp.route("/my/crocodiles/", methods=["POST"])
@require_auth
def create_my_crocodile() -> tuple[Response, int]:
    data = _request_data()
    errors = validate_croc_data(data, partial=False)
    if errors:
        return jsonify(errors), 400

    croc = Crocodile(owner_id=g.user_id)
    _apply_croc_data(croc, data)
    db.session.add(croc)
    db.session.commit()
    return jsonify(croc.to_dict()), 201


@api_bp.route("/my/crocodiles/<int:croc_id>/", methods=["GET"])
@require_auth
def get_my_crocodile(croc_id: int) -> tuple[Response, int]:
    croc = _own_croc(croc_id)
    if croc is None:
        return _not_found()
    return jsonify(croc.to_dict()), 200


@api_bp.route("/my/crocodiles/<int:croc_id>/", methods=["PUT", "PATCH"])
@require_auth
def update_my_crocodile(croc_id: int) -> tuple[Response, int]:
    """PATCH updates the fields given; PUT requires all of them."""
    croc = _own_croc(croc_id)
    if croc is None:
        return _not_found()

    data = _request_data()
    errors = validate_croc_data(data, partial=request.method == "PATCH")
    if errors:
        return jsonify(errors), 400

    _apply_croc_data(croc, data)
    db.session.commit()
    return jsonify(croc.to_dict()), 200


@api_bp.route("/my/crocodiles/<int:croc_id>/", methods=["DELETE"])
@require_auth
def delete_my_crocodile(croc_id: int) -> tuple[Response, int]:
    croc = _own_croc(croc_id)
    if croc is None:
        return _not_found()

    db.session.delete(croc)
    db.session.commit()
    return Response(status=204), 204


# =====================================================================
# Error Handlers
# =====================================================================


@api_bp.app_errorhandler(404)
def not_found(_: Exception) -> tuple[Response, int]:
    return _not_found()


@api_bp.app_errorhandler(405)
def method_not_allowed(_: Exception) -> tuple[Response, int]:
    return jsonify({"detail": f'Method "{request.method}" not allowed.'}), 405


@api_bp.app_errorhandler(500)
def internal_error(error: Exception) -> tuple[Response, int]:
    logger.error("Internal server error: %s", error)
    return jsonify({"detail": "Internal server error"}), 500
