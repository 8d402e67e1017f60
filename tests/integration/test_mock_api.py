"""
Integration tests for the stand-in Crocodiles API.

Requests go through Flask's test client, so the full request pipeline
(routing, authentication decorator, database) runs without sockets.

Key Concepts Demonstrated:
- Form-encoded and JSON bodies against the same endpoints
- JWT lifecycle: login, refresh, expired and forged tokens
- Ownership isolation between two users
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from crocload.fixtures import load_fixture
from mock_api import PUBLIC_CROCODILES
from mock_api.auth import ACCESS, REFRESH, create_token
from tests.conftest import fake

pytestmark = pytest.mark.integration


@pytest.fixture
def credentials(users_csv):
    return list(load_fixture(users_csv))


def login(api_client, row) -> dict:
    response = api_client.post(
        "/auth/token/login/", data={"username": row["username"], "password": row["password"]}
    )
    assert response.status_code == 200
    return response.get_json()


@pytest.fixture
def auth_headers(api_client, credentials):
    """Bearer header for the first seeded user."""
    tokens = login(api_client, credentials[0])
    return {"Authorization": f"Bearer {tokens[ACCESS]}"}


def new_croc() -> dict:
    return {
        "name": f"Name {fake.pystr(min_chars=10, max_chars=10)}",
        "sex": fake.random_element(["M", "F"]),
        "date_of_birth": fake.date_between(start_date="-20y", end_date="-1y").isoformat(),
    }


# =============================================================================
# Public endpoints
# =============================================================================


def test_health(api_client):
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"


def test_public_catalogue_is_seeded(api_client):
    # Act
    response = api_client.get("/public/crocodiles/")

    # Assert
    assert response.status_code == 200
    crocs = response.get_json()
    assert len(crocs) == len(PUBLIC_CROCODILES)
    assert {"id", "name", "sex", "date_of_birth", "age"} <= set(crocs[0])

    single = api_client.get(f"/public/crocodiles/{crocs[0]['id']}/")
    assert single.get_json()["name"] == crocs[0]["name"]


def test_unknown_public_croc_is_404(api_client):
    response = api_client.get("/public/crocodiles/999999/")

    assert response.status_code == 404
    assert response.get_json() == {"detail": "Not found."}


# =============================================================================
# Accounts and tokens
# =============================================================================


def test_register_then_login(api_client):
    # Arrange
    username = f"{fake.user_name()}_{fake.pyint(1000, 9999)}"
    password = fake.password(length=12)

    # Act
    created = api_client.post("/user/register/", data={"username": username, "password": password})
    duplicate = api_client.post("/user/register/", data={"username": username, "password": password})
    tokens = login(api_client, {"username": username, "password": password})

    # Assert
    assert created.status_code == 201
    assert created.get_json()["username"] == username
    assert duplicate.status_code == 400
    assert "username" in duplicate.get_json()
    assert set(tokens) == {ACCESS, REFRESH}


def test_login_with_wrong_password_is_401(api_client, credentials):
    response = api_client.post(
        "/auth/token/login/",
        data={"username": credentials[0]["username"], "password": "definitely-wrong"},
    )

    assert response.status_code == 401
    assert "No active account" in response.get_json()["detail"]


def test_login_accepts_json_body(api_client, credentials):
    row = credentials[1]

    response = api_client.post(
        "/auth/token/login/", json={"username": row["username"], "password": row["password"]}
    )

    assert response.status_code == 200


def test_refresh_issues_working_access_token(api_client, credentials):
    # Arrange
    tokens = login(api_client, credentials[2])

    # Act
    response = api_client.post("/auth/token/refresh/", data={REFRESH: tokens[REFRESH]})

    # Assert
    assert response.status_code == 200
    access = response.get_json()[ACCESS]
    listed = api_client.get("/my/crocodiles/", headers={"Authorization": f"Bearer {access}"})
    assert listed.status_code == 200


def test_access_token_cannot_be_used_to_refresh(api_client, credentials):
    tokens = login(api_client, credentials[2])

    response = api_client.post("/auth/token/refresh/", data={REFRESH: tokens[ACCESS]})

    assert response.status_code == 401


@pytest.mark.parametrize(
    "header",
    [None, "Bearer", "Bearer not-a-jwt", "Token abc"],
)
def test_private_endpoints_require_valid_token(api_client, header):
    headers = {"Authorization": header} if header else {}

    response = api_client.get("/my/crocodiles/", headers=headers)

    assert response.status_code == 401
    assert "detail" in response.get_json()


def test_expired_access_token_is_rejected(api_app, api_client):
    token = create_token(1, "someone", api_app.config["JWT_PRIVATE_KEY"], ACCESS, timedelta(minutes=-5))

    response = api_client.get("/my/crocodiles/", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


# =============================================================================
# Private crocodiles
# =============================================================================


def test_private_croc_lifecycle(api_client, auth_headers):
    # Create
    payload = new_croc()
    created = api_client.post("/my/crocodiles/", data=payload, headers=auth_headers)
    assert created.status_code == 201
    croc = created.get_json()
    assert croc["name"] == payload["name"]
    croc_url = f"/my/crocodiles/{croc['id']}/"

    # List
    listed = api_client.get("/my/crocodiles/", headers=auth_headers)
    assert croc["id"] in [item["id"] for item in listed.get_json()]

    # Partial update
    patched = api_client.patch(croc_url, data={"name": "New name"}, headers=auth_headers)
    assert patched.status_code == 200
    assert patched.get_json()["name"] == "New name"
    assert patched.get_json()["sex"] == payload["sex"]
    assert patched.get_json()["date_of_birth"] == croc["date_of_birth"]

    # Delete
    deleted = api_client.delete(croc_url, headers=auth_headers)
    assert deleted.status_code == 204
    assert deleted.data == b""
    assert api_client.get(croc_url, headers=auth_headers).status_code == 404
    remaining = api_client.get("/my/crocodiles/", headers=auth_headers).get_json()
    assert croc["id"] not in [item["id"] for item in remaining]


def test_create_validates_fields(api_client, auth_headers):
    response = api_client.post(
        "/my/crocodiles/",
        json={"name": "", "sex": "X", "date_of_birth": "yesterday"},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert set(response.get_json()) == {"name", "sex", "date_of_birth"}


def test_put_requires_every_field(api_client, auth_headers):
    croc = api_client.post("/my/crocodiles/", data=new_croc(), headers=auth_headers).get_json()

    response = api_client.put(
        f"/my/crocodiles/{croc['id']}/", data={"name": "Only a name"}, headers=auth_headers
    )

    assert response.status_code == 400
    assert set(response.get_json()) == {"sex", "date_of_birth"}


def test_users_cannot_see_each_others_crocs(api_client, credentials, auth_headers):
    # Arrange
    croc = api_client.post("/my/crocodiles/", data=new_croc(), headers=auth_headers).get_json()
    other = login(api_client, credentials[3])
    other_headers = {"Authorization": f"Bearer {other[ACCESS]}"}

    # Act
    fetched = api_client.get(f"/my/crocodiles/{croc['id']}/", headers=other_headers)
    deleted = api_client.delete(f"/my/crocodiles/{croc['id']}/", headers=other_headers)

    # Assert
    assert fetched.status_code == 404
    assert deleted.status_code == 404
    assert api_client.get(f"/my/crocodiles/{croc['id']}/", headers=auth_headers).status_code == 200


def test_private_crocs_are_not_public(api_client, auth_headers):
    croc = api_client.post("/my/crocodiles/", data=new_croc(), headers=auth_headers).get_json()

    response = api_client.get(f"/public/crocodiles/{croc['id']}/")

    assert response.status_code == 404


def test_wrong_method_is_405(api_client):
    response = api_client.delete("/public/crocodiles/")

    assert response.status_code == 405
