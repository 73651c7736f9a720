"""
Tests for API key management endpoints.
"""
from fastapi import status

from wgportal.core.auth import hash_api_key
from wgportal.models import APIKey

ADMIN = {"X-API-Key": "test-key"}


def test_list_api_keys_requires_admin(client_with_auth, user_factory, api_key_factory):
    raw_key = api_key_factory(user_factory())

    response = client_with_auth.get("/api/v1/api-keys/", headers={"X-API-Key": raw_key})

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_admin_can_list_api_keys(client_with_auth, user_factory, api_key_factory):
    api_key_factory(user_factory(email="a@example.com"))
    api_key_factory(user_factory(email="b@example.com"))

    response = client_with_auth.get("/api/v1/api-keys/", headers=ADMIN)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["total"] == 2
    for item in data["items"]:
        assert item["key_masked"].endswith("...")
        assert "last_used_at" in item
        assert "key" not in item


def test_admin_can_issue_key_that_authenticates(client_with_auth, user_factory, db_session):
    user = user_factory()

    response = client_with_auth.post(
        "/api/v1/api-keys/", headers=ADMIN, json={"name": "laptop", "user_id": user.id}
    )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["key"].startswith("wgp_")
    assert data["user_id"] == user.id

    stored = db_session.query(APIKey).filter(APIKey.id == data["id"]).one()
    assert stored.key_hash == hash_api_key(data["key"])

    me = client_with_auth.get("/api/v1/users/me", headers={"X-API-Key": data["key"]})
    assert me.status_code == status.HTTP_200_OK
    assert me.json()["id"] == user.id


def test_issue_key_for_unknown_user_returns_404(client_with_auth):
    response = client_with_auth.post(
        "/api/v1/api-keys/",
        headers=ADMIN,
        json={"name": "ghost", "user_id": "00000000-0000-0000-0000-000000000000"},
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_admin_can_deactivate_api_key(client_with_auth, user_factory, api_key_factory, db_session):
    raw_key = api_key_factory(user_factory())
    key_id = db_session.query(APIKey).filter(APIKey.key_hash == hash_api_key(raw_key)).one().id

    response = client_with_auth.delete(f"/api/v1/api-keys/{key_id}", headers=ADMIN)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["is_active"] is False

    response = client_with_auth.get("/api/v1/peers", headers={"X-API-Key": raw_key})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_admin_can_relabel_api_key(client_with_auth, user_factory, api_key_factory, db_session):
    raw_key = api_key_factory(user_factory())
    key_id = db_session.query(APIKey).filter(APIKey.key_hash == hash_api_key(raw_key)).one().id

    response = client_with_auth.patch(f"/api/v1/api-keys/{key_id}", headers=ADMIN, json={"label": "desk"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["name"] == "desk"


def test_deactivate_nonexistent_key_returns_404(client_with_auth):
    response = client_with_auth.delete("/api/v1/api-keys/99999", headers=ADMIN)

    assert response.status_code == status.HTTP_404_NOT_FOUND
