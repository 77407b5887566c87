import pytest
from fastapi.testclient import TestClient

from taskhub.app import app

BASE = "/api/v1/internal"


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def member(make_user):
    return make_user("member@example.com", account_id=1)


def _create(client, headers, **body):
    body.setdefault("name", "Work")
    return client.post(f"{BASE}/category", json=body, headers=headers)


def test_create_requires_authentication(client):
    response = _create(client, {})
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": {"code": "UNAUTHORIZED", "message": "Authentication required"},
    }


def test_invalid_token_is_unauthenticated(client):
    response = _create(client, {"Authorization": "Bearer garbage"})
    assert response.status_code == 401


def test_unauthenticated_beats_invalid_body(client):
    response = client.post(f"{BASE}/category", content="not json", headers={})
    assert response.status_code == 401


def test_viewer_cannot_create(client, make_user):
    _, headers = make_user("viewer@example.com", role="viewer")
    response = _create(client, headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_create_returns_201_with_defaults(client, member):
    user, headers = member
    response = _create(client, headers)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["name"] == "Work"
    assert data["color"] == "#4287f5"
    assert data["idAccount"] == 1
    assert data["idUser"] == user.id
    assert data["taskCount"] == 0
    assert "id_category" not in data


def test_create_ignores_credential_fields_in_body(client, member):
    _, headers = member
    response = _create(client, headers, idAccount=99, idUser=98)
    assert response.status_code == 201
    assert response.json()["data"]["idAccount"] == 1


def test_validation_error(client, member):
    _, headers = member
    response = _create(client, headers, name="W")
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["message"].startswith("name")
    assert error["details"][0]["field"] == "name"


def test_malformed_json_is_validation_error(client, member):
    _, headers = member
    response = client.post(
        f"{BASE}/category",
        content="{not json",
        headers={**headers, "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_array_body_is_validation_error(client, member):
    _, headers = member
    response = client.post(f"{BASE}/category", json=[{"name": "Work"}], headers=headers)
    assert response.status_code == 400


def test_duplicate_name_is_business_rule_error(client, member):
    _, headers = member
    _create(client, headers)
    response = _create(client, headers, name="WORK")
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "BUSINESS_RULE_ERROR"
    assert error["message"] == "a category with this name already exists"


def test_get_list_update_delete(client, member):
    _, headers = member
    created = _create(client, headers).json()["data"]
    category_id = created["idCategory"]

    got = client.get(f"{BASE}/category/{category_id}", headers=headers)
    assert got.status_code == 200
    assert got.json()["data"]["idCategory"] == category_id

    listed = client.get(f"{BASE}/category", headers=headers)
    rows = listed.json()["data"]
    assert [row["name"] for row in rows] == ["General", "Work"]
    assert rows[1]["idCategory"] == category_id

    updated = client.put(
        f"{BASE}/category/{category_id}",
        json={"name": "Home", "color": "#112233", "isFavorite": True},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["name"] == "Home"
    assert updated.json()["data"]["isFavorite"] is True

    deleted = client.delete(f"{BASE}/category/{category_id}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True, "data": {"success": True}}

    missing = client.get(f"{BASE}/category/{category_id}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"


def test_path_id_wins_over_body(client, member):
    _, headers = member
    first = _create(client, headers, name="First").json()["data"]["idCategory"]
    second = _create(client, headers, name="Second").json()["data"]["idCategory"]
    response = client.put(
        f"{BASE}/category/{first}",
        json={"id": second, "name": "Renamed", "color": "#112233", "isFavorite": False},
        headers=headers,
    )
    assert response.json()["data"]["idCategory"] == first


def test_bad_path_id(client, member):
    _, headers = member
    response = client.get(f"{BASE}/category/abc", headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_delete_with_target_category(client, member, runtime):
    user, headers = member
    source = _create(client, headers, name="Source").json()["data"]["idCategory"]
    target = _create(client, headers, name="Target").json()["data"]["idCategory"]
    response = client.delete(
        f"{BASE}/category/{source}",
        params={"idTargetCategory": target},
        headers=headers,
    )
    assert response.status_code == 200

    same = client.delete(
        f"{BASE}/category/{target}",
        params={"idTargetCategory": target},
        headers=headers,
    )
    assert same.status_code == 400
    assert same.json()["error"]["code"] == "BUSINESS_RULE_ERROR"


def test_new_account_gets_default_category(client, member):
    _, headers = member
    rows = client.get(f"{BASE}/category", headers=headers).json()["data"]
    assert len(rows) == 1
    assert rows[0]["name"] == "General"
    assert rows[0]["isDefault"] is True


def test_default_category_cannot_be_deleted(client, member):
    _, headers = member
    rows = client.get(f"{BASE}/category", headers=headers).json()["data"]
    default_id = next(row["idCategory"] for row in rows if row["isDefault"])
    response = client.delete(f"{BASE}/category/{default_id}", headers=headers)
    assert response.status_code == 400
    # No empty details object on the wire
    assert response.json() == {
        "success": False,
        "error": {
            "code": "BUSINESS_RULE_ERROR",
            "message": "the default category cannot be deleted",
        },
    }


def test_accounts_are_isolated(client, member, make_user):
    _, headers = member
    category_id = _create(client, headers).json()["data"]["idCategory"]
    _, other_headers = make_user("other@example.com", account_id=2)
    response = client.get(f"{BASE}/category/{category_id}", headers=other_headers)
    assert response.status_code == 404
    other_rows = client.get(f"{BASE}/category", headers=other_headers).json()["data"]
    assert [row["name"] for row in other_rows] == ["General"]
    assert category_id not in [row["idCategory"] for row in other_rows]


def test_read_is_byte_identical(client, member):
    _, headers = member
    category_id = _create(client, headers).json()["data"]["idCategory"]
    first = client.get(f"{BASE}/category/{category_id}", headers=headers)
    second = client.get(f"{BASE}/category/{category_id}", headers=headers)
    assert first.content == second.content


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["type"] == "memory"
