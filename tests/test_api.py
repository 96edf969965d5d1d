"""End-to-end tests for the account service HTTP API."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict

import pytest
from fastapi.testclient import TestClient

from accounts_api.api import create_app
from accounts_api.application import Services
from accounts_api.models import Role
from accounts_api.tokens import TokenManager

ADA = {"name": "Ada", "email": "ada@example.com", "age": 30, "password": "secret123"}


def _register(client: TestClient, payload: Dict[str, object] = ADA) -> Dict[str, object]:
    response = client.post("/auth/register", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _bearer(token: object) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers(client: TestClient) -> Dict[str, str]:
    return _bearer(_register(client)["token"])


def _assert_error_body(response, status_code: int, path: str) -> Dict[str, object]:
    assert response.status_code == status_code
    body = response.json()
    assert set(body) == {"timestamp", "status", "error", "message", "path"}
    assert body["status"] == status_code
    assert body["path"] == path
    return body


def test_health_is_public(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_register_returns_token_payload(client: TestClient, services: Services) -> None:
    body = _register(client)

    assert body["tokenType"] == "Bearer"
    assert body["role"] == "USER"
    assert body["email"] == "ada@example.com"
    assert body["name"] == "Ada"
    assert isinstance(body["userId"], int)
    assert services.tokens.verify(body["token"]) == "ada@example.com"


def test_register_duplicate_email_is_conflict(client: TestClient, services: Services) -> None:
    _register(client)

    response = client.post("/auth/register", json={**ADA, "name": "Ada Again"})
    body = _assert_error_body(response, 409, "/auth/register")
    assert "ada@example.com" in body["message"]
    assert services.accounts.count_accounts() == 1


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"password": "short"}, "password"),
        ({"email": "not-an-email"}, "email"),
        ({"age": 151}, "age"),
        ({"name": "   "}, "name"),
    ],
)
def test_register_validation_errors(client: TestClient, overrides: Dict[str, object], field: str) -> None:
    response = client.post("/auth/register", json={**ADA, **overrides})

    body = _assert_error_body(response, 400, "/auth/register")
    assert field in body["message"]


def test_login_with_valid_credentials(client: TestClient, services: Services) -> None:
    registered = _register(client)

    response = client.post("/auth/login", json={"email": ADA["email"], "password": ADA["password"]})
    assert response.status_code == 200
    body = response.json()
    assert body["userId"] == registered["userId"]
    assert services.tokens.verify(body["token"]) == "ada@example.com"


def test_login_failures_share_one_response(client: TestClient) -> None:
    _register(client)

    unknown = client.post("/auth/login", json={"email": "nobody@example.com", "password": "secret123"})
    wrong = client.post("/auth/login", json={"email": ADA["email"], "password": "wrong-password"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json()["message"] == wrong.json()["message"] == "Invalid email or password"


def test_protected_route_without_token_is_forbidden(client: TestClient) -> None:
    registered = _register(client)

    response = client.get(f"/accounts/{registered['userId']}")
    body = _assert_error_body(response, 403, f"/accounts/{registered['userId']}")
    assert body["message"] == "Access denied"


@pytest.mark.parametrize(
    "header",
    ["Bearer not-a-token", "bearer {token}", "Token {token}", "Bearer "],
)
def test_rejected_tokens_are_forbidden(client: TestClient, header: str) -> None:
    token = _register(client)["token"]

    response = client.get("/accounts", headers={"Authorization": header.format(token=token)})
    assert response.status_code == 403


def test_expired_token_is_forbidden(client: TestClient, services: Services) -> None:
    past = datetime.now(timezone.utc) - timedelta(days=2)
    _register(client)
    stale = TokenManager(
        services.settings.jwt_secret,
        ttl=timedelta(hours=1),
        clock=lambda: past,
    ).issue("ada@example.com")

    assert client.get("/accounts", headers=_bearer(stale)).status_code == 403


def test_token_of_deleted_account_is_forbidden(client: TestClient, services: Services) -> None:
    registered = _register(client)
    headers = _bearer(registered["token"])

    services.accounts.delete_account(int(registered["userId"]))

    assert client.get("/accounts", headers=headers).status_code == 403


def test_create_account_sets_location(client: TestClient, auth_headers: Dict[str, str]) -> None:
    response = client.post(
        "/accounts",
        json={"name": "Bob", "email": "bob@example.com", "age": 41},
        headers=auth_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert response.headers["location"] == f"/accounts/{body['id']}"
    assert body["role"] == "USER"
    assert "createdAt" in body and "updatedAt" in body
    assert "password" not in body and "passwordHash" not in body


def test_create_account_duplicate_email(client: TestClient, auth_headers: Dict[str, str]) -> None:
    response = client.post(
        "/accounts",
        json={"name": "Ada Clone", "email": "ada@example.com", "age": 20},
        headers=auth_headers,
    )
    _assert_error_body(response, 409, "/accounts")


def test_get_update_and_delete_account(client: TestClient, auth_headers: Dict[str, str]) -> None:
    created = client.post(
        "/accounts",
        json={"name": "Bob", "email": "bob@example.com", "age": 41},
        headers=auth_headers,
    ).json()
    path = f"/accounts/{created['id']}"

    fetched = client.get(path, headers=auth_headers)
    assert fetched.status_code == 200
    assert fetched.json()["email"] == "bob@example.com"

    updated = client.put(
        path,
        json={"name": "Robert", "email": "robert@example.com", "age": 42},
        headers=auth_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["name"] == "Robert"
    assert updated.json()["createdAt"] == created["createdAt"]

    patched = client.patch(path, json={"age": 43}, headers=auth_headers)
    assert patched.status_code == 200
    assert patched.json()["name"] == "Robert"
    assert patched.json()["age"] == 43

    deleted = client.delete(path, headers=auth_headers)
    assert deleted.status_code == 204
    assert deleted.content == b""

    _assert_error_body(client.get(path, headers=auth_headers), 404, path)
    _assert_error_body(client.delete(path, headers=auth_headers), 404, path)


def test_patch_without_fields_is_bad_request(client: TestClient, auth_headers: Dict[str, str]) -> None:
    account_id = client.post(
        "/accounts",
        json={"name": "Bob", "email": "bob@example.com", "age": 41},
        headers=auth_headers,
    ).json()["id"]

    response = client.patch(f"/accounts/{account_id}", json={}, headers=auth_headers)
    _assert_error_body(response, 400, f"/accounts/{account_id}")


def test_missing_account_is_not_found(client: TestClient, auth_headers: Dict[str, str]) -> None:
    body = _assert_error_body(client.get("/accounts/9999", headers=auth_headers), 404, "/accounts/9999")
    assert body["message"] == "Account not found: 9999"
    assert body["error"] == "Not Found"


def test_list_accounts_pages_and_sorts(client: TestClient, auth_headers: Dict[str, str]) -> None:
    for index, age in enumerate([50, 20, 35]):
        client.post(
            "/accounts",
            json={"name": f"User {index}", "email": f"user{index}@example.com", "age": age},
            headers=auth_headers,
        )

    response = client.get("/accounts", params={"page": 0, "size": 2, "sort": "age,desc"}, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert [account["age"] for account in body["content"]] == [50, 35]
    assert body["totalElements"] == 4
    assert body["totalPages"] == 2
    assert body["number"] == 0
    assert body["size"] == 2
    assert body["first"] is True
    assert body["last"] is False

    default_page = client.get("/accounts", headers=auth_headers).json()
    assert default_page["size"] == 20
    assert [account["email"] for account in default_page["content"]][0] == "ada@example.com"


@pytest.mark.parametrize("params", [{"size": 0}, {"size": 101}, {"page": -1}, {"sort": "secret,asc"}])
def test_list_accounts_rejects_bad_paging(
    client: TestClient, auth_headers: Dict[str, str], params: Dict[str, object]
) -> None:
    response = client.get("/accounts", params=params, headers=auth_headers)
    _assert_error_body(response, 400, "/accounts")


def test_search_adults_and_statistics(client: TestClient, services: Services) -> None:
    headers = _bearer(_register(client, {**ADA, "age": 17})["token"])
    services.accounts.create_account("Bob", "bob@example.com", 25)
    services.accounts.create_account("Carol", "carol@example.com", 30)

    search = client.get("/accounts/search", params={"keyword": "o"}, headers=headers)
    assert search.status_code == 200
    assert [account["name"] for account in search.json()] == ["Bob", "Carol"]

    blank = client.get("/accounts/search", params={"keyword": " "}, headers=headers)
    _assert_error_body(blank, 400, "/accounts/search")

    adults = client.get("/accounts/adults", headers=headers)
    assert [account["name"] for account in adults.json()] == ["Bob", "Carol"]

    stats = client.get("/accounts/statistics", headers=headers)
    assert stats.status_code == 200
    assert stats.json() == {
        "totalCount": 3,
        "adultCount": 2,
        "averageAge": 24.0,
        "minAge": 17,
        "maxAge": 30,
    }


def test_admin_role_is_reported(client: TestClient, services: Services) -> None:
    registered = _register(client)
    services.auth.set_role(int(registered["userId"]), Role.ADMIN)

    response = client.post("/auth/login", json={"email": ADA["email"], "password": ADA["password"]})
    assert response.json()["role"] == "ADMIN"


def test_unexpected_errors_use_generic_body(services: Services, monkeypatch: pytest.MonkeyPatch) -> None:
    app = create_app(services=services)

    def explode() -> None:
        raise RuntimeError("database exploded")

    monkeypatch.setattr(services.accounts, "get_statistics", explode)
    with TestClient(app, raise_server_exceptions=False) as client:
        headers = _bearer(_register(client)["token"])
        response = client.get("/accounts/statistics", headers=headers)

    body = _assert_error_body(response, 500, "/accounts/statistics")
    assert body["message"] == "An unexpected error occurred"
    assert "exploded" not in response.text


@pytest.mark.parametrize("method", ["get", "delete"])
def test_oversized_account_id_is_not_found(
    client: TestClient, auth_headers: Dict[str, str], method: str
) -> None:
    path = "/accounts/99999999999999999999"

    response = getattr(client, method)(path, headers=auth_headers)
    _assert_error_body(response, 404, path)


def test_oversized_account_id_update_is_not_found(client: TestClient, auth_headers: Dict[str, str]) -> None:
    path = "/accounts/99999999999999999999"

    response = client.put(
        path,
        json={"name": "Bob", "email": "bob@example.com", "age": 41},
        headers=auth_headers,
    )
    _assert_error_body(response, 404, path)


def test_oversized_page_is_bad_request(client: TestClient, auth_headers: Dict[str, str]) -> None:
    response = client.get("/accounts", params={"page": 10**18, "size": 100}, headers=auth_headers)

    body = _assert_error_body(response, 400, "/accounts")
    assert body["message"].startswith("page:")
