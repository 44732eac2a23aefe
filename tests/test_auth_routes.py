from fastapi.testclient import TestClient

from inventory_backend.deps import get_auth_service
from inventory_backend.main import create_app
from tests.fixtures_data import (
    TEST_PASSWORD,
    build_service,
    create_admin,
    create_contact,
    create_enterprise_admin,
    create_operator,
)


def _build_client():
    service, _ = build_service()
    app = create_app()
    app.dependency_overrides[get_auth_service] = lambda: service
    return TestClient(app), service


def _login(client: TestClient, identifier: str, **extra) -> dict:
    response = client.post("/api/auth/login", json={"identifier": identifier, "password": TEST_PASSWORD, **extra})
    assert response.status_code == 200, response.text
    return response.json()


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_login_and_current_session():
    client, service = _build_client()
    create_operator(service)

    body = _login(client, "operator@example.com")
    me = client.get("/api/auth/me", headers=_auth(body["token"]))

    assert body["token_type"] == "bearer"
    assert body["tenant_id"] == "tenant_a"
    assert body["user"]["email"] == "operator@example.com"
    assert "password_hash" not in body["user"]
    assert me.status_code == 200
    assert me.json()["session_id"]
    assert me.json()["tenant_context"]["role"] == "OPERATOR"


def test_bad_credentials_return_generic_401():
    client, service = _build_client()
    create_operator(service)

    wrong = client.post("/api/auth/login", json={"identifier": "operator", "password": "nope-nope"})
    unknown = client.post("/api/auth/login", json={"identifier": "ghost", "password": "nope-nope"})

    assert wrong.status_code == 401
    assert wrong.json() == {"detail": "Invalid credentials"}
    assert unknown.json() == wrong.json()
    assert wrong.headers["WWW-Authenticate"] == "Bearer"


def test_missing_bearer_token_is_rejected():
    client, _ = _build_client()

    response = client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.json() == {"detail": "Not authenticated"}


def test_logout_then_token_is_rejected():
    client, service = _build_client()
    create_operator(service)
    token = _login(client, "operator")["token"]

    logout = client.post("/api/auth/logout", headers=_auth(token))
    me = client.get("/api/auth/me", headers=_auth(token))

    assert logout.status_code == 200
    assert logout.json() == {"message": "Logged out successfully"}
    assert me.status_code == 401
    assert me.json() == {"detail": "Session is not valid"}


def test_refresh_returns_new_tokens():
    client, service = _build_client()
    create_operator(service)
    body = _login(client, "operator")

    refreshed = client.post("/api/auth/refresh", json={"refresh_token": body["refresh_token"]})
    replay = client.post("/api/auth/refresh", json={"refresh_token": body["refresh_token"]})

    assert refreshed.status_code == 200
    assert refreshed.json()["token"] != body["token"]
    assert replay.status_code == 401


def test_permission_check_endpoint():
    client, service = _build_client()
    create_contact(service)
    token = _login(client, "contact@example.com")["token"]

    view = client.post(
        "/api/auth/permissions/check",
        json={"yard_location": "houston_north", "yard_permission": "view_work_orders"},
        headers=_auth(token),
    )
    create = client.post(
        "/api/auth/permissions/check",
        json={"yard_location": "houston_north", "yard_permission": "create_work_orders"},
        headers=_auth(token),
    )
    partial = client.post(
        "/api/auth/permissions/check",
        json={"yard_location": "houston_north"},
        headers=_auth(token),
    )

    assert view.json() == {"tenant_id": "tenant_a", "allowed": True}
    assert create.json() == {"tenant_id": "tenant_a", "allowed": False}
    assert partial.status_code == 400


def test_customer_context_endpoint():
    client, service = _build_client()
    create_contact(service)
    create_operator(service)
    contact_token = _login(client, "contact@example.com")["token"]
    operator_token = _login(client, "operator")["token"]

    contact = client.get("/api/auth/customer-context", headers=_auth(contact_token))
    operator = client.get("/api/auth/customer-context", headers=_auth(operator_token))

    assert contact.status_code == 200
    assert contact.json()["customer_id"] == 42
    assert contact.json()["accessible_yards"] == ["houston_north"]
    assert operator.status_code == 403


def test_admin_creates_customer_contact():
    client, service = _build_client()
    create_admin(service)
    token = _login(client, "admin")["token"]

    response = client.post(
        "/api/users/customer-contacts",
        json={
            "email": "buyer@example.com",
            "full_name": "Bea Buyer",
            "password": TEST_PASSWORD,
            "tenant_id": "tenant_a",
            "customer_id": 7,
            "yard_access": [{"yard_location": "houston_north", "can_view_inventory": True}],
        },
        headers=_auth(token),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["role"] == "CUSTOMER_CONTACT"
    assert body["contact_type"] == "PRIMARY"
    assert body["tenant_access"][0]["permissions"] == ["view_inventory"]


def test_operator_cannot_create_customer_contact():
    client, service = _build_client()
    create_operator(service)
    token = _login(client, "operator")["token"]

    response = client.post(
        "/api/users/customer-contacts",
        json={
            "email": "buyer@example.com",
            "full_name": "Bea Buyer",
            "password": TEST_PASSWORD,
            "tenant_id": "tenant_a",
            "customer_id": 7,
        },
        headers=_auth(token),
    )

    assert response.status_code == 403


def test_all_false_yard_access_returns_422():
    client, service = _build_client()
    create_admin(service)
    token = _login(client, "admin")["token"]

    response = client.post(
        "/api/users/customer-contacts",
        json={
            "email": "buyer@example.com",
            "full_name": "Bea Buyer",
            "password": TEST_PASSWORD,
            "tenant_id": "tenant_a",
            "customer_id": 7,
            "yard_access": [{"yard_location": "houston_north"}],
        },
        headers=_auth(token),
    )

    assert response.status_code == 422
    assert "houston_north" in response.json()["detail"]


def test_admin_cannot_deactivate_self():
    client, service = _build_client()
    admin = create_admin(service)
    token = _login(client, "admin")["token"]

    response = client.post(f"/api/users/{admin.id}/deactivate", headers=_auth(token))

    assert response.status_code == 422


def test_tenant_access_update_requires_enterprise_user():
    client, service = _build_client()
    create_admin(service)
    operator = create_operator(service)
    token = _login(client, "admin")["token"]

    response = client.put(
        f"/api/users/{operator.id}/tenant-access",
        json={"tenant_access": [{"tenant_id": "tenant_b", "role": "OPERATOR"}]},
        headers=_auth(token),
    )

    assert response.status_code == 403
    assert response.json() == {"detail": "Enterprise access required"}


def test_operator_cannot_read_other_users():
    client, service = _build_client()
    create_operator(service)
    admin = create_admin(service)
    token = _login(client, "operator")["token"]

    response = client.get(f"/api/users/{admin.id}", headers=_auth(token))

    assert response.status_code == 403


def test_request_id_is_echoed():
    client, _ = _build_client()

    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"


def test_tenant_admin_cannot_touch_users_of_another_tenant():
    client, service = _build_client()
    create_admin(service)
    outsider = create_operator(service, email="b@example.com", username="bee", tenant_id="tenant_b")
    token = _login(client, "admin")["token"]

    read = client.get(f"/api/users/{outsider.id}", headers=_auth(token))
    edit = client.patch(f"/api/users/{outsider.id}", json={"email": "taken@example.com"}, headers=_auth(token))
    permissions = client.get(f"/api/users/{outsider.id}/permissions", headers=_auth(token))
    yards = client.put(
        f"/api/users/{outsider.id}/yard-access",
        json={"tenant_id": "tenant_a", "yard_access": [{"yard_location": "houston_north", "can_view_inventory": True}]},
        headers=_auth(token),
    )
    deactivate = client.post(f"/api/users/{outsider.id}/deactivate", headers=_auth(token))

    assert [r.status_code for r in (read, edit, permissions, yards, deactivate)] == [403] * 5
    assert deactivate.json() == {"detail": "Access denied"}
    current = service.get_user(outsider.id)
    assert current.is_active is True
    assert current.email == "b@example.com"


def test_tenant_admin_cannot_deactivate_enterprise_user():
    client, service = _build_client()
    create_admin(service)
    enterprise = create_enterprise_admin(service)
    token = _login(client, "admin")["token"]

    response = client.post(f"/api/users/{enterprise.id}/deactivate", headers=_auth(token))

    assert response.status_code == 403
    assert service.get_user(enterprise.id).is_active is True


def test_tenant_admin_deactivates_user_of_own_tenant():
    client, service = _build_client()
    create_admin(service)
    operator = create_operator(service)
    token = _login(client, "admin")["token"]

    response = client.post(f"/api/users/{operator.id}/deactivate", headers=_auth(token))

    assert response.status_code == 200
    assert response.json()["is_active"] is False
