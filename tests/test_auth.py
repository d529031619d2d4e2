"""
Tests for registration, login and the bearer-token guard
"""


def _register(client, email="jane@budgethub.io", **overrides):
    payload = {"email": email, "password": "hunter22", "fullName": "Jane Doe", "department": "Finance"}
    payload.update(overrides)
    return client.post("/auth/register", json=payload)


def test_register_login_me(client):
    resp = _register(client)
    assert resp.status_code == 201
    body = resp.json()
    assert body["token"]
    assert body["user"]["email"] == "jane@budgethub.io"
    assert body["user"]["role"] == "user"

    resp = client.post("/auth/login", json={"email": "jane@budgethub.io", "password": "hunter22"})
    assert resp.status_code == 200
    token = resp.json()["token"]

    resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["user"]["full_name"] == "Jane Doe"
    assert resp.json()["user"]["last_login_at"] is not None


def test_register_cannot_choose_role(client):
    resp = _register(client, role="admin")
    assert resp.status_code == 201
    assert resp.json()["user"]["role"] == "user"


def test_duplicate_registration(client):
    _register(client)
    resp = _register(client, email="JANE@budgethub.io")
    assert resp.status_code == 400
    assert resp.json() == {"error": "User already exists"}


def test_register_validation_errors(client):
    resp = _register(client, email="not-an-email", password="123")
    assert resp.status_code == 400
    fields = {e["field"] for e in resp.json()["errors"]}
    assert fields == {"email", "password"}


def test_login_wrong_password(client, make_user):
    user = make_user()
    resp = client.post("/auth/login", json={"email": user.email, "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid credentials"}


def test_missing_or_bad_token(client):
    resp = client.get("/auth/me")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Access token required"}

    resp = client.get("/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401


def test_viewer_cannot_create_project(client, auth_headers, make_user):
    resp = client.post(
        "/api/projects", json={"name": "Nope", "total_budget": "100"}, headers=auth_headers(make_user(role="viewer"))
    )
    assert resp.status_code == 403
    assert resp.json() == {"error": "Insufficient permissions"}


def test_user_creates_project_and_becomes_manager(client, auth_headers, make_user):
    user = make_user()
    resp = client.post(
        "/api/projects",
        json={"name": "Office Move", "total_budget": "5000", "currency": "eur"},
        headers=auth_headers(user),
    )
    assert resp.status_code == 201
    project = resp.json()["project"]
    assert project["manager_id"] == str(user.id)
    assert project["currency"] == "EUR"
    assert project["status"] == "planning"


def test_profile_access(client, auth_headers, admin, make_user):
    alice, bob = make_user(), make_user()

    assert client.get(f"/auth/profile/{bob.id}", headers=auth_headers(alice)).status_code == 403
    assert client.get(f"/auth/profile/{bob.id}", headers=auth_headers(admin)).status_code == 200

    resp = client.put(f"/auth/profile/{alice.id}", json={"role": "admin"}, headers=auth_headers(alice))
    assert resp.status_code == 403
    assert resp.json() == {"error": "Only administrators can change roles"}

    resp = client.put(f"/auth/profile/{alice.id}", json={"phone": "555-0100"}, headers=auth_headers(alice))
    assert resp.status_code == 200
    assert resp.json()["profile"]["phone"] == "555-0100"


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "OK"


def test_user_directory_lists_active_users(client, auth_headers, make_user):
    caller = make_user(full_name="Carol Caller")
    make_user(full_name="Ivan Inactive", is_active=False)

    resp = client.get("/api/users", headers=auth_headers(caller))
    assert resp.status_code == 200
    assert [u["full_name"] for u in resp.json()["users"]] == ["Carol Caller"]


def test_profile_update_rejects_null_name(client, auth_headers, make_user):
    user = make_user()
    resp = client.put(f"/auth/profile/{user.id}", json={"full_name": None}, headers=auth_headers(user))
    assert resp.status_code == 400
    assert [e["field"] for e in resp.json()["errors"]] == ["full_name"]
