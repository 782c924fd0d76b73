import pytest
from fastapi.testclient import TestClient

from user_service.api.dependencies import get_user_service
from user_service.core.config import settings
from user_service.core.exceptions import InternalError
from user_service.main import app

REGISTER_URL = "/api/users/register"
LOGIN_URL = "/api/users/login"

SECRET_FIELDS = {"password", "passwordHash", "password_hash", "refreshTokens", "refresh_tokens",
                 "emailVerificationToken", "passwordResetToken"}


def register(client, email="a@x.com", password="pw123456", **extra):
    payload = {"email": email, "password": password, "firstName": "A", "lastName": "B"}
    payload.update(extra)
    return client.post(REGISTER_URL, json=payload)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student(client):
    return register(client).json()["data"]


@pytest.fixture
def admin(client):
    return register(client, email="root@x.com", role="admin").json()["data"]


def test_register_returns_user_and_tokens(client):
    response = register(client, email="New.User@X.com", username="NewUser")

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    user = body["data"]["user"]
    assert user["email"] == "new.user@x.com"
    assert user["username"] == "newuser"
    assert user["firstName"] == "A"
    assert user["role"] == "student"
    assert user["isActive"] is True
    assert user["preferences"]["timezone"] == "UTC"
    assert SECRET_FIELDS.isdisjoint(user)
    tokens = body["data"]["tokens"]
    assert tokens["accessToken"] and tokens["refreshToken"]


def test_register_invalid_payload_is_400(client):
    response = client.post(REGISTER_URL, json={"email": "invalid-email", "password": "123"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]
    assert {d["field"] for d in body["details"]} >= {"email", "password", "firstName", "lastName"}


def test_register_rejects_unknown_role(client):
    assert register(client, role="superuser").status_code == 400


def test_register_duplicate_email_is_409(client):
    register(client)
    response = register(client, firstName="Other")

    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "Email already registered"}


def test_login_twice_succeeds(client, student):
    for _ in range(2):
        response = client.post(LOGIN_URL, json={"email": "a@x.com", "password": "pw123456"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["lastLogin"] is not None
        assert data["tokens"]["accessToken"]


def test_login_failures_are_indistinguishable(client, student):
    unknown = client.post(LOGIN_URL, json={"email": "nobody@x.com", "password": "pw123456"})
    wrong = client.post(LOGIN_URL, json={"email": "a@x.com", "password": "wrongpw"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json() == {"success": False, "error": "Invalid email or password"}


def test_profile_requires_token(client):
    response = client.get("/api/users/profile")
    assert response.status_code == 401
    assert response.json()["error"] == "No token provided"


def test_malformed_prefix_counts_as_no_token(client, student):
    token = student["tokens"]["accessToken"]
    response = client.get("/api/users/profile", headers={"Authorization": f"Token {token}"})

    assert response.status_code == 401
    assert response.json()["error"] == "No token provided"


def test_invalid_token_is_401(client):
    response = client.get("/api/users/profile", headers=bearer("not.a.token"))
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"


def test_refresh_token_cannot_authorize_requests(client, student):
    response = client.get("/api/users/profile", headers=bearer(student["tokens"]["refreshToken"]))
    assert response.status_code == 401


def test_get_profile(client, student):
    response = client.get("/api/users/profile", headers=bearer(student["tokens"]["accessToken"]))

    assert response.status_code == 200
    user = response.json()["data"]["user"]
    assert user["id"] == student["user"]["id"]
    assert SECRET_FIELDS.isdisjoint(user)


def test_update_profile(client, student):
    response = client.put(
        "/api/users/profile",
        headers=bearer(student["tokens"]["accessToken"]),
        json={
            "firstName": "  Ana ",
            "username": "Ana01",
            "avatar": "https://cdn.x.com/a.png",
            "preferences": {"notifications": {"push": False}},
            "learningProfile": {"level": "advanced", "interests": ["math"]},
        },
    )

    assert response.status_code == 200
    user = response.json()["data"]["user"]
    assert user["firstName"] == "Ana"
    assert user["username"] == "ana01"
    assert user["avatar"] == "https://cdn.x.com/a.png"
    assert user["preferences"]["notifications"] == {"email": True, "push": False}
    assert user["learningProfile"]["level"] == "advanced"
    assert user["learningProfile"]["interests"] == ["math"]


def test_update_profile_rejects_non_profile_fields(client, student):
    response = client.put(
        "/api/users/profile",
        headers=bearer(student["tokens"]["accessToken"]),
        json={"role": "admin"},
    )
    assert response.status_code == 400


def test_update_profile_username_conflict(client, student):
    register(client, email="b@x.com", username="taken")
    response = client.put(
        "/api/users/profile",
        headers=bearer(student["tokens"]["accessToken"]),
        json={"username": "taken"},
    )
    assert response.status_code == 409
    assert response.json()["error"] == "Username already taken"


def test_change_password(client, student):
    headers = bearer(student["tokens"]["accessToken"])

    wrong = client.post("/api/users/change-password", headers=headers,
                        json={"currentPassword": "wrongpw", "newPassword": "newpw12345678"})
    assert wrong.status_code == 401

    response = client.post("/api/users/change-password", headers=headers,
                           json={"currentPassword": "pw123456", "newPassword": "newpw12345678"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Password changed successfully"}

    assert client.post(LOGIN_URL, json={"email": "a@x.com", "password": "pw123456"}).status_code == 401
    assert client.post(LOGIN_URL, json={"email": "a@x.com", "password": "newpw12345678"}).status_code == 200


def test_change_password_validates_new_password(client, student):
    response = client.post("/api/users/change-password", headers=bearer(student["tokens"]["accessToken"]),
                           json={"currentPassword": "pw123456", "newPassword": "short"})
    assert response.status_code == 400


def test_delete_account_blocks_login(client, student):
    headers = bearer(student["tokens"]["accessToken"])
    response = client.delete("/api/users/account", headers=headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Account deactivated successfully"

    login = client.post(LOGIN_URL, json={"email": "a@x.com", "password": "pw123456"})
    assert login.status_code == 403
    assert login.json()["error"] == "Account is deactivated"

    # The earlier access token is still honoured until it expires
    profile = client.get("/api/users/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["data"]["user"]["isActive"] is False


def test_admin_routes_reject_students(client, student):
    headers = bearer(student["tokens"]["accessToken"])

    response = client.get("/api/users/users", headers=headers)
    assert response.status_code == 403
    assert response.json()["error"] == "Insufficient permissions"
    assert client.get(f"/api/users/users/{student['user']['id']}", headers=headers).status_code == 403


def test_admin_lists_users(client, student, admin):
    headers = bearer(admin["tokens"]["accessToken"])

    response = client.get("/api/users/users", headers=headers, params={"limit": 1})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
    assert len(data["users"]) == 1
    assert SECRET_FIELDS.isdisjoint(data["users"][0])

    students = client.get("/api/users/users", headers=headers, params={"role": "student"}).json()["data"]
    assert [u["email"] for u in students["users"]] == ["a@x.com"]


def test_admin_gets_user_by_id(client, student, admin):
    headers = bearer(admin["tokens"]["accessToken"])

    response = client.get(f"/api/users/users/{student['user']['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == "a@x.com"

    missing = client.get("/api/users/users/does-not-exist", headers=headers)
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "User not found"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["service"] == "user-management-service"
    assert body["timestamp"]


def test_unknown_route(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Route not found"}


class BrokenUserService:
    def __init__(self, error):
        self.error = error

    def get_user(self, user_id):
        raise self.error


@pytest.fixture
def broken_profile(student):
    """Make GET /profile fail with a given error; returns a function that performs the request"""
    quiet_client = TestClient(app, raise_server_exceptions=False)
    headers = bearer(student["tokens"]["accessToken"])

    def fetch(error):
        app.dependency_overrides[get_user_service] = lambda: BrokenUserService(error)
        return quiet_client.get("/api/users/profile", headers=headers)

    yield fetch
    app.dependency_overrides.pop(get_user_service, None)


@pytest.mark.parametrize("error", [
    InternalError("Database error occurred: connection refused"),
    RuntimeError("secret connection string"),
])
def test_server_errors_are_generic_in_production(broken_profile, monkeypatch, error):
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")

    response = broken_profile(error)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal Server Error"}


def test_uncaught_error_includes_stack_in_development(broken_profile, monkeypatch):
    monkeypatch.setattr(settings, "ENVIRONMENT", "development")

    response = broken_profile(RuntimeError("boom"))

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "boom"
    assert "RuntimeError" in body["stack"]
