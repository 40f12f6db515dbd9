from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from fastapi.testclient import TestClient
from sqlalchemy import select

import app.db as app_db
from app.main import app
from app.models import User
from app.security import Identity, decode_token, issue_token

PASSWORD = "secret-password"


def signup(client: TestClient, email: str, name: str, role: str, **extra):
    return client.post(
        "/auth/signup",
        json={"email": email, "name": name, "password": PASSWORD, "role": role, **extra},
    )


def login(client: TestClient, email: str, password: str = PASSWORD):
    return client.post("/auth/login", json={"email": email, "password": password})


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def stored_user(email: str) -> User:
    db = app_db.SessionLocal()
    try:
        return db.scalar(select(User).where(User.email == email))
    finally:
        db.close()


def test_manager_signup_returns_public_fields_only():
    client = TestClient(app)

    created = signup(client, "manager@example.com", "Manager One", "MANAGER")

    assert created.status_code == 201
    body = created.json()
    assert set(body) == {"id", "email", "name", "role"}
    assert body["role"] == "MANAGER"
    user = stored_user("manager@example.com")
    assert user.manager_id is None
    assert user.password_hash != PASSWORD
    assert user.password_hash.startswith("$2")


def test_manager_signup_ignores_manager_reference():
    client = TestClient(app)
    signup(client, "boss@example.com", "Big Boss", "MANAGER")

    created = signup(client, "manager@example.com", "Manager One", "MANAGER", managerName="Big Boss")

    assert created.status_code == 201
    assert stored_user("manager@example.com").manager_id is None


def test_employee_signup_links_manager_by_name_or_id():
    client = TestClient(app)
    manager_id = signup(client, "manager@example.com", "Manager One", "MANAGER").json()["id"]

    by_name = signup(client, "a@example.com", "Employee A", "EMPLOYEE", managerName="Manager One")
    by_id = signup(client, "b@example.com", "Employee B", "EMPLOYEE", managerId=manager_id)

    assert by_name.status_code == 201
    assert by_id.status_code == 201
    assert stored_user("a@example.com").manager_id == manager_id
    assert stored_user("b@example.com").manager_id == manager_id


def test_employee_signup_without_manager_reports_manager_name_field():
    client = TestClient(app)

    response = signup(client, "a@example.com", "Employee A", "EMPLOYEE")

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION"
    assert error["fieldErrors"] == {"managerName": ["manager name is required"]}


def test_employee_signup_with_unresolvable_manager():
    client = TestClient(app)
    signup(client, "manager@example.com", "Manager One", "MANAGER")
    employee_id = signup(client, "a@example.com", "Employee A", "EMPLOYEE", managerName="Manager One").json()["id"]

    unknown_name = signup(client, "b@example.com", "Employee B", "EMPLOYEE", managerName="Nobody Here")
    not_a_manager = signup(client, "c@example.com", "Employee C", "EMPLOYEE", managerId=employee_id)
    oversized_id = signup(client, "d@example.com", "Employee D", "EMPLOYEE", managerId=10**20)

    assert unknown_name.status_code == 400
    assert unknown_name.json()["error"]["fieldErrors"] == {"managerName": ["manager not found"]}
    assert not_a_manager.status_code == 400
    assert not_a_manager.json()["error"]["fieldErrors"] == {"managerId": ["invalid manager reference"]}
    assert oversized_id.status_code == 400
    assert oversized_id.json()["error"]["fieldErrors"] == {"managerId": ["manager id must be a positive integer"]}
    assert stored_user("d@example.com") is None
    assert stored_user("b@example.com") is None


def test_employee_signup_refuses_ambiguous_manager_name():
    client = TestClient(app)
    signup(client, "m1@example.com", "Sam Lee", "MANAGER")
    second_id = signup(client, "m2@example.com", "Sam Lee", "MANAGER").json()["id"]

    ambiguous = signup(client, "a@example.com", "Employee A", "EMPLOYEE", managerName="Sam Lee")
    explicit = signup(client, "a@example.com", "Employee A", "EMPLOYEE", managerId=second_id)

    assert ambiguous.status_code == 400
    assert "managerName" in ambiguous.json()["error"]["fieldErrors"]
    assert explicit.status_code == 201
    assert stored_user("a@example.com").manager_id == second_id


def test_duplicate_email_is_a_conflict_and_email_is_case_sensitive():
    client = TestClient(app)
    assert signup(client, "manager@example.com", "Manager One", "MANAGER").status_code == 201

    duplicate = signup(client, "manager@example.com", "Manager Again", "MANAGER")
    different_case = signup(client, "Manager@example.com", "Manager Again", "MANAGER")

    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == {"code": "CONFLICT", "message": "Email already in use"}
    assert different_case.status_code == 201


def test_signup_field_validation():
    client = TestClient(app)

    response = client.post(
        "/auth/signup",
        json={"email": "not-an-email", "name": "A", "password": "123", "role": "ADMIN"},
    )

    assert response.status_code == 400
    fields = response.json()["error"]["fieldErrors"]
    assert fields["email"] == ["email is invalid"]
    assert fields["name"] == ["name must be at least 2 characters"]
    assert fields["password"] == ["password must be at least 6 characters"]
    assert set(fields) == {"email", "name", "password", "role"}


def test_signup_type_errors_use_the_same_error_shape():
    client = TestClient(app)

    response = signup(client, "a@example.com", "Employee A", "EMPLOYEE", managerId="first")

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION"
    assert "managerId" in error["fieldErrors"]


def test_login_issues_token_carrying_id_and_role():
    client = TestClient(app)
    user_id = signup(client, "manager@example.com", "Manager One", "MANAGER").json()["id"]

    response = login(client, "manager@example.com")

    assert response.status_code == 200
    body = response.json()
    assert body["user"] == {"id": user_id, "email": "manager@example.com", "name": "Manager One", "role": "MANAGER"}
    assert decode_token(body["token"]) == Identity(id=user_id, role="MANAGER")
    assert "no-store" in response.headers["Cache-Control"]


def test_login_rejects_bad_credentials():
    client = TestClient(app)
    signup(client, "manager@example.com", "Manager One", "MANAGER")

    wrong_password = login(client, "manager@example.com", "wrong-password")
    unknown = login(client, "nobody@example.com")
    malformed = client.post("/auth/login", json={"email": "manager@example.com"})

    assert wrong_password.status_code == 401
    assert wrong_password.json()["error"] == {"code": "UNAUTHENTICATED", "message": "Invalid credentials"}
    assert unknown.status_code == 401
    assert malformed.status_code == 400
    assert "password" in malformed.json()["error"]["fieldErrors"]


def test_me_requires_a_valid_bearer_token():
    client = TestClient(app)
    user_id = signup(client, "manager@example.com", "Manager One", "MANAGER").json()["id"]
    token = login(client, "manager@example.com").json()["token"]

    me = client.get("/auth/me", headers=bearer(token))
    missing = client.get("/auth/me")
    wrong_scheme = client.get("/auth/me", headers={"Authorization": f"Token {token}"})
    garbage = client.get("/auth/me", headers=bearer("not-a-jwt"))

    assert me.status_code == 200
    assert me.json() == {
        "id": user_id,
        "email": "manager@example.com",
        "name": "Manager One",
        "role": "MANAGER",
        "managerId": None,
    }
    assert missing.status_code == 401
    assert missing.json()["error"]["message"] == "Missing Authorization header"
    assert missing.headers["WWW-Authenticate"] == "Bearer"
    assert wrong_scheme.json()["error"]["message"] == "Invalid Authorization header"
    assert garbage.json()["error"]["message"] == "Invalid or expired token"


def test_expired_and_foreign_tokens_are_rejected():
    client = TestClient(app)
    user_id = signup(client, "manager@example.com", "Manager One", "MANAGER").json()["id"]
    identity = Identity(id=user_id, role="MANAGER")

    expired = issue_token(identity, now=datetime.now(timezone.utc) - timedelta(days=8))
    still_valid = issue_token(identity, now=datetime.now(timezone.utc) - timedelta(days=6))
    foreign = jwt.encode(
        {"id": user_id, "role": "MANAGER", "iat": datetime.now(timezone.utc), "exp": datetime.now(timezone.utc) + timedelta(days=1)},
        "some-other-secret-that-is-long-enough",
        algorithm="HS256",
    )

    assert client.get("/auth/me", headers=bearer(expired)).status_code == 401
    assert client.get("/auth/me", headers=bearer(foreign)).status_code == 401
    assert client.get("/auth/me", headers=bearer(still_valid)).status_code == 200


def test_health():
    client = TestClient(app)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
