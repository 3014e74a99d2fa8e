"""Tests for the auth blueprint — registration, login, logout, session info.

Covers:
- Registration creates a lower-cased user and signs them in
- Duplicate email, short password and malformed email rejection
- Login with valid / invalid credentials and deactivated accounts
- Pending invitations reported after login
- Logout and /auth/me
"""

from accountdesk.extensions import db
from accountdesk.models.user import User


class TestRegistration:
    """POST /auth/register"""

    def test_register_success(self, client, app):
        resp = client.post(
            "/auth/register",
            json={"email": "NewUser@Example.com", "password": "securepass123", "full_name": "New User"},
        )
        assert resp.status_code == 201
        assert resp.get_json()["user"]["email"] == "newuser@example.com"

        user = User.query.filter_by(email="newuser@example.com").first()
        assert user is not None
        assert user.full_name == "New User"
        assert user.password_hash != "securepass123"

        # Signed in straight away
        assert client.get("/auth/me").status_code == 200

    def test_register_reports_pending_invitations(self, client, seed_data):
        resp = client.post("/auth/register", json={"email": "new@example.com", "password": "securepass123"})
        assert resp.status_code == 201
        assert [inv["id"] for inv in resp.get_json()["invitations"]] == [seed_data["pending_invite_id"]]

    def test_register_duplicate_email(self, client, seed_data):
        resp = client.post("/auth/register", json={"email": "owner@example.com", "password": "securepass123"})
        assert resp.status_code == 400
        assert "already exists" in resp.get_json()["error"]

    def test_register_short_password(self, client):
        resp = client.post("/auth/register", json={"email": "x@example.com", "password": "short"})
        assert resp.status_code == 400

    def test_register_invalid_email(self, client):
        resp = client.post("/auth/register", json={"email": "nope", "password": "securepass123"})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "invalid_email"

    def test_register_rejects_non_object_body(self, client):
        resp = client.post("/auth/register", json=["not", "an", "object"])
        assert resp.status_code == 400


class TestLogin:
    """POST /auth/login, POST /auth/logout, GET /auth/me"""

    def test_login_success(self, client, login, seed_data):
        resp = login("OWNER@example.com")
        assert resp.status_code == 200
        assert resp.get_json()["user"]["id"] == seed_data["owner_id"]

    def test_login_wrong_password(self, client, login, seed_data):
        resp = login("owner@example.com", "wrongpassword")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "invalid_credentials"

    def test_login_unknown_user(self, client, login, seed_data):
        assert login("ghost@example.com").status_code == 401

    def test_login_missing_fields(self, client):
        resp = client.post("/auth/login", json={"email": ""})
        assert resp.status_code == 400

    def test_login_deactivated(self, client, login, seed_data):
        user = db.session.get(User, seed_data["outsider_id"])
        user.is_active = False
        db.session.commit()

        resp = login("outsider@example.com")
        assert resp.status_code == 403

    def test_login_lists_pending_invitations(self, client, login, seed_data):
        body = login("outsider@example.com").get_json()
        assert [inv["id"] for inv in body["invitations"]] == [seed_data["outsider_invite_id"]]
        assert body["pending_invitation"] is None

    def test_me_requires_login(self, client, seed_data):
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "not_authenticated"

    def test_logout(self, client, login, seed_data):
        login("owner@example.com")
        assert client.post("/auth/logout").status_code == 200
        assert client.get("/auth/me").status_code == 401
