from datetime import datetime, timedelta

from shankarmala.security import check_password


def test_signup_creates_user_and_sends_verification(client, db, sent_emails):
    response = client.post(
        "/api/users", json={"name": "Ravi", "email": " Ravi@Example.com ", "password": "hunter22"}
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["email"] == "ravi@example.com"
    assert "password" not in body

    stored = db.users.find_one({"email": "ravi@example.com"})
    assert stored["role"] == "user"
    assert stored["email_verified"] is False
    assert sent_emails[0]["to"] == ["ravi@example.com"]
    assert stored["email_verify_token"] in sent_emails[0]["html"]


def test_signup_validation_and_conflict(client, user):
    missing = client.post("/api/users", json={"email": "a@b.com"})
    assert missing.status_code == 400
    assert missing.get_json()["error"] == "Missing fields."

    duplicate = client.post(
        "/api/users", json={"name": "Again", "email": user["email"], "password": "hunter22"}
    )
    assert duplicate.status_code == 409
    assert duplicate.get_json()["error"] == "Email already in use."


def test_signup_with_default_admin_email_is_admin(client, db, app):
    client.post(
        "/api/users",
        json={"name": "Owner", "email": app.config["DEFAULT_ADMIN_EMAIL"], "password": "hunter22"},
    )

    assert db.users.find_one({"email": app.config["DEFAULT_ADMIN_EMAIL"]})["role"] == "admin"


def test_login_sets_cookie_and_token(client, user):
    response = client.post("/api/users/login", json={"email": user["email"], "password": "secret123"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["access_token"]
    assert body["role"] == "user"
    cookie = response.headers.get("Set-Cookie", "")
    assert cookie.startswith("token=")
    assert "HttpOnly" in cookie
    assert "SameSite=Strict" in cookie


def test_login_rejects_bad_password(client, user):
    response = client.post("/api/users/login", json={"email": user["email"], "password": "wrong-pass"})

    assert response.status_code == 401
    assert response.get_json()["error"] == "Invalid email or password."


def test_cookie_token_authenticates(client, user):
    client.post("/api/users/login", json={"email": user["email"], "password": "secret123"})

    response = client.get("/api/users/me")

    assert response.status_code == 200
    assert response.get_json()["email"] == user["email"]


def test_logout_clears_cookie(client):
    response = client.post("/api/logout")

    assert response.status_code == 200
    assert "token=;" in response.headers.get("Set-Cookie", "")


def test_me_requires_token(client):
    response = client.get("/api/users/me")

    assert response.status_code == 401
    assert response.get_json() == {"error": "Not authenticated", "code": "AUTH_REQUIRED"}


def test_invalid_token_is_rejected(client):
    response = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.get_json()["error"] == "Invalid or expired token"


def test_update_profile_name(client, user_headers):
    response = client.patch("/api/users/me", json={"name": "Asha B."}, headers=user_headers)

    assert response.status_code == 200
    assert response.get_json()["name"] == "Asha B."


def test_update_profile_requires_fields(client, user_headers):
    response = client.patch("/api/users/me", json={}, headers=user_headers)

    assert response.status_code == 400
    assert response.get_json()["error"] == "No fields to update."


def test_changing_email_reissues_token_and_resets_verification(client, db, user, user_headers, sent_emails):
    response = client.patch("/api/users/me", json={"email": "new@example.com"}, headers=user_headers)

    body = response.get_json()
    assert response.status_code == 200
    assert body["email"] == "new@example.com"
    assert body["emailVerified"] is False
    assert body["access_token"]
    assert sent_emails[-1]["to"] == ["new@example.com"]

    follow_up = client.get("/api/users/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert follow_up.get_json()["email"] == "new@example.com"


def test_change_password(client, db, user, user_headers):
    wrong = client.post(
        "/api/users/change-password",
        json={"currentPassword": "nope-nope", "newPassword": "brandnew1"},
        headers=user_headers,
    )
    assert wrong.status_code == 401

    response = client.post(
        "/api/users/change-password",
        json={"currentPassword": "secret123", "newPassword": "brandnew1"},
        headers=user_headers,
    )
    assert response.status_code == 200
    assert check_password("brandnew1", db.users.find_one({"_id": user["_id"]})["password"])


def test_verify_email_token(client, db, make_user):
    unverified = make_user(email="new@example.com", email_verified=False, email_verify_token="tok-123")

    assert client.post("/api/users/verify-email", json={"token": "bogus"}).status_code == 400
    response = client.post("/api/users/verify-email", json={"token": "tok-123"})

    assert response.status_code == 200
    stored = db.users.find_one({"_id": unverified["_id"]})
    assert stored["email_verified"] is True
    assert "email_verify_token" not in stored


def test_password_reset_flow(client, db, user, sent_emails):
    unknown = client.post("/api/users/request-password-reset", json={"email": "ghost@example.com"})
    assert unknown.status_code == 200
    assert sent_emails == []

    response = client.post("/api/users/request-password-reset", json={"email": user["email"]})
    assert response.get_json()["message"] == "If that email exists, a reset was sent."

    token = db.users.find_one({"_id": user["_id"]})["password_reset_token"]
    assert token in sent_emails[-1]["html"]

    reset = client.post("/api/users/reset-password", json={"token": token, "password": "fresh-pass"})
    assert reset.status_code == 200
    stored = db.users.find_one({"_id": user["_id"]})
    assert check_password("fresh-pass", stored["password"])
    assert "password_reset_token" not in stored

    reused = client.post("/api/users/reset-password", json={"token": token, "password": "again-pass"})
    assert reused.status_code == 400


def test_expired_reset_token_is_rejected(client, make_user):
    make_user(
        email="late@example.com",
        password_reset_token="old-token",
        password_reset_expires_at=datetime.utcnow() - timedelta(minutes=1),
    )

    response = client.post("/api/users/reset-password", json={"token": "old-token", "password": "fresh-pass"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid or expired token"


def test_notifications_feed_and_mark_read(client, user, user_headers):
    client.post("/api/users/request-password-reset", json={"email": user["email"]})

    feed = client.get("/api/users/notifications", headers=user_headers).get_json()
    assert len(feed) == 1
    assert feed[0]["read"] is False

    marked = client.patch("/api/users/notifications", json={}, headers=user_headers)
    assert marked.get_json() == {"updated": 1}
    assert client.get("/api/users/notifications", headers=user_headers).get_json()[0]["read"] is True
