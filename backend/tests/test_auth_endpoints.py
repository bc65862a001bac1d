from voice_control.schemas.user import UserRole
from voice_control.services.user_service import user_service


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_login_returns_token_pair_without_password(client, make_user):
    make_user("alice")
    response = client.post("/api/auth/login", json={"username": "alice", "password": "Correct1pass"})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Login successful"
    assert body["accessToken"]
    assert body["refreshToken"]
    assert body["user"]["username"] == "alice"
    assert body["user"]["role"] == "User"
    assert body["user"]["lastLoginAt"] is not None
    assert "password" not in body["user"]
    assert "passwordHash" not in body["user"]
    assert "password_hash" not in body["user"]


def test_login_registers_refresh_token(client, app, make_user, login):
    make_user("alice")
    tokens = login("alice")
    assert app.state.token_registry.is_valid(tokens["refreshToken"])


def test_login_failures_are_indistinguishable(client, make_user):
    make_user("alice")
    wrong_password = client.post("/api/auth/login", json={"username": "alice", "password": "Wrong1pass"})
    unknown_user = client.post("/api/auth/login", json={"username": "mallory", "password": "Correct1pass"})

    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json() == {"error": "Invalid credentials"}


def test_login_rejects_deactivated_user(client, db_session, make_user):
    make_user("alice")
    user_service.deactivate_user(db_session, "alice")
    response = client.post("/api/auth/login", json={"username": "alice", "password": "Correct1pass"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}


def test_login_is_rate_limited(client, make_user):
    make_user("alice")
    statuses = [
        client.post("/api/auth/login", json={"username": "alice", "password": "Wrong1pass"}).status_code
        for _ in range(11)
    ]
    assert statuses[:10] == [401] * 10
    assert statuses[10] == 429


def test_refresh_issues_new_access_token(client, make_user, login):
    make_user("alice")
    tokens = login("alice")

    response = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Token refreshed successfully"
    assert body["user"]["username"] == "alice"
    assert "refreshToken" not in body

    me = client.get("/api/auth/me", headers=_auth(body["accessToken"]))
    assert me.status_code == 200
    assert me.json()["username"] == "alice"


def test_refresh_without_token(client):
    response = client.post("/api/auth/refresh", json={})
    assert response.status_code == 401
    assert response.json() == {"error": "Refresh token required", "code": "REFRESH_TOKEN_MISSING"}


def test_refresh_with_access_token_fails(client, make_user, login):
    make_user("alice")
    tokens = login("alice")
    response = client.post("/api/auth/refresh", json={"refreshToken": tokens["accessToken"]})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or expired refresh token", "code": "REFRESH_TOKEN_INVALID"}


def test_refresh_fails_after_logout(client, make_user, login):
    make_user("alice")
    tokens = login("alice")

    logout = client.post(
        "/api/auth/logout",
        json={"refreshToken": tokens["refreshToken"]},
        headers=_auth(tokens["accessToken"]),
    )
    assert logout.status_code == 200
    assert logout.json() == {"message": "Logged out successfully"}

    response = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert response.status_code == 401
    assert response.json()["code"] == "REFRESH_TOKEN_INVALID"


def test_double_logout_is_idempotent(client, make_user, login):
    make_user("alice")
    tokens = login("alice")
    for _ in range(2):
        response = client.post(
            "/api/auth/logout",
            json={"refreshToken": tokens["refreshToken"]},
            headers=_auth(tokens["accessToken"]),
        )
        assert response.status_code == 200


def test_logout_without_body(client, make_user, login):
    make_user("alice")
    tokens = login("alice")
    response = client.post("/api/auth/logout", headers=_auth(tokens["accessToken"]))
    assert response.status_code == 200


def test_logout_requires_access_token(client):
    response = client.post("/api/auth/logout", json={"refreshToken": "whatever"})
    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_MISSING"


def test_logout_all_revokes_only_callers_tokens(client, make_user, login):
    make_user("alice")
    make_user("bob")
    alice_sessions = [login("alice") for _ in range(3)]
    bob_session = login("bob")

    response = client.post("/api/auth/logout-all", headers=_auth(alice_sessions[0]["accessToken"]))
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out from all devices successfully", "revokedTokens": 3}

    for session in alice_sessions:
        refresh = client.post("/api/auth/refresh", json={"refreshToken": session["refreshToken"]})
        assert refresh.status_code == 401
        assert refresh.json()["code"] == "REFRESH_TOKEN_INVALID"

    still_ok = client.post("/api/auth/refresh", json={"refreshToken": bob_session["refreshToken"]})
    assert still_ok.status_code == 200


def test_refresh_fails_for_deactivated_user(client, db_session, make_user, login):
    make_user("alice")
    tokens = login("alice")
    user_service.deactivate_user(db_session, "alice")

    response = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert response.status_code == 401
    assert response.json()["code"] == "REFRESH_TOKEN_INVALID"


def test_refresh_rotation_when_enabled(client, app, make_user, login):
    app.state.token_service.rotate_refresh_tokens = True
    make_user("alice")
    tokens = login("alice")

    rotated = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert rotated.status_code == 200
    new_refresh = rotated.json()["refreshToken"]
    assert new_refresh and new_refresh != tokens["refreshToken"]

    replay = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert replay.status_code == 401

    again = client.post("/api/auth/refresh", json={"refreshToken": new_refresh})
    assert again.status_code == 200


def test_me_returns_profile(client, make_user, login):
    make_user("alice", email="alice@example.com")
    tokens = login("alice")
    response = client.get("/api/auth/me", headers=_auth(tokens["accessToken"]))
    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "alice@example.com"
    assert body["isActive"] is True
    assert body["settings"] == {"twoFactorEnabled": False, "notificationsEnabled": True}
    assert "passwordHash" not in body


def test_me_for_deactivated_user_is_404(client, db_session, make_user, login):
    make_user("alice")
    tokens = login("alice")
    user_service.deactivate_user(db_session, "alice")

    response = client.get("/api/auth/me", headers=_auth(tokens["accessToken"]))
    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


def test_change_password(client, make_user, login):
    make_user("alice")
    tokens = login("alice")

    response = client.put(
        "/api/auth/change-password",
        json={"username": "alice", "currentPassword": "Correct1pass", "newPassword": "Better2pass"},
        headers=_auth(tokens["accessToken"]),
    )
    assert response.status_code == 200
    assert response.json() == {"message": "Password changed successfully"}

    old = client.post("/api/auth/login", json={"username": "alice", "password": "Correct1pass"})
    assert old.status_code == 401
    assert login("alice", "Better2pass")["accessToken"]

    # Existing refresh tokens stay valid after a password change.
    refresh = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert refresh.status_code == 200


def test_change_password_wrong_current(client, make_user, login):
    make_user("alice")
    tokens = login("alice")
    response = client.put(
        "/api/auth/change-password",
        json={"username": "alice", "currentPassword": "Wrong1pass", "newPassword": "Better2pass"},
        headers=_auth(tokens["accessToken"]),
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Current password is incorrect"}


def test_change_password_for_someone_else_is_denied(client, make_user, login):
    make_user("alice")
    make_user("bob")
    tokens = login("alice")
    response = client.put(
        "/api/auth/change-password",
        json={"username": "bob", "currentPassword": "Correct1pass", "newPassword": "Better2pass"},
        headers=_auth(tokens["accessToken"]),
    )
    assert response.status_code == 403
    assert response.json()["code"] == "ACCESS_DENIED"


def test_change_password_unknown_user_for_admin(client, make_user, login):
    make_user("root", role=UserRole.ADMIN)
    tokens = login("root")
    response = client.put(
        "/api/auth/change-password",
        json={"username": "ghost", "currentPassword": "Correct1pass", "newPassword": "Better2pass"},
        headers=_auth(tokens["accessToken"]),
    )
    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


def test_change_password_enforces_strength(client, make_user, login):
    make_user("alice")
    tokens = login("alice")
    response = client.put(
        "/api/auth/change-password",
        json={"username": "alice", "currentPassword": "Correct1pass", "newPassword": "alllowercase"},
        headers=_auth(tokens["accessToken"]),
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation error"
    assert body["field"] == "newPassword"
