from sqlalchemy.exc import OperationalError

from keepintouch.services import auth_service as auth_module


API = "/api/v1/auth"


def _register(client, username="alice", email="alice@x.com", password="secret123", **extra):
    body = {"username": username, "name": "Alice Liddell", "email": email, "password": password}
    body.update(extra)
    return client.post(f"{API}/register", json=body)


def _login(client, identifier="alice", password="secret123", **extra):
    return client.post(f"{API}/login", json={"identifier": identifier, "password": password, **extra})


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _reset_token(message):
    return message["url"].split("token=", 1)[1]


def test_register_returns_tokens_and_profile(client):
    response = _register(client)

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "User registered successfully"
    assert body["accessToken"] and body["refreshToken"]
    assert body["tokenType"] == "bearer"
    assert body["expiresIn"] == 15 * 60
    assert body["user"]["username"] == "alice"
    assert body["user"]["role"] == "user"
    assert "passwordHash" not in body["user"]


def test_register_validation_errors_are_400(client):
    response = _register(client, username="a!", email="not-an-email", password="123")

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "validation"
    fields = {error["field"] for error in body["details"]["errors"]}
    assert {"body.username", "body.email", "body.password"} <= fields


def test_register_cannot_choose_admin_role(client):
    assert _register(client, role="admin").status_code == 400


def test_duplicate_registration_reports_username_first(client):
    _register(client, "alice", "alice@x.com")
    _register(client, "bob", "bob@x.com")

    response = _register(client, "alice", "bob@x.com")
    assert response.status_code == 409
    assert response.json()["message"] == "Username already taken"
    assert response.json()["error"] == "conflict"

    response = _register(client, "carol", "bob@x.com")
    assert response.status_code == 409
    assert response.json()["message"] == "Email already registered"


def test_login_by_email_any_case_and_by_username(client):
    _register(client, "alice", "alice@x.com")

    by_email = _login(client, "ALICE@X.COM")
    assert by_email.status_code == 200
    assert by_email.json()["message"] == "Login successful"
    assert _login(client, "alice").status_code == 200


def test_login_failure_messages(client):
    _register(client)

    unknown = _login(client, "nobody")
    wrong = _login(client, "alice", "wrong-pass")
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json()["message"] == "Invalid credentials or account is inactive"
    assert wrong.json()["message"] == "Invalid credentials"


def test_refresh_rotation_round_trip(client):
    t0 = _register(client).json()["refreshToken"]

    rotated = client.post(f"{API}/refresh", json={"refreshToken": t0})
    assert rotated.status_code == 200
    assert rotated.json()["message"] == "Token refreshed successfully"
    t1 = rotated.json()["refreshToken"]

    replay = client.post(f"{API}/refresh", json={"refreshToken": t0})
    assert replay.status_code == 401
    assert replay.json()["message"] == "Invalid or expired refresh token"

    assert client.post(f"{API}/refresh", json={"refreshToken": t1}).status_code == 200


def test_refresh_requires_token(client):
    response = client.post(f"{API}/refresh", json={"refreshToken": ""})
    assert response.status_code == 400
    assert client.post(f"{API}/refresh", json={}).status_code == 400


def test_single_active_reset_token(client, email_outbox):
    _register(client)

    client.post(f"{API}/forgot-password", json={"email": "alice@x.com"})
    client.post(f"{API}/forgot-password", json={"email": "alice@x.com"})
    first, second = (_reset_token(message) for message in email_outbox)

    stale = client.post(f"{API}/reset-password", json={"token": first, "newPassword": "newpass123"})
    assert stale.status_code == 400
    assert stale.json()["message"] == "Invalid or expired password reset token"

    fresh = client.post(f"{API}/reset-password", json={"token": second, "newPassword": "newpass123"})
    assert fresh.status_code == 200
    assert fresh.json()["message"] == "Password reset successfully"
    assert _login(client, "alice", "newpass123").status_code == 200


def test_password_reset_revokes_all_sessions(client, email_outbox):
    _register(client)
    r1 = _login(client).json()["refreshToken"]
    r2 = _login(client).json()["refreshToken"]

    client.post(f"{API}/forgot-password", json={"email": "alice@x.com"})
    token = _reset_token(email_outbox[-1])
    assert client.post(f"{API}/reset-password", json={"token": token, "newPassword": "newpass123"}).status_code == 200

    for refresh_token in (r1, r2):
        assert client.post(f"{API}/refresh", json={"refreshToken": refresh_token}).status_code == 401


def test_forgot_password_does_not_reveal_accounts(client, email_outbox):
    _register(client)

    known = client.post(f"{API}/forgot-password", json={"email": "alice@x.com"})
    unknown = client.post(f"{API}/forgot-password", json={"email": "ghost@x.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json() == {"message": "Password reset instructions sent to your email"}
    assert len(email_outbox) == 1


def test_forgot_password_succeeds_when_email_delivery_fails(client, email_service):
    _register(client)
    email_service.fail = True

    response = client.post(f"{API}/forgot-password", json={"email": "alice@x.com"})
    assert response.status_code == 200


def test_forgot_password_rejects_malformed_email(client):
    assert client.post(f"{API}/forgot-password", json={"email": "nope"}).status_code == 400


def test_reset_password_missing_token(client):
    response = client.post(f"{API}/reset-password", json={"token": "", "newPassword": "newpass123"})
    assert response.status_code == 400


def test_sessions_listing_and_revocation(client, make_user):
    make_user("alice", "alice@x.com")
    logins = [_login(client, device_info=device).json() for device in ("laptop", "phone", "tablet")]
    headers = _bearer(logins[-1]["accessToken"])

    listed = client.get(f"{API}/sessions", headers=headers)
    assert listed.status_code == 200
    assert listed.json()["message"] == "User sessions retrieved successfully"
    sessions = listed.json()["sessions"]
    assert [s["deviceInfo"] for s in sessions] == ["tablet", "phone", "laptop"]

    phone_id = sessions[1]["tokenId"]
    revoked = client.delete(f"{API}/sessions/{phone_id}", headers=headers)
    assert revoked.json() == {"success": True, "message": "Session revoked successfully"}

    assert len(client.get(f"{API}/sessions", headers=headers).json()["sessions"]) == 2
    phone_refresh = logins[1]["refreshToken"]
    assert client.post(f"{API}/refresh", json={"refreshToken": phone_refresh}).status_code == 401

    missing = client.delete(f"{API}/sessions/{phone_id}", headers=headers)
    assert missing.status_code == 200
    assert missing.json() == {"success": False, "message": "Session not found"}


def test_device_info_falls_back_to_user_agent(client, make_user):
    make_user("alice", "alice@x.com")
    login = client.post(
        f"{API}/login",
        json={"identifier": "alice", "password": "secret123"},
        headers={"User-Agent": "Agent/" + "x" * 300},
    ).json()

    sessions = client.get(f"{API}/sessions", headers=_bearer(login["accessToken"])).json()["sessions"]
    assert sessions[0]["deviceInfo"].startswith("Agent/")
    assert len(sessions[0]["deviceInfo"]) == 255


def test_logout_is_idempotent(client):
    registered = _register(client).json()
    headers = _bearer(registered["accessToken"])
    body = {"refreshToken": registered["refreshToken"]}

    first = client.post(f"{API}/logout", json=body, headers=headers)
    second = client.post(f"{API}/logout", json=body, headers=headers)

    assert first.status_code == second.status_code == 200
    assert first.json() == second.json() == {"message": "Logged out successfully"}
    assert client.post(f"{API}/refresh", json=body).status_code == 401


def test_logout_with_header_token_and_without_body(client):
    registered = _register(client).json()
    headers = _bearer(registered["accessToken"])

    response = client.post(
        f"{API}/logout",
        headers={**headers, "X-Refresh-Token": registered["refreshToken"]},
    )
    assert response.status_code == 200
    assert client.post(f"{API}/refresh", json={"refreshToken": registered["refreshToken"]}).status_code == 401


def test_logout_all_devices(client):
    registered = _register(client).json()
    other = _login(client).json()

    response = client.post(
        f"{API}/logout",
        json={"logoutAllDevices": True},
        headers=_bearer(registered["accessToken"]),
    )
    assert response.json()["message"] == "Logged out from all devices successfully"
    assert client.post(f"{API}/refresh", json={"refreshToken": other["refreshToken"]}).status_code == 401


def test_logout_requires_access_token(client):
    response = client.post(f"{API}/logout", json={})
    assert response.status_code == 401
    assert response.json()["message"] == "Access token is required. Please login to continue"


def test_token_types_are_not_interchangeable(client):
    registered = _register(client).json()

    as_bearer = client.get(f"{API}/sessions", headers=_bearer(registered["refreshToken"]))
    assert as_bearer.status_code == 401
    assert as_bearer.json()["error"] == "authentication"

    as_refresh = client.post(f"{API}/refresh", json={"refreshToken": registered["accessToken"]})
    assert as_refresh.status_code == 401


def test_update_password(client):
    registered = _register(client).json()
    headers = _bearer(registered["accessToken"])

    wrong = client.patch(
        f"{API}/update-password",
        json={"currentPassword": "nope", "newPassword": "newpass123"},
        headers=headers,
    )
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Current password is incorrect"

    ok = client.patch(
        f"{API}/update-password",
        json={"currentPassword": "secret123", "newPassword": "newpass123"},
        headers=headers,
    )
    assert ok.status_code == 200
    assert ok.json()["message"] == "Password updated successfully"
    assert _login(client, "alice", "newpass123").status_code == 200
    # Existing sessions survive a password change
    assert client.post(f"{API}/refresh", json={"refreshToken": registered["refreshToken"]}).status_code == 200


def test_error_body_shape(client):
    response = _login(client, "nobody")
    body = response.json()

    assert body["success"] is False
    assert body["status"] == 401
    assert body["path"] == f"{API}/login"
    assert body["timestamp"]
    assert "stack" not in body
    assert response.headers["X-Request-ID"]


def test_refresh_store_failure_is_500_and_keeps_session(client, monkeypatch):
    registered = _register(client).json()

    def store_fails(*args, **kwargs):
        raise OperationalError("INSERT INTO refresh_tokens", {}, Exception("connection reset"))

    monkeypatch.setattr(auth_module.refresh_token_service, "store_refresh_token", store_fails)
    response = client.post(f"{API}/refresh", json={"refreshToken": registered["refreshToken"]})

    assert response.status_code == 500
    assert response.json()["error"] == "internal"

    monkeypatch.undo()
    retry = client.post(f"{API}/refresh", json={"refreshToken": registered["refreshToken"]})
    assert retry.status_code == 200
