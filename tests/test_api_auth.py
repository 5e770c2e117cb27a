"""
tests/test_api_auth.py -- HTTP integration tests for /api/v1/auth/*.

Covers:
  - register -> confirm -> login end to end, cookie and Bearer sessions
  - unconfirmed login is 401 `unconfirmed` and mails a fresh code
  - error envelope and status mapping for every account outcome
  - reset flow over HTTP (validate twice, update once)
  - authenticated account endpoints (me, profile, change/check password)

All tests in this module share one TestClient and one pair of in-memory
databases, so every test registers its own email address. The client keeps
cookies between requests; tests that log in clear them afterwards.
"""

from __future__ import annotations

import pytest

PASSWORD = "secret123"


def _register(client, email: str, name: str = "Tester", password: str = PASSWORD):
    return client.post(
        "/api/v1/auth/register",
        json={"email": email, "name": name, "password": password, "password_confirmation": password},
    )


def _confirmed_account(api_client, email: str) -> None:
    assert _register(api_client.client, email).status_code == 201
    code = api_client.sink.last("confirmation", email)
    assert api_client.client.post("/api/v1/auth/confirm", json={"token": code}).status_code == 200


def _login(client, email: str, password: str = PASSWORD):
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    client.cookies.clear()
    return resp


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def _fresh_cookies(api_client):
    api_client.client.cookies.clear()
    api_client.sink.fail = False
    yield
    api_client.client.cookies.clear()


# ---------------------------------------------------------------------------
# Registration, confirmation, login
# ---------------------------------------------------------------------------


def test_register_confirm_login_flow(api_client):
    client, sink = api_client.client, api_client.sink

    resp = _register(client, "flow@example.com")
    assert resp.status_code == 201
    assert "confirm" in resp.json()["message"]

    bad = client.post("/api/v1/auth/confirm", json={"token": "not-a-real-code"})
    assert bad.status_code == 404
    assert bad.json()["error"]["code"] == "invalid_token"

    code = sink.last("confirmation", "flow@example.com")
    assert client.post("/api/v1/auth/confirm", json={"token": code}).status_code == 200

    resp = _login(client, "flow@example.com")
    assert resp.status_code == 200
    data = resp.json()
    assert data["token_type"] == "bearer"
    assert data["expires_in"] == 4 * 3600
    assert resp.headers["cache-control"] == "no-store"

    me = client.get("/api/v1/auth/me", headers=_bearer(data["access_token"]))
    assert me.status_code == 200
    assert me.json()["email"] == "flow@example.com"
    assert "hashed_password" not in me.json()


def test_login_sets_http_only_cookie(api_client):
    client = api_client.client
    _confirmed_account(api_client, "cookie@example.com")

    resp = client.post("/api/v1/auth/login", json={"email": "cookie@example.com", "password": PASSWORD})
    assert resp.status_code == 200
    set_cookie = resp.headers["set-cookie"]
    assert "access_token=" in set_cookie
    assert "HttpOnly" in set_cookie

    # The cookie alone authenticates.
    assert client.get("/api/v1/auth/me").json()["email"] == "cookie@example.com"

    client.post("/api/v1/auth/logout")
    assert client.get("/api/v1/auth/me").status_code == 401


def test_register_duplicate_email_conflicts(api_client):
    assert _register(api_client.client, "dup@example.com").status_code == 201
    resp = _register(api_client.client, "DUP@example.com")
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "conflict"


def test_register_validation_errors(api_client):
    client = api_client.client
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": "v@example.com", "name": "V", "password": PASSWORD, "password_confirmation": "different1"},
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"

    resp = _register(client, "not-an-email")
    assert resp.status_code == 422

    resp = _register(client, "short@example.com", password="short")
    assert resp.status_code == 422


def test_unconfirmed_login_is_refused_and_mails_new_code(api_client):
    client, sink = api_client.client, api_client.sink
    _register(client, "pending@example.com")
    before = len(sink.sent)

    for password in (PASSWORD, "wrong-password"):
        resp = _login(client, "pending@example.com", password)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unconfirmed"
        assert "access_token" not in resp.json()
        assert "set-cookie" not in resp.headers

    assert len(sink.sent) == before + 2


def test_register_succeeds_when_mail_fails(api_client):
    api_client.sink.fail = True
    assert _register(api_client.client, "nomail@example.com").status_code == 201
    assert api_client.account_store.get_by_email("nomail@example.com") is not None


def test_login_unknown_email(api_client):
    resp = _login(api_client.client, "ghost@example.com")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_login_wrong_password(api_client):
    _confirmed_account(api_client, "wrongpw@example.com")
    resp = _login(api_client.client, "wrongpw@example.com", "not-the-password")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "bad_credentials"


# ---------------------------------------------------------------------------
# Re-confirmation
# ---------------------------------------------------------------------------


def test_request_code(api_client):
    client, sink = api_client.client, api_client.sink
    _register(client, "again@example.com")
    resp = client.post("/api/v1/auth/request-code", json={"email": "again@example.com"})
    assert resp.status_code == 200
    code = sink.last("confirmation", "again@example.com")
    assert client.post("/api/v1/auth/confirm", json={"token": code}).status_code == 200


def test_request_code_unknown_email(api_client):
    resp = api_client.client.post("/api/v1/auth/request-code", json={"email": "ghost2@example.com"})
    assert resp.status_code == 404


def test_request_code_already_confirmed(api_client):
    _confirmed_account(api_client, "done@example.com")
    resp = api_client.client.post("/api/v1/auth/request-code", json={"email": "done@example.com"})
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "already_confirmed"


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


def test_password_reset_flow(api_client):
    client, sink = api_client.client, api_client.sink
    _confirmed_account(api_client, "reset@example.com")

    assert client.post("/api/v1/auth/forgot-password", json={"email": "reset@example.com"}).status_code == 200
    code = sink.last("password_reset", "reset@example.com")

    for _ in range(2):
        assert client.post("/api/v1/auth/validate-token", json={"token": code}).status_code == 200

    new = {"password": "brand-new-pw", "password_confirmation": "brand-new-pw"}
    assert client.post(f"/api/v1/auth/update-password/{code}", json=new).status_code == 200

    reused = client.post(f"/api/v1/auth/update-password/{code}", json=new)
    assert reused.status_code == 404
    assert reused.json()["error"]["code"] == "invalid_token"

    assert _login(client, "reset@example.com", "brand-new-pw").status_code == 200
    assert _login(client, "reset@example.com", PASSWORD).status_code == 401


def test_forgot_password_unknown_email(api_client):
    resp = api_client.client.post("/api/v1/auth/forgot-password", json={"email": "ghost3@example.com"})
    assert resp.status_code == 404


def test_validate_token_rejects_unknown_code(api_client):
    resp = api_client.client.post("/api/v1/auth/validate-token", json={"token": "0" * 40})
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Authenticated account endpoints
# ---------------------------------------------------------------------------


def test_account_endpoints_require_auth(api_client):
    client = api_client.client
    assert client.get("/api/v1/auth/me").status_code == 401
    resp = client.post("/api/v1/auth/check-password", json={"password": PASSWORD})
    assert resp.status_code == 401
    assert resp.json() == {"error": {"code": "unauthorized", "message": "Authentication required."}}


def test_invalid_bearer_token_is_rejected(api_client):
    resp = api_client.client.get("/api/v1/auth/me", headers=_bearer("garbage.token.value"))
    assert resp.status_code == 401


def test_change_and_check_password(api_client):
    client = api_client.client
    _confirmed_account(api_client, "change@example.com")
    headers = _bearer(_login(client, "change@example.com").json()["access_token"])

    assert client.post("/api/v1/auth/check-password", json={"password": PASSWORD}, headers=headers).status_code == 200
    wrong = client.post("/api/v1/auth/check-password", json={"password": "nope-nope"}, headers=headers)
    assert wrong.status_code == 401

    body = {"current_password": "nope-nope", "password": "another-pw", "password_confirmation": "another-pw"}
    assert client.post("/api/v1/auth/change-password", json=body, headers=headers).status_code == 401

    body["current_password"] = PASSWORD
    assert client.post("/api/v1/auth/change-password", json=body, headers=headers).status_code == 200
    assert _login(client, "change@example.com", "another-pw").status_code == 200


def test_update_profile(api_client):
    client = api_client.client
    _confirmed_account(api_client, "profile@example.com")
    _confirmed_account(api_client, "taken@example.com")
    headers = _bearer(_login(client, "profile@example.com").json()["access_token"])

    resp = client.put("/api/v1/auth/profile", json={"name": "Renamed", "email": "Profile2@example.com"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["name"] == "Renamed"
    assert resp.json()["email"] == "profile2@example.com"

    clash = client.put("/api/v1/auth/profile", json={"name": "X", "email": "taken@example.com"}, headers=headers)
    assert clash.status_code == 409


# ---------------------------------------------------------------------------
# bcrypt byte limit
# ---------------------------------------------------------------------------

# 66 characters but 102 bytes: bcrypt would only see the 36 accented letters.
MULTIBYTE_PASSWORD = "é" * 36 + "A" * 30


def test_register_rejects_password_over_72_bytes(api_client):
    resp = _register(api_client.client, "bytes@example.com", password=MULTIBYTE_PASSWORD)
    assert resp.status_code == 422
    assert api_client.account_store.get_by_email("bytes@example.com") is None


def test_register_accepts_password_of_exactly_72_bytes(api_client):
    assert _register(api_client.client, "bytes72@example.com", password="é" * 36).status_code == 201


def test_reset_rejects_password_over_72_bytes(api_client):
    client, sink = api_client.client, api_client.sink
    _confirmed_account(api_client, "bytes-reset@example.com")
    client.post("/api/v1/auth/forgot-password", json={"email": "bytes-reset@example.com"})
    code = sink.last("password_reset", "bytes-reset@example.com")

    body = {"password": MULTIBYTE_PASSWORD, "password_confirmation": MULTIBYTE_PASSWORD}
    assert client.post(f"/api/v1/auth/update-password/{code}", json=body).status_code == 422
    # The code was not spent by the rejected request.
    assert client.post("/api/v1/auth/validate-token", json={"token": code}).status_code == 200


def test_login_with_overlong_password_is_rejected(api_client):
    _confirmed_account(api_client, "bytes-login@example.com")
    resp = _login(api_client.client, "bytes-login@example.com", MULTIBYTE_PASSWORD)
    assert resp.status_code == 422
