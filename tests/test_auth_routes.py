from shopguard.models.user import User

from conftest import create_user, session_headers, token_for


def _register_payload(clock, email: str = "jane@example.com", **overrides) -> dict:
    payload = {
        "name": "Jane Shopper",
        "email": email,
        "password": "password123",
        "honeypot": "",
        "ts": clock.now - 5_000,
    }
    payload.update(overrides)
    return payload


def test_register_sets_session_cookie_and_me_returns_user(test_context, clock):
    client, _ = test_context

    res = client.post("/api/auth/register", json=_register_payload(clock, email="Jane@Example.com"))

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success"] is True
    assert body["user"]["email"] == "jane@example.com"
    assert body["user"]["role"] == "user"
    assert body["user"]["isAdmin"] is False
    assert "auth-token" in res.cookies
    assert "httponly" in res.headers["set-cookie"].lower()

    me = client.get("/api/auth/me")
    assert me.status_code == 200, me.text
    assert me.json()["id"] == body["user"]["id"]


def test_register_rejects_duplicate_email(test_context, clock):
    client, _ = test_context
    first = client.post("/api/auth/register", json=_register_payload(clock), headers={"X-Forwarded-For": "198.51.100.1"})
    assert first.status_code == 200, first.text

    dup = client.post(
        "/api/auth/register",
        json=_register_payload(clock, email="JANE@example.com"),
        headers={"X-Forwarded-For": "198.51.100.2"},
    )

    assert dup.status_code == 409
    assert dup.json()["error"]["message"] == "User with this email already exists"


def test_register_rejects_filled_honeypot(test_context, clock):
    client, _ = test_context

    res = client.post("/api/auth/register", json=_register_payload(clock, honeypot="http://spam.example"))

    assert res.status_code == 400
    assert res.json()["error"]["message"] == "Bot detected"


def test_register_rejects_form_submitted_too_quickly(test_context, clock):
    client, _ = test_context

    too_fast = client.post(
        "/api/auth/register",
        json=_register_payload(clock, ts=clock.now - 1_000),
        headers={"X-Forwarded-For": "198.51.100.3"},
    )
    assert too_fast.status_code == 400
    assert too_fast.json()["error"]["message"] == "Form submitted too quickly"


def test_register_validates_password_length(test_context, clock):
    client, _ = test_context

    res = client.post("/api/auth/register", json=_register_payload(clock, password="12345"))

    assert res.status_code == 422
    assert res.json()["error"]["code"] == "validation_error"


def test_register_is_rate_limited_per_identity(test_context, clock):
    client, _ = test_context
    headers = {"X-Forwarded-For": "203.0.113.40"}

    for index in range(3):
        res = client.post(
            "/api/auth/register",
            json=_register_payload(clock, email=f"user{index}@example.com"),
            headers=headers,
        )
        assert res.status_code == 200, res.text

    blocked = client.post(
        "/api/auth/register",
        json=_register_payload(clock, email="user3@example.com"),
        headers=headers,
    )

    assert blocked.status_code == 429, blocked.text
    body = blocked.json()
    assert body["error"]["code"] == "rate_limited"
    assert body["retryAfter"] == 3600
    assert blocked.headers["X-RateLimit-Limit"] == "3"
    assert blocked.headers["X-RateLimit-Remaining"] == "0"
    assert blocked.headers["Retry-After"] == "3600"

    other = client.post(
        "/api/auth/register",
        json=_register_payload(clock, email="user4@example.com"),
        headers={"X-Forwarded-For": "203.0.113.41"},
    )
    assert other.status_code == 200, other.text


def test_login_with_valid_and_invalid_credentials(test_context, clock):
    client, _ = test_context
    client.post("/api/auth/register", json=_register_payload(clock))
    client.cookies.clear()

    bad = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "wrong-password"})
    assert bad.status_code == 401
    assert bad.json()["error"]["code"] == "invalid_credentials"

    good = client.post("/api/auth/login", json={"email": "JANE@example.com", "password": "password123"})
    assert good.status_code == 200, good.text
    assert good.json()["user"]["email"] == "jane@example.com"
    assert client.get("/api/auth/me").status_code == 200


def test_login_rate_limited_after_repeated_attempts(test_context, clock):
    client, _ = test_context
    headers = {"X-Forwarded-For": "203.0.113.50"}

    for _ in range(5):
        res = client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": "wrong-password"},
            headers=headers,
        )
        assert res.status_code == 401

    blocked = client.post(
        "/api/auth/login",
        json={"email": "nobody@example.com", "password": "wrong-password"},
        headers=headers,
    )
    assert blocked.status_code == 429, blocked.text
    assert blocked.headers["Retry-After"] == "900"

    clock.advance(15 * 60 * 1000)
    after = client.post(
        "/api/auth/login",
        json={"email": "nobody@example.com", "password": "wrong-password"},
        headers=headers,
    )
    assert after.status_code == 401


def test_logout_clears_session_cookie(test_context, clock):
    client, _ = test_context
    client.post("/api/auth/register", json=_register_payload(clock))
    assert client.get("/api/auth/me").status_code == 200

    res = client.post("/api/auth/logout")

    assert res.status_code == 200
    assert res.json() == {"success": True}
    me = client.get("/api/auth/me")
    assert me.status_code == 401
    assert me.json()["error"]["code"] == "no_token"


def test_me_rejects_bad_or_orphaned_tokens(test_context):
    client, session_local = test_context

    invalid = client.get("/api/auth/me", headers=session_headers("garbage"))
    assert invalid.status_code == 401
    assert invalid.json()["error"]["code"] == "invalid_token"

    user = create_user(session_local, email="ghost@example.com")
    token = token_for(user)
    db = session_local()
    try:
        db.query(User).filter_by(id=user.id).delete()
        db.commit()
    finally:
        db.close()

    orphaned = client.get("/api/auth/me", headers=session_headers(token))
    assert orphaned.status_code == 404
    assert orphaned.json()["error"]["code"] == "user_not_found"


def test_registered_shopper_cannot_reach_admin_routes(test_context, clock):
    client, _ = test_context
    client.post("/api/auth/register", json=_register_payload(clock), headers={"X-Forwarded-For": "198.51.100.77"})

    res = client.get("/api/admin/banned-ips", headers={"X-Forwarded-For": "198.51.100.77"})

    assert res.status_code == 403
    assert res.json()["error"]["code"] == "access_denied"
    assert res.json()["shouldBan"] is True
