from datetime import datetime, timedelta

from app.blitz.db import session_scope
from app.blitz.models import AuditEvent, User


def _register(client, **overrides):
    payload = {"email": "new@example.com", "password": "password123", "name": "New Person"}
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def test_register_creates_unverified_creator(client, app):
    r = _register(client)
    assert r.status_code == 201
    user = r.json["user"]
    assert user["email"] == "new@example.com"
    assert user["role"] == "CREATOR"
    assert user["isVerified"] is False

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "new@example.com").one()
        assert u.verification_token
        assert u.verification_token_expiry > datetime.utcnow()
        assert u.password_hash != "password123"
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.register").count() == 1


def test_register_business_alias_maps_to_sponsor(client):
    r = _register(client, role="business")
    assert r.status_code == 201
    assert r.json["user"]["role"] == "SPONSOR"


def test_register_validation(client):
    assert _register(client, email="").status_code == 400
    assert _register(client, email="not-an-email").status_code == 400
    r = _register(client, password="short")
    assert r.status_code == 400
    assert "8 characters" in r.json["error"]


def test_register_duplicate_email(client):
    assert _register(client).status_code == 201
    r = _register(client, email="NEW@example.com")
    assert r.status_code == 400
    assert r.json["error"] == "User already exists"


def test_login_me_logout(client, make_user):
    make_user("casey@example.com")
    r = client.get("/api/auth/me")
    assert r.status_code == 401

    r = client.post("/api/auth/login", json={"email": "casey@example.com", "password": "password123"})
    assert r.status_code == 200
    assert r.json["user"]["email"] == "casey@example.com"

    r = client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json["email"] == "casey@example.com"

    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/me").status_code == 401


def test_login_bad_password_is_audited(client, app, make_user):
    make_user("casey@example.com")
    r = client.post("/api/auth/login", json={"email": "casey@example.com", "password": "wrong-password"})
    assert r.status_code == 401
    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").count() == 1


def test_login_rate_limited(client, make_user):
    make_user("casey@example.com")
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": "casey@example.com", "password": "nope-nope"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": "casey@example.com", "password": "password123"})
    assert r.status_code == 429


def test_login_requires_verification_when_enabled(client, app):
    assert _register(client).status_code == 201
    app.config["REQUIRE_EMAIL_VERIFICATION"] = True
    r = client.post("/api/auth/login", json={"email": "new@example.com", "password": "password123"})
    assert r.status_code == 403


def test_verify_email_flow(client, app):
    assert _register(client).status_code == 201
    with session_scope(app) as s:
        token = s.query(User).filter(User.email == "new@example.com").one().verification_token

    assert client.post("/api/auth/verify-email", json={"token": "bogus"}).status_code == 400
    r = client.post("/api/auth/verify-email", json={"token": token})
    assert r.status_code == 200

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "new@example.com").one()
        assert u.is_verified is True
        assert u.verification_token is None

    # Tokens are single use
    assert client.post("/api/auth/verify-email", json={"token": token}).status_code == 400


def test_verify_email_expired_token(client, app):
    assert _register(client).status_code == 201
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "new@example.com").one()
        u.verification_token_expiry = datetime.utcnow() - timedelta(minutes=1)
        token = u.verification_token
    assert client.post("/api/auth/verify-email", json={"token": token}).status_code == 400


def test_forgot_and_reset_password(client, app, make_user):
    make_user("casey@example.com")

    # Unknown accounts get the same answer
    r = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert r.status_code == 200
    r = client.post("/api/auth/forgot-password", json={"email": "casey@example.com"})
    assert r.status_code == 200

    with session_scope(app) as s:
        token = s.query(User).filter(User.email == "casey@example.com").one().reset_token
    assert token

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert r.status_code == 200

    r = client.post("/api/auth/login", json={"email": "casey@example.com", "password": "password123"})
    assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": "casey@example.com", "password": "brand-new-pass"})
    assert r.status_code == 200


def test_csrf_enforced_when_enabled(app, make_user, login_as):
    make_user("casey@example.com")
    c = login_as("casey@example.com")
    app.config["CSRF_ENABLED"] = True

    r = c.put("/api/profile", json={"bio": "hello"})
    assert r.status_code == 400

    token = c.get("/api/auth/csrf").json["csrfToken"]
    r = c.put("/api/profile", json={"bio": "hello"}, headers={"X-CSRF-Token": token})
    assert r.status_code == 200
