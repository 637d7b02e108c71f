from datetime import datetime

import pytest
from werkzeug.security import generate_password_hash

from app.blitz import create_app
from app.blitz import auth as auth_module
from app.blitz.constants import ROLE_ADMIN, ROLE_CREATOR, ROLE_SPONSOR
from app.blitz.db import session_scope
from app.blitz.models import Base, User

PASSWORD = "password123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path / "storage"))
    for k in (
        "S3_ENDPOINT",
        "S3_REGION",
        "S3_BUCKET",
        "S3_ACCESS_KEY_ID",
        "S3_SECRET_ACCESS_KEY",
        "SMTP_SERVER",
        "EMAIL_FROM",
        "REQUIRE_EMAIL_VERIFICATION",
        "CSRF_ENABLED",
    ):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    auth_module._login_attempts.clear()
    yield app
    auth_module._login_attempts.clear()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    """Insert a user directly and return its id."""

    def _make(email, role=ROLE_CREATOR, **fields):
        now = datetime.utcnow()
        with session_scope(app) as s:
            u = User(
                email=email,
                password_hash=generate_password_hash(PASSWORD),
                role=role,
                is_active=True,
                is_verified=True,
                created_at=now,
                updated_at=now,
                **fields,
            )
            s.add(u)
            s.flush()
            return u.id

    return _make


@pytest.fixture()
def login_as(app):
    """Return a fresh test client logged in as `email`."""

    def _login(email, password=PASSWORD):
        c = app.test_client()
        r = c.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.get_json()
        return c

    return _login


@pytest.fixture()
def creator(make_user, login_as):
    uid = make_user("creator@example.com", ROLE_CREATOR, name="Casey Creator")
    return uid, login_as("creator@example.com")


@pytest.fixture()
def sponsor(make_user, login_as):
    uid = make_user("sponsor@example.com", ROLE_SPONSOR, name="Sam Sponsor", industry="Beverages")
    return uid, login_as("sponsor@example.com")


@pytest.fixture()
def admin(make_user, login_as):
    uid = make_user("admin@example.com", ROLE_ADMIN, name="Admin")
    return uid, login_as("admin@example.com")


@pytest.fixture()
def post_listing():
    """POST a listing through `client` and return the created JSON."""

    def _post(client, **overrides):
        payload = {
            "title": "Summer festival sponsorship",
            "description": "Looking for a drinks partner for our festival",
            "type": "SPONSORSHIP",
            "budget": 1500,
            "categories": ["Music", "Food & Drink"],
            "requirements": ["Min 1,000 followers"],
            "audienceProfile": "young adults",
            "location": "Austin",
        }
        payload.update(overrides)
        r = client.post("/api/listings", json=payload)
        assert r.status_code == 201, r.get_json()
        return r.get_json()

    return _post
