def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_plain_text(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_index_points_at_api(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json["api"] == "/api"


def test_unknown_route_returns_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert "error" in r.json


def test_login_and_admin_access(client, make_user):
    make_user("admin@example.com", "ADMIN")

    # Anonymous is unauthorized
    r = client.get("/api/admin/")
    assert r.status_code == 401

    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "password123"})
    assert r.status_code == 200

    r = client.get("/api/admin/")
    assert r.status_code == 200
    assert r.json["db_connected"] is True
