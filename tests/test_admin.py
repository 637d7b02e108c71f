import smtplib

from app.blitz import mailer


class FakeSMTP:
    sent: list = []

    def __init__(self, host, port=None):
        self.host = host
        self.port = port

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)

    def quit(self):
        pass


def _configure_smtp(app, monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    app.config["SMTP_SERVER"] = "smtp.example.com"
    app.config["SMTP_PORT"] = "587"
    app.config["EMAIL_FROM"] = "noreply@example.com"


def test_admin_status_counts(admin, creator, sponsor, post_listing):
    _, admin_client = admin
    _, sponsor_client = sponsor
    post_listing(sponsor_client)

    r = admin_client.get("/api/admin/")
    assert r.status_code == 200
    assert r.json["storage_backend"] == "local"
    assert r.json["email_configured"] is False
    counts = r.json["counts"]
    assert counts["users"] == 3
    assert counts["users_by_role"] == {"ADMIN": 1, "CREATOR": 1, "SPONSOR": 1}
    assert counts["listings"] == 1


def test_admin_routes_forbidden_for_others(creator):
    _, c = creator
    assert c.get("/api/admin/").status_code == 403
    assert c.get("/api/admin/audit-events").status_code == 403
    assert c.post("/api/email/send", json={"to": "a@b.c", "subject": "s", "text": "t"}).status_code == 403


def test_audit_events_filters(admin, creator, sponsor, post_listing):
    _, admin_client = admin
    _, sponsor_client = sponsor
    post_listing(sponsor_client)

    r = admin_client.get("/api/admin/audit-events?action=listing.")
    assert r.status_code == 200
    assert [e["action"] for e in r.json] == ["listing.create"]
    assert r.json[0]["actorUserEmail"] == "sponsor@example.com"
    assert r.json[0]["metadata"]["type"] == "SPONSORSHIP"

    r = admin_client.get("/api/admin/audit-events?actor_email=SPONSOR&limit=1")
    assert len(r.json) == 1

    assert admin_client.get("/api/admin/audit-events?date_from=yesterday").status_code == 400


def test_email_send_unconfigured(admin):
    _, c = admin
    assert c.post("/api/email/send", json={"to": "a@example.com"}).status_code == 400
    r = c.post("/api/email/send", json={"to": "a@example.com", "subject": "Hi", "text": "Hello"})
    assert r.status_code == 503


def test_email_send(app, admin, monkeypatch):
    _, c = admin
    _configure_smtp(app, monkeypatch)
    r = c.post("/api/email/send", json={"to": "a@example.com", "subject": "Hi", "html": "<p>Hello</p>"})
    assert r.status_code == 200
    assert len(FakeSMTP.sent) == 1
    assert FakeSMTP.sent[0]["To"] == "a@example.com"


def test_registration_sends_verification_link(app, client, monkeypatch):
    _configure_smtp(app, monkeypatch)
    r = client.post("/api/auth/register", json={"email": "new@example.com", "password": "password123"})
    assert r.status_code == 201
    assert len(FakeSMTP.sent) == 1
    body = FakeSMTP.sent[0].get_payload()[0].get_payload()
    assert "/verify-email?token=" in body


def test_send_email_reports_smtp_failure(monkeypatch):
    class BrokenSMTP(FakeSMTP):
        def send_message(self, msg):
            raise smtplib.SMTPException("boom")

    monkeypatch.setattr(smtplib, "SMTP", BrokenSMTP)
    config = {"SMTP_SERVER": "smtp.example.com", "EMAIL_FROM": "noreply@example.com"}
    ok, detail = mailer.send_email(config, "a@example.com", "Subject", "Body")
    assert ok is False
    assert "boom" in detail
