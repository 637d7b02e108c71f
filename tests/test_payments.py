from decimal import Decimal

import pytest

from app.blitz.db import session_scope
from app.blitz.models import AuditEvent
from app.blitz.modules.payments.processor import MockPaymentProcessor
from app.blitz.modules.payments.service import PaymentError, calculate_fees, page_args, parse_amount


def test_calculate_fees_rounds_each_fee_half_up():
    fees = calculate_fees(Decimal("100"), platform_rate="0.02", processing_rate="0.03")
    assert (fees.amount, fees.platform_fee, fees.processing_fee, fees.total) == (
        Decimal("100.00"),
        Decimal("2.00"),
        Decimal("3.00"),
        Decimal("105.00"),
    )

    fees = calculate_fees(Decimal("0.50"), platform_rate="0.02", processing_rate="0.03")
    assert fees.platform_fee == Decimal("0.01")
    assert fees.processing_fee == Decimal("0.02")
    assert fees.total == Decimal("0.53")


def test_parse_amount():
    assert parse_amount("19.99") == Decimal("19.99")
    assert parse_amount("9999999999.99") == Decimal("9999999999.99")
    for bad in (None, "abc", 0, -5, "0.001", "1e10", "1e30"):
        with pytest.raises(PaymentError):
            parse_amount(bad)


def test_page_args_clamps():
    assert page_args(None, None) == (1, 10)
    assert page_args("0", "500") == (1, 100)
    assert page_args("3", "-2") == (3, 1)


def test_mock_processor_intent():
    intent = MockPaymentProcessor().create_intent(amount_cents=10500, metadata={"paymentId": 1})
    assert intent.id.startswith("pi_mock_")
    assert intent.client_secret == f"{intent.id}_secret_mock"
    assert intent.amount == 10500
    assert intent.currency == "usd"
    with pytest.raises(ValueError):
        MockPaymentProcessor().create_intent(amount_cents=0, metadata={})


def _create(client, receiver_id, **overrides):
    payload = {"receiverId": receiver_id, "amount": 100, "description": "Festival deposit"}
    payload.update(overrides)
    return client.post("/api/payments", json=payload)


def test_create_payment_computes_fees(app, creator, sponsor):
    creator_id, _ = creator
    sponsor_id, sponsor_client = sponsor

    r = _create(sponsor_client, creator_id)
    assert r.status_code == 201
    p = r.json
    assert p["status"] == "PENDING"
    assert p["amount"] == 100.0
    assert p["platformFee"] == 2.0
    assert p["processingFee"] == 3.0
    assert p["total"] == 105.0
    assert p["senderId"] == sponsor_id
    assert p["receiverId"] == creator_id

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "payment.create").count() == 1


def test_create_payment_validation(creator, sponsor, post_listing):
    creator_id, _ = creator
    sponsor_id, sponsor_client = sponsor
    assert sponsor_client.post("/api/payments", json={"amount": 10}).status_code == 400
    assert _create(sponsor_client, creator_id, amount=0).status_code == 400
    r = _create(sponsor_client, creator_id, amount="1e30")
    assert r.status_code == 400
    assert r.json["error"] == "Amount is too large"
    assert _create(sponsor_client, 9999).status_code == 404
    assert _create(sponsor_client, creator_id, listingId=9999).status_code == 404
    assert _create(sponsor_client, sponsor_id).status_code == 400

    listing = post_listing(sponsor_client)
    r = _create(sponsor_client, creator_id, listingId=listing["id"])
    assert r.status_code == 201
    assert r.json["listingId"] == listing["id"]


def test_status_transitions(creator, sponsor):
    creator_id, creator_client = creator
    _, sponsor_client = sponsor
    pid = _create(sponsor_client, creator_id).json["id"]

    # Receiver can view but not change
    assert creator_client.get(f"/api/payments/{pid}").status_code == 200
    assert creator_client.patch(f"/api/payments/{pid}", json={"status": "COMPLETED"}).status_code == 403

    assert sponsor_client.patch(f"/api/payments/{pid}", json={"status": "BOGUS"}).status_code == 400
    assert sponsor_client.patch(f"/api/payments/{pid}", json={"status": "REFUNDED"}).status_code == 400

    r = sponsor_client.patch(f"/api/payments/{pid}", json={"status": "completed"})
    assert r.status_code == 200
    assert r.json["status"] == "COMPLETED"
    assert r.json["completedAt"] is not None

    assert sponsor_client.patch(f"/api/payments/{pid}", json={"status": "PENDING"}).status_code == 400
    r = sponsor_client.patch(f"/api/payments/{pid}", json={"status": "REFUNDED"})
    assert r.status_code == 200
    assert r.json["status"] == "REFUNDED"


def test_failed_payment_can_be_retried(creator, sponsor):
    creator_id, _ = creator
    _, sponsor_client = sponsor
    pid = _create(sponsor_client, creator_id).json["id"]
    assert sponsor_client.patch(f"/api/payments/{pid}", json={"status": "FAILED"}).status_code == 200
    assert sponsor_client.patch(f"/api/payments/{pid}", json={"status": "PENDING"}).status_code == 200


def test_payment_visible_to_parties_only(creator, sponsor, make_user, login_as):
    creator_id, _ = creator
    _, sponsor_client = sponsor
    make_user("nosy@example.com")
    nosy = login_as("nosy@example.com")
    pid = _create(sponsor_client, creator_id).json["id"]

    assert nosy.get(f"/api/payments/{pid}").status_code == 403
    assert nosy.get("/api/payments/9999").status_code == 404


def test_create_intent(creator, sponsor):
    creator_id, creator_client = creator
    _, sponsor_client = sponsor
    pid = _create(sponsor_client, creator_id, amount="10.01").json["id"]

    assert creator_client.post("/api/payments/create-intent", json={"paymentId": pid}).status_code == 403
    assert sponsor_client.post("/api/payments/create-intent", json={}).status_code == 400

    r = sponsor_client.post("/api/payments/create-intent", json={"paymentId": pid})
    assert r.status_code == 200
    assert r.json["amount"] == 10.51
    assert r.json["clientSecret"].endswith("_secret_mock")

    detail = sponsor_client.get(f"/api/payments/{pid}").json
    assert detail["paymentIntentId"] == r.json["paymentIntentId"]


def test_list_payments_direction_and_pagination(creator, sponsor):
    creator_id, creator_client = creator
    sponsor_id, sponsor_client = sponsor
    for amount in (10, 20, 30):
        _create(sponsor_client, creator_id, amount=amount)
    _create(creator_client, sponsor_id, amount=5)

    r = sponsor_client.get("/api/payments?type=sent&limit=2")
    assert r.status_code == 200
    assert [p["amount"] for p in r.json["payments"]] == [30.0, 20.0]
    assert r.json["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    r = sponsor_client.get("/api/payments?type=received")
    assert [p["amount"] for p in r.json["payments"]] == [5.0]

    assert sponsor_client.get("/api/payments").json["pagination"]["total"] == 4
    assert sponsor_client.get("/api/payments?type=sideways").status_code == 400


def test_delete_pending_only(creator, sponsor):
    creator_id, creator_client = creator
    _, sponsor_client = sponsor
    pid = _create(sponsor_client, creator_id).json["id"]

    assert creator_client.delete(f"/api/payments/{pid}").status_code == 403
    assert sponsor_client.delete(f"/api/payments/{pid}").status_code == 200
    assert sponsor_client.get(f"/api/payments/{pid}").status_code == 404

    pid = _create(sponsor_client, creator_id).json["id"]
    sponsor_client.patch(f"/api/payments/{pid}", json={"status": "COMPLETED"})
    assert sponsor_client.delete(f"/api/payments/{pid}").status_code == 400
