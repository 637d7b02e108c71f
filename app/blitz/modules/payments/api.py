from __future__ import annotations

import math

from flask import Blueprint, abort, current_app, jsonify, request

from app.blitz.db import db_session
from app.blitz.models import User
from app.blitz.modules.listings.models import Listing
from app.blitz.modules.payments.models import Payment
from app.blitz.modules.payments.processor import MockPaymentProcessor
from app.blitz.modules.payments.service import (
    PaymentError,
    attach_intent,
    cancel_payment,
    create_payment,
    ensure_party,
    list_payments,
    page_args,
    parse_amount,
    serialize_payment,
    transition,
)
from app.blitz.rbac import current_user, require_login
from app.blitz.utils import json_payload, money, parse_int

bp = Blueprint("payments", __name__)


def _processor() -> MockPaymentProcessor:
    return MockPaymentProcessor(currency=current_app.config.get("PAYMENT_CURRENCY") or "usd")


def _payment_or_abort(payment_id: int) -> Payment:
    p = db_session().get(Payment, payment_id)
    if not p:
        abort(404, description="Payment not found")
    return p


@bp.get("")
@require_login
def payments_list():
    s = db_session()
    direction = (request.args.get("type") or "").strip().lower() or None
    if direction not in (None, "sent", "received"):
        abort(400, description="type must be sent or received")
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))

    rows, total = list_payments(s, current_user(), direction=direction, page=page, limit=limit)
    return jsonify(
        {
            "payments": [serialize_payment(p) for p in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }
    )


@bp.post("")
@require_login
def payments_create():
    s = db_session()
    u = current_user()
    payload = json_payload()

    receiver_id = parse_int(payload.get("receiverId"))
    if receiver_id is None:
        abort(400, description="Receiver ID is required")
    try:
        amount = parse_amount(payload.get("amount"))
    except PaymentError as e:
        abort(e.status_code, description=str(e))

    receiver = s.get(User, receiver_id)
    if not receiver:
        abort(404, description="Receiver not found")

    listing_id = None
    if payload.get("listingId") not in (None, ""):
        listing_id = parse_int(payload.get("listingId"))
        if listing_id is None or s.get(Listing, listing_id) is None:
            abort(404, description="Listing not found")

    try:
        p = create_payment(
            s,
            sender=u,
            receiver=receiver,
            amount=amount,
            config=current_app.config,
            listing_id=listing_id,
            description=payload.get("description"),
        )
        s.commit()
    except PaymentError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    return jsonify(serialize_payment(p)), 201


@bp.post("/create-intent")
@require_login
def payments_create_intent():
    s = db_session()
    payment_id = parse_int(json_payload().get("paymentId"))
    if payment_id is None:
        abort(400, description="Payment ID is required")
    p = _payment_or_abort(payment_id)

    try:
        intent = attach_intent(s, p, current_user(), _processor())
        s.commit()
    except PaymentError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    return jsonify(
        {
            "clientSecret": intent.client_secret,
            "paymentIntentId": intent.id,
            "amount": money(p.total),
            "platformFee": money(p.platform_fee),
            "processingFee": money(p.processing_fee),
        }
    )


@bp.get("/<int:payment_id>")
@require_login
def payment_detail(payment_id: int):
    p = _payment_or_abort(payment_id)
    try:
        ensure_party(p, current_user())
    except PaymentError as e:
        abort(e.status_code, description=str(e))
    return jsonify(serialize_payment(p))


@bp.patch("/<int:payment_id>")
@require_login
def payment_update(payment_id: int):
    s = db_session()
    p = _payment_or_abort(payment_id)
    try:
        transition(s, p, str(json_payload().get("status") or ""), current_user())
        s.commit()
    except PaymentError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    return jsonify(serialize_payment(p))


@bp.delete("/<int:payment_id>")
@require_login
def payment_delete(payment_id: int):
    s = db_session()
    p = _payment_or_abort(payment_id)
    try:
        cancel_payment(s, p, current_user())
        s.commit()
    except PaymentError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    return jsonify({"message": "Payment deleted successfully"})
