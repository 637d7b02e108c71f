from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from app.blitz.audit import record_event
from app.blitz.constants import PAY_COMPLETED, PAY_PENDING, PAYMENT_STATUSES, PAYMENT_TRANSITIONS
from app.blitz.modules.payments.models import Payment
from app.blitz.modules.payments.processor import MockPaymentProcessor, PaymentIntent
from app.blitz.utils import MAX_MONEY, iso, money, parse_decimal, parse_int, user_summary

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.blitz.models import User

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class PaymentError(ValueError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class FeeBreakdown:
    amount: Decimal
    platform_fee: Decimal
    processing_fee: Decimal
    total: Decimal


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_fees(amount: Decimal, *, platform_rate: Decimal | str, processing_rate: Decimal | str) -> FeeBreakdown:
    """
    Fees are computed on the (cent-rounded) amount and rounded half-up to cents individually,
    so total == amount + platform_fee + processing_fee exactly.
    """
    amount = _cents(Decimal(amount))
    platform_fee = _cents(amount * Decimal(str(platform_rate)))
    processing_fee = _cents(amount * Decimal(str(processing_rate)))
    return FeeBreakdown(
        amount=amount,
        platform_fee=platform_fee,
        processing_fee=processing_fee,
        total=amount + platform_fee + processing_fee,
    )


def parse_amount(raw: Any) -> Decimal:
    amount = parse_decimal(raw)
    if amount is None:
        raise PaymentError("Amount is required")
    if amount <= 0:
        raise PaymentError("Amount must be greater than zero")
    if amount >= MAX_MONEY:
        raise PaymentError("Amount is too large")
    if _cents(amount) <= 0:
        raise PaymentError("Amount must be at least 0.01")
    return amount


def create_payment(
    s: "Session",
    *,
    sender: "User",
    receiver: "User",
    amount: Decimal,
    config: dict,
    listing_id: int | None = None,
    description: str | None = None,
) -> Payment:
    if receiver.id == sender.id:
        raise PaymentError("You cannot pay yourself")

    fees = calculate_fees(
        amount,
        platform_rate=config["PLATFORM_FEE_RATE"],
        processing_rate=config["PROCESSING_FEE_RATE"],
    )
    now = datetime.utcnow()
    p = Payment(
        amount=fees.amount,
        platform_fee=fees.platform_fee,
        processing_fee=fees.processing_fee,
        total=fees.total,
        currency=config.get("PAYMENT_CURRENCY") or "usd",
        sender_id=sender.id,
        receiver_id=receiver.id,
        listing_id=listing_id,
        description=(description or "").strip() or None,
        status=PAY_PENDING,
        created_at=now,
        updated_at=now,
    )
    s.add(p)
    s.flush()
    record_event(
        s,
        actor=sender,
        action="payment.create",
        entity_type="Payment",
        entity_id=str(p.id),
        metadata={"receiver_id": receiver.id, "total": fees.total, "listing_id": listing_id},
    )
    return p


def ensure_party(p: Payment, user: "User") -> None:
    if user.id not in (p.sender_id, p.receiver_id):
        raise PaymentError("Not allowed to view this payment", status_code=403)


def ensure_sender(p: Payment, user: "User", what: str = "update") -> None:
    if p.sender_id != user.id:
        raise PaymentError(f"Only the sender can {what} this payment", status_code=403)


def transition(s: "Session", p: Payment, new_status: str, user: "User") -> Payment:
    new_status = (new_status or "").strip().upper()
    if new_status not in PAYMENT_STATUSES:
        raise PaymentError(f"Invalid status. Must be one of: {', '.join(PAYMENT_STATUSES)}")
    ensure_sender(p, user)
    if new_status not in PAYMENT_TRANSITIONS[p.status]:
        raise PaymentError(f"Cannot change payment from {p.status} to {new_status}")

    old = p.status
    now = datetime.utcnow()
    p.status = new_status
    p.updated_at = now
    if new_status == PAY_COMPLETED:
        p.completed_at = now
    record_event(
        s,
        actor=user,
        action="payment.status",
        entity_type="Payment",
        entity_id=str(p.id),
        metadata={"old": old, "new": new_status},
    )
    logger.info("Payment %s moved %s -> %s by user %s", p.id, old, new_status, user.id)
    return p


def cancel_payment(s: "Session", p: Payment, user: "User") -> None:
    ensure_sender(p, user, "delete")
    if p.status != PAY_PENDING:
        raise PaymentError("Only pending payments can be deleted")
    record_event(
        s,
        actor=user,
        action="payment.delete",
        entity_type="Payment",
        entity_id=str(p.id),
        metadata={"total": p.total},
    )
    s.delete(p)


def attach_intent(
    s: "Session",
    p: Payment,
    user: "User",
    processor: MockPaymentProcessor,
) -> PaymentIntent:
    ensure_sender(p, user, "process")
    if p.status != PAY_PENDING:
        raise PaymentError("Only pending payments can be processed")

    cents = int((p.total * 100).to_integral_value(rounding=ROUND_HALF_UP))
    intent = processor.create_intent(
        amount_cents=cents,
        metadata={"paymentId": p.id, "senderId": p.sender_id, "receiverId": p.receiver_id},
    )
    p.payment_intent_id = intent.id
    p.payment_intent_client_secret = intent.client_secret
    p.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="payment.intent",
        entity_type="Payment",
        entity_id=str(p.id),
        metadata={"intent": intent.id, "amount_cents": cents},
    )
    return intent


def list_payments(
    s: "Session",
    user: "User",
    *,
    direction: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[Payment], int]:
    """Newest first. `direction` is "sent", "received" or None for both."""
    q = s.query(Payment)
    if direction == "sent":
        q = q.filter(Payment.sender_id == user.id)
    elif direction == "received":
        q = q.filter(Payment.receiver_id == user.id)
    else:
        q = q.filter((Payment.sender_id == user.id) | (Payment.receiver_id == user.id))

    total = q.count()
    rows = (
        q.order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def page_args(raw_page: Any, raw_limit: Any) -> tuple[int, int]:
    page = max(parse_int(raw_page, 1) or 1, 1)
    limit = parse_int(raw_limit, DEFAULT_PAGE_SIZE) or DEFAULT_PAGE_SIZE
    return page, min(max(limit, 1), MAX_PAGE_SIZE)


def serialize_payment(p: Payment) -> dict:
    listing = p.listing
    return {
        "id": p.id,
        "amount": money(p.amount),
        "platformFee": money(p.platform_fee),
        "processingFee": money(p.processing_fee),
        "total": money(p.total),
        "currency": p.currency,
        "status": p.status,
        "description": p.description,
        "senderId": p.sender_id,
        "receiverId": p.receiver_id,
        "listingId": p.listing_id,
        "sender": user_summary(p.sender),
        "receiver": user_summary(p.receiver),
        "listing": {"id": listing.id, "title": listing.title} if listing else None,
        "paymentIntentId": p.payment_intent_id,
        "completedAt": iso(p.completed_at),
        "createdAt": iso(p.created_at),
        "updatedAt": iso(p.updated_at),
    }
