import json
from datetime import datetime, time, timedelta

from flask import Blueprint, abort, current_app, jsonify, request
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from app.blitz.constants import ROLE_ADMIN
from app.blitz.db import db_session
from app.blitz.models import AuditEvent, User
from app.blitz.modules.listings.models import Listing
from app.blitz.modules.payments.models import Payment
from app.blitz.rbac import require_role
from app.blitz.utils import iso, parse_date, parse_int

bp = Blueprint("admin", __name__)

AUDIT_DEFAULT_LIMIT = 200
AUDIT_MAX_LIMIT = 1000


@bp.get("/")
@require_role(ROLE_ADMIN)
def index():
    s = db_session()
    cfg = current_app.config
    status = {
        "env": (cfg.get("ENV") or "development").strip().lower(),
        "db_connected": False,
        "db_error": None,
        "storage_backend": None,
        "storage_configured": False,
        "storage_error": None,
        "email_configured": bool(cfg.get("SMTP_SERVER") and cfg.get("EMAIL_FROM")),
        "counts": None,
    }

    # DB connectivity (lightweight)
    try:
        s.execute(text("SELECT 1"))
        status["db_connected"] = True
    except SQLAlchemyError as e:
        s.rollback()
        status["db_error"] = str(e)

    # Storage config (no network calls)
    storage_backend = (cfg.get("STORAGE_BACKEND") or "local").strip().lower()
    status["storage_backend"] = storage_backend
    if storage_backend == "s3":
        missing = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not cfg.get(k)]
        status["storage_configured"] = not missing
        if missing:
            status["storage_error"] = f"Missing: {', '.join(missing)}"
    else:
        status["storage_configured"] = True

    if status["db_connected"]:
        users_by_role = dict(s.query(User.role, func.count(User.id)).group_by(User.role).all())
        status["counts"] = {
            "users": sum(users_by_role.values()),
            "users_by_role": users_by_role,
            "listings": s.query(func.count(Listing.id)).scalar() or 0,
            "payments": s.query(func.count(Payment.id)).scalar() or 0,
        }

    return jsonify(status)


def _serialize_event(ev: AuditEvent) -> dict:
    return {
        "id": ev.id,
        "createdAt": iso(ev.created_at),
        "requestId": ev.request_id,
        "actorUserId": ev.actor_user_id,
        "actorUserEmail": ev.actor_user_email,
        "action": ev.action,
        "entityType": ev.entity_type,
        "entityId": ev.entity_id,
        "reason": ev.reason,
        "metadata": json.loads(ev.metadata_json) if ev.metadata_json else None,
        "clientIp": ev.client_ip,
    }


@bp.get("/audit-events")
@require_role(ROLE_ADMIN)
def audit_events():
    """
    Audit trail, newest first, with simple filters:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD, inclusive)
    - limit (default 200, max 1000)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    try:
        date_from = parse_date(request.args.get("date_from"))
        date_to = parse_date(request.args.get("date_to"))
    except ValueError:
        abort(400, description="Dates must be YYYY-MM-DD")
    limit = parse_int(request.args.get("limit"), AUDIT_DEFAULT_LIMIT) or AUDIT_DEFAULT_LIMIT
    limit = min(max(limit, 1), AUDIT_MAX_LIMIT)

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit).all()
    return jsonify([_serialize_event(ev) for ev in events])
