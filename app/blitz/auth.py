from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, abort, current_app, g, jsonify, request, session
from sqlalchemy.exc import SQLAlchemyError

from app.blitz.audit import record_event
from app.blitz.constants import (
    RESET_TOKEN_HOURS,
    ROLE_ALIASES,
    ROLE_CREATOR,
    VERIFICATION_TOKEN_HOURS,
)
from app.blitz.db import db_session
from app.blitz.mailer import send_password_reset_email, send_verification_email
from app.blitz.models import User
from app.blitz.modules.profiles.service import (
    ProfileError,
    legacy_payload,
    legacy_profile,
    store_logo,
    update_profile,
    validate_profile_payload,
)
from app.blitz.rbac import current_user, require_login
from app.blitz.security import (
    MIN_PASSWORD_LENGTH,
    ensure_csrf_token,
    hash_password,
    new_token,
    token_expiry,
    verify_password,
)
from app.blitz.storage import storage_from_config
from app.blitz.utils import json_payload

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except (SQLAlchemyError, TypeError, ValueError) as e:
        current_app.logger.error("load_current_user failed (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None
        return
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "image": user.image,
        "isVerified": user.is_verified,
    }


def _normalize_role(raw) -> str:
    return ROLE_ALIASES.get(str(raw or "").strip().upper(), ROLE_CREATOR)


@bp.post("/register")
def register():
    s = db_session()
    payload = json_payload()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    name = (payload.get("name") or "").strip() or None

    if not email or not password:
        abort(400, description="Email and password are required")
    if "@" not in email:
        abort(400, description="Invalid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        abort(400, description=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if s.query(User).filter(User.email == email).one_or_none() is not None:
        abort(400, description="User already exists")

    now = datetime.utcnow()
    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name,
        role=_normalize_role(payload.get("role")),
        is_active=True,
        is_verified=False,
        verification_token=new_token(),
        verification_token_expiry=token_expiry(hours=VERIFICATION_TOKEN_HOURS),
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id), metadata={"role": user.role})
    s.commit()

    ok, detail = send_verification_email(current_app.config, user.email, user.verification_token)
    if not ok:
        current_app.logger.warning("Verification email for user %s not sent: %s", user.id, detail)

    return jsonify({"message": "User created successfully", "user": serialize_user(user)}), 201


@bp.post("/login")
def login():
    payload = json_payload()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        current_app.logger.warning("Login rate limit hit (ip=%s)", ip)
        abort(429, description="Too many login attempts. Please wait 5 minutes.")

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none() if email else None
    if not user or not user.is_active or not verify_password(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email or None,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        current_app.logger.info("Failed login (email=%s ip=%s)", email, ip)
        abort(401, description="Invalid credentials")

    if current_app.config.get("REQUIRE_EMAIL_VERIFICATION") and not user.is_verified:
        abort(403, description="Please verify your email before logging in")

    session.clear()
    session.permanent = True
    session["user_id"] = user.id
    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"user": serialize_user(user)})


@bp.post("/logout")
def logout():
    s = db_session()
    user = current_user()
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return jsonify({"message": "Logged out"})


@bp.get("/me")
@require_login
def me():
    return jsonify(serialize_user(current_user()))


@bp.get("/csrf")
def csrf():
    return jsonify({"csrfToken": ensure_csrf_token()})


@bp.post("/verify-email")
def verify_email():
    s = db_session()
    token = (json_payload().get("token") or "").strip()
    if not token:
        abort(400, description="Verification token is required")

    user = s.query(User).filter(User.verification_token == token).one_or_none()
    if not user or not user.verification_token_expiry or user.verification_token_expiry < datetime.utcnow():
        abort(400, description="Invalid or expired verification token")

    user.is_verified = True
    user.verification_token = None
    user.verification_token_expiry = None
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="auth.verify_email", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"message": "Email verified successfully"})


@bp.post("/forgot-password")
def forgot_password():
    s = db_session()
    email = (json_payload().get("email") or "").strip().lower()
    if not email:
        abort(400, description="Email is required")

    # Same answer whether or not the account exists
    generic = {"message": "If an account exists for that email, a reset link has been sent"}
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active:
        return jsonify(generic)

    user.reset_token = new_token()
    user.reset_token_expiry = token_expiry(hours=RESET_TOKEN_HOURS)
    record_event(s, actor=user, action="auth.reset_requested", entity_type="User", entity_id=str(user.id))
    s.commit()

    ok, detail = send_password_reset_email(current_app.config, user.email, user.reset_token)
    if not ok:
        current_app.logger.warning("Password reset email for user %s not sent: %s", user.id, detail)
    return jsonify(generic)


@bp.post("/reset-password")
def reset_password():
    s = db_session()
    payload = json_payload()
    token = (payload.get("token") or "").strip()
    password = payload.get("password") or ""
    if not token or not password:
        abort(400, description="Token and password are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        abort(400, description=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    user = s.query(User).filter(User.reset_token == token).one_or_none()
    if not user or not user.reset_token_expiry or user.reset_token_expiry < datetime.utcnow():
        abort(400, description="Invalid or expired reset token")

    user.password_hash = hash_password(password)
    user.reset_token = None
    user.reset_token_expiry = None
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="auth.password_reset", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"message": "Password has been reset"})


# ---------- Legacy profile form ----------
@bp.get("/profile")
@require_login
def profile_get():
    return jsonify(legacy_profile(current_user()))


@bp.put("/profile")
@require_login
def profile_put():
    s = db_session()
    u = current_user()
    payload = legacy_payload(u, json_payload())
    errors = validate_profile_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    update_profile(s, u, payload)
    s.commit()
    return jsonify(legacy_profile(u))


@bp.post("/profile/logo")
@require_login
def profile_logo():
    s = db_session()
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        abort(400, description="No file uploaded")
    try:
        url = store_logo(s, current_user(), upload, storage_from_config(current_app.config))
        s.commit()
    except ProfileError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    return jsonify({"logoUrl": url})
