from __future__ import annotations

import mimetypes

from flask import Blueprint, abort, current_app, jsonify, request, send_file, session

from app.blitz.constants import ROLE_CREATOR
from app.blitz.db import db_session
from app.blitz.models import User
from app.blitz.modules.profiles.service import (
    ProfileError,
    change_password,
    delete_account,
    find_follow,
    follow,
    notification_prefs,
    record_profile_view,
    search_users,
    serialize_profile,
    serialize_public_profile,
    set_notification_prefs,
    unfollow,
    update_profile,
    validate_notification_prefs,
    validate_profile_payload,
)
from app.blitz.rbac import current_user, require_login, require_role
from app.blitz.storage import StorageError, storage_from_config
from app.blitz.utils import json_payload, parse_int, user_summary

bp = Blueprint("profiles", __name__)


# ---------- Own profile ----------
@bp.get("/profile")
@require_login
def profile_get():
    return jsonify(serialize_profile(current_user()))


@bp.put("/profile")
@require_login
def profile_update():
    s = db_session()
    u = current_user()
    payload = json_payload()
    errors = validate_profile_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    update_profile(s, u, payload)
    s.commit()
    return jsonify(serialize_profile(u))


@bp.patch("/profile")
@require_login
def profile_password():
    s = db_session()
    payload = json_payload()
    try:
        change_password(s, current_user(), payload.get("currentPassword"), payload.get("newPassword"))
        s.commit()
    except ProfileError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    return jsonify({"message": "Password updated successfully"})


@bp.delete("/profile")
@require_login
def profile_delete():
    s = db_session()
    u = current_user()
    try:
        delete_account(s, u, json_payload().get("password"), storage_from_config(current_app.config))
        s.commit()
    except ProfileError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    session.clear()
    return jsonify({"message": "Account deleted successfully"})


# ---------- Other users ----------
@bp.get("/users/search")
@require_login
def users_search():
    s = db_session()
    try:
        users = search_users(s, request.args.get("term") or "", request.args.get("role") or ROLE_CREATOR)
    except ProfileError as e:
        abort(e.status_code, description=str(e))
    return jsonify([user_summary(u) for u in users])


@bp.get("/users/<int:user_id>")
def user_profile(user_id: int):
    s = db_session()
    target = s.get(User, user_id)
    if not target or not target.is_active:
        abort(404, description="User not found")
    if record_profile_view(s, target, current_user()) is not None:
        s.commit()
    return jsonify(serialize_public_profile(s, target))


@bp.get("/users/<int:user_id>/logo")
def user_logo(user_id: int):
    s = db_session()
    target = s.get(User, user_id)
    if not target or not target.logo_key:
        abort(404, description="Logo not found")
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(target.logo_key)
    except StorageError:
        current_app.logger.warning("Logo %s missing from storage for user %s", target.logo_key, target.id)
        abort(404, description="Logo not found")
    mimetype = mimetypes.guess_type(target.logo_key)[0] or "application/octet-stream"
    return send_file(fobj, mimetype=mimetype, max_age=3600)


# ---------- Follow ----------
@bp.post("/follow")
@require_role(ROLE_CREATOR)
def follow_create():
    s = db_session()
    try:
        created = follow(s, current_user(), parse_int(json_payload().get("targetId")))
        s.commit()
    except ProfileError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    if not created:
        return jsonify({"success": True, "alreadyFollowing": True})
    return jsonify({"success": True})


@bp.delete("/follow")
@require_role(ROLE_CREATOR)
def follow_delete():
    s = db_session()
    try:
        unfollow(s, current_user(), parse_int(json_payload().get("targetId")))
        s.commit()
    except ProfileError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    return jsonify({"success": True})


@bp.get("/follow")
@require_role(ROLE_CREATOR)
def follow_status():
    s = db_session()
    u = current_user()
    target_id = parse_int(request.args.get("targetId"))
    if target_id is None or target_id == u.id:
        abort(400, description="Invalid target")
    return jsonify({"following": find_follow(s, u, target_id) is not None})


# ---------- Notification preferences ----------
@bp.get("/notifications")
@require_login
def notifications_get():
    return jsonify(notification_prefs(current_user()))


@bp.put("/notifications")
@require_login
def notifications_update():
    s = db_session()
    payload = request.get_json(silent=True)
    errors = validate_notification_prefs(payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    prefs = set_notification_prefs(current_user(), payload)
    s.commit()
    return jsonify({"message": "Notification preferences updated successfully", "preferences": prefs})
