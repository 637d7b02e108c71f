from __future__ import annotations

from flask import Blueprint, abort, current_app, g, jsonify, request
from sqlalchemy.exc import IntegrityError

from app.blitz.db import db_session
from app.blitz.models import User
from app.blitz.modules.applications.models import Application
from app.blitz.modules.applications.service import (
    ApplicationError,
    applications_for_listing,
    applications_for_user,
    apply_to_listing,
    change_status,
    find_application,
    serialize_application,
)
from app.blitz.modules.listings.models import Listing
from app.blitz.rbac import require_login
from app.blitz.utils import json_payload, parse_int

bp = Blueprint("applications", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.post("/listings/<int:listing_id>/apply")
@require_login
def listing_apply(listing_id: int):
    s = db_session()
    u = _current_user()
    listing = s.get(Listing, listing_id)
    if not listing:
        abort(404, description="Listing not found")

    payload = json_payload()
    try:
        app_row = apply_to_listing(s, listing, u, payload.get("proposal"))
        s.commit()
    except ApplicationError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    except IntegrityError:
        # Lost a race with a concurrent apply from the same user
        s.rollback()
        current_app.logger.info("Duplicate application blocked by constraint (user=%s listing=%s)", u.id, listing_id)
        abort(400, description="Already applied")
    return jsonify(serialize_application(app_row)), 201


@bp.get("/listings/<int:listing_id>/applications")
@require_login
def listing_applications(listing_id: int):
    s = db_session()
    listing = s.get(Listing, listing_id)
    if not listing:
        abort(404, description="Listing not found")
    if listing.creator_id != _current_user().id:
        abort(403, description="Only the listing owner can view applications")
    rows = applications_for_listing(s, listing)
    return jsonify([serialize_application(a, with_user=True) for a in rows])


@bp.get("/applications")
@require_login
def my_applications():
    s = db_session()
    rows = applications_for_user(s, _current_user())
    return jsonify([serialize_application(a, with_listing=True) for a in rows])


@bp.get("/applications/check")
@require_login
def application_check():
    s = db_session()
    listing_id = parse_int(request.args.get("listingId"))
    if listing_id is None:
        abort(400, description="Listing ID is required")
    existing = find_application(s, _current_user(), listing_id)
    return jsonify({"hasApplied": existing is not None})


@bp.patch("/applications/<int:application_id>")
@require_login
def application_update(application_id: int):
    s = db_session()
    app_row = s.get(Application, application_id)
    if not app_row:
        abort(404, description="Application not found")

    payload = json_payload()
    try:
        change_status(s, app_row, str(payload.get("status") or ""), _current_user())
        s.commit()
    except ApplicationError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    return jsonify(serialize_application(app_row, with_listing=True, with_user=True))
