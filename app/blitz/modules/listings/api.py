from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, request

from app.blitz.db import db_session
from app.blitz.models import User
from app.blitz.modules.listings.models import Listing
from app.blitz.modules.listings.service import (
    can_view,
    create_listing,
    delete_listing,
    listings_for_owner,
    search_listings,
    serialize_listing,
    set_visibility,
    update_listing,
    validate_listing_payload,
)
from app.blitz.rbac import current_user, require_login
from app.blitz.utils import json_payload, parse_decimal

bp = Blueprint("listings", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _owned_listing_or_abort(listing_id: int) -> Listing:
    s = db_session()
    listing = s.get(Listing, listing_id)
    if not listing:
        abort(404, description="Listing not found")
    if listing.creator_id != _current_user().id:
        abort(403, description="Only the listing owner can do that")
    return listing


# ---------- List ----------
@bp.get("")
def listings_list():
    s = db_session()

    if (request.args.get("mine") or "").strip() == "1":
        user = current_user()
        if user is None:
            abort(401, description="Unauthorized")
        listings = listings_for_owner(s, user)
    else:
        listings = search_listings(
            s,
            listing_type=(request.args.get("type") or "").strip() or None,
            category=(request.args.get("category") or "").strip() or None,
            search=(request.args.get("search") or "").strip() or None,
            min_budget=parse_decimal(request.args.get("minBudget")),
            max_budget=parse_decimal(request.args.get("maxBudget")),
        )
    return jsonify([serialize_listing(l) for l in listings])


# ---------- New ----------
@bp.post("")
@require_login
def listings_create():
    s = db_session()
    u = _current_user()
    payload = json_payload()

    errors = validate_listing_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    listing = create_listing(s, payload, u)
    s.commit()
    return jsonify(serialize_listing(listing)), 201


# ---------- Detail ----------
@bp.get("/<int:listing_id>")
def listing_detail(listing_id: int):
    s = db_session()
    listing = s.get(Listing, listing_id)
    user = current_user()
    # Hidden listings 404 for everyone but the owner
    if not listing or not can_view(listing, user):
        abort(404, description="Listing not found")
    is_owner = user is not None and listing.creator_id == user.id
    return jsonify(serialize_listing(listing, include_applications=is_owner, creator_detail=True))


# ---------- Edit ----------
@bp.put("/<int:listing_id>")
@require_login
def listing_update(listing_id: int):
    s = db_session()
    listing = _owned_listing_or_abort(listing_id)
    payload = json_payload()

    errors = validate_listing_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    update_listing(s, listing, payload, _current_user())
    s.commit()
    return jsonify(serialize_listing(listing))


@bp.put("/<int:listing_id>/visibility")
@require_login
def listing_visibility(listing_id: int):
    s = db_session()
    listing = _owned_listing_or_abort(listing_id)
    payload = json_payload()
    if not isinstance(payload.get("public"), bool):
        abort(400, description="public must be true or false")

    set_visibility(s, listing, payload["public"], _current_user())
    s.commit()
    return jsonify(serialize_listing(listing))


# ---------- Delete ----------
@bp.delete("/<int:listing_id>")
@require_login
def listing_delete(listing_id: int):
    s = db_session()
    listing = _owned_listing_or_abort(listing_id)
    delete_listing(s, listing, _current_user())
    s.commit()
    return jsonify({"message": "Listing deleted successfully"})
