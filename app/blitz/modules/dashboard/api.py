from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.blitz.constants import ROLE_CREATOR, ROLE_SPONSOR
from app.blitz.db import db_session
from app.blitz.modules.dashboard.service import creator_stats, recent_activity, sponsor_stats
from app.blitz.modules.matching.service import recommend_listings
from app.blitz.rbac import current_user, require_login, require_role

bp = Blueprint("dashboard", __name__)


def _sponsor_view() -> bool:
    u = current_user()
    return u.role == ROLE_SPONSOR or (request.args.get("sponsor") or "").strip() == "1"


@bp.get("/stats")
@require_login
def stats():
    s = db_session()
    u = current_user()
    if _sponsor_view():
        return jsonify(sponsor_stats(s, u))
    return jsonify(creator_stats(s, u))


@bp.get("/recent-activity")
@require_login
def activity():
    return jsonify(recent_activity(db_session(), current_user(), as_sponsor=_sponsor_view()))


@bp.get("/recommended-opportunities")
@require_role(ROLE_CREATOR)
def recommended_opportunities():
    return jsonify(recommend_listings(db_session(), current_user()))


@bp.get("/recommended-listings")
@require_role(ROLE_SPONSOR)
def recommended_listings():
    return jsonify(recommend_listings(db_session(), current_user()))
