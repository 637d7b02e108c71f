from __future__ import annotations

from flask import Blueprint, jsonify

from app.blitz.constants import ROLE_SPONSOR
from app.blitz.db import db_session
from app.blitz.modules.matching.service import matched_creators, matches_for_user, sponsor_matches
from app.blitz.rbac import current_user, require_login, require_role

bp = Blueprint("matching", __name__)


@bp.get("/matches")
@require_login
def matches():
    s = db_session()
    return jsonify(matches_for_user(s, current_user()))


@bp.get("/sponsor-matches")
@require_login
def sponsor_match_list():
    s = db_session()
    return jsonify(sponsor_matches(s, current_user()))


@bp.get("/matched-creators")
@require_role(ROLE_SPONSOR)
def matched_creator_list():
    s = db_session()
    return jsonify(matched_creators(s, current_user()))
