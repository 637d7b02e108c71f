from flask import Blueprint, jsonify

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return jsonify({"name": "blitz", "api": "/api"})


@bp.get("/health")
def health():
    return jsonify({"ok": True, "service": "blitz"})


@bp.get("/healthz")
def healthz():
    """Container probe: no DB access."""
    return "ok", 200
