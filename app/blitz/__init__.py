import logging
import os
from datetime import timedelta

from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from app.blitz.config import load_config
from app.blitz.db import init_db, teardown_db_session
from app.blitz.routes import bp as routes_bp
from app.blitz.auth import bp as auth_bp, load_current_user
from app.blitz.admin import bp as admin_bp
from app.blitz.mailer import bp as email_bp
from app.blitz.models import Base
from app.blitz.modules.listings.api import bp as listings_bp
from app.blitz.modules.applications.api import bp as applications_bp
from app.blitz.modules.matching.api import bp as matching_bp
from app.blitz.modules.messaging.api import bp as messages_bp
from app.blitz.modules.payments.api import bp as payments_bp
from app.blitz.modules.profiles.api import bp as profiles_bp
from app.blitz.modules.dashboard.api import bp as dashboard_bp

_SKIP_HOOK_PREFIXES = ("/health", "/healthz")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL") or "INFO",
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # CSRF protection (minimal)
    from app.blitz.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_SKIP_HOOK_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if not app.config.get("CSRF_ENABLED"):
            return None
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Auth endpoints (login/register/logout/...) run before a token can exist client-side
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return jsonify({"error": "CSRF token missing or invalid."}), 400
        return None

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        else:
            from app.blitz.storage import S3Storage, storage_from_config

            storage = storage_from_config(app.config)
            try:
                if isinstance(storage, S3Storage):
                    storage._client().head_bucket(Bucket=storage.bucket)
                    app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
            except (BotoCoreError, ClientError) as e:
                app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(listings_bp, url_prefix="/api/listings")
    app.register_blueprint(applications_bp, url_prefix="/api")
    app.register_blueprint(matching_bp, url_prefix="/api")
    app.register_blueprint(profiles_bp, url_prefix="/api")
    app.register_blueprint(email_bp, url_prefix="/api")
    app.register_blueprint(messages_bp, url_prefix="/api/messages")
    app.register_blueprint(payments_bp, url_prefix="/api/payments")
    app.register_blueprint(dashboard_bp, url_prefix="/api/dashboard")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    def _load_user_wrapper():
        if request.path.startswith(_SKIP_HOOK_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    # Migration health (lean): log tables the models expect but the database lacks.
    def _run_schema_health_check() -> None:
        engine = app.extensions.get("sqlalchemy_engine")
        try:
            existing = set(sa_inspect(engine).get_table_names())
        except SQLAlchemyError as e:
            app.logger.error("Schema health check failed: %s", e)
            return
        missing = sorted(set(Base.metadata.tables) - existing)
        if missing:
            app.logger.warning("DB schema out of date; run `alembic upgrade head`. Missing tables: %s", ", ".join(missing))

    _run_schema_health_check()

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        if e.code == 403:
            missing = getattr(g, "missing_role", None)
            if missing:
                app.logger.warning("Forbidden: missing_role=%s request_id=%s", missing, getattr(g, "request_id", None))
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        if e.description and e.description != RequestEntityTooLarge.description:
            return jsonify({"error": e.description}), 413
        max_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return jsonify({"error": f"File too large. Maximum size is {max_mb}MB."}), 413

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"error": "Internal server error", "requestId": rid}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
