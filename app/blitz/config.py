import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    app_url: str
    log_level: str

    storage_backend: str
    storage_dir: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    smtp_server: str
    smtp_port: str
    smtp_use_tls: bool
    smtp_username: str
    smtp_password: str
    email_from: str

    platform_fee_rate: str
    processing_fee_rate: str
    payment_currency: str

    require_email_verification: bool
    csrf_enabled: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getflag(name: str, default: bool) -> bool:
    raw = _getenv(name)
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    env = _getenv("ENV", "development")
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=env,
        database_url=_getenv("DATABASE_URL", "sqlite:///blitz.db"),
        app_url=_getenv("APP_URL", "http://localhost:5000").rstrip("/"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_dir=_getenv("STORAGE_DIR", "storage"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        smtp_server=_getenv("SMTP_SERVER", ""),
        smtp_port=_getenv("SMTP_PORT", ""),
        smtp_use_tls=_getflag("SMTP_USE_TLS", True),
        smtp_username=_getenv("SMTP_USERNAME", ""),
        smtp_password=_getenv("SMTP_PASSWORD", ""),
        email_from=_getenv("EMAIL_FROM", ""),
        platform_fee_rate=_getenv("PLATFORM_FEE_RATE", "0.02"),
        processing_fee_rate=_getenv("PROCESSING_FEE_RATE", "0.03"),
        payment_currency=_getenv("PAYMENT_CURRENCY", "usd").lower(),
        require_email_verification=_getflag("REQUIRE_EMAIL_VERIFICATION", False),
        # CSRF is off for the test env so API tests don't have to fetch tokens
        csrf_enabled=_getflag("CSRF_ENABLED", env.lower() != "test"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "APP_URL": s.app_url,
        "LOG_LEVEL": s.log_level,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_DIR": s.storage_dir,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "SMTP_SERVER": s.smtp_server,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USE_TLS": s.smtp_use_tls,
        "SMTP_USERNAME": s.smtp_username,
        "SMTP_PASSWORD": s.smtp_password,
        "EMAIL_FROM": s.email_from,
        "PLATFORM_FEE_RATE": s.platform_fee_rate,
        "PROCESSING_FEE_RATE": s.processing_fee_rate,
        "PAYMENT_CURRENCY": s.payment_currency,
        "REQUIRE_EMAIL_VERIFICATION": s.require_email_verification,
        "CSRF_ENABLED": s.csrf_enabled,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # request body limit (10MB); per-upload limits enforced in handlers
        "MAX_CONTENT_LENGTH": 10 * 1024 * 1024,
    }
