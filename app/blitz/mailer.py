from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Mapping

from flask import Blueprint, abort, current_app, jsonify

from app.blitz.audit import record_event
from app.blitz.constants import ROLE_ADMIN
from app.blitz.db import db_session
from app.blitz.rbac import current_user, require_role
from app.blitz.utils import json_payload

logger = logging.getLogger(__name__)

bp = Blueprint("email", __name__)


def mailer_configured(config: Mapping) -> bool:
    return bool((config.get("SMTP_SERVER") or "").strip() and (config.get("EMAIL_FROM") or "").strip())


def send_email(
    config: Mapping,
    to: str,
    subject: str,
    text: str,
    *,
    html: str | None = None,
) -> tuple[bool, str]:
    """
    Send an email using the SMTP settings in `config`.

    Returns (ok, detail): ("sent" on success, otherwise a readable error). Never raises for
    SMTP trouble so callers can decide whether a failed email is fatal.
    """
    smtp_server = (config.get("SMTP_SERVER") or "").strip()
    smtp_port = (str(config.get("SMTP_PORT") or "")).strip()
    smtp_use_tls = bool(config.get("SMTP_USE_TLS", True))
    smtp_username = (config.get("SMTP_USERNAME") or "").strip()
    smtp_password = (config.get("SMTP_PASSWORD") or "").strip()
    email_from = (config.get("EMAIL_FROM") or "").strip()

    if not smtp_server:
        logger.warning("Email to %s not sent: SMTP_SERVER not configured", to)
        return False, "SMTP server not configured"
    if not email_from:
        logger.warning("Email to %s not sent: EMAIL_FROM not configured", to)
        return False, "Email from address not configured"

    if html:
        msg = MIMEMultipart("alternative")
        msg.attach(MIMEText(text or "", "plain"))
        msg.attach(MIMEText(html, "html"))
    else:
        msg = MIMEText(text or "", "plain")
    msg["Subject"] = subject
    msg["From"] = email_from
    msg["To"] = to

    try:
        server = smtplib.SMTP(smtp_server, int(smtp_port)) if smtp_port else smtplib.SMTP(smtp_server)
        try:
            if smtp_use_tls:
                server.starttls()
            if smtp_username and smtp_password:
                server.login(smtp_username, smtp_password)
            server.send_message(msg)
        finally:
            server.quit()
    except smtplib.SMTPAuthenticationError as e:
        logger.error("SMTP authentication failed sending to %s: %s", to, e)
        return False, f"SMTP authentication failed: {e}"
    except (smtplib.SMTPException, OSError, ValueError) as e:
        logger.error("SMTP error sending to %s: %s", to, e)
        return False, f"SMTP error: {e}"

    logger.info("Sent email to %s with subject: %s", to, subject)
    return True, "sent"


def send_verification_email(config: Mapping, to: str, token: str) -> tuple[bool, str]:
    link = f"{config.get('APP_URL', '').rstrip('/')}/verify-email?token={token}"
    text = (
        "Welcome to Blitz!\n\n"
        f"Confirm your email address by opening this link:\n{link}\n\n"
        "The link expires in 24 hours."
    )
    html = (
        "<h1>Welcome to Blitz!</h1>"
        f'<p>Confirm your email address by clicking <a href="{link}">this link</a>.</p>'
        "<p>The link expires in 24 hours.</p>"
    )
    return send_email(config, to, "Verify your email address", text, html=html)


def send_password_reset_email(config: Mapping, to: str, token: str) -> tuple[bool, str]:
    link = f"{config.get('APP_URL', '').rstrip('/')}/reset-password?token={token}"
    text = (
        "Someone asked to reset the password on your Blitz account.\n\n"
        f"Choose a new password here:\n{link}\n\n"
        "The link expires in 1 hour. Ignore this email if it wasn't you."
    )
    html = (
        "<h1>Reset your password</h1>"
        f'<p>Choose a new password <a href="{link}">here</a>.</p>'
        "<p>The link expires in 1 hour. Ignore this email if it wasn't you.</p>"
    )
    return send_email(config, to, "Reset your password", text, html=html)


@bp.post("/email/send")
@require_role(ROLE_ADMIN)
def email_send():
    payload = json_payload()
    to = (payload.get("to") or "").strip()
    subject = (payload.get("subject") or "").strip()
    text = payload.get("text") or ""
    html = payload.get("html") or None
    if not to or not subject or not (text or html):
        abort(400, description="Missing required fields: to, subject, and text or html")
    if not mailer_configured(current_app.config):
        abort(503, description="Email is not configured")

    ok, _ = send_email(current_app.config, to, subject, text, html=html)
    if not ok:
        abort(503, description="Failed to send email")

    s = db_session()
    record_event(s, actor=current_user(), action="email.send", entity_type="Email", metadata={"to": to, "subject": subject})
    s.commit()
    return jsonify({"message": "Email sent successfully"})
