from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import request

from app.blitz.models import User


def json_payload() -> dict:
    """Request body as a dict: JSON when sent, otherwise form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    if request.form:
        return request.form.to_dict()
    return {}


def iso(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


# Numeric(12, 2) columns hold at most ten integer digits
MAX_MONEY = Decimal("1e10")


def money(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(value)


def parse_decimal(raw: Any) -> Decimal | None:
    """Parse a number-ish value into a Decimal. Returns None when not parseable."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        d = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def parse_int(raw: Any, default: int | None = None) -> int | None:
    if raw is None or isinstance(raw, bool):
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        return default


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD date string."""
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    return date.fromisoformat(s[:10])


def string_list(raw: Any) -> tuple[list[str] | None, str | None]:
    """Validate a JSON list of strings. Blank entries are dropped."""
    if raw is None:
        return [], None
    if not isinstance(raw, list):
        return None, "must be a list of strings"
    out: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            return None, "must be a list of strings"
        item = item.strip()
        if item:
            out.append(item)
    return out, None


def user_summary(user: User | None, *, with_email: bool = True) -> dict | None:
    if user is None:
        return None
    d: dict[str, Any] = {"id": user.id, "name": user.name, "image": user.image}
    if with_email:
        d["email"] = user.email
    return d
