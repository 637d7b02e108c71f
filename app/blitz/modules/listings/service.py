from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.blitz.audit import record_event
from app.blitz.constants import LISTING_OPEN, LISTING_STATUSES, LISTING_TYPES
from app.blitz.modules.listings.models import Category, Listing
from app.blitz.utils import MAX_MONEY, iso, money, parse_date, parse_decimal, string_list, user_summary

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.blitz.models import User


def _clean(raw: Any) -> str | None:
    if raw is None:
        return None
    return str(raw).strip() or None


def validate_listing_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate listing creation/update payload. Returns list of errors."""
    errors: list[str] = []

    if not partial or "title" in payload:
        if not _clean(payload.get("title")):
            errors.append("Title is required.")
    if not partial or "description" in payload:
        if not _clean(payload.get("description")):
            errors.append("Description is required.")
    if not partial or "type" in payload:
        t = (_clean(payload.get("type")) or "").upper()
        if t not in LISTING_TYPES:
            errors.append(f"Invalid type. Must be one of: {', '.join(LISTING_TYPES)}")
    if not partial or "budget" in payload:
        budget = parse_decimal(payload.get("budget"))
        if budget is None or budget < 0:
            errors.append("Budget must be a non-negative number.")
        elif budget >= MAX_MONEY:
            errors.append("Budget is too large.")
    if "status" in payload and (_clean(payload.get("status")) or "").upper() not in LISTING_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(LISTING_STATUSES)}")
    for key in ("categories", "requirements", "perks"):
        if key in payload:
            _, err = string_list(payload.get(key))
            if err:
                errors.append(f"{key.capitalize()} {err}.")
    if payload.get("eventDate"):
        try:
            parse_date(payload.get("eventDate"))
        except ValueError:
            errors.append("eventDate must be YYYY-MM-DD.")
    return errors


def get_or_create_categories(s: "Session", names: list[str]) -> list[Category]:
    """Connect-or-create categories by name, preserving first-seen order and dropping duplicates."""
    out: list[Category] = []
    seen: set[str] = set()
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        cat = s.query(Category).filter(Category.name == name).one_or_none()
        if cat is None:
            cat = Category(name=name)
            s.add(cat)
            s.flush()
        out.append(cat)
    return out


def _apply_fields(s: "Session", listing: Listing, payload: dict) -> dict[str, Any]:
    changes: dict[str, Any] = {}

    def _set(attr: str, value: Any) -> None:
        old = getattr(listing, attr)
        if old != value:
            changes[attr] = {"old": old, "new": value}
            setattr(listing, attr, value)

    if "title" in payload:
        _set("title", _clean(payload.get("title")))
    if "description" in payload:
        _set("description", _clean(payload.get("description")))
    if "type" in payload:
        _set("type", (_clean(payload.get("type")) or "").upper())
    if "budget" in payload:
        budget = parse_decimal(payload.get("budget")) or Decimal("0")
        _set("budget", budget.quantize(Decimal("0.01")))
    if "status" in payload:
        _set("status", (_clean(payload.get("status")) or "").upper())
    if "requirements" in payload:
        _set("requirements", string_list(payload.get("requirements"))[0])
    if "perks" in payload:
        _set("perks", string_list(payload.get("perks"))[0])
    if "platform" in payload:
        _set("platform", _clean(payload.get("platform")))
    if "audienceProfile" in payload:
        _set("audience_profile", _clean(payload.get("audienceProfile")))
    if "location" in payload:
        _set("location", _clean(payload.get("location")))
    if "eventDate" in payload:
        _set("event_date", parse_date(payload.get("eventDate")))
    if "public" in payload:
        _set("is_public", bool(payload.get("public")))
    if "categories" in payload:
        names = string_list(payload.get("categories"))[0] or []
        old_names = listing.category_names
        listing.categories = get_or_create_categories(s, names)
        if sorted(old_names) != sorted(listing.category_names):
            changes["categories"] = {"old": old_names, "new": listing.category_names}
    return changes


def create_listing(s: "Session", payload: dict, user: "User") -> Listing:
    """Create a new OPEN listing owned by `user`."""
    now = datetime.utcnow()
    listing = Listing(
        title="",
        description="",
        type="",
        status=LISTING_OPEN,
        is_public=True,
        creator_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(listing)
    _apply_fields(s, listing, {k: v for k, v in payload.items() if k != "status"})
    s.flush()

    record_event(
        s,
        actor=user,
        action="listing.create",
        entity_type="Listing",
        entity_id=str(listing.id),
        metadata={"title": listing.title, "type": listing.type},
    )
    return listing


def update_listing(s: "Session", listing: Listing, payload: dict, user: "User") -> Listing:
    changes = _apply_fields(s, listing, payload)
    listing.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="listing.edit",
        entity_type="Listing",
        entity_id=str(listing.id),
        metadata={"title": listing.title, "changes": changes},
    )
    return listing


def set_visibility(s: "Session", listing: Listing, is_public: bool, user: "User") -> Listing:
    listing.is_public = is_public
    listing.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="listing.visibility",
        entity_type="Listing",
        entity_id=str(listing.id),
        metadata={"public": is_public},
    )
    return listing


def delete_listing(s: "Session", listing: Listing, user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="listing.delete",
        entity_type="Listing",
        entity_id=str(listing.id),
        metadata={"title": listing.title},
    )
    s.delete(listing)


def search_listings(
    s: "Session",
    *,
    listing_type: str | None = None,
    category: str | None = None,
    search: str | None = None,
    min_budget: Decimal | None = None,
    max_budget: Decimal | None = None,
) -> list[Listing]:
    """Public browse: OPEN + public listings, newest first."""
    q = s.query(Listing).filter(Listing.status == LISTING_OPEN, Listing.is_public.is_(True))
    if listing_type:
        q = q.filter(Listing.type == listing_type.upper())
    if category:
        q = q.filter(Listing.categories.any(Category.name == category))
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Listing.title.ilike(like), Listing.description.ilike(like)))
    if min_budget is not None:
        q = q.filter(Listing.budget >= min_budget)
    if max_budget is not None:
        q = q.filter(Listing.budget <= max_budget)
    return q.order_by(Listing.created_at.desc(), Listing.id.desc()).all()


def listings_for_owner(s: "Session", user: "User") -> list[Listing]:
    return (
        s.query(Listing)
        .filter(Listing.creator_id == user.id)
        .order_by(Listing.created_at.desc(), Listing.id.desc())
        .all()
    )


def can_view(listing: Listing, user: "User | None") -> bool:
    if user is not None and listing.creator_id == user.id:
        return True
    return listing.is_public and listing.status == LISTING_OPEN


def serialize_listing(listing: Listing, *, include_applications: bool = False, creator_detail: bool = False) -> dict:
    creator = user_summary(listing.creator)
    if creator is not None and creator_detail:
        creator.update(
            {
                "bio": listing.creator.bio,
                "website": listing.creator.website,
                "socialLinks": listing.creator.social_links or {},
            }
        )
    d = {
        "id": listing.id,
        "title": listing.title,
        "description": listing.description,
        "type": listing.type,
        "budget": money(listing.budget),
        "requirements": listing.requirements or [],
        "perks": listing.perks or [],
        "status": listing.status,
        "public": listing.is_public,
        "platform": listing.platform,
        "audienceProfile": listing.audience_profile,
        "location": listing.location,
        "eventDate": iso(listing.event_date),
        "categories": listing.category_names,
        "creatorId": listing.creator_id,
        "creator": creator,
        "applicationCount": len(listing.applications),
        "createdAt": iso(listing.created_at),
        "updatedAt": iso(listing.updated_at),
    }
    if include_applications:
        d["applications"] = [
            {
                "id": a.id,
                "status": a.status,
                "proposal": a.proposal,
                "createdAt": iso(a.created_at),
                "user": user_summary(a.user),
            }
            for a in sorted(listing.applications, key=lambda a: a.created_at, reverse=True)
        ]
    return d
