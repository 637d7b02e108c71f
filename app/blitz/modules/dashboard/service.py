from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, or_

from app.blitz.constants import APP_PENDING, LISTING_OPEN, ROLE_SPONSOR
from app.blitz.modules.applications.models import Application
from app.blitz.modules.listings.models import Listing
from app.blitz.modules.matching.scoring import is_match
from app.blitz.modules.matching.service import creator_snapshot, listing_snapshot
from app.blitz.modules.messaging.models import Message
from app.blitz.modules.profiles.service import profile_view_count
from app.blitz.models import User
from app.blitz.utils import iso, money

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

ACTIVITY_LIMIT = 5
PREVIEW_CHARS = 100


def _unread_messages(s: "Session", user: User) -> int:
    return (
        s.query(func.count(Message.id))
        .filter(Message.receiver_id == user.id, Message.read.is_(False))
        .scalar()
        or 0
    )


def creator_stats(s: "Session", user: User) -> dict:
    active = (
        s.query(func.count(Application.id))
        .filter(Application.user_id == user.id, Application.status == APP_PENDING)
        .scalar()
        or 0
    )
    me = creator_snapshot(user)
    sponsors = s.query(User).filter(User.role == ROLE_SPONSOR, User.is_active.is_(True)).all()
    matched = 0
    for sponsor in sponsors:
        snaps = [listing_snapshot(l) for l in sponsor.listings if l.status == LISTING_OPEN and l.is_public]
        if is_match(snaps, me):
            matched += 1
    return {
        "activeApplications": active,
        "sponsorMatches": matched,
        "messages": _unread_messages(s, user),
        "profileViews": profile_view_count(s, user),
    }


def sponsor_stats(s: "Session", user: User) -> dict:
    open_listings = [l for l in user.listings if l.status == LISTING_OPEN]
    pending = (
        s.query(func.count(Application.id))
        .join(Listing, Application.listing_id == Listing.id)
        .filter(Listing.creator_id == user.id, Application.status == APP_PENDING)
        .scalar()
        or 0
    )
    return {
        "activeListings": len(open_listings),
        "pendingApplications": pending,
        "messages": _unread_messages(s, user),
        "budgetAllocated": money(sum((l.budget for l in open_listings), Decimal("0"))),
        "profileViews": profile_view_count(s, user),
    }


def _preview(text: str) -> str:
    if len(text) > PREVIEW_CHARS:
        return text[:PREVIEW_CHARS] + "..."
    return text


def recent_activity(s: "Session", user: User, *, as_sponsor: bool = False) -> list[dict]:
    """Latest application and message events for the user, newest first."""
    if as_sponsor:
        apps = (
            s.query(Application)
            .join(Listing, Application.listing_id == Listing.id)
            .filter(Listing.creator_id == user.id)
            .order_by(Application.updated_at.desc(), Application.id.desc())
            .limit(ACTIVITY_LIMIT)
            .all()
        )
    else:
        apps = (
            s.query(Application)
            .filter(Application.user_id == user.id)
            .order_by(Application.updated_at.desc(), Application.id.desc())
            .limit(ACTIVITY_LIMIT)
            .all()
        )
    msgs = (
        s.query(Message)
        .filter(or_(Message.sender_id == user.id, Message.receiver_id == user.id))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(ACTIVITY_LIMIT)
        .all()
    )

    items = []
    for a in apps:
        status = a.status.lower()
        title = f"Application {status}"
        if as_sponsor:
            description = f'{a.user.name or "A creator"} applied to "{a.listing.title}" ({status}).'
            link = f"/dashboard/listings/{a.listing_id}"
        else:
            description = f'Your application for "{a.listing.title}" is {status}.'
            link = "/dashboard/applications"
        items.append((a.updated_at, {"id": a.id, "type": "application_update", "title": title,
                                     "description": description, "link": link}))
    for m in msgs:
        items.append(
            (
                m.created_at,
                {
                    "id": m.id,
                    "type": "message",
                    "title": f"Message from {m.sender.name or 'Unknown'}",
                    "description": _preview(m.content),
                    "link": f"/dashboard/messages?conversation={m.conversation_id}",
                },
            )
        )

    items.sort(key=lambda pair: pair[0], reverse=True)
    out = []
    for when, item in items[:ACTIVITY_LIMIT]:
        item["time"] = iso(when)
        out.append(item)
    return out
