from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from app.blitz.constants import APP_ACCEPTED, LISTING_OPEN, ROLE_CREATOR, ROLE_SPONSOR
from app.blitz.models import User
from app.blitz.modules.listings.models import Listing
from app.blitz.modules.matching.scoring import (
    CreatorSnapshot,
    ListingSnapshot,
    calculate_match_score,
    days_ago,
    engagement_rate,
    is_match,
    match_breakdown,
)
from app.blitz.utils import iso, money

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

RECOMMENDATION_LIMIT = 5


def listing_snapshot(listing: Listing) -> ListingSnapshot:
    return ListingSnapshot(
        audience_profile=listing.audience_profile,
        categories=tuple(listing.category_names),
        requirements=tuple(listing.requirements or ()),
    )


def creator_snapshot(user: User) -> CreatorSnapshot:
    return CreatorSnapshot(
        audience_profile=user.audience_profile,
        categories=frozenset(user.categories or ()),
        followers=user.followers or 0,
    )


def _open_listings(user: User) -> list[Listing]:
    return [l for l in user.listings if l.status == LISTING_OPEN]


def _users_with_role(s: "Session", role: str) -> list[User]:
    return (
        s.query(User)
        .filter(User.role == role, User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )


def last_activity(user: User) -> datetime:
    stamps = [user.updated_at]
    stamps.extend(a.updated_at for a in user.applications)
    stamps.extend(l.updated_at for l in user.listings)
    return max(stamps)


def matches_for_user(s: "Session", user: User, now: datetime | None = None) -> list[dict]:
    """
    Sponsors see every creator, creators see every sponsor, each with recency and
    a 30-day engagement figure (applications for creators, listings for sponsors).
    """
    now = now or datetime.utcnow()
    if user.role == ROLE_SPONSOR:
        others = _users_with_role(s, ROLE_CREATOR)
    elif user.role == ROLE_CREATOR:
        others = _users_with_role(s, ROLE_SPONSOR)
    else:
        return []

    out = []
    for other in others:
        if other.role == ROLE_CREATOR:
            activity = [a.created_at for a in other.applications]
        else:
            activity = [l.created_at for l in other.listings]
        out.append(
            {
                "id": other.id,
                "name": other.name,
                "email": other.email,
                "image": other.image,
                "role": other.role,
                "lastActivity": days_ago(last_activity(other), now),
                "engagement": engagement_rate(activity, now),
            }
        )
    return out


def sponsor_matches(s: "Session", creator: User) -> list[dict]:
    """Every sponsor scored against the creator, best match first."""
    me = creator_snapshot(creator)
    out = []
    for sponsor in _users_with_role(s, ROLE_SPONSOR):
        listings = [l for l in _open_listings(sponsor) if l.is_public]
        snaps = [listing_snapshot(l) for l in listings]
        breakdown = match_breakdown(snaps, me)
        successful = sum(1 for l in sponsor.listings for a in l.applications if a.status == APP_ACCEPTED)
        out.append(
            {
                "id": sponsor.id,
                "name": sponsor.name,
                "industry": sponsor.industry or "",
                "logo": f"/api/users/{sponsor.id}/logo" if sponsor.logo_key else "",
                "matchScore": breakdown.score,
                "budget": money(sum((l.budget for l in listings), Decimal("0"))),
                "verified": sponsor.is_verified,
                "activeListings": len(listings),
                "successfulPartnerships": successful,
                "audienceMatch": breakdown.audience,
                "valueMatch": breakdown.value,
                "description": sponsor.bio or "",
                "listings": [
                    {
                        "id": l.id,
                        "name": l.title,
                        "type": l.type,
                        "platform": l.platform,
                        "audience": l.audience_profile,
                        "budget": money(l.budget),
                        "requirements": l.requirements or [],
                        "categories": l.category_names,
                        "location": l.location,
                        "date": iso(l.event_date),
                        "description": l.description,
                    }
                    for l in listings
                ],
            }
        )
    out.sort(key=lambda d: d["matchScore"], reverse=True)
    return out


def matched_creators(s: "Session", sponsor: User) -> list[dict]:
    """Creators meeting at least one criterion against the sponsor's listings, best match first."""
    snaps = [listing_snapshot(l) for l in sponsor.listings]
    out = []
    for creator in _users_with_role(s, ROLE_CREATOR):
        cs = creator_snapshot(creator)
        if not is_match(snaps, cs):
            continue
        out.append(
            {
                "id": creator.id,
                "name": creator.name or "Anonymous Creator",
                "email": creator.email,
                "image": creator.image,
                "matchScore": calculate_match_score(snaps, cs),
                "stats": {
                    "followers": creator.followers or 0,
                    "engagement": creator.engagement or 0,
                    "contentCount": len(creator.listings),
                },
                "categories": list(creator.categories or []),
            }
        )
    out.sort(key=lambda d: d["matchScore"], reverse=True)
    return out


def recommend_listings(s: "Session", user: User, limit: int = RECOMMENDATION_LIMIT) -> list[dict]:
    """
    Open public listings posted by the other side of the marketplace, ranked by fit:
    creators are scored against each sponsor listing, sponsors against each listing's creator.
    """
    if user.role == ROLE_CREATOR:
        other_role = ROLE_SPONSOR
    elif user.role == ROLE_SPONSOR:
        other_role = ROLE_CREATOR
    else:
        return []

    candidates = (
        s.query(Listing)
        .join(User, Listing.creator_id == User.id)
        .filter(
            Listing.status == LISTING_OPEN,
            Listing.is_public.is_(True),
            User.role == other_role,
            User.is_active.is_(True),
        )
        .order_by(Listing.created_at.desc(), Listing.id.desc())
        .all()
    )

    if user.role == ROLE_CREATOR:
        me = creator_snapshot(user)
        scored = [(calculate_match_score([listing_snapshot(l)], me), l) for l in candidates]
    else:
        mine = [listing_snapshot(l) for l in user.listings]
        scored = [(calculate_match_score(mine, creator_snapshot(l.creator)), l) for l in candidates]

    # stable sort keeps newest-first among equal scores
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [
        {
            "id": l.id,
            "title": l.title,
            "type": l.type,
            "budget": money(l.budget),
            "categories": l.category_names,
            "location": l.location,
            "matchScore": score,
            "creator": {"id": l.creator.id, "name": l.creator.name},
        }
        for score, l in scored[:limit]
    ]
