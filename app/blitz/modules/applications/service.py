from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.blitz.audit import record_event
from app.blitz.constants import (
    APP_ACCEPTED,
    APP_PENDING,
    APP_REJECTED,
    APP_WITHDRAWN,
    APPLICATION_STATUSES,
    LISTING_OPEN,
)
from app.blitz.modules.applications.models import Application
from app.blitz.utils import iso, money, user_summary

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.blitz.models import User
    from app.blitz.modules.listings.models import Listing


class ApplicationError(ValueError):
    """Rule violation when applying or moving an application between states."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def find_application(s: "Session", user: "User", listing_id: int) -> Application | None:
    return (
        s.query(Application)
        .filter(Application.user_id == user.id, Application.listing_id == listing_id)
        .one_or_none()
    )


def apply_to_listing(s: "Session", listing: "Listing", user: "User", proposal: str | None = None) -> Application:
    if listing.creator_id == user.id:
        raise ApplicationError("You cannot apply to your own listing")
    if listing.status != LISTING_OPEN:
        raise ApplicationError("Listing is not open for applications")
    if find_application(s, user, listing.id) is not None:
        raise ApplicationError("Already applied")

    now = datetime.utcnow()
    app_row = Application(
        user_id=user.id,
        listing_id=listing.id,
        proposal=(proposal or "").strip(),
        status=APP_PENDING,
        created_at=now,
        updated_at=now,
    )
    s.add(app_row)
    s.flush()
    record_event(
        s,
        actor=user,
        action="application.create",
        entity_type="Application",
        entity_id=str(app_row.id),
        metadata={"listing_id": listing.id},
    )
    return app_row


def change_status(s: "Session", app_row: Application, new_status: str, user: "User") -> Application:
    """
    Listing owner: PENDING -> ACCEPTED | REJECTED.
    Applicant:     PENDING -> WITHDRAWN.
    """
    new_status = (new_status or "").strip().upper()
    if new_status not in APPLICATION_STATUSES:
        raise ApplicationError(f"Invalid status. Must be one of: {', '.join(APPLICATION_STATUSES)}")

    is_owner = app_row.listing.creator_id == user.id
    is_applicant = app_row.user_id == user.id
    if not (is_owner or is_applicant):
        raise ApplicationError("Not allowed to update this application", status_code=403)

    if is_owner and new_status in (APP_ACCEPTED, APP_REJECTED):
        allowed = True
    elif is_applicant and new_status == APP_WITHDRAWN:
        allowed = True
    else:
        allowed = False
    if not allowed:
        raise ApplicationError("Not allowed to set this status")
    if app_row.status != APP_PENDING:
        raise ApplicationError(f"Application is already {app_row.status.lower()}")

    old = app_row.status
    app_row.status = new_status
    app_row.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="application.status",
        entity_type="Application",
        entity_id=str(app_row.id),
        metadata={"old": old, "new": new_status, "listing_id": app_row.listing_id},
    )
    return app_row


def applications_for_user(s: "Session", user: "User") -> list[Application]:
    return (
        s.query(Application)
        .filter(Application.user_id == user.id)
        .order_by(Application.created_at.desc(), Application.id.desc())
        .all()
    )


def applications_for_listing(s: "Session", listing: "Listing") -> list[Application]:
    return (
        s.query(Application)
        .filter(Application.listing_id == listing.id)
        .order_by(Application.created_at.desc(), Application.id.desc())
        .all()
    )


def serialize_application(app_row: Application, *, with_listing: bool = False, with_user: bool = False) -> dict:
    d = {
        "id": app_row.id,
        "userId": app_row.user_id,
        "listingId": app_row.listing_id,
        "proposal": app_row.proposal,
        "status": app_row.status,
        "createdAt": iso(app_row.created_at),
        "updatedAt": iso(app_row.updated_at),
    }
    if with_listing:
        listing = app_row.listing
        d["listing"] = {
            "id": listing.id,
            "title": listing.title,
            "type": listing.type,
            "status": listing.status,
            "budget": money(listing.budget),
            "creatorId": listing.creator_id,
        }
    if with_user:
        d["user"] = user_summary(app_row.user)
    return d
