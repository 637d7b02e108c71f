from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.blitz.audit import record_event
from app.blitz.constants import (
    DEFAULT_NOTIFICATION_PREFS,
    LISTING_OPEN,
    LOGO_CONTENT_TYPES,
    LOGO_MAX_BYTES,
    ROLE_CREATOR,
    VALID_ROLES,
)
from app.blitz.models import User
from app.blitz.modules.profiles.models import Follow, ProfileView
from app.blitz.security import MIN_PASSWORD_LENGTH, hash_password, verify_password
from app.blitz.storage import Storage, build_logo_key
from app.blitz.utils import iso, string_list

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from werkzeug.datastructures import FileStorage

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10

# Legacy profile form keeps these inside socialLinks
LEGACY_SOCIAL_KEYS = ("budgetRange", "preferredPlatforms")


class ProfileError(ValueError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def logo_url(user: User) -> str | None:
    return f"/api/users/{user.id}/logo" if user.logo_key else None


def serialize_profile(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "bio": user.bio,
        "website": user.website,
        "socialLinks": user.social_links or {},
        "role": user.role,
        "isVerified": user.is_verified,
        "audienceProfile": user.audience_profile,
        "categories": list(user.categories or []),
        "followers": user.followers or 0,
        "engagement": user.engagement,
        "industry": user.industry,
        "logoUrl": logo_url(user),
        "createdAt": iso(user.created_at),
        "updatedAt": iso(user.updated_at),
    }


def serialize_public_profile(s: "Session", user: User) -> dict:
    follower_count = s.query(func.count(Follow.id)).filter(Follow.following_id == user.id).scalar() or 0
    open_listings = [l for l in user.listings if l.status == LISTING_OPEN and l.is_public]
    return {
        "id": user.id,
        "name": user.name,
        "image": user.image,
        "bio": user.bio,
        "website": user.website,
        "socialLinks": user.social_links or {},
        "role": user.role,
        "isVerified": user.is_verified,
        "categories": list(user.categories or []),
        "followers": user.followers or 0,
        "industry": user.industry,
        "logoUrl": logo_url(user),
        "followerCount": follower_count,
        "listings": [{"id": l.id, "title": l.title, "type": l.type} for l in open_listings],
        "createdAt": iso(user.created_at),
    }


def validate_profile_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    for key, label in (("name", "Name"), ("bio", "Bio"), ("website", "Website"), ("image", "Image"),
                       ("audienceProfile", "Audience profile"), ("industry", "Industry")):
        val = payload.get(key)
        if val is not None and not isinstance(val, str):
            errors.append(f"{label} must be a string")
    if "socialLinks" in payload and payload["socialLinks"] is not None and not isinstance(payload["socialLinks"], dict):
        errors.append("Social links must be an object")
    if "categories" in payload:
        _, err = string_list(payload["categories"])
        if err:
            errors.append(f"Categories {err}")
    if "followers" in payload and payload["followers"] is not None:
        f = payload["followers"]
        if isinstance(f, bool) or not isinstance(f, int) or f < 0:
            errors.append("Followers must be a non-negative integer")
    return errors


def _blank_to_none(val: str | None) -> str | None:
    if val is None:
        return None
    return val.strip() or None


def update_profile(s: "Session", user: User, payload: dict) -> User:
    """Partial update; only keys present in the payload are touched. Call validate_profile_payload first."""
    for key, attr in (("name", "name"), ("bio", "bio"), ("website", "website"), ("image", "image"),
                      ("audienceProfile", "audience_profile"), ("industry", "industry")):
        if key in payload:
            setattr(user, attr, _blank_to_none(payload[key]))
    if "socialLinks" in payload:
        user.social_links = dict(payload["socialLinks"] or {})
    if "categories" in payload:
        cats, _ = string_list(payload["categories"])
        user.categories = cats
    if "followers" in payload:
        user.followers = payload["followers"]
    user.updated_at = datetime.utcnow()
    return user


def legacy_profile(user: User) -> dict:
    links = user.social_links or {}
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "bio": user.bio,
        "website": user.website,
        "socialLinks": links,
        "role": user.role,
        "logoUrl": logo_url(user),
        "budgetRange": links.get("budgetRange"),
        "preferredPlatforms": links.get("preferredPlatforms"),
    }


def legacy_payload(user: User, payload: dict) -> dict:
    """Fold budgetRange / preferredPlatforms into socialLinks so update_profile can apply it."""
    out = {k: v for k, v in payload.items() if k not in LEGACY_SOCIAL_KEYS}
    extras = {k: payload[k] for k in LEGACY_SOCIAL_KEYS if payload.get(k)}
    if extras:
        links = payload.get("socialLinks")
        if links is None:
            links = user.social_links or {}
        if isinstance(links, dict):
            out["socialLinks"] = {**links, **extras}
    return out


def change_password(s: "Session", user: User, current: Any, new: Any) -> None:
    if not current or not new:
        raise ProfileError("Current password and new password are required")
    if not isinstance(new, str) or len(new) < MIN_PASSWORD_LENGTH:
        raise ProfileError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not verify_password(user.password_hash, str(current)):
        raise ProfileError("Current password is incorrect")
    user.password_hash = hash_password(new)
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="auth.password_change", entity_type="User", entity_id=str(user.id))


def delete_account(s: "Session", user: User, password: Any, storage: Storage | None = None) -> None:
    """
    Deletes the user and everything they own. Listings and applications go through the ORM cascade;
    messages, participants, follows and profile views through ON DELETE CASCADE; payments and
    audit events keep their rows with the user reference nulled.
    """
    if not password:
        raise ProfileError("Password is required to delete account")
    if not verify_password(user.password_hash, str(password)):
        raise ProfileError("Password is incorrect")

    record_event(
        s,
        actor=user,
        action="account.delete",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": user.role},
    )
    # audit row must exist before the user row goes so its actor id is nulled, not orphaned
    s.flush()
    logo_key = user.logo_key
    s.delete(user)
    s.flush()
    logger.info("Deleted account %s", user.id)
    if storage is not None and logo_key:
        storage.delete(logo_key)


def search_users(s: "Session", term: str, role: str = ROLE_CREATOR) -> list[User]:
    term = (term or "").strip()
    if not term:
        return []
    role = (role or ROLE_CREATOR).strip().upper()
    if role not in VALID_ROLES:
        raise ProfileError(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
    like = f"%{term.lower()}%"
    return (
        s.query(User)
        .filter(
            User.role == role,
            User.is_active.is_(True),
            or_(func.lower(User.name).like(like), func.lower(User.email).like(like)),
        )
        .order_by(User.name.asc(), User.id.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )


def record_profile_view(s: "Session", profile: User, viewer: User | None) -> ProfileView | None:
    if viewer is not None and viewer.id == profile.id:
        return None
    pv = ProfileView(user_id=profile.id, viewer_id=viewer.id if viewer else None, viewed_at=datetime.utcnow())
    s.add(pv)
    return pv


def profile_view_count(s: "Session", user: User) -> int:
    return s.query(func.count(ProfileView.id)).filter(ProfileView.user_id == user.id).scalar() or 0


def store_logo(s: "Session", user: User, upload: "FileStorage", storage: Storage) -> str:
    content_type = (upload.mimetype or "").lower()
    if content_type not in LOGO_CONTENT_TYPES:
        raise ProfileError("Logo must be a PNG, JPEG, GIF or WebP image")
    data = upload.read(LOGO_MAX_BYTES + 1)
    if not data:
        raise ProfileError("Uploaded file is empty")
    if len(data) > LOGO_MAX_BYTES:
        raise ProfileError("Logo must be 5MB or smaller", status_code=413)

    old_key = user.logo_key
    key = build_logo_key(user.id, content_type)
    storage.put_bytes(key, data, content_type=content_type)
    user.logo_key = key
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="profile.logo_upload",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"storage_key": key, "bytes": len(data)},
    )
    logger.info("Stored logo %s for user %s (%d bytes)", key, user.id, len(data))
    if old_key and old_key != key:
        storage.delete(old_key)
    return logo_url(user)


# ---------- Follow ----------
def _follow_target(s: "Session", follower: User, target_id: int | None) -> User:
    if target_id is None or target_id == follower.id:
        raise ProfileError("Invalid target")
    target = s.get(User, target_id)
    if not target or target.role != ROLE_CREATOR:
        raise ProfileError("Target must be a creator")
    return target


def find_follow(s: "Session", follower: User, target_id: int) -> Follow | None:
    return (
        s.query(Follow)
        .filter(Follow.follower_id == follower.id, Follow.following_id == target_id)
        .one_or_none()
    )


def follow(s: "Session", follower: User, target_id: int | None) -> bool:
    """Returns True when a new follow was created, False when it already existed."""
    target = _follow_target(s, follower, target_id)
    if find_follow(s, follower, target.id) is not None:
        return False
    s.add(Follow(follower_id=follower.id, following_id=target.id, created_at=datetime.utcnow()))
    s.flush()
    return True


def unfollow(s: "Session", follower: User, target_id: int | None) -> None:
    if target_id is None or target_id == follower.id:
        raise ProfileError("Invalid target")
    (
        s.query(Follow)
        .filter(Follow.follower_id == follower.id, Follow.following_id == target_id)
        .delete(synchronize_session=False)
    )


# ---------- Notification preferences ----------
def notification_prefs(user: User) -> dict:
    """Defaults overlaid with whatever the user has saved."""
    prefs = copy.deepcopy(DEFAULT_NOTIFICATION_PREFS)
    for channel, flags in (user.notification_prefs or {}).items():
        if channel in prefs and isinstance(flags, dict):
            prefs[channel].update({k: v for k, v in flags.items() if k in prefs[channel]})
    return prefs


def validate_notification_prefs(payload: Any) -> list[str]:
    if not isinstance(payload, dict) or not payload:
        return ["Invalid preferences format"]
    errors: list[str] = []
    for channel, flags in payload.items():
        known = DEFAULT_NOTIFICATION_PREFS.get(channel)
        if known is None:
            errors.append(f"Unknown notification channel: {channel}")
            continue
        if not isinstance(flags, dict):
            errors.append(f"{channel} must be an object")
            continue
        for flag, value in flags.items():
            if flag not in known:
                errors.append(f"Unknown setting {channel}.{flag}")
            elif not isinstance(value, bool):
                errors.append(f"{channel}.{flag} must be true or false")
    return errors


def set_notification_prefs(user: User, payload: dict) -> dict:
    merged = notification_prefs(user)
    for channel, flags in payload.items():
        merged[channel].update(flags)
    user.notification_prefs = merged
    user.updated_at = datetime.utcnow()
    return merged
