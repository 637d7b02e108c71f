from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.blitz.constants import ROLE_CREATOR

if TYPE_CHECKING:
    from app.blitz.modules.applications.models import Application
    from app.blitz.modules.listings.models import Listing


# JSONB on Postgres, plain JSON elsewhere (SQLite in dev/test).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_CREATOR)  # CREATOR, SPONSOR, ADMIN

    # Public profile
    image: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    social_links: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # Account state
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verification_token: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    verification_token_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reset_token: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    reset_token_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Creator matching data
    audience_profile: Mapped[str | None] = mapped_column(String(512), nullable=True)
    categories: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    followers: Mapped[int | None] = mapped_column(Integer, nullable=True)
    engagement: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Sponsor data
    industry: Mapped[str | None] = mapped_column(String(255), nullable=True)
    logo_key: Mapped[str | None] = mapped_column(String(512), nullable=True)  # storage key

    notification_prefs: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    listings: Mapped[list["Listing"]] = relationship(
        "Listing",
        back_populates="creator",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    applications: Mapped[list["Application"]] = relationship(
        "Application",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Keep this table intentionally generic; module tables can refer to it by id if needed.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_events_action", "action"),
        Index("idx_audit_events_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "auth.login"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Listing"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.blitz.modules.listings.models import Category, Listing, ListingCategory  # noqa: E402,F401
from app.blitz.modules.applications.models import Application  # noqa: E402,F401
from app.blitz.modules.messaging.models import Conversation, Message, Participant  # noqa: E402,F401
from app.blitz.modules.payments.models import Payment  # noqa: E402,F401
from app.blitz.modules.profiles.models import Follow, ProfileView  # noqa: E402,F401
