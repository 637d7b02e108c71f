from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.blitz.models import Base, JSONType

if TYPE_CHECKING:
    from app.blitz.models import User
    from app.blitz.modules.applications.models import Application


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class ListingCategory(Base):
    __tablename__ = "listing_categories"
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id", ondelete="CASCADE"), primary_key=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True)


class Listing(Base):
    __tablename__ = "listings"
    __table_args__ = (
        Index("idx_listings_status", "status"),
        Index("idx_listings_type", "type"),
        Index("idx_listings_creator", "creator_id"),
        Index("idx_listings_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Required
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)  # SPONSORSHIP, COLLABORATION, PARTNERSHIP
    budget: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="OPEN")  # OPEN, CLOSED, DRAFT
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Free-form lists, e.g. requirements=["min 5000 followers"]
    requirements: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    perks: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    # Optional matching / event metadata
    platform: Mapped[str | None] = mapped_column(String(128), nullable=True)
    audience_profile: Mapped[str | None] = mapped_column(String(512), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    creator: Mapped["User"] = relationship("User", back_populates="listings", lazy="selectin")
    categories: Mapped[list[Category]] = relationship(
        Category,
        secondary="listing_categories",
        lazy="selectin",
        order_by=Category.name,
    )
    applications: Mapped[list["Application"]] = relationship(
        "Application",
        back_populates="listing",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    @property
    def category_names(self) -> list[str]:
        return [c.name for c in self.categories]
