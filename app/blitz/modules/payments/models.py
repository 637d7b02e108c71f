from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.blitz.models import Base

if TYPE_CHECKING:
    from app.blitz.models import User
    from app.blitz.modules.listings.models import Listing


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index("idx_payments_sender", "sender_id"),
        Index("idx_payments_receiver", "receiver_id"),
        Index("idx_payments_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Money (all in `currency`, 2dp)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    processing_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="usd")

    # Parties are nulled (not deleted) when an account goes away so the other side keeps its history
    sender_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    receiver_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    listing_id: Mapped[int | None] = mapped_column(ForeignKey("listings.id", ondelete="SET NULL"), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")  # PENDING, COMPLETED, FAILED, REFUNDED

    # Processor state
    payment_intent_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payment_intent_client_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    sender: Mapped["User | None"] = relationship("User", foreign_keys=[sender_id], lazy="selectin")
    receiver: Mapped["User | None"] = relationship("User", foreign_keys=[receiver_id], lazy="selectin")
    listing: Mapped["Listing | None"] = relationship("Listing", lazy="selectin")
