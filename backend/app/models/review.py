"""Post-rental review model."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.booking import Booking
from app.models.mixins import utcnow


class ReviewType(str, enum.Enum):
    """Which participant authored the review."""

    RENTER = "renter"
    OWNER = "owner"


class Review(Base):
    """Immutable rating left by a participant of a completed booking."""

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("booking_id", "review_type", name="uq_review_booking_type"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    review_type: Mapped[ReviewType] = mapped_column(Enum(ReviewType), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    booking: Mapped[Booking] = relationship("Booking", lazy="raise")
