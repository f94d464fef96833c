"""Booking and deposit models."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.exceptions import ValidationError
from app.db.base import Base
from app.models.mixins import TimestampMixin

if TYPE_CHECKING:
    from app.models.product import Product
    from app.models.user import User


class BookingStatus(str, enum.Enum):
    """Lifecycle states for bookings."""

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_live(self) -> bool:
        return self in LIVE_STATUSES


LIVE_STATUSES = frozenset(
    {BookingStatus.PENDING_APPROVAL, BookingStatus.APPROVED, BookingStatus.PAID}
)
TERMINAL_STATUSES = frozenset(
    {BookingStatus.REJECTED, BookingStatus.COMPLETED, BookingStatus.CANCELLED}
)


class DeliveryMethod(str, enum.Enum):
    """How the item reaches the renter."""

    PICKUP = "pickup"
    SHIPPING = "shipping"


class Booking(TimestampMixin, Base):
    """A renter's claim on one product for a date interval."""

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_booking_interval"),
        CheckConstraint("total_price >= 0", name="ck_booking_price_non_negative"),
        UniqueConstraint("payment_reference", name="uq_bookings_payment_reference"),
        Index("ix_bookings_product_status", "product_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    renter_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus),
        default=BookingStatus.PENDING_APPROVAL,
        nullable=False,
    )
    delivery_method: Mapped[DeliveryMethod | None] = mapped_column(Enum(DeliveryMethod))
    pickup_location: Mapped[str | None] = mapped_column(String(512))
    delivery_code: Mapped[str | None] = mapped_column(String(16))
    rejection_reason: Mapped[str | None] = mapped_column(String(1024))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_reference: Mapped[str | None] = mapped_column(String(255))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    product: Mapped["Product"] = relationship("Product", lazy="raise")
    renter: Mapped["User"] = relationship("User", lazy="raise")
    deposit: Mapped["BookingDeposit | None"] = relationship(
        "BookingDeposit",
        back_populates="booking",
        uselist=False,
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}


class BookingDeposit(TimestampMixin, Base):
    """Refundable hold requested by the owner on an approved booking."""

    __tablename__ = "booking_deposits"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_deposit_amount_positive"),
        CheckConstraint(
            "NOT paid OR requested", name="ck_deposit_paid_requires_request"
        ),
        UniqueConstraint(
            "payment_reference", name="uq_booking_deposits_payment_reference"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(1024))
    requested: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_reference: Mapped[str | None] = mapped_column(String(255))

    booking: Mapped[Booking] = relationship("Booking", back_populates="deposit")

    @property
    def outstanding(self) -> bool:
        return self.requested and not self.paid

    def ensure_consistent(self) -> None:
        """Reject flag combinations that cannot describe a real deposit."""
        if self.amount is None or self.amount <= Decimal("0"):
            raise ValidationError("Deposit amount must be greater than zero")
        requested = bool(self.requested)
        paid = bool(self.paid)
        if requested != (self.requested_at is not None):
            raise ValidationError("Deposit request flag and timestamp disagree")
        if paid and not requested:
            raise ValidationError("Deposit cannot be paid before it is requested")
        if paid != (self.paid_at is not None):
            raise ValidationError("Deposit paid flag and timestamp disagree")


@event.listens_for(BookingDeposit, "before_insert")
@event.listens_for(BookingDeposit, "before_update")
def _validate_deposit(_mapper, _connection, target: BookingDeposit) -> None:
    target.ensure_consistent()
