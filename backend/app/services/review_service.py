"""Review gate and reputation aggregates."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    ValidationError,
)
from app.models.booking import Booking, BookingStatus
from app.models.product import Product
from app.models.review import Review, ReviewType
from app.services import booking_service, catalog_service

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RatingSummary:
    average: float
    count: int


@dataclass(slots=True)
class Reputation:
    user_id: uuid.UUID
    as_owner: RatingSummary
    as_renter: RatingSummary
    overall: RatingSummary


def _validate_rating(rating: int) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be an integer")
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    return rating


async def create_review(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    rating: int,
    comment: str | None,
    review_type: ReviewType,
) -> Review:
    """Persist a participant's review of a completed booking.

    ``ReviewType.RENTER`` reviews are written by the renter about the
    item and its owner; ``ReviewType.OWNER`` reviews by the owner about
    the renter. Each booking accepts at most one review of each type.
    """
    _validate_rating(rating)
    booking = await booking_service.get_booking(
        session, booking_id=booking_id, actor_id=actor_id
    )
    if booking.status != BookingStatus.COMPLETED:
        raise InvalidStateError("Only completed bookings can be reviewed")
    if review_type is ReviewType.RENTER:
        allowed = catalog_service.is_renter_of(booking, actor_id)
    else:
        allowed = catalog_service.is_owner_of(booking.product, actor_id)
    if not allowed:
        raise AuthorizationError(
            f"Only the booking's {review_type.value} can leave this review"
        )

    existing = await session.scalar(
        select(Review.id).where(
            Review.booking_id == booking_id, Review.review_type == review_type
        )
    )
    if existing is not None:
        raise ConflictError("This booking has already been reviewed")

    review = Review(
        booking_id=booking_id,
        author_id=actor_id,
        review_type=review_type,
        rating=rating,
        comment=(comment or "").strip() or None,
    )
    session.add(review)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("This booking has already been reviewed") from exc
    logger.info("Review %s (%s) created for booking %s", review.id, review_type.value, booking_id)
    return review


async def list_reviews_for_booking(
    session: AsyncSession, *, booking_id: uuid.UUID
) -> Sequence[Review]:
    stmt = (
        select(Review)
        .where(Review.booking_id == booking_id)
        .order_by(Review.created_at)
    )
    return (await session.execute(stmt)).scalars().all()


async def list_reviews_for_product(
    session: AsyncSession, *, product_id: uuid.UUID
) -> Sequence[Review]:
    """Return renter-written reviews of a product, newest first."""
    await catalog_service.get_resource(session, product_id)
    stmt = (
        select(Review)
        .join(Booking, Booking.id == Review.booking_id)
        .where(Booking.product_id == product_id, Review.review_type == ReviewType.RENTER)
        .order_by(Review.created_at.desc())
    )
    return (await session.execute(stmt)).scalars().all()


async def _summarize(session: AsyncSession, stmt) -> tuple[int, int]:
    total, count = (await session.execute(stmt)).one()
    return int(total or 0), int(count or 0)


def _summary(total: int, count: int) -> RatingSummary:
    return RatingSummary(average=total / count if count else 0.0, count=count)


async def user_reputation(session: AsyncSession, *, user_id: uuid.UUID) -> Reputation:
    """Aggregate the ratings a user received as an owner and as a renter."""
    await catalog_service.get_active_user(session, user_id)

    owner_total, owner_count = await _summarize(
        session,
        select(func.sum(Review.rating), func.count(Review.id))
        .join(Booking, Booking.id == Review.booking_id)
        .join(Product, Product.id == Booking.product_id)
        .where(Product.owner_id == user_id, Review.review_type == ReviewType.RENTER),
    )
    renter_total, renter_count = await _summarize(
        session,
        select(func.sum(Review.rating), func.count(Review.id))
        .join(Booking, Booking.id == Review.booking_id)
        .where(Booking.renter_id == user_id, Review.review_type == ReviewType.OWNER),
    )
    return Reputation(
        user_id=user_id,
        as_owner=_summary(owner_total, owner_count),
        as_renter=_summary(renter_total, renter_count),
        overall=_summary(owner_total + renter_total, owner_count + renter_count),
    )
