"""Booking lifecycle state machine."""
from __future__ import annotations

import logging
import secrets
import string
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ResourceUnavailableError,
    ValidationError,
)
from app.models.booking import (
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    Booking,
    BookingStatus,
    DeliveryMethod,
)
from app.models.notification import NotificationType
from app.models.product import Product
from app.services import (
    availability_service,
    catalog_service,
    notification_service,
    pricing_service,
)
from app.services.availability_service import coerce_utc

logger = logging.getLogger(__name__)

_ALLOWED_STATUS_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING_APPROVAL: {
        BookingStatus.APPROVED,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.APPROVED: {BookingStatus.PAID, BookingStatus.CANCELLED},
    BookingStatus.PAID: {BookingStatus.COMPLETED},
    BookingStatus.REJECTED: set(),
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

_DELIVERY_CODE_ALPHABET = string.ascii_uppercase + string.digits
_DELIVERY_CODE_LENGTH = 8


def _now(now: datetime | None = None) -> datetime:
    return coerce_utc(now) if now is not None else datetime.now(UTC)


def generate_delivery_code() -> str:
    return "".join(
        secrets.choice(_DELIVERY_CODE_ALPHABET) for _ in range(_DELIVERY_CODE_LENGTH)
    )


def validate_status_transition(current: BookingStatus, target: BookingStatus) -> None:
    allowed = _ALLOWED_STATUS_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidStateError(
            f"Invalid status transition from {current.value} to {target.value}"
        )


def require_status(booking: Booking, expected: BookingStatus, action: str) -> None:
    if booking.status != expected:
        raise InvalidStateError(
            f"Cannot {action} a booking in status {booking.status.value}"
        )


def _validate_interval(start_at: datetime, end_at: datetime) -> None:
    if start_at >= end_at:
        raise ValidationError("Booking end time must be after start time")


def _booking_query():
    return select(Booking).options(
        selectinload(Booking.product),
        selectinload(Booking.deposit),
    )


async def _load_booking(session: AsyncSession, booking_id: uuid.UUID) -> Booking:
    stmt = (
        _booking_query()
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = (await session.execute(stmt)).scalars().one_or_none()
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


@asynccontextmanager
async def locked_booking(
    session: AsyncSession, booking_id: uuid.UUID
) -> AsyncIterator[Booking]:
    """Yield a freshly loaded booking while holding its product's lock.

    Any exception raised inside the block rolls the session back, so a
    rejected transition never leaves partial changes behind.
    """
    product_id = await session.scalar(
        select(Booking.product_id).where(Booking.id == booking_id)
    )
    if product_id is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    async with availability_service.resource_lock(session, product_id):
        try:
            yield await _load_booking(session, booking_id)
        except BaseException:
            await session.rollback()
            raise


async def commit_transition(session: AsyncSession) -> None:
    """Commit a booking write, translating lost version races and duplicates."""
    try:
        await session.commit()
    except StaleDataError as exc:
        await session.rollback()
        raise InvalidStateError("Booking was modified by a concurrent request") from exc
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("Booking write conflicts with an existing record") from exc


def _owner_id(booking: Booking) -> uuid.UUID:
    return booking.product.owner_id


def _require_owner(booking: Booking, actor_id: uuid.UUID | None, action: str) -> None:
    if not catalog_service.is_owner_of(booking.product, actor_id):
        raise AuthorizationError(f"Only the product owner can {action} this booking")


async def _notify(
    session: AsyncSession,
    booking: Booking,
    *,
    user_id: uuid.UUID,
    type: NotificationType,
    reason: str | None = None,
    amount: str | None = None,
) -> None:
    message = notification_service.build_message(
        type, product_name=booking.product.name, reason=reason, amount=amount
    )
    await notification_service.notify(
        session, user_id=user_id, type=type, booking_id=booking.id, message=message
    )


async def create_booking(
    session: AsyncSession,
    *,
    renter_id: uuid.UUID,
    product_id: uuid.UUID,
    start_at: datetime,
    end_at: datetime,
    now: datetime | None = None,
) -> Booking:
    """Reserve a product for ``[start_at, end_at)`` in PendingApproval."""
    start_at = coerce_utc(start_at)
    end_at = coerce_utc(end_at)
    _validate_interval(start_at, end_at)
    if start_at < _now(now):
        raise ValidationError("Booking start cannot be in the past")
    await catalog_service.get_active_user(session, renter_id)

    async with availability_service.resource_lock(session, product_id):
        try:
            product = await catalog_service.get_resource(session, product_id)
            if catalog_service.is_owner_of(product, renter_id):
                raise AuthorizationError("Owners cannot rent their own products")
            if not product.available:
                raise ResourceUnavailableError("Product is not available for booking")
            if await availability_service.has_conflict(
                session, product_id=product_id, start_at=start_at, end_at=end_at
            ):
                raise ConflictError("Product is already booked for the selected dates")

            booking = Booking(
                product_id=product_id,
                renter_id=renter_id,
                start_at=start_at,
                end_at=end_at,
                total_price=pricing_service.calculate_total(
                    product.price_per_day, start_at, end_at
                ),
                status=BookingStatus.PENDING_APPROVAL,
            )
            session.add(booking)
            await session.commit()
        except BaseException:
            await session.rollback()
            raise

    booking = await _load_booking(session, booking.id)
    logger.info(
        "Booking %s created for product %s by renter %s",
        booking.id,
        product_id,
        renter_id,
    )
    await _notify(
        session, booking, user_id=product.owner_id, type=NotificationType.NEW_BOOKING
    )
    return booking


async def approve_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    delivery_method: DeliveryMethod,
    pickup_location: str | None = None,
    now: datetime | None = None,
) -> Booking:
    pickup_location = (pickup_location or "").strip() or None
    async with locked_booking(session, booking_id) as booking:
        _require_owner(booking, actor_id, "approve")
        validate_status_transition(booking.status, BookingStatus.APPROVED)
        if delivery_method is DeliveryMethod.PICKUP and pickup_location is None:
            raise ValidationError("Pickup location is required for pickup delivery")
        if await availability_service.has_conflict(
            session,
            product_id=booking.product_id,
            start_at=booking.start_at,
            end_at=booking.end_at,
            exclude_booking_id=booking.id,
        ):
            raise ConflictError("Product is already booked for the selected dates")

        booking.status = BookingStatus.APPROVED
        booking.delivery_method = delivery_method
        booking.pickup_location = (
            pickup_location if delivery_method is DeliveryMethod.PICKUP else None
        )
        booking.delivery_code = generate_delivery_code()
        booking.approved_at = _now(now)
        await commit_transition(session)

    logger.info("Booking %s approved by %s", booking.id, actor_id)
    await _notify(
        session,
        booking,
        user_id=booking.renter_id,
        type=NotificationType.BOOKING_APPROVED,
    )
    return booking


async def reject_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    reason: str,
) -> Booking:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required")
    async with locked_booking(session, booking_id) as booking:
        _require_owner(booking, actor_id, "reject")
        validate_status_transition(booking.status, BookingStatus.REJECTED)
        booking.status = BookingStatus.REJECTED
        booking.rejection_reason = reason
        await commit_transition(session)

    logger.info("Booking %s rejected by %s", booking.id, actor_id)
    await _notify(
        session,
        booking,
        user_id=booking.renter_id,
        type=NotificationType.BOOKING_REJECTED,
        reason=reason,
    )
    return booking


async def cancel_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
) -> Booking:
    async with locked_booking(session, booking_id) as booking:
        by_renter = catalog_service.is_renter_of(booking, actor_id)
        by_owner = catalog_service.is_owner_of(booking.product, actor_id)
        if not (by_renter or by_owner):
            raise AuthorizationError("Only the renter or the owner can cancel this booking")
        if booking.status == BookingStatus.PAID:
            raise InvalidStateError(
                "Paid bookings cannot be cancelled here; request a refund instead"
            )
        validate_status_transition(booking.status, BookingStatus.CANCELLED)
        booking.status = BookingStatus.CANCELLED
        await commit_transition(session)

    logger.info("Booking %s cancelled by %s", booking.id, actor_id)
    if by_renter:
        await _notify(
            session,
            booking,
            user_id=_owner_id(booking),
            type=NotificationType.BOOKING_CANCELLED_BY_RENTER,
        )
    else:
        await _notify(
            session,
            booking,
            user_id=booking.renter_id,
            type=NotificationType.BOOKING_CANCELLED_BY_OWNER,
        )
    return booking


async def complete_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    system: bool = False,
    now: datetime | None = None,
) -> Booking:
    """Close a paid rental once its end time has passed.

    Completing an already completed booking returns it unchanged.
    """
    acting_as_system = system or await catalog_service.is_admin(session, actor_id)
    async with locked_booking(session, booking_id) as booking:
        if not acting_as_system:
            _require_owner(booking, actor_id, "complete")
        if booking.status == BookingStatus.COMPLETED:
            # nothing to write; end the transaction to release any advisory lock
            await session.commit()
            return booking
        validate_status_transition(booking.status, BookingStatus.COMPLETED)
        if _now(now) < coerce_utc(booking.end_at):
            raise InvalidStateError("Booking cannot be completed before its end time")
        booking.status = BookingStatus.COMPLETED
        await commit_transition(session)

    logger.info("Booking %s completed", booking.id)
    await _notify(
        session,
        booking,
        user_id=booking.renter_id,
        type=NotificationType.BOOKING_COMPLETED,
    )
    return booking


async def complete_due_bookings(
    session: AsyncSession, *, now: datetime | None = None
) -> list[uuid.UUID]:
    """Complete every paid booking whose rental period has ended."""
    cutoff = _now(now)
    due_ids = (
        await session.scalars(
            select(Booking.id)
            .where(Booking.status == BookingStatus.PAID, Booking.end_at <= cutoff)
            .order_by(Booking.end_at)
        )
    ).all()
    completed: list[uuid.UUID] = []
    for booking_id in due_ids:
        try:
            await complete_booking(session, booking_id=booking_id, system=True, now=cutoff)
        except InvalidStateError:
            logger.info("Booking %s changed before the sweep reached it", booking_id)
            continue
        completed.append(booking_id)
    return completed


async def get_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
) -> Booking:
    booking = await _load_booking(session, booking_id)
    if not (
        catalog_service.is_renter_of(booking, actor_id)
        or catalog_service.is_owner_of(booking.product, actor_id)
        or await catalog_service.is_admin(session, actor_id)
    ):
        raise AuthorizationError("Not a participant of this booking")
    return booking


async def list_renter_bookings(
    session: AsyncSession,
    *,
    renter_id: uuid.UUID,
    statuses: frozenset[BookingStatus] | None = None,
) -> Sequence[Booking]:
    stmt = (
        _booking_query()
        .where(Booking.renter_id == renter_id)
        .order_by(Booking.start_at.desc())
    )
    if statuses is not None:
        stmt = stmt.where(Booking.status.in_(statuses))
    return (await session.execute(stmt)).scalars().all()


async def list_renter_history(
    session: AsyncSession, *, renter_id: uuid.UUID
) -> Sequence[Booking]:
    return await list_renter_bookings(
        session, renter_id=renter_id, statuses=TERMINAL_STATUSES
    )


async def list_active_bookings(
    session: AsyncSession, *, renter_id: uuid.UUID
) -> Sequence[Booking]:
    return await list_renter_bookings(session, renter_id=renter_id, statuses=LIVE_STATUSES)


async def list_owner_bookings(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    status: BookingStatus | None = None,
) -> Sequence[Booking]:
    stmt = (
        _booking_query()
        .join(Product, Product.id == Booking.product_id)
        .where(Product.owner_id == owner_id)
    )
    if status is not None:
        stmt = stmt.where(Booking.status == status).order_by(Booking.created_at)
    else:
        stmt = stmt.order_by(Booking.start_at.desc())
    return (await session.execute(stmt)).scalars().all()


async def list_pending_approvals(
    session: AsyncSession, *, owner_id: uuid.UUID
) -> Sequence[Booking]:
    return await list_owner_bookings(
        session, owner_id=owner_id, status=BookingStatus.PENDING_APPROVAL
    )


async def list_product_bookings(
    session: AsyncSession,
    *,
    product_id: uuid.UUID,
    actor_id: uuid.UUID,
) -> Sequence[Booking]:
    product = await catalog_service.get_resource(session, product_id)
    if not catalog_service.is_owner_of(product, actor_id):
        raise AuthorizationError("Only the product owner can list its bookings")
    stmt = (
        _booking_query()
        .where(Booking.product_id == product_id)
        .order_by(Booking.start_at)
    )
    return (await session.execute(stmt)).scalars().all()
