"""In-app notification helpers."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationError, NotFoundError
from app.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)

_TEMPLATES: dict[NotificationType, str] = {
    NotificationType.NEW_BOOKING: "New booking request for '{product}'",
    NotificationType.BOOKING_APPROVED: (
        "Your booking for '{product}' has been approved! "
        "You can now proceed with payment."
    ),
    NotificationType.BOOKING_REJECTED: "Your booking for '{product}' was rejected.",
    NotificationType.DEPOSIT_REQUESTED: (
        "The owner of '{product}' requested a deposit of {amount}."
    ),
    NotificationType.DEPOSIT_PAID: "Deposit paid for the booking of '{product}'",
    NotificationType.PAYMENT_RECEIVED: "Payment received for the booking of '{product}'",
    NotificationType.BOOKING_CANCELLED_BY_RENTER: (
        "The renter cancelled their booking for '{product}'"
    ),
    NotificationType.BOOKING_CANCELLED_BY_OWNER: (
        "Your booking for '{product}' was cancelled by the owner"
    ),
    NotificationType.BOOKING_COMPLETED: (
        "Your rental of '{product}' is complete. You can now leave a review."
    ),
}


def build_message(
    type: NotificationType,
    *,
    product_name: str,
    reason: str | None = None,
    amount: str | None = None,
) -> str:
    message = _TEMPLATES[type].format(product=product_name, amount=amount or "")
    if type is NotificationType.BOOKING_REJECTED and reason:
        message += f" Reason: {reason}"
    return message


async def notify(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    type: NotificationType,
    booking_id: uuid.UUID | None,
    message: str,
) -> uuid.UUID | None:
    """Record a notification without affecting the caller's transaction.

    Runs in its own session on the caller's engine, after the booking
    transition has committed. A failure here is logged and swallowed so
    it can never undo the transition that triggered it.
    """
    try:
        async with AsyncSession(session.bind, expire_on_commit=False) as side_session:
            notification = Notification(
                user_id=user_id,
                booking_id=booking_id,
                type=type,
                message=message,
                created_at=datetime.now(UTC),
            )
            side_session.add(notification)
            await side_session.commit()
            return notification.id
    except SQLAlchemyError:
        logger.exception(
            "Failed to record %s notification for user %s", type.value, user_id
        )
        return None


async def list_for_user(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    unread_only: bool = False,
) -> list[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
    )
    if unread_only:
        stmt = stmt.where(Notification.read_at.is_(None))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def unread_count(session: AsyncSession, *, user_id: uuid.UUID) -> int:
    stmt = select(func.count()).where(
        Notification.user_id == user_id, Notification.read_at.is_(None)
    )
    return (await session.execute(stmt)).scalar_one()


async def mark_read(
    session: AsyncSession,
    *,
    notification_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Notification:
    notification = await session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    if notification.user_id != user_id:
        raise AuthorizationError("Notification belongs to another user")
    if notification.read_at is None:
        notification.read_at = datetime.now(UTC)
        await session.commit()
    return notification


async def mark_all_read(session: AsyncSession, *, user_id: uuid.UUID) -> int:
    result = await session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
        .values(read_at=datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount or 0
