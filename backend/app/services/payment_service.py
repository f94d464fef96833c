"""Deposit and rental payment gate layered on the booking state machine."""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DepositOutstandingError,
    InvalidStateError,
    UpstreamError,
    ValidationError,
)
from app.core.settings import get_payment_settings
from app.integrations.stripe_client import (
    PaymentGateway,
    PaymentIntent,
    StripeClientError,
    to_minor_units,
)
from app.models.booking import Booking, BookingDeposit, BookingStatus
from app.models.notification import NotificationType
from app.services import booking_service, catalog_service, notification_service
from app.services.availability_service import coerce_utc
from app.services.pricing_service import quantize_money

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaymentPurpose(str, enum.Enum):
    RENTAL = "rental"
    DEPOSIT = "deposit"


def _now(now: datetime | None) -> datetime:
    return coerce_utc(now) if now is not None else datetime.now(UTC)


async def _call_gateway(fn: Callable[..., T], *args, timeout: float | None, **kwargs) -> T:
    """Run a blocking gateway call in a worker thread, bounded by ``timeout``."""
    if timeout is None:
        timeout = get_payment_settings().confirmation_timeout_seconds
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout)
    except TimeoutError as exc:
        raise UpstreamError("Payment gateway did not respond in time") from exc
    except StripeClientError as exc:
        raise UpstreamError(str(exc)) from exc


async def _retrieve_settled_intent(
    gateway: PaymentGateway, payment_reference: str, *, timeout: float | None
) -> PaymentIntent:
    intent = await _call_gateway(
        gateway.retrieve_payment_intent, payment_reference, timeout=timeout
    )
    if not intent.succeeded:
        raise UpstreamError("Payment has not been confirmed by the gateway")
    return intent


def _match_intent(
    intent: PaymentIntent,
    booking: Booking,
    *,
    purpose: PaymentPurpose,
    amount: Decimal,
) -> None:
    """Check a settled intent was created for this booking, purpose and amount."""
    metadata = intent.metadata or {}
    if metadata.get("booking_id") != str(booking.id):
        raise ValidationError("Payment reference belongs to a different booking")
    if metadata.get("purpose") != purpose.value:
        raise ValidationError(f"Payment reference was not made for the {purpose.value}")
    if intent.amount != to_minor_units(amount):
        raise ValidationError("Paid amount does not match the amount due")


async def _ensure_reference_unused(session: AsyncSession, reference: str) -> None:
    used = await session.scalar(
        select(Booking.id).where(Booking.payment_reference == reference).limit(1)
    )
    if used is None:
        used = await session.scalar(
            select(BookingDeposit.id)
            .where(BookingDeposit.payment_reference == reference)
            .limit(1)
        )
    if used is not None:
        raise ConflictError("Payment reference has already been used")


def _clean_reference(payment_reference: str) -> str:
    reference = (payment_reference or "").strip()
    if not reference:
        raise ValidationError("A payment reference is required")
    return reference


def _require_renter(booking: Booking, actor_id: uuid.UUID, action: str) -> None:
    if not catalog_service.is_renter_of(booking, actor_id):
        raise AuthorizationError(f"Only the renter can {action} for this booking")


def _guard_deposit_payment(booking: Booking, actor_id: uuid.UUID) -> BookingDeposit:
    _require_renter(booking, actor_id, "pay the deposit")
    booking_service.require_status(booking, BookingStatus.APPROVED, "pay a deposit for")
    deposit = booking.deposit
    if deposit is None or not deposit.requested:
        raise InvalidStateError("No deposit has been requested for this booking")
    if deposit.paid:
        raise InvalidStateError("Deposit has already been paid")
    return deposit


def _guard_rental_payment(booking: Booking, actor_id: uuid.UUID) -> None:
    _require_renter(booking, actor_id, "confirm payment")
    booking_service.validate_status_transition(booking.status, BookingStatus.PAID)
    if booking.deposit is not None and booking.deposit.outstanding:
        raise DepositOutstandingError(
            "The requested deposit must be paid before the rental payment"
        )


async def request_deposit(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    amount: Decimal,
    reason: str | None = None,
    now: datetime | None = None,
) -> Booking:
    """Ask the renter of an approved booking for a refundable deposit.

    Requesting again while the deposit is unpaid replaces its amount and
    reason; a paid deposit can no longer be changed.
    """
    amount = quantize_money(Decimal(amount))
    if amount <= Decimal("0"):
        raise ValidationError("Deposit amount must be greater than zero")
    reason = (reason or "").strip() or None
    requested_at = _now(now)

    async with booking_service.locked_booking(session, booking_id) as booking:
        if not catalog_service.is_owner_of(booking.product, actor_id):
            raise AuthorizationError("Only the product owner can request a deposit")
        booking_service.require_status(booking, BookingStatus.APPROVED, "request a deposit for")
        deposit = booking.deposit
        if deposit is not None and deposit.paid:
            raise InvalidStateError("Deposit has already been paid")
        if deposit is None:
            deposit = BookingDeposit(booking_id=booking.id, amount=amount, paid=False)
            booking.deposit = deposit
        deposit.amount = amount
        deposit.reason = reason
        deposit.requested = True
        deposit.requested_at = requested_at
        # bumps the booking version so concurrent transitions see the change
        booking.updated_at = requested_at
        await booking_service.commit_transition(session)

    logger.info("Deposit of %s requested on booking %s", amount, booking.id)
    await notification_service.notify(
        session,
        user_id=booking.renter_id,
        type=NotificationType.DEPOSIT_REQUESTED,
        booking_id=booking.id,
        message=notification_service.build_message(
            NotificationType.DEPOSIT_REQUESTED,
            product_name=booking.product.name,
            amount=str(amount),
        ),
    )
    return booking


async def pay_deposit(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    payment_reference: str,
    gateway: PaymentGateway,
    timeout: float | None = None,
    now: datetime | None = None,
) -> Booking:
    reference = _clean_reference(payment_reference)
    booking = await booking_service.get_booking(
        session, booking_id=booking_id, actor_id=actor_id
    )
    _guard_deposit_payment(booking, actor_id)
    await _ensure_reference_unused(session, reference)
    intent = await _retrieve_settled_intent(gateway, reference, timeout=timeout)

    async with booking_service.locked_booking(session, booking_id) as booking:
        deposit = _guard_deposit_payment(booking, actor_id)
        _match_intent(
            intent, booking, purpose=PaymentPurpose.DEPOSIT, amount=deposit.amount
        )
        await _ensure_reference_unused(session, reference)
        paid_at = _now(now)
        deposit.paid = True
        deposit.paid_at = paid_at
        deposit.payment_reference = reference
        booking.updated_at = paid_at
        await booking_service.commit_transition(session)

    logger.info("Deposit paid on booking %s", booking.id)
    await notification_service.notify(
        session,
        user_id=booking.product.owner_id,
        type=NotificationType.DEPOSIT_PAID,
        booking_id=booking.id,
        message=notification_service.build_message(
            NotificationType.DEPOSIT_PAID, product_name=booking.product.name
        ),
    )
    return booking


async def confirm_payment(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    payment_reference: str,
    gateway: PaymentGateway,
    timeout: float | None = None,
    now: datetime | None = None,
) -> Booking:
    """Move an approved booking to Paid once the gateway confirms the payment.

    The gateway is polled before any lock is taken or row is written; a
    timeout or gateway failure raises ``UpstreamError`` and leaves the
    booking Approved so the caller can retry. The settled intent must
    carry this booking's id, the rental purpose and the exact total, and
    a reference is accepted only once across bookings and deposits.
    """
    reference = _clean_reference(payment_reference)
    booking = await booking_service.get_booking(
        session, booking_id=booking_id, actor_id=actor_id
    )
    _guard_rental_payment(booking, actor_id)
    await _ensure_reference_unused(session, reference)
    intent = await _retrieve_settled_intent(gateway, reference, timeout=timeout)

    async with booking_service.locked_booking(session, booking_id) as booking:
        _guard_rental_payment(booking, actor_id)
        _match_intent(
            intent, booking, purpose=PaymentPurpose.RENTAL, amount=booking.total_price
        )
        await _ensure_reference_unused(session, reference)
        booking.status = BookingStatus.PAID
        booking.paid_at = _now(now)
        booking.payment_reference = reference
        await booking_service.commit_transition(session)

    logger.info("Booking %s paid", booking.id)
    await notification_service.notify(
        session,
        user_id=booking.product.owner_id,
        type=NotificationType.PAYMENT_RECEIVED,
        booking_id=booking.id,
        message=notification_service.build_message(
            NotificationType.PAYMENT_RECEIVED, product_name=booking.product.name
        ),
    )
    return booking


async def create_payment_intent(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    purpose: PaymentPurpose,
    gateway: PaymentGateway,
    timeout: float | None = None,
) -> PaymentIntent:
    """Create a gateway intent for the rental total or the requested deposit."""
    booking = await booking_service.get_booking(
        session, booking_id=booking_id, actor_id=actor_id
    )
    if purpose is PaymentPurpose.DEPOSIT:
        amount = _guard_deposit_payment(booking, actor_id).amount
    else:
        _guard_rental_payment(booking, actor_id)
        amount = booking.total_price
    return await _call_gateway(
        gateway.create_payment_intent,
        timeout=timeout,
        amount=amount,
        booking_id=booking.id,
        purpose=purpose.value,
        idempotency_seed=f"{booking.id}-{purpose.value}-{booking.version}",
    )
