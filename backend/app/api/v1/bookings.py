"""Booking lifecycle API."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, status

from app.api import deps, errors
from app.core.exceptions import BookingEngineError
from app.schemas.booking import (
    ApproveRequest,
    BookingCreate,
    BookingRead,
    DepositRequest,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentReferenceRequest,
    RejectRequest,
)
from app.services import booking_service, payment_service

router = APIRouter()


def _read_all(bookings) -> list[BookingRead]:
    return [BookingRead.model_validate(booking) for booking in bookings]


@router.post(
    "",
    response_model=BookingRead,
    status_code=status.HTTP_201_CREATED,
    summary="Request a booking",
    dependencies=[deps.rate_limit("booking")],
)
async def create_booking(
    payload: BookingCreate,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
) -> BookingRead:
    try:
        booking = await booking_service.create_booking(
            session,
            renter_id=current_user.id,
            product_id=payload.product_id,
            start_at=payload.start_at,
            end_at=payload.end_at,
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.get("/mine", response_model=list[BookingRead], summary="List my bookings")
async def list_my_bookings(
    session: deps.SessionDep, current_user: deps.CurrentUser
) -> list[BookingRead]:
    return _read_all(
        await booking_service.list_renter_bookings(session, renter_id=current_user.id)
    )


@router.get("/mine/history", response_model=list[BookingRead])
async def list_my_history(
    session: deps.SessionDep, current_user: deps.CurrentUser
) -> list[BookingRead]:
    return _read_all(
        await booking_service.list_renter_history(session, renter_id=current_user.id)
    )


@router.get("/mine/active", response_model=list[BookingRead])
async def list_my_active(
    session: deps.SessionDep, current_user: deps.CurrentUser
) -> list[BookingRead]:
    return _read_all(
        await booking_service.list_active_bookings(session, renter_id=current_user.id)
    )


@router.get("/owner", response_model=list[BookingRead], summary="Bookings of my products")
async def list_owner_bookings(
    session: deps.SessionDep, current_user: deps.CurrentUser
) -> list[BookingRead]:
    return _read_all(
        await booking_service.list_owner_bookings(session, owner_id=current_user.id)
    )


@router.get("/pending-approval", response_model=list[BookingRead])
async def list_pending_approvals(
    session: deps.SessionDep, current_user: deps.CurrentUser
) -> list[BookingRead]:
    return _read_all(
        await booking_service.list_pending_approvals(session, owner_id=current_user.id)
    )


@router.get("/{booking_id}", response_model=BookingRead, summary="Get booking")
async def get_booking(
    booking_id: uuid.UUID,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
) -> BookingRead:
    try:
        booking = await booking_service.get_booking(
            session, booking_id=booking_id, actor_id=current_user.id
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/approve", response_model=BookingRead)
async def approve_booking(
    booking_id: uuid.UUID,
    payload: ApproveRequest,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
) -> BookingRead:
    try:
        booking = await booking_service.approve_booking(
            session,
            booking_id=booking_id,
            actor_id=current_user.id,
            delivery_method=payload.delivery_method,
            pickup_location=payload.pickup_location,
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/reject", response_model=BookingRead)
async def reject_booking(
    booking_id: uuid.UUID,
    payload: RejectRequest,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
) -> BookingRead:
    try:
        booking = await booking_service.reject_booking(
            session,
            booking_id=booking_id,
            actor_id=current_user.id,
            reason=payload.reason,
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    booking_id: uuid.UUID,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
) -> BookingRead:
    try:
        booking = await booking_service.cancel_booking(
            session, booking_id=booking_id, actor_id=current_user.id
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingRead)
async def complete_booking(
    booking_id: uuid.UUID,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
) -> BookingRead:
    try:
        booking = await booking_service.complete_booking(
            session, booking_id=booking_id, actor_id=current_user.id
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/deposit/request", response_model=BookingRead)
async def request_deposit(
    booking_id: uuid.UUID,
    payload: DepositRequest,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
) -> BookingRead:
    try:
        booking = await payment_service.request_deposit(
            session,
            booking_id=booking_id,
            actor_id=current_user.id,
            amount=payload.amount,
            reason=payload.reason,
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/deposit/pay", response_model=BookingRead)
async def pay_deposit(
    booking_id: uuid.UUID,
    payload: PaymentReferenceRequest,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
    gateway: deps.GatewayDep,
) -> BookingRead:
    try:
        booking = await payment_service.pay_deposit(
            session,
            booking_id=booking_id,
            actor_id=current_user.id,
            payment_reference=payload.payment_reference,
            gateway=gateway,
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.post(
    "/{booking_id}/payment-intent",
    response_model=PaymentIntentResponse,
    dependencies=[deps.rate_limit("booking")],
)
async def create_payment_intent(
    booking_id: uuid.UUID,
    payload: PaymentIntentRequest,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
    gateway: deps.GatewayDep,
) -> PaymentIntentResponse:
    try:
        intent = await payment_service.create_payment_intent(
            session,
            booking_id=booking_id,
            actor_id=current_user.id,
            purpose=payload.purpose,
            gateway=gateway,
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return PaymentIntentResponse(
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        status=intent.status,
    )


@router.post("/{booking_id}/confirm-payment", response_model=BookingRead)
async def confirm_payment(
    booking_id: uuid.UUID,
    payload: PaymentReferenceRequest,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
    gateway: deps.GatewayDep,
) -> BookingRead:
    try:
        booking = await payment_service.confirm_payment(
            session,
            booking_id=booking_id,
            actor_id=current_user.id,
            payment_reference=payload.payment_reference,
            gateway=gateway,
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return BookingRead.model_validate(booking)
