"""Product calendar endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status

from app.api import deps, errors
from app.core.exceptions import BookingEngineError
from app.schemas.booking import AvailabilityResponse, BookedInterval, BookingRead
from app.services import availability_service, booking_service, catalog_service

router = APIRouter()


@router.get(
    "/{product_id}/availability",
    response_model=AvailabilityResponse,
    summary="Booked intervals inside a window",
)
async def get_availability(
    product_id: uuid.UUID,
    session: deps.SessionDep,
    start_at: datetime = Query(...),
    end_at: datetime = Query(...),
) -> AvailabilityResponse:
    start_at = availability_service.coerce_utc(start_at)
    end_at = availability_service.coerce_utc(end_at)
    if start_at >= end_at:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_at must be after start_at",
        )
    try:
        await catalog_service.get_resource(session, product_id)
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    intervals = await availability_service.booked_intervals(
        session, product_id=product_id, start_at=start_at, end_at=end_at
    )
    return AvailabilityResponse(
        product_id=product_id,
        start_at=start_at,
        end_at=end_at,
        has_conflict=bool(intervals),
        booked=[BookedInterval(start_at=start, end_at=end) for start, end in intervals],
    )


@router.get("/{product_id}/bookings", response_model=list[BookingRead])
async def list_product_bookings(
    product_id: uuid.UUID,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
) -> list[BookingRead]:
    try:
        bookings = await booking_service.list_product_bookings(
            session, product_id=product_id, actor_id=current_user.id
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return [BookingRead.model_validate(booking) for booking in bookings]
