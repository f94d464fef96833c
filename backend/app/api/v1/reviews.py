"""Review endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, status

from app.api import deps, errors
from app.core.exceptions import BookingEngineError
from app.schemas.review import ReputationRead, ReviewCreate, ReviewRead
from app.services import review_service

router = APIRouter()


@router.post("", response_model=ReviewRead, status_code=status.HTTP_201_CREATED)
async def create_review(
    payload: ReviewCreate,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
) -> ReviewRead:
    try:
        review = await review_service.create_review(
            session,
            booking_id=payload.booking_id,
            actor_id=current_user.id,
            rating=payload.rating,
            comment=payload.comment,
            review_type=payload.review_type,
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return ReviewRead.model_validate(review)


@router.get("/booking/{booking_id}", response_model=list[ReviewRead])
async def list_booking_reviews(
    booking_id: uuid.UUID, session: deps.SessionDep
) -> list[ReviewRead]:
    reviews = await review_service.list_reviews_for_booking(session, booking_id=booking_id)
    return [ReviewRead.model_validate(review) for review in reviews]


@router.get("/product/{product_id}", response_model=list[ReviewRead])
async def list_product_reviews(
    product_id: uuid.UUID, session: deps.SessionDep
) -> list[ReviewRead]:
    try:
        reviews = await review_service.list_reviews_for_product(
            session, product_id=product_id
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return [ReviewRead.model_validate(review) for review in reviews]


@router.get("/users/{user_id}/reputation", response_model=ReputationRead)
async def get_reputation(user_id: uuid.UUID, session: deps.SessionDep) -> ReputationRead:
    try:
        reputation = await review_service.user_reputation(session, user_id=user_id)
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return ReputationRead.model_validate(reputation)
