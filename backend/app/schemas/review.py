"""Pydantic schemas for reviews and reputation."""
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.review import ReviewType


class ReviewCreate(BaseModel):
    booking_id: uuid.UUID
    rating: int = Field(ge=1, le=5, strict=True)
    comment: str | None = Field(default=None, max_length=2000)
    review_type: ReviewType


class ReviewRead(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    author_id: uuid.UUID
    review_type: ReviewType
    rating: int
    comment: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RatingSummaryRead(BaseModel):
    average: float
    count: int

    model_config = ConfigDict(from_attributes=True)


class ReputationRead(BaseModel):
    """Ratings a user received, split by role."""

    user_id: uuid.UUID
    as_owner: RatingSummaryRead
    as_renter: RatingSummaryRead
    overall: RatingSummaryRead

    model_config = ConfigDict(from_attributes=True)
