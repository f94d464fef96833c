"""Pydantic schemas for bookings, deposits and payments."""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models.booking import BookingStatus, DeliveryMethod
from app.services.payment_service import PaymentPurpose


class BookingCreate(BaseModel):
    """Payload for requesting a booking."""

    product_id: uuid.UUID
    start_at: datetime
    end_at: datetime


class DepositRead(BaseModel):
    """Serialized deposit sub-record."""

    amount: Decimal
    reason: str | None = None
    requested: bool
    requested_at: datetime | None = None
    paid: bool
    paid_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class BookingRead(BaseModel):
    """Serialized booking representation."""

    id: uuid.UUID
    product_id: uuid.UUID
    renter_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    total_price: Decimal
    status: BookingStatus
    delivery_method: DeliveryMethod | None = None
    pickup_location: str | None = None
    delivery_code: str | None = None
    rejection_reason: str | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    deposit: DepositRead | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ApproveRequest(BaseModel):
    delivery_method: DeliveryMethod
    pickup_location: str | None = Field(default=None, max_length=512)


class RejectRequest(BaseModel):
    reason: str = Field(max_length=1024)


class DepositRequest(BaseModel):
    """Owner's deposit request for an approved booking."""

    amount: Decimal = Field(gt=Decimal("0"), max_digits=12, decimal_places=2)
    reason: str | None = Field(default=None, max_length=1024)


class PaymentReferenceRequest(BaseModel):
    """External payment reference to verify with the gateway."""

    payment_reference: str = Field(min_length=1, max_length=255)


class PaymentIntentRequest(BaseModel):
    purpose: PaymentPurpose = PaymentPurpose.RENTAL


class PaymentIntentResponse(BaseModel):
    """Client secret and intent id for completing a payment."""

    payment_intent_id: str
    client_secret: str | None
    status: str


class BookedInterval(BaseModel):
    start_at: datetime
    end_at: datetime


class AvailabilityResponse(BaseModel):
    """Live bookings inside a product calendar window."""

    product_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    has_conflict: bool
    booked: list[BookedInterval] = Field(default_factory=list)
