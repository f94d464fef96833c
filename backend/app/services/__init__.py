"""Service layer exports."""
from app.services import (
    availability_service,
    booking_service,
    catalog_service,
    notification_service,
    payment_service,
    pricing_service,
    review_service,
)

__all__ = [
    "availability_service",
    "booking_service",
    "catalog_service",
    "notification_service",
    "payment_service",
    "pricing_service",
    "review_service",
]
