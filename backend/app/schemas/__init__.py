"""Schema exports."""

from app.schemas.booking import (
    ApproveRequest,
    AvailabilityResponse,
    BookedInterval,
    BookingCreate,
    BookingRead,
    DepositRead,
    DepositRequest,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentReferenceRequest,
    RejectRequest,
)
from app.schemas.notification import (
    MarkAllReadResponse,
    NotificationRead,
    UnreadCount,
)
from app.schemas.review import (
    RatingSummaryRead,
    ReputationRead,
    ReviewCreate,
    ReviewRead,
)

__all__ = [
    "ApproveRequest",
    "AvailabilityResponse",
    "BookedInterval",
    "BookingCreate",
    "BookingRead",
    "DepositRead",
    "DepositRequest",
    "MarkAllReadResponse",
    "NotificationRead",
    "PaymentIntentRequest",
    "PaymentIntentResponse",
    "PaymentReferenceRequest",
    "RatingSummaryRead",
    "ReputationRead",
    "ReviewCreate",
    "ReviewRead",
    "UnreadCount",
]
