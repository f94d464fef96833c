"""ORM models package export."""

from app.models.booking import (
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    Booking,
    BookingDeposit,
    BookingStatus,
    DeliveryMethod,
)
from app.models.notification import Notification, NotificationType
from app.models.product import Product
from app.models.review import Review, ReviewType
from app.models.user import User, UserRole, UserStatus

__all__ = [
    "LIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Booking",
    "BookingDeposit",
    "BookingStatus",
    "DeliveryMethod",
    "Notification",
    "NotificationType",
    "Product",
    "Review",
    "ReviewType",
    "User",
    "UserRole",
    "UserStatus",
]
