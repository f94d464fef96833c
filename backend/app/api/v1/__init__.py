"""Versioned API router."""

from fastapi import APIRouter

from . import bookings, health, notifications, products, reviews

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
router.include_router(products.router, prefix="/products", tags=["products"])
router.include_router(reviews.router, prefix="/reviews", tags=["reviews"])
router.include_router(
    notifications.router, prefix="/notifications", tags=["notifications"]
)

__all__ = ["router"]
