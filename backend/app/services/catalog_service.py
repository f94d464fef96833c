"""Read-only access to catalog products and identity relationships."""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.booking import Booking
from app.models.product import Product
from app.models.user import User, UserRole, UserStatus


async def get_resource(session: AsyncSession, product_id: uuid.UUID) -> Product:
    """Return the product or raise NotFoundError."""
    product = await session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


async def get_active_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await session.get(User, user_id)
    if user is None or user.status != UserStatus.ACTIVE:
        raise NotFoundError(f"User {user_id} not found")
    return user


def is_owner_of(product: Product, actor_id: uuid.UUID | None) -> bool:
    return actor_id is not None and product.owner_id == actor_id


def is_renter_of(booking: Booking, actor_id: uuid.UUID | None) -> bool:
    return actor_id is not None and booking.renter_id == actor_id


async def is_admin(session: AsyncSession, actor_id: uuid.UUID | None) -> bool:
    if actor_id is None:
        return False
    user = await session.get(User, actor_id)
    return user is not None and user.role == UserRole.ADMIN
