"""Live-booking overlap checks and per-product write serialization."""

from __future__ import annotations

import asyncio
import uuid
import weakref
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.booking import LIVE_STATUSES, Booking


def coerce_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class ResourceLockRegistry:
    """Hands out one ``asyncio.Lock`` per product id and event loop."""

    def __init__(self) -> None:
        self._locks: weakref.WeakKeyDictionary[
            asyncio.AbstractEventLoop, dict[uuid.UUID, asyncio.Lock]
        ] = weakref.WeakKeyDictionary()

    def get(self, product_id: uuid.UUID) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        per_loop = self._locks.setdefault(loop, {})
        lock = per_loop.get(product_id)
        if lock is None:
            lock = per_loop[product_id] = asyncio.Lock()
        return lock


_registry = ResourceLockRegistry()


def _advisory_key(product_id: uuid.UUID) -> int:
    # pg advisory locks take a signed 64-bit key
    return int.from_bytes(product_id.bytes[:8], "big", signed=True)


@asynccontextmanager
async def resource_lock(session: AsyncSession, product_id: uuid.UUID) -> AsyncIterator[None]:
    """Serialize check-and-write sequences touching one product's calendar.

    In-process callers queue on an asyncio lock. On PostgreSQL a
    transaction-scoped advisory lock extends the guarantee across
    workers; it is released when the caller commits or rolls back.
    """
    async with _registry.get(product_id):
        if session.bind.dialect.name == "postgresql":
            await session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": _advisory_key(product_id)},
            )
        yield


def _live_overlap_query(
    product_id: uuid.UUID,
    start_at: datetime,
    end_at: datetime,
    exclude_booking_id: uuid.UUID | None,
):
    stmt = select(Booking).where(
        Booking.product_id == product_id,
        Booking.status.in_(LIVE_STATUSES),
        Booking.start_at < end_at,
        Booking.end_at > start_at,
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    return stmt


async def has_conflict(
    session: AsyncSession,
    *,
    product_id: uuid.UUID,
    start_at: datetime,
    end_at: datetime,
    exclude_booking_id: uuid.UUID | None = None,
) -> bool:
    """Return True when a live booking for the product overlaps ``[start_at, end_at)``."""
    stmt = _live_overlap_query(
        product_id, coerce_utc(start_at), coerce_utc(end_at), exclude_booking_id
    )
    count = (
        await session.execute(select(func.count()).select_from(stmt.subquery()))
    ).scalar_one()
    return count > 0


async def booked_intervals(
    session: AsyncSession,
    *,
    product_id: uuid.UUID,
    start_at: datetime,
    end_at: datetime,
) -> Sequence[tuple[datetime, datetime]]:
    """Return the live intervals intersecting a calendar window, earliest first."""
    stmt = (
        select(Booking.start_at, Booking.end_at)
        .where(
            Booking.product_id == product_id,
            Booking.status.in_(LIVE_STATUSES),
            Booking.start_at < coerce_utc(end_at),
            Booking.end_at > coerce_utc(start_at),
        )
        .order_by(Booking.start_at)
    )
    rows = (await session.execute(stmt)).all()
    return [(coerce_utc(start), coerce_utc(end)) for start, end in rows]
