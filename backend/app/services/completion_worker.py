"""Background sweep that completes paid bookings after their end time."""

from __future__ import annotations

import asyncio
import logging

from app.core.settings import get_sweep_settings
from app.db.session import session_scope
from app.services import booking_service

logger = logging.getLogger(__name__)


async def run_sweep_once(database_url: str | None = None) -> int:
    async with session_scope(database_url) as session:
        completed = await booking_service.complete_due_bookings(session)
    if completed:
        logger.info("Completion sweep closed %d bookings", len(completed))
    return len(completed)


async def completion_loop(
    stop_event: asyncio.Event,
    *,
    interval_seconds: float | None = None,
    database_url: str | None = None,
) -> None:
    if interval_seconds is None:
        interval_seconds = get_sweep_settings().interval_seconds
    while not stop_event.is_set():
        try:
            await run_sweep_once(database_url)
        except Exception:
            # one failed iteration must not end the background task
            logger.exception("Completion sweep iteration failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except TimeoutError:
            continue
