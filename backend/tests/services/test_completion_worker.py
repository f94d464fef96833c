"""Completion sweep worker tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from app.models import BookingStatus, DeliveryMethod
from app.services import booking_service, completion_worker, payment_service

pytestmark = pytest.mark.asyncio


async def _paid_booking_id(session, seed, gateway, *, end):
    start = end - timedelta(days=1)
    booking = await booking_service.create_booking(
        session,
        renter_id=seed.renter_id,
        product_id=seed.product_id,
        start_at=start,
        end_at=end,
        now=start - timedelta(hours=1),
    )
    booking_id = booking.id
    await booking_service.approve_booking(
        session,
        booking_id=booking_id,
        actor_id=seed.owner_id,
        delivery_method=DeliveryMethod.SHIPPING,
    )
    await payment_service.confirm_payment(
        session,
        booking_id=booking_id,
        actor_id=seed.renter_id,
        payment_reference=gateway.settle(
            f"pi_{booking_id.hex}", booking_id=booking_id, amount="50.00"
        ),
        gateway=gateway,
    )
    return booking_id


async def _status(session, seed, booking_id):
    session.expire_all()
    booking = await booking_service.get_booking(
        session, booking_id=booking_id, actor_id=seed.owner_id
    )
    return booking.status


async def test_sweep_completes_only_ended_bookings(session, seed, gateway, db_url) -> None:
    now = datetime.now(UTC)
    ended = await _paid_booking_id(session, seed, gateway, end=now - timedelta(hours=2))
    running = await _paid_booking_id(session, seed, gateway, end=now + timedelta(days=3))

    assert await completion_worker.run_sweep_once(db_url) == 1
    assert await completion_worker.run_sweep_once(db_url) == 0

    assert await _status(session, seed, ended) == BookingStatus.COMPLETED
    assert await _status(session, seed, running) == BookingStatus.PAID


async def test_completion_loop_stops_when_signalled(session, seed, gateway, db_url) -> None:
    ended = await _paid_booking_id(
        session, seed, gateway, end=datetime.now(UTC) - timedelta(hours=1)
    )
    stop_event = asyncio.Event()
    task = asyncio.create_task(
        completion_worker.completion_loop(
            stop_event, interval_seconds=0.05, database_url=db_url
        )
    )

    for _ in range(100):
        if await _status(session, seed, ended) == BookingStatus.COMPLETED:
            break
        await asyncio.sleep(0.02)
    stop_event.set()
    await asyncio.wait_for(task, timeout=2)

    assert await _status(session, seed, ended) == BookingStatus.COMPLETED
    assert task.done()


async def test_completion_loop_survives_unexpected_errors(monkeypatch, caplog) -> None:
    calls = 0
    stop_event = asyncio.Event()

    async def flaky_sweep(database_url=None):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise OSError("connection reset by peer")
        stop_event.set()
        return 0

    monkeypatch.setattr(completion_worker, "run_sweep_once", flaky_sweep)

    await asyncio.wait_for(
        completion_worker.completion_loop(stop_event, interval_seconds=0.01),
        timeout=2,
    )

    assert calls == 2
    assert "Completion sweep iteration failed" in caplog.text
