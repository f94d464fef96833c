"""Booking state machine tests."""

from __future__ import annotations

import asyncio
import re
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ResourceUnavailableError,
    ValidationError,
)
from app.models import Booking, BookingStatus, DeliveryMethod, NotificationType
from app.services import booking_service, notification_service, payment_service

pytestmark = pytest.mark.asyncio


async def _create(session, seed, start, end, *, renter_id=None, now=None) -> Booking:
    return await booking_service.create_booking(
        session,
        renter_id=renter_id or seed.renter_id,
        product_id=seed.product_id,
        start_at=start,
        end_at=end,
        now=now,
    )


async def _approve(session, seed, booking_id) -> Booking:
    return await booking_service.approve_booking(
        session,
        booking_id=booking_id,
        actor_id=seed.owner_id,
        delivery_method=DeliveryMethod.SHIPPING,
    )


async def _pay(session, seed, gateway, booking_id) -> Booking:
    booking = await booking_service.get_booking(
        session, booking_id=booking_id, actor_id=seed.renter_id
    )
    reference = gateway.settle(
        f"pi_{booking_id.hex}", booking_id=booking_id, amount=booking.total_price
    )
    return await payment_service.confirm_payment(
        session,
        booking_id=booking_id,
        actor_id=seed.renter_id,
        payment_reference=reference,
        gateway=gateway,
    )


async def _past_paid_booking(session, seed, gateway) -> Booking:
    end = datetime.now(UTC) - timedelta(days=1)
    start = end - timedelta(days=2)
    booking = await _create(session, seed, start, end, now=start - timedelta(hours=1))
    await _approve(session, seed, booking.id)
    return await _pay(session, seed, gateway, booking.id)


async def _booking_count(session) -> int:
    return (await session.execute(select(func.count(Booking.id)))).scalar_one()


async def _types_for(session, user_id) -> list[NotificationType]:
    notifications = await notification_service.list_for_user(session, user_id=user_id)
    return [item.type for item in notifications]


async def test_create_prices_booking_and_notifies_owner(session, seed, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=2))

    assert booking.status == BookingStatus.PENDING_APPROVAL
    assert booking.total_price == Decimal("100.00")
    assert booking.deposit is None
    assert await _types_for(session, seed.owner_id) == [NotificationType.NEW_BOOKING]


async def test_overlapping_request_while_pending_conflicts(session, seed, base_time) -> None:
    await _create(session, seed, base_time, base_time + timedelta(days=2))

    with pytest.raises(ConflictError) as excinfo:
        await _create(
            session,
            seed,
            base_time + timedelta(days=1),
            base_time + timedelta(days=3),
            renter_id=seed.other_renter_id,
        )

    assert not isinstance(excinfo.value, ResourceUnavailableError)
    assert await _booking_count(session) == 1


async def test_back_to_back_bookings_are_allowed(session, seed, base_time) -> None:
    await _create(session, seed, base_time, base_time + timedelta(days=2))
    second = await _create(
        session,
        seed,
        base_time + timedelta(days=2),
        base_time + timedelta(days=3),
        renter_id=seed.other_renter_id,
    )
    assert second.status == BookingStatus.PENDING_APPROVAL


async def test_create_rejects_inverted_interval(session, seed, base_time) -> None:
    with pytest.raises(ValidationError):
        await _create(session, seed, base_time, base_time)
    with pytest.raises(ValidationError):
        await _create(session, seed, base_time + timedelta(days=1), base_time)
    assert await _booking_count(session) == 0


async def test_create_rejects_start_in_the_past(session, seed) -> None:
    start = datetime.now(UTC) - timedelta(days=1)
    with pytest.raises(ValidationError):
        await _create(session, seed, start, start + timedelta(days=2))


async def test_create_rejects_unavailable_product(session, seed, base_time) -> None:
    with pytest.raises(ResourceUnavailableError):
        await booking_service.create_booking(
            session,
            renter_id=seed.renter_id,
            product_id=seed.unavailable_product_id,
            start_at=base_time,
            end_at=base_time + timedelta(days=1),
        )
    assert await _booking_count(session) == 0


async def test_owner_cannot_rent_own_product(session, seed, base_time) -> None:
    with pytest.raises(AuthorizationError):
        await _create(
            session, seed, base_time, base_time + timedelta(days=1), renter_id=seed.owner_id
        )


async def test_create_unknown_product_is_not_found(session, seed, base_time) -> None:
    with pytest.raises(NotFoundError):
        await booking_service.create_booking(
            session,
            renter_id=seed.renter_id,
            product_id=seed.admin_id,
            start_at=base_time,
            end_at=base_time + timedelta(days=1),
        )


async def test_concurrent_overlapping_creates_exactly_one_wins(
    session_factory, seed, base_time
) -> None:
    async def attempt(renter_id):
        async with session_factory() as own_session:
            return await booking_service.create_booking(
                own_session,
                renter_id=renter_id,
                product_id=seed.product_id,
                start_at=base_time,
                end_at=base_time + timedelta(days=2),
            )

    results = await asyncio.gather(
        attempt(seed.renter_id),
        attempt(seed.other_renter_id),
        return_exceptions=True,
    )

    created = [item for item in results if isinstance(item, Booking)]
    conflicts = [item for item in results if isinstance(item, ConflictError)]
    assert len(created) == 1
    assert len(conflicts) == 1

    async with session_factory() as check:
        assert await _booking_count(check) == 1


async def test_approve_generates_delivery_code_and_notifies_renter(
    session, seed, base_time
) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id

    approved = await booking_service.approve_booking(
        session,
        booking_id=booking_id,
        actor_id=seed.owner_id,
        delivery_method=DeliveryMethod.PICKUP,
        pickup_location="  12 Rua das Flores, Aveiro  ",
    )

    assert approved.status == BookingStatus.APPROVED
    assert approved.approved_at is not None
    assert approved.pickup_location == "12 Rua das Flores, Aveiro"
    assert re.fullmatch(r"[A-Z0-9]{8}", approved.delivery_code)
    assert NotificationType.BOOKING_APPROVED in await _types_for(session, seed.renter_id)


async def test_pickup_without_location_leaves_booking_untouched(
    session, seed, base_time
) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id
    version = booking.version

    with pytest.raises(ValidationError):
        await booking_service.approve_booking(
            session,
            booking_id=booking_id,
            actor_id=seed.owner_id,
            delivery_method=DeliveryMethod.PICKUP,
            pickup_location="   ",
        )

    await session.refresh(booking)
    assert booking.status == BookingStatus.PENDING_APPROVAL
    assert booking.delivery_code is None
    assert booking.approved_at is None
    assert booking.version == version


async def test_only_owner_can_approve_or_reject(session, seed, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id

    with pytest.raises(AuthorizationError):
        await booking_service.approve_booking(
            session,
            booking_id=booking_id,
            actor_id=seed.renter_id,
            delivery_method=DeliveryMethod.SHIPPING,
        )
    with pytest.raises(AuthorizationError):
        await booking_service.reject_booking(
            session, booking_id=booking_id, actor_id=seed.other_owner_id, reason="no"
        )


async def test_reject_frees_the_slot(session, seed, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=2))
    booking_id = booking.id

    rejected = await booking_service.reject_booking(
        session, booking_id=booking_id, actor_id=seed.owner_id, reason="out of stock"
    )

    assert rejected.status == BookingStatus.REJECTED
    assert rejected.rejection_reason == "out of stock"
    renter_notifications = await notification_service.list_for_user(
        session, user_id=seed.renter_id
    )
    assert "out of stock" in renter_notifications[0].message

    again = await _create(
        session,
        seed,
        base_time,
        base_time + timedelta(days=2),
        renter_id=seed.other_renter_id,
    )
    assert again.status == BookingStatus.PENDING_APPROVAL


async def test_reject_requires_reason(session, seed, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id
    with pytest.raises(ValidationError):
        await booking_service.reject_booking(
            session, booking_id=booking_id, actor_id=seed.owner_id, reason="  "
        )


async def test_terminal_bookings_accept_no_transitions(session, seed, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id
    await booking_service.reject_booking(
        session, booking_id=booking_id, actor_id=seed.owner_id, reason="no"
    )

    with pytest.raises(InvalidStateError):
        await _approve(session, seed, booking_id)
    with pytest.raises(InvalidStateError):
        await booking_service.reject_booking(
            session, booking_id=booking_id, actor_id=seed.owner_id, reason="again"
        )
    with pytest.raises(InvalidStateError):
        await booking_service.cancel_booking(
            session, booking_id=booking_id, actor_id=seed.renter_id
        )

    await session.refresh(booking)
    assert booking.status == BookingStatus.REJECTED


async def test_approved_booking_cannot_be_approved_or_rejected_again(
    session, seed, base_time
) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id
    await _approve(session, seed, booking_id)

    with pytest.raises(InvalidStateError):
        await _approve(session, seed, booking_id)
    with pytest.raises(InvalidStateError):
        await booking_service.reject_booking(
            session, booking_id=booking_id, actor_id=seed.owner_id, reason="late"
        )
    with pytest.raises(InvalidStateError):
        await booking_service.complete_booking(
            session, booking_id=booking_id, actor_id=seed.owner_id
        )


async def test_cancel_by_renter_notifies_owner(session, seed, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id
    await _approve(session, seed, booking_id)

    cancelled = await booking_service.cancel_booking(
        session, booking_id=booking_id, actor_id=seed.renter_id
    )

    assert cancelled.status == BookingStatus.CANCELLED
    assert NotificationType.BOOKING_CANCELLED_BY_RENTER in await _types_for(
        session, seed.owner_id
    )


async def test_cancel_by_owner_notifies_renter(session, seed, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id

    await booking_service.cancel_booking(
        session, booking_id=booking_id, actor_id=seed.owner_id
    )

    assert NotificationType.BOOKING_CANCELLED_BY_OWNER in await _types_for(
        session, seed.renter_id
    )


async def test_stranger_cannot_cancel(session, seed, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id
    with pytest.raises(AuthorizationError):
        await booking_service.cancel_booking(
            session, booking_id=booking_id, actor_id=seed.other_renter_id
        )


async def test_paid_booking_cannot_be_cancelled(session, seed, gateway, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id
    await _approve(session, seed, booking_id)
    await _pay(session, seed, gateway, booking_id)

    with pytest.raises(InvalidStateError):
        await booking_service.cancel_booking(
            session, booking_id=booking_id, actor_id=seed.renter_id
        )
    with pytest.raises(InvalidStateError):
        await booking_service.cancel_booking(
            session, booking_id=booking_id, actor_id=seed.owner_id
        )

    await session.refresh(booking)
    assert booking.status == BookingStatus.PAID


async def test_complete_is_idempotent(session, seed, gateway) -> None:
    booking = await _past_paid_booking(session, seed, gateway)
    booking_id = booking.id

    first = await booking_service.complete_booking(
        session, booking_id=booking_id, actor_id=seed.owner_id
    )
    version = first.version
    second = await booking_service.complete_booking(
        session, booking_id=booking_id, actor_id=seed.owner_id
    )

    assert not session.in_transaction()
    assert first.status == BookingStatus.COMPLETED
    assert second.id == first.id
    assert second.status == BookingStatus.COMPLETED
    assert second.version == version
    assert (await _types_for(session, seed.renter_id)).count(
        NotificationType.BOOKING_COMPLETED
    ) == 1


async def test_complete_waits_for_end_time(session, seed, gateway, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id
    await _approve(session, seed, booking_id)
    await _pay(session, seed, gateway, booking_id)

    with pytest.raises(InvalidStateError):
        await booking_service.complete_booking(
            session, booking_id=booking_id, actor_id=seed.owner_id
        )

    completed = await booking_service.complete_booking(
        session,
        booking_id=booking_id,
        actor_id=seed.owner_id,
        now=base_time + timedelta(days=1),
    )
    assert completed.status == BookingStatus.COMPLETED


async def test_complete_actor_must_be_owner_admin_or_system(session, seed, gateway) -> None:
    booking = await _past_paid_booking(session, seed, gateway)
    booking_id = booking.id

    with pytest.raises(AuthorizationError):
        await booking_service.complete_booking(
            session, booking_id=booking_id, actor_id=seed.renter_id
        )
    with pytest.raises(AuthorizationError):
        await booking_service.complete_booking(session, booking_id=booking_id)

    completed = await booking_service.complete_booking(
        session, booking_id=booking_id, actor_id=seed.admin_id
    )
    assert completed.status == BookingStatus.COMPLETED


async def test_concurrent_approve_and_reject_only_one_applies(
    session_factory, seed, base_time
) -> None:
    async with session_factory() as setup:
        booking = await _create(setup, seed, base_time, base_time + timedelta(days=1))
        booking_id = booking.id

    async def approve():
        async with session_factory() as own_session:
            return await _approve(own_session, seed, booking_id)

    async def reject():
        async with session_factory() as own_session:
            return await booking_service.reject_booking(
                own_session, booking_id=booking_id, actor_id=seed.owner_id, reason="no"
            )

    results = await asyncio.gather(approve(), reject(), return_exceptions=True)

    succeeded = [item for item in results if isinstance(item, Booking)]
    failed = [item for item in results if isinstance(item, InvalidStateError)]
    assert len(succeeded) == 1
    assert len(failed) == 1

    async with session_factory() as check:
        stored = await check.get(Booking, booking_id)
        assert stored.status == succeeded[0].status


async def test_lost_version_race_raises_invalid_state(session_factory, seed, base_time) -> None:
    async with session_factory() as session:
        booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
        booking_id = booking.id

        async with session_factory() as other:
            await other.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(version=Booking.version + 1)
            )
            await other.commit()

        booking.rejection_reason = "stale write"
        with pytest.raises(InvalidStateError):
            await booking_service.commit_transition(session)

    async with session_factory() as check:
        stored = await check.get(Booking, booking_id)
        assert stored.rejection_reason is None
        assert stored.status == BookingStatus.PENDING_APPROVAL


async def test_get_booking_is_limited_to_participants(session, seed, base_time) -> None:
    booking = await _create(session, seed, base_time, base_time + timedelta(days=1))
    booking_id = booking.id

    for actor in (seed.renter_id, seed.owner_id, seed.admin_id):
        found = await booking_service.get_booking(
            session, booking_id=booking_id, actor_id=actor
        )
        assert found.id == booking_id
    with pytest.raises(AuthorizationError):
        await booking_service.get_booking(
            session, booking_id=booking_id, actor_id=seed.other_renter_id
        )


async def test_renter_history_and_active_lists(session, seed, base_time) -> None:
    live = await _create(session, seed, base_time, base_time + timedelta(days=1))
    finished = await _create(
        session, seed, base_time + timedelta(days=5), base_time + timedelta(days=6)
    )
    await booking_service.cancel_booking(
        session, booking_id=finished.id, actor_id=seed.renter_id
    )

    active = await booking_service.list_active_bookings(session, renter_id=seed.renter_id)
    history = await booking_service.list_renter_history(session, renter_id=seed.renter_id)
    everything = await booking_service.list_renter_bookings(
        session, renter_id=seed.renter_id
    )

    assert [item.id for item in active] == [live.id]
    assert [item.id for item in history] == [finished.id]
    assert {item.id for item in everything} == {live.id, finished.id}


async def test_owner_views(session, seed, base_time) -> None:
    pending = await _create(session, seed, base_time, base_time + timedelta(days=1))
    approved = await _create(
        session, seed, base_time + timedelta(days=3), base_time + timedelta(days=4)
    )
    await _approve(session, seed, approved.id)

    queue = await booking_service.list_pending_approvals(session, owner_id=seed.owner_id)
    owned = await booking_service.list_owner_bookings(session, owner_id=seed.owner_id)
    by_product = await booking_service.list_product_bookings(
        session, product_id=seed.product_id, actor_id=seed.owner_id
    )

    assert [item.id for item in queue] == [pending.id]
    assert {item.id for item in owned} == {pending.id, approved.id}
    assert [item.id for item in by_product] == [pending.id, approved.id]
    assert await booking_service.list_pending_approvals(
        session, owner_id=seed.other_owner_id
    ) == []
    with pytest.raises(AuthorizationError):
        await booking_service.list_product_bookings(
            session, product_id=seed.product_id, actor_id=seed.other_owner_id
        )


async def test_complete_due_bookings_sweeps_only_finished_paid(
    session, seed, gateway, base_time
) -> None:
    finished = await _past_paid_booking(session, seed, gateway)
    upcoming = await _create(session, seed, base_time, base_time + timedelta(days=1))
    await _approve(session, seed, upcoming.id)
    await _pay(session, seed, gateway, upcoming.id)

    completed = await booking_service.complete_due_bookings(session)

    assert completed == [finished.id]
    await session.refresh(upcoming)
    assert upcoming.status == BookingStatus.PAID
    assert await booking_service.complete_due_bookings(session) == []
