"""Tests for the pricing service."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from app.services import pricing_service

START = datetime(2026, 3, 1, 10, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("duration", "expected_days"),
    [
        (timedelta(hours=2), 1),
        (timedelta(hours=24), 1),
        (timedelta(hours=25), 2),
        (timedelta(days=2), 2),
        (timedelta(days=6, seconds=1), 7),
    ],
)
def test_rental_days_rounds_partial_days_up(duration: timedelta, expected_days: int) -> None:
    assert pricing_service.rental_days(START, START + duration) == expected_days


def test_two_day_booking_at_fifty_per_day_costs_one_hundred() -> None:
    total = pricing_service.calculate_total(
        Decimal("50.00"), START, START + timedelta(days=2)
    )
    assert total == Decimal("100.00")


def test_sub_day_interval_prices_as_exactly_one_day() -> None:
    total = pricing_service.calculate_total(
        Decimal("37.50"), START, START + timedelta(minutes=30)
    )
    assert total == Decimal("37.50")


def test_doubling_interval_never_decreases_price() -> None:
    unit = Decimal("19.99")
    for hours in (1, 5, 23, 24, 36, 49, 120):
        single = pricing_service.calculate_total(unit, START, START + timedelta(hours=hours))
        double = pricing_service.calculate_total(
            unit, START, START + timedelta(hours=hours * 2)
        )
        assert double >= single


def test_total_is_quantized_to_cents() -> None:
    total = pricing_service.calculate_total(
        Decimal("10.005"), START, START + timedelta(days=1)
    )
    assert total == Decimal("10.01")
    assert total.as_tuple().exponent == -2
