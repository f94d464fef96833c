"""Rental price calculation."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

MONEY_PLACES = Decimal("0.01")
_SECONDS_PER_DAY = 24 * 60 * 60


def quantize_money(amount: Decimal) -> Decimal:
    return amount.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def rental_days(start_at: datetime, end_at: datetime) -> int:
    """Return the billable day count for an interval.

    Partial days round up and every booking is billed for at least one
    day, so a two-hour rental costs the same as a full day.
    """
    seconds = (end_at - start_at).total_seconds()
    return max(1, math.ceil(seconds / _SECONDS_PER_DAY))


def calculate_total(unit_price: Decimal, start_at: datetime, end_at: datetime) -> Decimal:
    """Return ``unit_price * rental_days`` as a fixed-point amount."""
    return quantize_money(Decimal(unit_price) * rental_days(start_at, end_at))
