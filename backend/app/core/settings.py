"""Specialized settings adapters for integrations."""

from __future__ import annotations

from pydantic import BaseModel

from app.core.config import get_settings


class PaymentSettings(BaseModel):
    """Slim view of payment-related configuration."""

    stripe_secret_key: str | None = None
    currency: str = "eur"
    confirmation_timeout_seconds: float = 10.0


class SweepSettings(BaseModel):
    """Configuration for the background completion sweep."""

    enabled: bool = False
    interval_seconds: float = 300.0


def get_payment_settings() -> PaymentSettings:
    """Return payment-specific configuration."""

    settings = get_settings()
    return PaymentSettings(
        stripe_secret_key=settings.stripe_secret_key or None,
        currency=settings.stripe_currency,
        confirmation_timeout_seconds=settings.payment_confirmation_timeout_seconds,
    )


def get_sweep_settings() -> SweepSettings:
    """Return completion sweep configuration."""

    settings = get_settings()
    return SweepSettings(
        enabled=settings.completion_sweep_enabled,
        interval_seconds=settings.completion_sweep_interval_seconds,
    )
