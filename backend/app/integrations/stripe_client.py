"""Stripe SDK wrapper used as the rental payment gateway."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol, cast

import stripe

SUCCEEDED = "succeeded"


def to_minor_units(amount: Decimal) -> int:
    """Convert a money amount to the integer cents Stripe works in."""
    quantized = Decimal(amount).quantize(Decimal("0.01"))
    return int((quantized * 100).to_integral_value())


@dataclass(slots=True)
class PaymentIntent:
    """Simplified payment intent payload."""

    id: str
    client_secret: str | None
    status: str
    metadata: dict[str, Any]
    amount: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED


class StripeClientError(RuntimeError):
    """Raised when Stripe interaction fails."""


class PaymentGateway(Protocol):
    def create_payment_intent(
        self,
        *,
        amount: Decimal,
        booking_id: uuid.UUID,
        purpose: str,
        idempotency_seed: str | uuid.UUID | None = None,
    ) -> PaymentIntent: ...

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent: ...


class StripeClient:
    """Thin wrapper around the Stripe SDK."""

    def __init__(
        self,
        secret_key: str,
        *,
        currency: str = "eur",
        idempotency_prefix: str = "blacktie",
    ) -> None:
        stripe.api_key = secret_key
        stripe.max_network_retries = 2
        self._stripe = stripe
        self._currency = currency
        self._idempotency_prefix = idempotency_prefix

    def _idempotency_key(self, seed: str | uuid.UUID | None) -> str | None:
        if seed is None:
            return None
        return f"{self._idempotency_prefix}_{seed}"

    @staticmethod
    def _to_intent(intent: Any) -> PaymentIntent:
        intent_data = cast(dict[str, Any], intent)
        metadata_dict = cast(dict[str, Any], intent_data.get("metadata") or {})
        amount = intent_data.get("amount")
        return PaymentIntent(
            id=str(intent_data.get("id")),
            client_secret=cast(str | None, intent_data.get("client_secret")),
            status=str(intent_data.get("status", "unknown")),
            metadata=dict(metadata_dict),
            amount=int(amount) if amount is not None else None,
        )

    def create_payment_intent(
        self,
        *,
        amount: Decimal,
        booking_id: uuid.UUID,
        purpose: str,
        idempotency_seed: str | uuid.UUID | None = None,
    ) -> PaymentIntent:
        metadata = {"booking_id": str(booking_id), "purpose": purpose}
        try:
            intent = self._stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=self._currency,
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                idempotency_key=self._idempotency_key(idempotency_seed),
            )
        except stripe.StripeError as exc:
            raise StripeClientError("Failed to create payment intent") from exc
        return self._to_intent(intent)

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        try:
            intent = self._stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as exc:
            raise StripeClientError("Failed to retrieve payment intent") from exc
        return self._to_intent(intent)
