"""Integration shortcuts."""

from .stripe_client import PaymentGateway, PaymentIntent, StripeClient, StripeClientError

__all__ = [
    "PaymentGateway",
    "PaymentIntent",
    "StripeClient",
    "StripeClientError",
]
