"""Domain errors raised by the booking engine services."""

from __future__ import annotations


class BookingEngineError(Exception):
    """Base class for every rejected booking engine operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingEngineError):
    """Malformed input such as an inverted interval or a missing field."""


class NotFoundError(BookingEngineError):
    """Referenced booking, product or user does not exist."""


class ConflictError(BookingEngineError):
    """Requested interval overlaps a live booking, or a duplicate write."""


class ResourceUnavailableError(ConflictError):
    """The catalog marks the product as unavailable for rent."""


class InvalidStateError(BookingEngineError):
    """Transition is not legal from the booking's current status."""


class DepositOutstandingError(InvalidStateError):
    """A requested deposit must be settled before the rental payment."""


class AuthorizationError(BookingEngineError):
    """Actor lacks the required relationship to the booking or product."""


class UpstreamError(BookingEngineError):
    """Payment collaborator unreachable, failed, or timed out."""


__all__ = [
    "AuthorizationError",
    "BookingEngineError",
    "ConflictError",
    "DepositOutstandingError",
    "InvalidStateError",
    "NotFoundError",
    "ResourceUnavailableError",
    "UpstreamError",
    "ValidationError",
]
