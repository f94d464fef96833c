"""Translate booking engine errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from app.core.exceptions import (
    AuthorizationError,
    BookingEngineError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)

_STATUS_BY_ERROR: tuple[tuple[type[BookingEngineError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
)


def as_http_exception(exc: BookingEngineError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
