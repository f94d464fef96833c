"""Common API dependencies."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.security import decode_access_token
from app.core.settings import get_payment_settings
from app.db.session import get_session
from app.integrations import PaymentGateway, StripeClient
from app.models.user import User, UserStatus

bearer_scheme = HTTPBearer(auto_error=False)

_PERIOD_SECONDS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400}


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> User:
    """Authenticate request via bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as exc:
        raise credentials_exception from exc

    subject = payload.get("sub")
    if subject is None:
        raise credentials_exception

    try:
        user_id = uuid.UUID(subject)
    except (ValueError, TypeError) as exc:
        raise credentials_exception from exc

    user = await session.get(User, user_id)
    if user is None or user.status != UserStatus.ACTIVE:
        raise credentials_exception
    return user


def get_payment_gateway() -> PaymentGateway:
    """Return the configured Stripe gateway."""
    payment_settings = get_payment_settings()
    if not payment_settings.stripe_secret_key:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Payment gateway is not configured",
        )
    return StripeClient(
        payment_settings.stripe_secret_key, currency=payment_settings.currency
    )


def _parse_rate(value: str, *, fallback: tuple[int, int]) -> tuple[int, int]:
    try:
        count, period = value.split("/", 1)
        return int(count), _PERIOD_SECONDS[period.strip().lower().rstrip("s")]
    except (ValueError, KeyError):
        return fallback


def rate_limit(setting: str = "default"):
    """Build a limiter dependency that is inert until Redis is initialised."""
    settings = get_settings()
    raw = settings.rate_limit_booking if setting == "booking" else settings.rate_limit_default
    times, seconds = _parse_rate(raw, fallback=(100, 60))

    async def _dependency(request: Request, response: Response) -> None:
        if FastAPILimiter.redis is None:
            return None
        limiter = RateLimiter(times=times, seconds=seconds)
        await limiter(request, response)

    return Depends(_dependency)


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]
CurrentUser = Annotated[User, Depends(get_current_user)]
GatewayDep = Annotated[PaymentGateway, Depends(get_payment_gateway)]
