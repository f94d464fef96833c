"""Test fixtures for the booking engine backend."""
from __future__ import annotations

import os
import threading
import time
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.pop("REDIS_URL", None)

from app.api import deps
from app.core.config import get_settings
from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import dispose_engine, get_sessionmaker
from app.integrations.stripe_client import (
    SUCCEEDED,
    PaymentIntent,
    StripeClientError,
    to_minor_units,
)
from app.main import app
from app.models import Product, User, UserRole, UserStatus


class FakePaymentGateway:
    """In-memory stand-in for the Stripe gateway."""

    def __init__(self) -> None:
        self.payments: dict[str, PaymentIntent] = {}
        self.delay_seconds = 0.0
        self.unavailable = False
        self.calls: list[str] = []
        self.intents: list[dict[str, object]] = []
        self._lock = threading.Lock()

    def settle(
        self,
        reference: str,
        *,
        booking_id: uuid.UUID,
        amount: Decimal | str,
        purpose: str = "rental",
    ) -> str:
        """Record a succeeded intent as Stripe would report it."""
        self.payments[reference] = PaymentIntent(
            id=reference,
            client_secret=f"{reference}_secret_abc",
            status=SUCCEEDED,
            metadata={"booking_id": str(booking_id), "purpose": purpose},
            amount=to_minor_units(Decimal(amount)),
        )
        return reference

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        with self._lock:
            self.calls.append(payment_intent_id)
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self.unavailable:
            raise StripeClientError("Failed to retrieve payment intent")
        intent = self.payments.get(payment_intent_id)
        if intent is None:
            raise StripeClientError("Failed to retrieve payment intent")
        return intent

    def create_payment_intent(
        self,
        *,
        amount: Decimal,
        booking_id: uuid.UUID,
        purpose: str,
        idempotency_seed: str | uuid.UUID | None = None,
    ) -> PaymentIntent:
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents.append(
            {
                "id": intent_id,
                "amount": amount,
                "booking_id": booking_id,
                "purpose": purpose,
                "idempotency_seed": idempotency_seed,
            }
        )
        intent = PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_abc",
            status="requires_payment_method",
            metadata={"booking_id": str(booking_id), "purpose": purpose},
            amount=to_minor_units(amount),
        )
        self.payments[intent_id] = intent
        return intent


@dataclass
class Seed:
    renter_id: uuid.UUID
    other_renter_id: uuid.UUID
    owner_id: uuid.UUID
    other_owner_id: uuid.UUID
    admin_id: uuid.UUID
    product_id: uuid.UUID
    unavailable_product_id: uuid.UUID


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


@pytest.fixture()
def session_factory(reset_database: None, db_url: str) -> async_sessionmaker[AsyncSession]:
    return get_sessionmaker(db_url)


@pytest_asyncio.fixture()
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as db_session:
        yield db_session


@pytest_asyncio.fixture()
async def seed(session_factory: async_sessionmaker[AsyncSession]) -> Seed:
    """Insert the users and products most tests need."""
    async with session_factory() as db_session:
        users = {
            key: User(
                email=f"{key}@example.com",
                full_name=key.replace("_", " ").title(),
                role=role,
                status=UserStatus.ACTIVE,
            )
            for key, role in (
                ("renter", UserRole.RENTER),
                ("other_renter", UserRole.RENTER),
                ("owner", UserRole.OWNER),
                ("other_owner", UserRole.OWNER),
                ("admin", UserRole.ADMIN),
            )
        }
        db_session.add_all(users.values())
        await db_session.flush()

        product = Product(
            owner_id=users["owner"].id,
            name="Midnight Tuxedo",
            price_per_day=Decimal("50.00"),
            available=True,
        )
        unavailable = Product(
            owner_id=users["owner"].id,
            name="Ivory Gown",
            price_per_day=Decimal("80.00"),
            available=False,
        )
        db_session.add_all([product, unavailable])
        await db_session.commit()

        return Seed(
            renter_id=users["renter"].id,
            other_renter_id=users["other_renter"].id,
            owner_id=users["owner"].id,
            other_owner_id=users["other_owner"].id,
            admin_id=users["admin"].id,
            product_id=product.id,
            unavailable_product_id=unavailable.id,
        )


@pytest.fixture()
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest_asyncio.fixture()
async def client(
    seed: Seed, gateway: FakePaymentGateway
) -> AsyncIterator[AsyncClient]:
    app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as http_client:
            yield http_client
    finally:
        app.dependency_overrides.pop(deps.get_payment_gateway, None)


@pytest.fixture()
def base_time() -> datetime:
    """A fixed future instant rental windows are laid out from."""
    now = datetime.now(UTC).replace(microsecond=0)
    return now + timedelta(days=7)


def _auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user_id))}"}


@pytest.fixture()
def auth_headers():
    """Return a helper building bearer headers for a user id."""
    return _auth_headers
