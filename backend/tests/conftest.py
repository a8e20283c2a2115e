"""
Pytest fixtures: a throwaway SQLite database per test, an HTTP client bound
to it, identities and a seeded tour.

Each request (and each service-level test block) gets its own session, so
transactions commit and roll back exactly as they do in production.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./tour_booking_dev.db")
os.environ.setdefault("RETRY_BASE_DELAY", "0.001")

from datetime import date, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking_engine.main import app
from booking_engine.core.config import get_settings
from booking_engine.core.security import Identity, create_access_token
from booking_engine.core.signing import sign
from booking_engine.db.base import Base
from booking_engine.db.session import build_engine, get_db
from booking_engine.schemas.tour import TourCreate, TransportCreate
from booking_engine.services.catalog_service import create_tour
from booking_engine.services.interfaces.sandbox_gateway import SandboxGateway
from booking_engine.services.strategy_factory import get_payment_gateway

DEPARTURE = date.today() + timedelta(days=30)
LATER_DEPARTURE = date.today() + timedelta(days=60)

ADMIN = Identity(subject="admin-1", is_admin=True)
ALICE = Identity(subject="user-alice")
BOB = Identity(subject="user-bob")

GUEST_CONTACT = {
    "contact_name": "Nguyen Van A",
    "contact_email": "guest@example.com",
    "contact_phone": "0901234567",
}


def bearer(identity: Identity) -> dict:
    token = create_access_token(data={"sub": identity.subject, "is_admin": identity.is_admin})
    return {"Authorization": f"Bearer {token}"}


def signed_callback(order_id: str, amount: int, result_code: int = 0, **extra) -> dict:
    """A provider notification signed with the shared gateway secret."""
    payload = {
        "partnerCode": get_settings().GATEWAY_PARTNER_CODE,
        "orderId": order_id,
        "requestId": order_id,
        "amount": amount,
        "orderInfo": "tour booking",
        "orderType": "momo_wallet",
        "transId": 4088878653,
        "resultCode": result_code,
        "message": "Successful." if result_code == 0 else "Transaction denied.",
        "payType": "qr",
        "responseTime": 1721720663942,
        "extraData": "",
        **extra,
    }
    payload["signature"] = sign(payload, get_settings().GATEWAY_SECRET_KEY)
    return payload


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh database file per test; create tables, dispose afterwards."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sandbox_gateway() -> SandboxGateway:
    return SandboxGateway(checkout_url="http://sandbox.test/pay")


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, sandbox_gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each run in their own session on the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: sandbox_gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    return bearer(ADMIN)


@pytest.fixture
def alice_headers() -> dict:
    return bearer(ALICE)


@pytest.fixture
def bob_headers() -> dict:
    return bearer(BOB)


async def seed_tour(session_factory, max_participants: int = 10, price: int = 1_000_000):
    async with session_factory() as session:
        tour = await create_tour(
            session,
            TourCreate(
                name="Ha Long Bay 2D1N",
                price=price,
                max_participants=max_participants,
                start_dates=[DEPARTURE, LATER_DEPARTURE],
                transports=[TransportCreate(name="Limousine", price=100_000)],
            ),
        )
        await session.commit()
    return tour


@pytest_asyncio.fixture
async def tour(session_factory):
    """A 10-seat tour at 1,000,000 per person with two departures."""
    return await seed_tour(session_factory)


@pytest_asyncio.fixture
async def small_tour(session_factory):
    """Two seats per departure."""
    return await seed_tour(session_factory, max_participants=2)
