"""Shared test fixtures and configuration."""

import os
from datetime import timedelta
from decimal import Decimal

import pytest

# Set up test environment variables before importing modules
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("PAYMENT_PROVIDER", "simulator")
os.environ.setdefault("PAYMENT_CONFIRMATION_SECRET", "confirmation_secret_for_tests")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "webhook_secret_for_tests")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from booking_payments.connectors import SimulatorConnector
from booking_payments.database import (
    Base,
    BookingRepository,
    BookingStatus,
    create_async_engine,
    get_async_session_factory,
    utcnow,
)
from booking_payments.services import ReconciliationService
from booking_payments.signatures import SignatureVerifier

CONFIRMATION_SECRET = "confirmation_secret_for_tests"
WEBHOOK_SECRET = "webhook_secret_for_tests"
USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture
async def test_db_engine(tmp_path):
    """Create a file-backed SQLite database so concurrent sessions get their own connections."""
    engine = create_async_engine(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return get_async_session_factory(test_db_engine)


@pytest.fixture
async def test_db_session(session_factory):
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def simulator():
    return SimulatorConnector()


@pytest.fixture
def verifier():
    return SignatureVerifier(CONFIRMATION_SECRET, WEBHOOK_SECRET)


@pytest.fixture
def service(session_factory, simulator, verifier):
    return ReconciliationService(session_factory, simulator, verifier, currency="INR")


@pytest.fixture
def make_booking(session_factory):
    """Insert a booking and return its id."""

    async def _make_booking(
        user_id: str = USER_ID,
        price: Decimal = Decimal("500.00"),
        status: BookingStatus = BookingStatus.PENDING,
        starts_in: timedelta = timedelta(days=1),
    ) -> str:
        start = utcnow() + starts_in
        async with session_factory() as session:
            async with session.begin():
                booking = await BookingRepository(session).create(
                    user_id=user_id,
                    court_id="court-1",
                    start_time=start,
                    end_time=start + timedelta(hours=1),
                    price=price,
                    status=status.value,
                )
            return booking.id

    return _make_booking


@pytest.fixture
def auth_headers():
    """Return headers with authentication and caller identity."""
    return {
        "Authorization": "Bearer test_api_key_12345",
        "X-User-Id": USER_ID,
    }
