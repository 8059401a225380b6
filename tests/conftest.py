"""Shared test configuration and fixtures.

Tables are created once per session and emptied after every test:
- The orchestrator commits its own transactions, so a per-test rollback
  cannot undo its writes; each test instead starts from empty tables.
- ``TEST_DATABASE_URL`` selects the database (default: a local SQLite file
  via aiosqlite). Row-lock behaviour is only exercised on PostgreSQL.
"""

import os

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./hotelbook_test.db")

# Configure the app before it is imported: no limiter windows or background
# sweeper in tests, and unsigned callbacks unless a test sets a secret.
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SWEEPER_ENABLED", "false")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "")

import uuid  # noqa: E402
from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from datetime import timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from hotelbook.auth.jwt import create_access_token  # noqa: E402
from hotelbook.auth.passwords import hash_password  # noqa: E402
from hotelbook.config import settings  # noqa: E402
from hotelbook.database import Base, build_engine, get_db, utcnow  # noqa: E402
from hotelbook.main import app  # noqa: E402
from hotelbook.models import Booking, Hotel, Payment, Room, User  # noqa: E402
from hotelbook.models.enums import UserRole  # noqa: E402
from hotelbook.services import BookingOrchestrator, ExpirySweeper, build_orchestrator  # noqa: E402


# ---------------------------------------------------------------------------
# Session-scoped: create / drop all tables once per test session
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def test_engine():
    """Create a session-scoped engine tied to the session event loop."""
    engine = build_engine(TEST_DATABASE_URL, echo=False)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def setup_test_db(test_engine):
    """Create all tables at the start of the session and drop them at the end."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Per-test: session factory over empty tables
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory(test_engine, setup_test_db) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory for the test database; all rows are deleted afterwards."""
    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    async with test_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A plain session for arranging data directly in the database."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def reload(session_factory) -> Callable[[type, uuid.UUID], Awaitable]:
    """Return ``await reload(Model, id)``: the row as currently committed."""

    async def _reload(model: type, ident: uuid.UUID):
        async with session_factory() as session:
            return await session.get(model, ident)

    return _reload


@pytest_asyncio.fixture
async def services(session_factory) -> tuple[BookingOrchestrator, ExpirySweeper]:
    return build_orchestrator(session_factory, settings)


@pytest_asyncio.fixture
async def orchestrator(services) -> BookingOrchestrator:
    return services[0]


@pytest_asyncio.fixture
async def sweeper(services) -> ExpirySweeper:
    return services[1]


@pytest_asyncio.fixture
async def client(session_factory, services) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test database and services."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.orchestrator, app.state.sweeper = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience fixtures: inventory
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def hotel(db_session: AsyncSession) -> Hotel:
    hotel = Hotel(name="Skylight Hotel Addis", location="Bole, Addis Ababa")
    db_session.add(hotel)
    await db_session.commit()
    return hotel


@pytest_asyncio.fixture
async def room(db_session: AsyncSession, hotel: Hotel) -> Room:
    room = Room(
        hotel_id=hotel.id,
        room_number="102",
        room_type="Standard Double",
        price_per_night=Decimal("1800.00"),
    )
    db_session.add(room)
    await db_session.commit()
    return room


@pytest_asyncio.fixture
async def second_room(db_session: AsyncSession, hotel: Hotel) -> Room:
    room = Room(
        hotel_id=hotel.id,
        room_number="201",
        room_type="Deluxe Suite",
        price_per_night=Decimal("3500.00"),
    )
    db_session.add(room)
    await db_session.commit()
    return room


@pytest.fixture
def stay_dates() -> tuple[str, str]:
    """A two-night stay ten days from now, as ISO strings."""
    check_in = utcnow().date() + timedelta(days=10)
    return check_in.isoformat(), (check_in + timedelta(days=2)).isoformat()


@pytest_asyncio.fixture
async def booking_request(hotel: Hotel, room: Room, stay_dates: tuple[str, str]) -> dict:
    """Keyword arguments for ``BookingOrchestrator.create_booking``."""
    check_in, check_out = stay_dates
    return {
        "user_name": "Abebe Kebede",
        "phone": "+251911123456",
        "hotel_id": str(hotel.id),
        "room_id": str(room.id),
        "check_in": check_in,
        "check_out": check_out,
    }


@pytest_asyncio.fixture
async def held_booking(orchestrator: BookingOrchestrator, booking_request: dict) -> tuple[Booking, Payment]:
    """A booking in ``pending_payment`` with an initiated telebirr payment."""
    created = await orchestrator.create_booking(**booking_request)
    initiated = await orchestrator.initiate_payment(booking_id=str(created.booking.id), provider="telebirr")
    return initiated.booking, initiated.payment


# ---------------------------------------------------------------------------
# Convenience fixtures: staff accounts
# ---------------------------------------------------------------------------


async def _create_user(db_session: AsyncSession, role: str, phone: str) -> User:
    unique = uuid.uuid4().hex[:8]
    user = User(
        first_name="Test",
        last_name=role.title(),
        email=f"{role}-{unique}@test.com",
        phone=phone,
        hashed_password=hash_password("testpass123"),
        role=role,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.ADMIN, "+251911567890")


@pytest_asyncio.fixture
async def owner_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.HOTEL_OWNER, "+251911456789")


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict[str, str]:
    token = create_access_token({"sub": str(admin_user.id), "role": admin_user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def owner_headers(owner_user: User) -> dict[str, str]:
    token = create_access_token({"sub": str(owner_user.id), "role": owner_user.role})
    return {"Authorization": f"Bearer {token}"}
