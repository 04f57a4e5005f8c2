"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite database file, so tests are isolated and
several sessions can hit the same database concurrently, as the booking
coordinator does in production.
"""

import os

# Must be set before ticketing.core.config is imported anywhere
os.environ.setdefault("ENVIRONMENT", "test")
os.environ["REDIS_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./.pytest-ticketing.db"
os.environ["BCRYPT_ROUNDS"] = "4"

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.main import app
from ticketing.db.base import Base
from ticketing.db.session import get_db, get_session_factory, make_async_engine, make_session_factory
from ticketing.core.security import create_access_token, hash_password
from ticketing.models.user import User
from ticketing.models.event import Event


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh database file with all tables created."""
    engine = make_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ticketing.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield make_session_factory(engine)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests use the test database, one session per request."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _add_user(session_factory, email: str, role: str) -> User:
    async with session_factory() as session:
        user = User(
            name=email.split("@")[0],
            email=email,
            hashed_password=hash_password("testpassword123"),
            role=role,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


async def add_event(session_factory, created_by=None, **overrides) -> Event:
    fields = dict(
        title="Test Concert",
        description="A test event",
        location="Test Venue",
        date=datetime.now(timezone.utc) + timedelta(days=30),
        total_seats=100,
        available_seats=100,
        price=Decimal("25.00"),
        created_by=created_by,
    )
    fields.update(overrides)
    async with session_factory() as session:
        event = Event(**fields)
        session.add(event)
        await session.commit()
        await session.refresh(event)
        return event


async def load_event(session_factory, event_id: int) -> Event:
    async with session_factory() as session:
        return await session.get(Event, event_id)


@pytest_asyncio.fixture
async def test_user(session_factory) -> User:
    return await _add_user(session_factory, "test@example.com", "user")


@pytest_asyncio.fixture
async def admin_user(session_factory) -> User:
    return await _add_user(session_factory, "admin@example.com", "admin")


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    token = create_access_token(data={"sub": str(test_user.id), "role": test_user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    token = create_access_token(data={"sub": str(admin_user.id), "role": admin_user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_event(session_factory, admin_user: User) -> Event:
    """Event with 100 seats at 25.00."""
    return await add_event(session_factory, created_by=admin_user.id)


@pytest_asyncio.fixture
async def small_event(session_factory) -> Event:
    """Event{total=10, available=10, price=20.00}."""
    return await add_event(
        session_factory,
        title="Small Venue Gig",
        total_seats=10,
        available_seats=10,
        price=Decimal("20.00"),
    )


@pytest_asyncio.fixture
async def sold_out_event(session_factory) -> Event:
    return await add_event(
        session_factory,
        title="Sold Out Show",
        location="Full Venue",
        total_seats=50,
        available_seats=0,
    )


@pytest.fixture
def attendee_payload() -> dict:
    return {"name": "Ada Lovelace", "email": "ada@example.com", "mobile": "+44 20 7946 0000"}
