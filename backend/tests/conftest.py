"""Pytest configuration and fixtures for async testing."""
import os
import tempfile
import uuid
from typing import AsyncGenerator

# Point the application engine at SQLite before anything imports it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "aeroledger_app.db"))

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import aeroledger.models  # noqa: F401  registers every table on the metadata
from aeroledger.database import Base
from aeroledger.main import app


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh SQLite database and session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    path = os.path.join(tempfile.gettempdir(), f"aeroledger_test_{uuid.uuid4().hex}.db")
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    if os.path.exists(path):
        os.remove(path)


@pytest.fixture(scope="function")
def auth() -> dict:
    """
    Claims returned by the overridden ``get_current_user``.

    Tests mutate this dict to act as a different user or role.
    """
    return {"sub": str(uuid.uuid4()), "role": "admin", "email": "admin@aeroclub.test"}


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession, auth: dict) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client with the database and current user overridden.

    Args:
        db_session: Test database session fixture
        auth: Mutable claims of the calling user

    Yields:
        AsyncClient: Async HTTP client for API testing
    """
    from aeroledger.api.deps import get_current_user, get_db

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    async def override_current_user() -> dict:
        return auth

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_current_user

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def as_user(member, role: str = "member") -> dict:
    """Claims for ``member`` acting with ``role``."""
    return {"sub": str(member.id), "role": role, "email": member.email}


@pytest.fixture
def admin_user() -> dict:
    return {"sub": str(uuid.uuid4()), "role": "admin"}


@pytest.fixture
def instructor_user() -> dict:
    return {"sub": str(uuid.uuid4()), "role": "instructor"}


@pytest_asyncio.fixture
async def flight_setup(db_session: AsyncSession):
    """
    A member, aircraft, "Circuits" (dual) and "Solo Hire" flight types, an instructor and rates.

    Aircraft rate 200/h (hobbs), solo rate 180/h, instructor rate 60/h.
    """
    from utils.factories import (
        create_aircraft,
        create_aircraft_rate,
        create_booking,
        create_flight_type,
        create_instructor,
        create_instructor_rate,
        create_member,
    )
    from aeroledger.models.aircraft import InstructionType

    member = await create_member(db_session)
    aircraft = await create_aircraft(db_session, total_hours="1000.00", current_hobbs="1000.00", current_tach="800.00")
    dual = await create_flight_type(db_session, name="Circuits", instruction_type=InstructionType.DUAL)
    solo = await create_flight_type(db_session, name="Solo Hire", instruction_type=InstructionType.SOLO)
    instructor = await create_instructor(db_session, first_name="Amelia", last_name="Earhart")
    await create_aircraft_rate(db_session, aircraft, dual, "200.00")
    await create_aircraft_rate(db_session, aircraft, solo, "180.00")
    await create_instructor_rate(db_session, instructor, dual, "60.00")
    booking = await create_booking(db_session, member, aircraft, dual, instructor)
    await db_session.commit()

    return {
        "member": member,
        "aircraft": aircraft,
        "dual": dual,
        "solo": solo,
        "instructor": instructor,
        "booking": booking,
    }
