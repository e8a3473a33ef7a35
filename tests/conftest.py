"""
Test configuration and fixtures for AG Suite tests.
"""
import os
import pytest
import pytest_asyncio
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from agsuite.main import app
from agsuite.db.base import Base, get_db
from agsuite.core.deps import get_notifier, get_receipt_storage
from agsuite.models.assembly import Assembly
from agsuite.models.modality import Modality
from agsuite.schemas.ag_config import AdmissionConfig
from tests.factories import (
    ORGANIZER_ID, RecordingNotifier, FakeReceiptStorage, add_assembly, add_modality,
)


# Use a file-based SQLite DB to avoid :memory: multiple-connection issues
# with SQLAlchemy + aiosqlite (each new connection would see an empty DB).
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    # Clean up test database file
    try:
        os.remove("./test.db")
    except OSError:
        pass


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def storage() -> FakeReceiptStorage:
    return FakeReceiptStorage()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    notifier: RecordingNotifier,
    storage: FakeReceiptStorage,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session and port overrides."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_receipt_storage] = lambda: storage
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def organizer_headers() -> dict:
    return {"X-User-Id": ORGANIZER_ID}


@pytest.fixture
def open_config() -> AdmissionConfig:
    return AdmissionConfig(registration_enabled=True, auto_approval=False)


@pytest_asyncio.fixture
async def test_assembly(db_session: AsyncSession) -> Assembly:
    """Create an active AG with open registration."""
    return await add_assembly(db_session)


@pytest_asyncio.fixture
async def test_modality(db_session: AsyncSession, test_assembly: Assembly) -> Modality:
    return await add_modality(db_session, test_assembly, max_participants=100)
