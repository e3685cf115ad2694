import uuid
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from project_console.core.security import create_access_token, hash_password
from project_console.main import app
from project_console.core import models
from project_console.core.database import Base, get_db
from project_console.core.engine.client import get_remote_store

from fakes import FakeStore


# Fresh SQLite file per test so no state leaks between tests
@pytest_asyncio.fixture(scope="function")
async def db_session(tmp_path):
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestingSessionLocal = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with TestingSessionLocal() as session:
        yield session
        await session.rollback()

    await test_engine.dispose()


# Remote store
@pytest.fixture
def store():
    return FakeStore()


# Client
@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, store: FakeStore):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_remote_store] = lambda: store

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(db_session: AsyncSession, role: str):
    # Unique email per test to avoid duplicates
    unique_email = f"{role}_{uuid.uuid4().hex[:8]}@example.com"
    user = models.User(
        email=unique_email, password=hash_password("password123"), role=role
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture(scope="function")
async def test_viewer(db_session: AsyncSession):
    return await _make_user(db_session, "viewer")


@pytest_asyncio.fixture(scope="function")
async def test_manager(db_session: AsyncSession):
    return await _make_user(db_session, "manager")


@pytest_asyncio.fixture(scope="function")
async def test_admin(db_session: AsyncSession):
    return await _make_user(db_session, "admin")


# Tokens
@pytest_asyncio.fixture(scope="function")
async def auth_headers_viewer(test_viewer):
    token = create_access_token({"user_id": test_viewer.id})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(scope="function")
async def auth_headers_manager(test_manager):
    token = create_access_token({"user_id": test_manager.id})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(scope="function")
async def auth_headers_admin(test_admin):
    token = create_access_token({"user_id": test_admin.id})
    return {"Authorization": f"Bearer {token}"}
