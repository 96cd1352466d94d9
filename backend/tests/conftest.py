"""
Stremio Panel - Test Configuration and Fixtures
"""
import os
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

# Set testing environment before the app reads its settings
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test_panel.db'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['STREMIO_API_URL'] = 'https://api.stremio.test'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['LOG_FILE'] = ''
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['PIN_CLEANUP_ENABLED'] = 'false'

from app.main import app
from app.core.database import Base, close_db, get_engine, get_session_local, init_db
from app.models.user import User, UserRole
from app.modules.stremio.client import get_stremio_client
from tests.factories import create_user, fake, headers_for
from tests.mocks.fake_stremio import FakeStremioClient


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh tables for each test; the app's own engine points at the same file"""
    await init_db()

    async with get_session_local()() as session:
        yield session

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await close_db()


@pytest.fixture
def fake_stremio() -> FakeStremioClient:
    return FakeStremioClient()


@pytest.fixture
async def client(db_session: AsyncSession, fake_stremio: FakeStremioClient) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the Stremio API replaced by the in-memory fake"""
    app.dependency_overrides[get_stremio_client] = lambda: fake_stremio

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Users ====================

@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, role=UserRole.ADMIN)


@pytest.fixture
async def reseller_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, role=UserRole.RESELLER, credits=2)


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await create_user(db_session)


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return headers_for(admin_user)


@pytest.fixture
def reseller_headers(reseller_user: User) -> dict:
    return headers_for(reseller_user)


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    return headers_for(test_user)


@pytest.fixture
async def synced_user(db_session: AsyncSession, fake_stremio: FakeStremioClient) -> User:
    """Account linked to a Stremio account that exists in the fake"""
    email = fake.unique.email()
    session = fake_stremio.add_account(email, 'stremio-pass')
    return await create_user(
        db_session,
        stremio_auth_key=session.auth_key,
        stremio_user_id=session.user.id,
        stremio_synced=True,
    )
