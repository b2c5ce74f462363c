import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-network-api-suite")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ACCESS_TOKEN_EXPIRE_MINUTES", "60")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.models.user import User
from app.utils.security import get_password_hash, issue_token
from database import create_tables, get_db
from main import app


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    async def _make_user(username, email=None, password="password123", role="user", is_active=True):
        async with session_factory() as session:
            user = User(
                username=username,
                email=email or f"{username}@x.com",
                password_hash=get_password_hash(password),
                first_name=username.capitalize(),
                last_name="Tester",
                role=role,
                is_active=is_active,
            )
            session.add(user)
            await session.commit()
            return user

    return _make_user


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        return {"Authorization": f"Bearer {issue_token(user.id, user.role)}"}

    return _auth_headers
