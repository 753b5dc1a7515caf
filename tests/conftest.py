import os
import secrets
from datetime import datetime, timedelta

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import oversight.models  # noqa: F401  registers every table
from oversight.core.security import get_password_hash
from oversight.db.session import get_session
from oversight.main import app
from oversight.models.notification import SystemNotification
from oversight.models.user import User, UserRole
from oversight.models.user_session import UserSession

NOW = datetime(2026, 3, 2, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest_asyncio.fixture
async def test_db():
    """In-memory database shared by every connection of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session

    await engine.dispose()


async def add_user(session, username, role=UserRole.ADMIN, password="password123", **kwargs):
    user = User(
        email=f"{username}@example.com",
        username=username,
        full_name=kwargs.pop("full_name", username.title()),
        hashed_password=get_password_hash(password),
        role=role,
        **kwargs,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def add_notification(session, title, message="Routine update", notification_type="info", **kwargs):
    notification = SystemNotification(
        title=title,
        message=message,
        notification_type=notification_type,
        is_system_wide=kwargs.pop("is_system_wide", True),
        **kwargs,
    )
    session.add(notification)
    await session.commit()
    await session.refresh(notification)
    return notification


async def add_user_session(session, user, now, *, is_active=True, idle=timedelta(minutes=1),
                           expires_in=timedelta(hours=1), age=timedelta(hours=2), **kwargs):
    user_session = UserSession(
        user_id=user.id,
        session_token=secrets.token_hex(16),
        is_active=is_active,
        created_at=now - age,
        last_activity=now - idle,
        expires_at=now + expires_in,
        **kwargs,
    )
    session.add(user_session)
    await session.commit()
    await session.refresh(user_session)
    return user_session


@pytest_asyncio.fixture
async def super_admin(test_db):
    return await add_user(test_db, "root", role=UserRole.SUPER_ADMIN, full_name="Root Admin")


@pytest_asyncio.fixture
async def admin(test_db):
    return await add_user(test_db, "staff", role=UserRole.ADMIN, full_name="Staff Admin")


@pytest_asyncio.fixture
async def student(test_db):
    return await add_user(test_db, "pupil", role=UserRole.STUDENT, full_name="Pupil Student")


@pytest_asyncio.fixture
async def client(test_db):
    """Test client bound to the test database."""

    async def override_get_session():
        yield test_db

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def login(client, username, password="password123"):
    response = await client.post(
        "/api/v1/login/access-token",
        data={"username": username, "password": password},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
