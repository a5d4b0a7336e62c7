import base64
import os
import sys
from typing import AsyncGenerator, Dict

# Settings are cached on first use, so the environment must be set before any
# application module is imported
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["AUTH_WEBHOOK_SECRET"] = "whsec_" + base64.b64encode(
    b"test-webhook-secret"
).decode()
os.environ["NOTIFICATION_DEDUP_WINDOW_HOURS"] = "24"
os.environ.pop("IMAGE_STORE_UPLOAD_URL", None)

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from datetime import timedelta
from unittest.mock import Mock
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.auth import get_jwt_manager
from core.database import (
    build_engine,
    build_session_factory,
    create_db_and_tables,
    get_session,
)
from core.models import Notification, Photo, User
from main import app
from services.comment_service import CommentService
from services.follow_service import FollowService
from services.like_service import LikeService
from services.notification_service import NotificationService
from services.user_service import UserService

ALICE = "user_alice"
BOB = "user_bob"
CAROL = "user_carol"
PHOTO = "photo_alice_1"


@pytest.fixture
async def db_engine():
    """A fresh in-memory database per test"""
    engine = build_engine("sqlite+aiosqlite://")
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(session_factory) -> Dict[str, str]:
    """Three users and one photo owned by Alice"""
    async with session_factory() as session:
        session.add_all(
            [
                User(id=ALICE, name="Alice Smith", username="alice", email="alice@example.com"),
                User(id=BOB, name="Bob Jones", username="bob", email="bob@example.com"),
                User(id=CAROL, name="Carol White", username="carol", email="carol@example.com"),
            ]
        )
        await session.flush()
        session.add(
            Photo(
                id=PHOTO,
                user_id=ALICE,
                url="https://images.example.com/alice/1.jpg",
                title="Sunset",
            )
        )
        await session.commit()

    return {"alice": ALICE, "bob": BOB, "carol": CAROL, "photo": PHOTO}


@pytest.fixture
def notification_service() -> NotificationService:
    return NotificationService(dedup_window=timedelta(hours=24))


@pytest.fixture
def user_service() -> UserService:
    return UserService()


@pytest.fixture
def like_service(user_service, notification_service) -> LikeService:
    return LikeService(user_service, notification_service)


@pytest.fixture
def comment_service(user_service, notification_service) -> CommentService:
    return CommentService(user_service, notification_service)


@pytest.fixture
def follow_service(user_service, notification_service) -> FollowService:
    return FollowService(user_service, notification_service)


@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async client for the FastAPI app, bound to the per-test database"""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client
    app.dependency_overrides.clear()


def auth_headers(user_id: str) -> Dict[str, str]:
    token = get_jwt_manager().create_access_token(user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    logger = Mock()
    logger.info = Mock()
    logger.error = Mock()
    logger.warning = Mock()
    logger.debug = Mock()
    return logger


async def photo_counters(session: AsyncSession, photo_id: str):
    """(like_count, comment_count) as currently stored"""
    row = (
        await session.execute(
            select(Photo.like_count, Photo.comment_count).where(Photo.id == photo_id)
        )
    ).one()
    return row.like_count, row.comment_count


async def fetch_notifications(session: AsyncSession, **filters):
    """Notification rows matching column == value filters, freshly loaded"""
    stmt = select(Notification).execution_options(populate_existing=True)
    for column, value in filters.items():
        stmt = stmt.where(getattr(Notification, column) == value)
    return (await session.execute(stmt.order_by(Notification.created_at))).scalars().all()
