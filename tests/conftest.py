import os

# Settings are read at import time; point them at SQLite before booknet loads
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PREFERENCE_REFRESH_BACKEND"] = "in_process"

from collections.abc import AsyncGenerator
from typing import Optional
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from booknet.core.dependencies import get_preference_refresher
from booknet.core.security import create_access_token
from booknet.domain.entities import Book, PreferenceProfile, ReadingStatus, User, UserBook
from booknet.domain.services import IPreferenceRefresher
from booknet.infrastructure.database.connection import get_db
from booknet.infrastructure.database.models import Base
from booknet.infrastructure.database.repository import (
    BookRepository,
    FavoriteRepository,
    PreferenceProfileRepository,
    UserBookRepository,
    UserRepository,
)
from booknet.main import app

TEST_DATABASE_URL = "sqlite+aiosqlite://"
BASE = "http://test"


@pytest.fixture
async def engine():
    """Fresh in-memory database per test; StaticPool keeps it on one connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def file_session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """On-disk database with a real pool, so sessions get separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'booknet.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as s:
        yield s


# ── Data helpers ───────────────────────────────────


class Factory:
    """Writes users, catalog books and library rows straight through the repositories."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def user(self, username: Optional[str] = None, is_active: bool = True) -> User:
        name = username or f"reader_{uuid4().hex[:8]}"
        return await UserRepository(self.session).create(
            User(id=uuid4(), username=name, email=f"{name}@example.com", is_active=is_active)
        )

    async def book(
        self,
        title: str,
        author: str,
        genres: list[str],
        average_rating: float = 0.0,
        total_ratings: int = 0,
    ) -> Book:
        return await BookRepository(self.session).create(
            Book(
                id=uuid4(),
                external_id=f"ext-{uuid4().hex[:12]}",
                title=title,
                author=author,
                genres=genres,
                average_rating=average_rating,
                total_ratings=total_ratings,
            )
        )

    async def entry(
        self,
        user: User,
        book: Book,
        status: ReadingStatus = ReadingStatus.READ,
        rating: Optional[float] = None,
    ) -> UserBook:
        return await UserBookRepository(self.session).add(
            UserBook(id=uuid4(), user_id=user.id, book_id=book.id, status=status, rating=rating)
        )

    async def favorite(self, user: User, book: Book) -> None:
        await FavoriteRepository(self.session).add(user.id, book.id)

    async def profile(
        self,
        user: User,
        genres: Optional[dict[str, float]] = None,
        authors: Optional[dict[str, float]] = None,
    ) -> PreferenceProfile:
        return await PreferenceProfileRepository(self.session).replace(
            PreferenceProfile(
                user_id=user.id,
                preferred_genres=genres or {},
                preferred_authors=authors or {},
            )
        )


@pytest.fixture
def factory(session) -> Factory:
    return Factory(session)


# ── HTTP client ────────────────────────────────────


class RecordingRefresher(IPreferenceRefresher):
    """Records scheduled recomputations instead of running them."""

    def __init__(self, task_id: Optional[str] = "task-123"):
        self.task_id = task_id
        self.calls: list[UUID] = []

    def schedule(self, user_id: UUID) -> Optional[str]:
        self.calls.append(user_id)
        return self.task_id


@pytest.fixture
def refresher() -> RecordingRefresher:
    return RecordingRefresher()


@pytest.fixture
async def client(session_maker, refresher) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        async with session_maker() as s:
            yield s

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_preference_refresher] = lambda: refresher
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE) as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(user_id: UUID) -> dict[str, str]:
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def reader(factory) -> User:
    return await factory.user("reader")


@pytest.fixture
async def auth_client(client: AsyncClient, reader: User) -> AsyncClient:
    """Client authenticated as ``reader``."""
    client.headers.update(auth_headers(reader.id))
    return client
