"""Shared fixtures: SQLite-backed sessions and an in-memory Qdrant."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
import pytest_asyncio
from qdrant_client import AsyncQdrantClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import studybuddy.models  # noqa: F401  (registers tables)
from studybuddy.core.vector_store import VectorStore
from studybuddy.database import Base
from studybuddy.models.content import Content, ContentStatus
from studybuddy.models.user import User

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
VECTOR_SIZE = 4


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine; one connection per session.

    Transactions start with BEGIN IMMEDIATE so concurrent writers queue on
    the database lock instead of deadlocking.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def store():
    client = AsyncQdrantClient(location=":memory:")
    vector_store = VectorStore(client=client)
    vector_store.vector_size = VECTOR_SIZE
    await vector_store.ensure_collection()
    yield vector_store
    await client.close()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_user(db):
    async def _make_user(tier: str = "free", week_reset_date: datetime | None = None) -> User:
        user = User(
            email=f"{uuid4().hex}@example.com",
            tier=tier,
            qa_questions_this_week=0,
            week_reset_date=week_reset_date or NOW + timedelta(days=7),
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


@pytest.fixture
def make_content(db):
    async def _make_content(
        user: User,
        chunk_count: int | None = None,
        created_at: datetime | None = None,
        title: str = "Lecture",
    ) -> Content:
        content = Content(
            user_id=user.id,
            title=title,
            status=ContentStatus.COMPLETED.value,
            chunk_count=chunk_count,
            created_at=created_at or NOW,
        )
        db.add(content)
        await db.commit()
        return content

    return _make_content


@pytest.fixture
def add_vectors(store):
    async def _add_vectors(content_id, count: int) -> None:
        await store.upsert_vectors([
            {
                "id": str(uuid4()),
                "vector": [0.1, 0.2, 0.3, 0.4],
                "payload": {"content_id": str(content_id), "chunk_index": i},
            }
            for i in range(count)
        ])

    return _add_vectors


@pytest_asyncio.fixture
async def user(make_user):
    return await make_user()
