"""Database engine, session factory and declarative base."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, AsyncIterator

from sqlalchemy import DateTime
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from studybuddy.config import get_settings
from studybuddy.core.errors import UpstreamFailure

settings = get_settings()


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always comes back as UTC.

    Postgres returns aware values already; SQLite drops the offset, so naive
    values read back are tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    """Declarative base for all models."""


def engine_options(database_url: str, timeout: float) -> dict[str, Any]:
    """Engine keyword arguments for a database URL.

    asyncpg gets a per-statement ``command_timeout`` so a stalled query fails
    instead of hanging the caller.
    """
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if database_url.startswith("postgresql+asyncpg"):
        options["connect_args"] = {"command_timeout": timeout}
    return options


engine = create_async_engine(
    settings.database_url,
    **engine_options(settings.database_url, settings.store_timeout_seconds),
)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


def upsert_insert(db: AsyncSession, table):
    """INSERT construct supporting ON CONFLICT for the session's dialect."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for one request."""
    async with async_session_maker() as session:
        yield session


@asynccontextmanager
async def store_errors(operation: str) -> AsyncIterator[None]:
    """Map database timeouts and lost connections to ``UpstreamFailure``."""
    try:
        yield
    except asyncio.TimeoutError as e:
        raise UpstreamFailure(f"Database {operation} timed out", error_code="timeout") from e
    except (OperationalError, InterfaceError) as e:
        raise UpstreamFailure(
            f"Database {operation} failed: {e}", error_code="unreachable"
        ) from e
