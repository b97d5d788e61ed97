"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations (aiosqlite
in tests). The engine lives on an explicit ``Database`` object that is built
at startup and injected into services; there is no module-level engine.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator

from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime normalized to UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect):
        if value is None:
            return None
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value: Any, dialect):
        if value is None:
            return None
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        return value


class Database:
    """
    Owner of the async engine and session factory.

    Every unit of work goes through ``session()``: the block commits on
    success and rolls back on any exception, so ticket, activity and outbox
    writes made inside one block are atomic.
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
    ):
        # Fix asyncpg SSL: replace sslmode with ssl for asyncpg compatibility
        self.url = url.replace("sslmode=", "ssl=")

        engine_kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
        if not self.url.startswith("sqlite"):
            engine_kwargs["pool_size"] = pool_size
            engine_kwargs["max_overflow"] = max_overflow

        self._engine: AsyncEngine = create_async_engine(self.url, **engine_kwargs)
        self._session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Prevent lazy loading after commit
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.database_url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Async context manager for one transactional unit of work.

        Usage:
            async with database.session() as session:
                session.add(model)

        Yields:
            AsyncSession: SQLAlchemy async session
        """
        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """
        Create all database tables.

        This should only be used for development/testing.
        Production should use migrations (Alembic).
        """
        # Import models so they register on Base.metadata
        import campusdesk.tickets.infrastructure.models  # noqa: F401
        import campusdesk.escalation.infrastructure.models  # noqa: F401
        import campusdesk.notifications.infrastructure.models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """
        Close the database engine and dispose of connections.

        Should be called during application shutdown.
        """
        await self._engine.dispose()
