"""
Database Session Factory
Creates async SQLAlchemy sessions for running the helpers
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from orm_extensions.config import Settings, get_settings
from orm_extensions.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class DatabaseSessionFactory:
    """
    Factory for creating async database sessions.

    Manages the async engine and session maker. SQLite URLs skip pool sizing;
    in-memory SQLite shares one connection so every session sees the same data.
    """

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
    ) -> None:
        """
        Initialize session factory with database connection.

        Args:
            database_url: Async SQLAlchemy URL (e.g. postgresql+asyncpg://, sqlite+aiosqlite://)
            echo: Whether to log SQL statements
            pool_size: Connection pool size (ignored for SQLite)
            max_overflow: Max overflow connections beyond pool_size (ignored for SQLite)
        """
        self.database_url = database_url
        self.echo = echo

        url = make_url(database_url)
        engine_kwargs: dict[str, Any] = {"echo": echo}
        if url.get_backend_name() == "sqlite":
            if url.database in (None, "", ":memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
                pool_recycle=3600,
            )

        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)

        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        logger.info(
            "Database session factory initialized",
            backend=url.get_backend_name(),
            pool_size=None if url.get_backend_name() == "sqlite" else pool_size,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> DatabaseSessionFactory:
        settings = settings or get_settings()
        logger.debug("Creating session factory from settings", **settings.safe_dict())
        return cls(
            settings.database_url,
            echo=settings.echo_sql,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def create_session(self) -> AsyncSession:
        """
        Create a new async session.

        Returns:
            New AsyncSession instance
        """
        return self.session_factory()

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """
        Async context manager for sessions.

        Rolls back and re-raises on error.

        Usage:
            async with factory.get_session() as session:
                await merge_entity_async(session, customer)
                await session.commit()
        """
        async with self.session_factory() as session:
            try:
                yield session
            except Exception as e:
                await session.rollback()
                logger.error("Session error, rolled back", error=str(e))
                raise

    async def dispose(self) -> None:
        """Close all connections and dispose of the engine."""
        await self.engine.dispose()
        logger.info("Database engine disposed")
