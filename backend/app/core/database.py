"""Async database engine and session management.

The connection pool is owned by an explicitly constructed Database object.
It is created in the application lifespan, stored on ``app.state``, and
disposed on shutdown. Request handlers receive sessions through get_db().
"""

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import Settings

logger = logging.getLogger(__name__)


class Database:
    """Connection pool and session factory for the durable store.

    Lifecycle:
    - Database(url) creates the engine (the pool connects lazily).
    - session() yields a session bound to the shared pool.
    - dispose() drains the pool on shutdown.

    Args:
        url: Async SQLAlchemy URL.
        pool_size: Persistent connections kept in the pool.
        echo: Log SQL statements.
    """

    def __init__(self, url: str, *, pool_size: int = 10, echo: bool = False) -> None:
        self._engine: AsyncEngine = create_async_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            pool_pre_ping=True,
        )
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Build a Database from application settings."""
        return cls(
            settings.database_url,
            pool_size=settings.database_pool_size,
            echo=settings.environment == "development",
        )

    @property
    def engine(self) -> AsyncEngine:
        """Underlying async engine."""
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Session factory bound to this pool."""
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Open a session; roll back if the block raises."""
        async with self._session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def dispose(self) -> None:
        """Close every pooled connection (graceful drain on shutdown)."""
        await self._engine.dispose()
        logger.info("Database connection pool disposed")


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session.

    Services commit their own units of work. Anything left pending when the
    request finishes is committed here, and rolled back on error.
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session
        await session.commit()
