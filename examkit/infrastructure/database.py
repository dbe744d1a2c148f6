"""
ExamKit - Database Infrastructure
Async SQLAlchemy 2.0 with connection pooling and Unit of Work pattern
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from examkit.application.repositories import TransactionManager
from examkit.core.config import Settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


class DatabaseManager:
    """
    Database connection manager with async support.

    Handles connection pooling, session management, and health checks.
    """

    def __init__(self, settings: Settings):
        """
        Initialize database manager.

        Args:
            settings: Application settings
        """
        self._settings = settings
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def _engine_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"echo": self._settings.database_echo}
        # SQLite (local development) has no server-side pool to size
        if not self._settings.is_sqlite:
            options.update(
                pool_size=self._settings.database_pool_size,
                max_overflow=self._settings.database_max_overflow,
                pool_timeout=self._settings.database_pool_timeout,
                pool_pre_ping=True,
            )
        return options

    async def connect(self) -> None:
        """Initialize database connection pool."""
        logger.info(
            "Connecting to database",
            host=self._settings.database_url.split("@")[-1].split("/")[0],
        )

        self._engine = create_async_engine(
            self._settings.database_url,
            **self._engine_options(),
        )

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        # Test connection
        async with self._engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

        logger.info("Database connection established")

    async def create_schema(self) -> None:
        """Create all tables directly; used for SQLite development databases."""
        if self._engine is None:
            raise RuntimeError("Database not connected")
        # Import models so they register on Base.metadata
        from examkit.infrastructure import models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema created")

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self._engine:
            await self._engine.dispose()
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a database session.

        Yields:
            AsyncSession for database operations
        """
        if self._session_factory is None:
            raise RuntimeError("Database not connected")

        session = self._session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> dict:
        """
        Check database health.

        Returns:
            Health status dictionary
        """
        try:
            async with self.session() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            pool = self._engine.pool if self._engine else None
            return {
                "status": "healthy",
                "pool_size": pool.size() if pool is not None and hasattr(pool, "size") else 0,
                "checked_out": (
                    pool.checkedout() if pool is not None and hasattr(pool, "checkedout") else 0
                ),
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
            }


class UnitOfWork(TransactionManager):
    """
    Unit of Work pattern implementation.

    Manages transactions across multiple repositories.
    """

    def __init__(self, session: AsyncSession):
        self._session = session
        self._committed = False

    @property
    def session(self) -> AsyncSession:
        """Get the underlying session."""
        return self._session

    async def commit(self) -> None:
        """Commit the transaction."""
        await self._session.commit()
        self._committed = True

    async def rollback(self) -> None:
        """Rollback the transaction."""
        await self._session.rollback()

    async def flush(self) -> None:
        """Flush pending changes without committing."""
        await self._session.flush()

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager with automatic rollback on error."""
        if exc_type is not None or not self._committed:
            await self.rollback()
