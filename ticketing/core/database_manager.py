"""
Async engine and session factory for the ticketing database.

PostgreSQL (asyncpg) in deployment; an in-memory SQLite database shared over
a single connection when ``TESTING`` is set.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from ticketing.core.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class Base(DeclarativeBase):
    pass


def async_url(raw_url: str) -> str:
    """Swap a plain postgres URL onto the asyncpg driver"""
    if raw_url.startswith("postgresql://"):
        return raw_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return raw_url


class DatabaseManager:
    def __init__(self, url: Optional[str] = None) -> None:
        if url is None:
            url = TEST_DATABASE_URL if settings.TESTING else async_url(
                settings.database.database_url
            )
        self.engine: Optional[AsyncEngine] = create_async_engine(url, **self._engine_kwargs(url))
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            # services keep using loaded rows after commit
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info(f"Database engine initialized for {self.display_url}")

    @staticmethod
    def _engine_kwargs(url: str) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": settings.database.DB_ECHO}
        if url.startswith("sqlite"):
            kwargs.update(
                poolclass=StaticPool,
                connect_args={"check_same_thread": False, "timeout": 20},
            )
            return kwargs

        kwargs.update(
            pool_pre_ping=settings.database.DB_POOL_PRE_PING,
            pool_recycle=settings.database.DB_POOL_RECYCLE,
            pool_size=settings.database.DB_POOL_SIZE,
            max_overflow=settings.database.DB_MAX_OVERFLOW,
            pool_timeout=settings.database.DB_POOL_TIMEOUT,
            connect_args={
                "command_timeout": settings.database.DB_COMMAND_TIMEOUT,
                "server_settings": {
                    "application_name": settings.PROJECT_NAME,
                    "statement_timeout": settings.database.DB_STATEMENT_TIMEOUT,
                    "lock_timeout": settings.database.DB_LOCK_TIMEOUT,
                },
            },
        )
        return kwargs

    @property
    def display_url(self) -> str:
        if self.engine is None:
            return "<uninitialized>"
        return make_url(self.engine.url).render_as_string(hide_password=True)

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if not self.session_factory:
            raise RuntimeError("Database not initialized")

        session = self.session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """Create every table; tests and local development only, deployments use Alembic"""
        if not self.engine:
            raise RuntimeError("Database not initialized")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> Dict[str, Any]:
        if not self.engine:
            return {"status": "error", "message": "Database engine not initialized"}

        started = time.perf_counter()
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "error", "message": "Database unavailable"}

        return {
            "status": "healthy",
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "database_url": self.display_url,
        }

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            logger.info("Database engine closed")


db_manager = DatabaseManager()
