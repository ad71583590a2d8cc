"""
Database access points shared by models, API dependencies and Celery tasks.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.database_manager import Base as _Base
from ticketing.core.database_manager import db_manager

Base = _Base

engine = db_manager.engine
async_session_maker = db_manager.session_factory


async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from the global session factory"""
    if async_session_maker is None:
        raise RuntimeError(
            "Database session factory (async_session_maker) is not initialized. "
            "Check your database settings and initialization logs."
        )
    async with async_session_maker() as session:
        yield session
