"""
Async engine and session factory.
"""

import logging
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from interview_analyzer.config import get_settings
from interview_analyzer.db.models import Base

logger = logging.getLogger(__name__)


def create_engine(database_url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """
    Create the async engine.

    Args:
        database_url: Connection string (uses config if not provided).
        echo: Echo SQL (uses config if not provided).

    Returns:
        Async engine. For file-based SQLite the parent directory is created.
    """
    settings = get_settings()
    url = make_url(database_url or settings.database_url)

    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    return create_async_engine(url, echo=settings.database_echo if echo is None else echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database initialized at {engine.url.render_as_string(hide_password=True)}")
