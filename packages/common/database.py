"""
Database session management for SQLAlchemy with async support

The API initializes the session manager during startup; scripts (e.g.
scripts/preview_migration.py) rely on lazy init from Settings.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from packages.common.config import get_settings

logger = structlog.get_logger()


def to_async_url(database_url: str) -> str:
    """postgresql:// → postgresql+asyncpg://"""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


class DatabaseSessionManager:
    """Owns the async engine and hands out request-scoped sessions"""

    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None
        self._init_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._sessionmaker is not None

    async def init(self, database_url: str, **engine_kwargs):
        """Create the engine and session factory (idempotent)"""
        if self.initialized:
            return

        async with self._init_lock:
            if self.initialized:
                return

            options = {
                "echo": False,
                "pool_size": 10,
                "max_overflow": 5,
                "pool_pre_ping": True,
                "pool_recycle": 3600,
            }
            options.update(engine_kwargs)

            self._engine = create_async_engine(to_async_url(database_url), **options)
            self._sessionmaker = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )

            logger.info("database_initialized", pool_size=options["pool_size"])

    async def close(self):
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on success and rolls back on any error"""
        if not self.initialized:
            raise RuntimeError("DatabaseSessionManager not initialized")

        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


# Global session manager instance
sessionmanager = DatabaseSessionManager()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency and script helper.

    Lazily initializes from Settings when startup did not.
    """
    if not sessionmanager.initialized:
        settings = get_settings()
        await sessionmanager.init(settings.database_url, echo=settings.debug)

    async with sessionmanager.session() as session:
        yield session
