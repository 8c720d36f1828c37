"""
Database session configuration.

This module handles database engine creation and session management
using SQLAlchemy with async support. The engine is owned by an explicitly
constructed `Database` object instead of module-level globals.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from geodispatch.app.core.config import Settings

# Create declarative base for models
Base = declarative_base()


class Database:
    """
    Persistence client: one engine plus its session factory.

    Lifecycle: construct once, share by reference, `dispose()` on shutdown.
    """

    def __init__(self, settings: Optional[Settings] = None, engine: Optional[AsyncEngine] = None):
        if engine is None:
            if settings is None:
                raise ValueError("Database needs either settings or an engine")
            engine_kwargs = {"echo": settings.db_echo, "future": True}
            if not settings.database_url.startswith("sqlite"):
                engine_kwargs.update(
                    pool_size=settings.db_pool_size,
                    max_overflow=settings.db_max_overflow,
                )
            engine = create_async_engine(settings.database_url, **engine_kwargs)

        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session

    async def create_all(self) -> None:
        """Create tables for every registered model."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

