"""
Database session configuration.

This module handles database engine creation and session management
using SQLAlchemy with async support for PostgreSQL.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from windpark_backend.app.core.config import settings

logger = logging.getLogger(__name__)

# SQLite (used by the test-suite) does not accept pool sizing arguments
_engine_kwargs = {"echo": settings.db_echo, "future": True}
if not settings.database_url.startswith("sqlite"):
    _engine_kwargs.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)

# Create async engine
engine = create_async_engine(settings.database_url, **_engine_kwargs)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Transaction boundary: every write inside the block commits together or not at all.

    Usage:
        async with atomic(db):
            db.add(invoice)
            settlement.status = EnergySettlementStatus.INVOICED

    Any exception raised inside the block rolls the session back and is re-raised.
    """
    try:
        yield db
        await db.commit()
    except Exception:
        logger.warning("Transaction rolled back", exc_info=True)
        await db.rollback()
        raise
