"""
Database Session Management

Provides the async SQLAlchemy engine, the session factory used by the API
and the ingestion CLI, and idempotent schema creation.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

from .models import Base
from ..config import settings

logger = logging.getLogger("kb.db")


async_engine = create_async_engine(
    settings.database_url,
    echo=False,  # Set True for SQL debugging
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db() -> None:
    """
    Create the pgvector extension and any missing tables.

    Non-destructive: existing tables and rows are left untouched.
    """
    async with async_engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session for FastAPI dependencies.

    Request handlers only read documents, so nothing is committed here;
    closing the session discards the read transaction.
    """
    async with AsyncSessionLocal() as session:
        yield session
