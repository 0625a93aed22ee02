"""
Database Package

Provides SQLAlchemy async session management and model definitions
for PostgreSQL with pgvector.
"""

from .session import get_async_session, init_db, async_engine, AsyncSessionLocal
from .models import Base, Document, ResponseCacheRow
from .vector_store import DocumentStore
from .cache_store import SqlCacheStore

__all__ = [
    "get_async_session",
    "init_db",
    "async_engine",
    "AsyncSessionLocal",
    "Base",
    "Document",
    "ResponseCacheRow",
    "DocumentStore",
    "SqlCacheStore",
]
