"""
Response Cache Store

PostgreSQL persistence for memoized answers. Every operation opens its own
session from the supplied factory because cache writes run as detached
background tasks, outside any request-scoped session.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import ResponseCacheRow
from ..embeddings.models import CacheEntry


class SqlCacheStore:
    """
    Keyed lookup/upsert of cache entries by `question_hash`.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, question_hash: str) -> Optional[CacheEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ResponseCacheRow).where(
                    ResponseCacheRow.question_hash == question_hash
                )
            )
            row = result.scalar_one_or_none()

        if row is None:
            return None

        return CacheEntry(
            question_hash=row.question_hash,
            question=row.question,
            answer=row.answer,
            language=row.language,
            hit_count=row.hit_count,
        )

    async def upsert(
        self,
        question_hash: str,
        question: str,
        answer: str,
        language: str,
    ) -> None:
        """
        Insert a new entry with hit_count 0, or refresh an existing one.

        Uses PostgreSQL upsert so concurrent writers never violate the
        unique hash constraint. The hit counter of an existing row is kept.
        """
        stmt = pg_insert(ResponseCacheRow).values(
            question_hash=question_hash,
            question=question,
            answer=answer,
            language=language,
            hit_count=0,
        ).on_conflict_do_update(
            index_elements=[ResponseCacheRow.question_hash],
            set_={
                "question": question,
                "answer": answer,
                "language": language,
            },
        )

        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def increment_hit_count(self, question_hash: str) -> None:
        stmt = (
            update(ResponseCacheRow)
            .where(ResponseCacheRow.question_hash == question_hash)
            .values(hit_count=ResponseCacheRow.hit_count + 1)
        )

        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()
