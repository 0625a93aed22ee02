"""
Document Store

PostgreSQL + pgvector storage for embedded corpus chunks. This class is the
only owner of document records and exposes the primitives the retrieval
core depends on:

- match_documents : cosine similarity search with a threshold and a cap
- search_content  : case-insensitive pattern search over chunk text
- insert_documents / delete_all : bulk writes for ingestion

Rows are converted into RetrievedDocument records here, so callers never
handle raw metadata dicts. SQLAlchemy failures are wrapped in
DocumentStoreError naming the operation.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Sequence

from sqlalchemy import select, delete, func, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Document
from ..core.errors import DocumentStoreError
from ..embeddings.models import DocumentMetadata, RetrievedDocument


def _describe(exc: SQLAlchemyError) -> str:
    """Class name plus the first line of the driver message."""
    cause = getattr(exc, "orig", None) or exc
    lines = str(cause).strip().splitlines()
    detail = lines[0] if lines else ""
    return f"{type(exc).__name__}: {detail}" if detail else type(exc).__name__


class DocumentStore:
    """
    PostgreSQL-backed document store using pgvector for similarity search.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def commit(self) -> None:
        """
        Commit the current transaction.
        """
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(
                f"Commit failed: {_describe(exc)}"
            ) from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def match_documents(
        self,
        query_embedding: List[float],
        match_threshold: float,
        match_count: int,
    ) -> List[RetrievedDocument]:
        """
        Search for similar documents using cosine similarity.

        Parameters
        ----------
        query_embedding : List[float]
            Query vector.
        match_threshold : float
            Minimum similarity (1 - cosine distance) a row must reach.
        match_count : int
            Maximum number of results to return.

        Returns
        -------
        List[RetrievedDocument]
            Matches ordered by similarity, highest first.
        """
        # pgvector's <=> operator
        cosine_distance = Document.embedding.cosine_distance(query_embedding)

        stmt = (
            select(
                Document.id,
                Document.content,
                Document.metadata_,
                (1 - cosine_distance).label("similarity"),
            )
            .where(cosine_distance <= 1 - match_threshold)
            .order_by(cosine_distance)
            .limit(match_count)
        )

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise DocumentStoreError(
                f"Similarity search failed: {_describe(exc)}"
            ) from exc

        return [
            RetrievedDocument(
                id=row.id,
                content=row.content,
                metadata=DocumentMetadata.from_raw(row.metadata_),
                similarity=float(row.similarity),
            )
            for row in result.all()
        ]

    async def search_content(
        self,
        pattern: str,
        limit: int,
        similarity: float,
    ) -> List[RetrievedDocument]:
        """
        Return rows whose content matches an ILIKE pattern.

        Pattern matches have no computed score; every row is given the
        fixed `similarity` supplied by the caller.
        """
        stmt = (
            select(Document.id, Document.content, Document.metadata_)
            .where(Document.content.ilike(pattern, escape="\\"))
            .order_by(Document.id)
            .limit(limit)
        )

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise DocumentStoreError(
                f"Pattern search failed: {_describe(exc)}"
            ) from exc

        return [
            RetrievedDocument(
                id=row.id,
                content=row.content,
                metadata=DocumentMetadata.from_raw(row.metadata_),
                similarity=similarity,
            )
            for row in result.all()
        ]

    async def get_stats(self) -> dict:
        """
        Return statistics about the stored corpus.
        """
        try:
            total_result = await self._session.execute(
                select(func.count()).select_from(Document)
            )
            meta_result = await self._session.execute(select(Document.metadata_))
        except SQLAlchemyError as exc:
            raise DocumentStoreError(
                f"Stats query failed: {_describe(exc)}"
            ) from exc

        sources = set()
        by_type: Counter = Counter()
        for (raw,) in meta_result.all():
            metadata = DocumentMetadata.from_raw(raw)
            if metadata.source:
                sources.add(metadata.source)
            by_type[metadata.document_type or "unknown"] += 1

        return {
            "total_chunks": total_result.scalar() or 0,
            "total_sources": len(sources),
            "sources": sorted(sources),
            "chunks_by_type": dict(by_type),
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_documents(self, records: Sequence[Dict[str, Any]]) -> int:
        """
        Insert {content, metadata, embedding} records as one bulk write.

        Returns
        -------
        int
            Number of records written.
        """
        if not records:
            return 0

        rows = [
            {
                "content": record["content"],
                "metadata_": record["metadata"],
                "embedding": record["embedding"],
            }
            for record in records
        ]

        try:
            await self._session.execute(insert(Document), rows)
            await self._session.flush()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(
                f"Batch insert failed: {_describe(exc)}"
            ) from exc

        return len(rows)

    async def delete_all(self) -> int:
        """
        Remove every document record.

        Returns the number of deleted rows.
        """
        try:
            result = await self._session.execute(delete(Document))
        except SQLAlchemyError as exc:
            raise DocumentStoreError(
                f"Delete-all failed: {_describe(exc)}"
            ) from exc
        return result.rowcount
