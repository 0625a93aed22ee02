"""
Hybrid Retrieval

Combines semantic (vector) search with the keyword fallback plan and merges
both into one ranked, deduplicated, source-attributed context set.

Responsibilities
----------------
- Reject oversized queries before any embedding or store call
- Embed the query while the keyword leg runs
- Run the similarity search with a threshold and a cap
- Walk keyword attempts in plan order, stopping at the first non-empty one
- Merge with vector priority and attach citation labels

Failure Policy
--------------
- Embedding and similarity-search failures abort the request.
- A pattern-search failure is isolated to the keyword leg: it is logged
  and the request proceeds with vector results only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from ..config import settings
from ..core.errors import DocumentStoreError, InputValidationError, QueryTooLongError
from ..db.vector_store import DocumentStore
from ..embeddings.embedder import Embedder
from ..embeddings.models import RetrievedDocument
from .keywords import KeywordAttempt, build_keyword_attempts, extract_keywords

logger = logging.getLogger("kb.retriever")


# ---------------------------------------------------------------------
# Pure Helpers
# ---------------------------------------------------------------------

def validate_query(query: str, max_length: Optional[int] = None) -> str:
    """
    Return `query` unchanged if it is acceptable, otherwise raise.

    Raises
    ------
    InputValidationError
        If the query is empty or whitespace only.
    QueryTooLongError
        If the query exceeds `max_length` characters.
    """
    limit = max_length if max_length is not None else settings.max_query_length

    if not isinstance(query, str) or not query.strip():
        raise InputValidationError("Query must be a non-empty string.")
    if len(query) > limit:
        raise QueryTooLongError(len(query), limit)
    return query


def merge_results(
    vector_results: Sequence[RetrievedDocument],
    keyword_results: Sequence[RetrievedDocument],
    top_k: int,
) -> List[RetrievedDocument]:
    """
    Union both legs, vector results first.

    Keyword results are appended only when their id was not already
    returned, so a vector hit always keeps its own similarity score.
    """
    merged: List[RetrievedDocument] = []
    seen = set()

    for doc in list(vector_results) + list(keyword_results):
        if doc.id in seen:
            continue
        seen.add(doc.id)
        merged.append(doc)

    return merged[:top_k]


def attach_source_labels(documents: Sequence[RetrievedDocument]) -> List[RetrievedDocument]:
    """
    Set each document's citation label from its metadata.

    Documents without a source get `unknown-source-N`, N being the 1-based
    position in `documents`.
    """
    return [
        doc.model_copy(
            update={"source": doc.metadata.source or f"unknown-source-{position}"}
        )
        for position, doc in enumerate(documents, start=1)
    ]


def format_context(documents: Sequence[RetrievedDocument]) -> str:
    """
    Render retrieved documents as the context block for answer generation.
    """
    blocks = [
        f"[Source: {doc.source or 'unknown'}]\n{doc.content.strip()}"
        for doc in documents
    ]
    return "\n\n---\n\n".join(blocks)


# ---------------------------------------------------------------------
# Retriever
# ---------------------------------------------------------------------

class HybridRetriever:
    """
    Stateless per-request hybrid retriever over a DocumentStore.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        match_threshold: Optional[float] = None,
        match_count: Optional[int] = None,
        top_k: Optional[int] = None,
        keyword_limit: Optional[int] = None,
        max_query_length: Optional[int] = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.match_threshold = (
            match_threshold if match_threshold is not None else settings.match_threshold
        )
        self.match_count = match_count or settings.match_count
        self.top_k = top_k or settings.retrieval_top_k
        self.keyword_limit = keyword_limit or settings.keyword_match_limit
        self.max_query_length = max_query_length or settings.max_query_length

    async def retrieve(self, query: str) -> List[RetrievedDocument]:
        """
        Return up to top-K documents relevant to `query`.

        Parameters
        ----------
        query : str
            Raw user text.

        Returns
        -------
        List[RetrievedDocument]
            Vector hits first (by similarity), then keyword-only hits, each
            carrying a `source` label.
        """
        validate_query(query, self.max_query_length)

        attempts = build_keyword_attempts(extract_keywords(query))

        # The store session serves one statement at a time, so only the
        # embedding call overlaps with the keyword leg.
        embed_task = asyncio.ensure_future(self._embedder.embed(query))
        keyword_task = asyncio.ensure_future(self._keyword_search(attempts))
        try:
            query_embedding, keyword_results = await asyncio.gather(
                embed_task,
                keyword_task,
            )
        finally:
            # A failed leg must not leave the other one running on the session
            pending = [t for t in (embed_task, keyword_task) if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        vector_results = await self._store.match_documents(
            query_embedding,
            self.match_threshold,
            self.match_count,
        )

        merged = merge_results(vector_results, keyword_results, self.top_k)

        logger.info(
            "Retrieved %d documents (vector=%d, keyword=%d, attempts=%d)",
            len(merged),
            len(vector_results),
            len(keyword_results),
            len(attempts),
        )

        return attach_source_labels(merged)

    async def _keyword_search(
        self,
        attempts: Sequence[KeywordAttempt],
    ) -> List[RetrievedDocument]:
        """
        Run attempts in order and return the first non-empty result.
        """
        for attempt in attempts:
            try:
                results = await self._store.search_content(
                    attempt.pattern,
                    self.keyword_limit,
                    attempt.similarity,
                )
            except DocumentStoreError:
                logger.warning(
                    "Keyword search failed on tier '%s'; continuing with vector results",
                    attempt.tier,
                    exc_info=True,
                )
                return []

            if results:
                logger.debug(
                    "Keyword tier '%s' matched %d documents for %s",
                    attempt.tier,
                    len(results),
                    attempt.keywords,
                )
                return list(results)

        return []
