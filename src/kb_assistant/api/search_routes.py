"""
Search Routes

This module exposes hybrid retrieval (vector similarity + keyword fallback)
directly, returning the same source-attributed context set the answer
generator receives.
"""

from fastapi import APIRouter, Depends, status
from typing import List, Annotated

from .models import SearchRequest, SearchResult
from .dependencies import get_retriever
from ..retrieval.hybrid import HybridRetriever

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "/",
    response_model=List[SearchResult],
    summary="Hybrid semantic + keyword search",
    status_code=status.HTTP_200_OK,
)
async def search(
    req: SearchRequest,
    retriever: Annotated[HybridRetriever, Depends(get_retriever)],
) -> List[SearchResult]:
    """
    Retrieve the most relevant chunks for a query.

    Oversized queries are rejected with 400 by the input validation handler
    before any embedding or store call.
    """
    documents = await retriever.retrieve(req.query)

    return [
        SearchResult(
            id=doc.id,
            source=doc.source,
            similarity=doc.similarity,
            content=doc.content,
            chunk_index=doc.metadata.chunk_index,
            document_type=doc.metadata.document_type,
        )
        for doc in documents
    ]
