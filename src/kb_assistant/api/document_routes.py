from fastapi import APIRouter, Depends
from typing import Annotated

from .models import DocumentStatsResponse
from .dependencies import get_document_store
from ..db.vector_store import DocumentStore

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get(
    "/stats",
    response_model=DocumentStatsResponse,
    summary="Get document store statistics",
)
async def get_document_stats(
    store: Annotated[DocumentStore, Depends(get_document_store)],
) -> DocumentStatsResponse:
    """
    Return chunk and source counts for the ingested corpus.
    """
    return DocumentStatsResponse(**await store.get_stats())
