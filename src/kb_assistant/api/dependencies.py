from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache.response_cache import ResponseCache
from ..db import AsyncSessionLocal, DocumentStore, SqlCacheStore, get_async_session
from ..embeddings.embedder import Embedder
from ..llm.client import LLMClient
from ..retrieval.hybrid import HybridRetriever
from ..services.answer_service import AnswerService


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


@lru_cache
def get_response_cache() -> ResponseCache:
    # Cache writes outlive the request, so they use their own sessions
    return ResponseCache(SqlCacheStore(AsyncSessionLocal))


def get_document_store(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> DocumentStore:
    return DocumentStore(session)


def get_retriever(
    store: Annotated[DocumentStore, Depends(get_document_store)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> HybridRetriever:
    return HybridRetriever(store, embedder)


def get_answer_service(
    retriever: Annotated[HybridRetriever, Depends(get_retriever)],
    cache: Annotated[ResponseCache, Depends(get_response_cache)],
    llm: Annotated[LLMClient, Depends(get_llm_client)],
) -> AnswerService:
    return AnswerService(retriever, cache, llm)
