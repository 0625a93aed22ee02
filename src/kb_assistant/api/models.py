"""
API Models

This module defines all Pydantic models used for request/response validation
across the chat, search and document statistics endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Clear schema documentation
- Length limits enforced in the service layer, so HTTP and CLI callers get
  the same error
"""

from __future__ import annotations

from typing import List, Optional, Dict, Literal
from pydantic import BaseModel, Field, ConfigDict


# ---------------------------------------------------------------------
# Chat Models
# ---------------------------------------------------------------------

class ChatMessage(BaseModel):
    """
    Single message in a chat conversation.
    """
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class ChatRequest(BaseModel):
    """
    Chat request payload: the full conversation, latest message last.
    """
    messages: List[ChatMessage] = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class ChatResponse(BaseModel):
    """
    Chat response payload.
    """
    answer: str
    language: Literal["it", "en"]
    cached: bool = False
    sources: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Search Models
# ---------------------------------------------------------------------

class SearchRequest(BaseModel):
    """
    Hybrid search request.
    """
    query: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class SearchResult(BaseModel):
    """
    Individual search match.
    """
    id: int
    source: str = Field(..., min_length=1)
    similarity: float
    content: str
    chunk_index: Optional[int] = None
    document_type: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Document Statistics
# ---------------------------------------------------------------------

class DocumentStatsResponse(BaseModel):
    """
    Statistics for the document store.
    """
    total_chunks: int = Field(..., ge=0)
    total_sources: int = Field(..., ge=0)
    sources: List[str] = Field(default_factory=list)
    chunks_by_type: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")
