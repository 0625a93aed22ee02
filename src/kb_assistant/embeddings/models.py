"""
Corpus and Retrieval Data Models

This module defines the canonical records that flow through ingestion and
retrieval:

- SourceFile       : one corpus file selected for ingestion
- Chunk            : one bounded span of source text plus its metadata
- EmbeddedChunk    : a Chunk paired with its embedding vector
- RetrievedDocument: a document store row returned by a search
- CacheEntry       : a memoized single-turn answer

Store metadata is loosely typed JSON. It is resolved into DocumentMetadata
once, at the store boundary, so retrieval code never inspects raw dicts.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

DocumentType = Literal["markdown", "transcript"]

# Keys DocumentMetadata reads, by alias and by field name
_METADATA_KEYS = ("source", "chunkIndex", "documentType", "chunk_index", "document_type")


class SourceFile(BaseModel):
    """
    A corpus file classified for ingestion.
    """

    path: Path
    relative_path: str = Field(..., min_length=1)
    document_type: DocumentType

    model_config = ConfigDict(frozen=True)

    def read_text(self) -> str:
        return self.path.read_text(encoding="utf-8")


class ChunkMetadata(BaseModel):
    """
    Metadata persisted alongside every chunk.

    Field aliases match the JSON keys stored in the `metadata` column.
    """

    source: str = Field(
        ...,
        min_length=1,
        description="Path of the source file relative to the corpus root.",
    )

    chunk_index: int = Field(
        ...,
        ge=0,
        alias="chunkIndex",
        description="0-based position of the chunk within its source.",
    )

    document_type: DocumentType = Field(..., alias="documentType")

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
    )


class Chunk(BaseModel):
    """
    A single chunk of source text ready for embedding.
    """

    content: str = Field(..., min_length=1)
    metadata: ChunkMetadata

    model_config = ConfigDict(extra="forbid", frozen=True)


class EmbeddedChunk(BaseModel):
    """
    A chunk plus its embedding, written to the store as one record.
    """

    chunk: Chunk
    embedding: List[float] = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    def to_record(self) -> Dict[str, Any]:
        return {
            "content": self.chunk.content,
            "metadata": self.chunk.metadata.model_dump(by_alias=True),
            "embedding": self.embedding,
        }


class DocumentMetadata(BaseModel):
    """
    Tolerant view of a stored row's metadata.

    Every field is optional because rows may predate the current schema or
    be written by other tools.
    """

    source: Optional[str] = None
    chunk_index: Optional[int] = Field(default=None, alias="chunkIndex")
    document_type: Optional[str] = Field(default=None, alias="documentType")

    model_config = ConfigDict(
        extra="allow",
        frozen=True,
        populate_by_name=True,
    )

    @classmethod
    def from_raw(cls, raw: Any) -> "DocumentMetadata":
        if not isinstance(raw, dict):
            return cls()
        try:
            metadata = cls.model_validate(raw)
        except ValidationError:
            # Keep whichever known fields are individually valid
            kept = {
                key: value for key, value in raw.items() if key not in _METADATA_KEYS
            }
            for key in _METADATA_KEYS:
                if key not in raw:
                    continue
                try:
                    cls.model_validate({key: raw[key]})
                except ValidationError:
                    continue
                kept[key] = raw[key]
            metadata = cls.model_validate(kept)
        if not metadata.source or not str(metadata.source).strip():
            metadata = metadata.model_copy(update={"source": None})
        return metadata


class RetrievedDocument(BaseModel):
    """
    A stored chunk returned by similarity or pattern search.

    `similarity` is a ranking hint only. Keyword matches carry a fixed
    constant rather than a computed score.
    """

    id: int
    content: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    similarity: float
    source: Optional[str] = Field(
        default=None,
        description="Citation label, attached after merging.",
    )

    model_config = ConfigDict(frozen=True)


class CacheEntry(BaseModel):
    """
    A memoized answer for a normalized single-turn question.
    """

    question_hash: str = Field(..., min_length=64, max_length=64)
    question: str
    answer: str
    language: str
    hit_count: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)
