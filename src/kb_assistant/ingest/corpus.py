"""
Corpus Ingestion

Turns a directory of markdown files and video transcripts into embedded
chunk records in the document store.

Workflow
--------
1. Enumerate every file under the corpus root (sorted, deterministic).
2. Classify: `*.md` is markdown; files inside a transcript directory with
   the transcript suffix are transcripts; everything else is ignored.
3. Chunk: markdown is section-aware chunked; transcripts are cleaned and
   recursively chunked.
4. Write in fixed-size batches: one embedding call and one bulk insert
   (committed) per batch. With `clean`, the existing records are deleted
   in the same transaction as the first batch, after chunking and the first
   embedding call succeeded.

A failed batch aborts the run. Batches already committed stay in the store.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional, Union

from pydantic import BaseModel, Field

from ..config import settings
from ..core.errors import DocumentStoreError, IngestionError, InputValidationError
from ..db.vector_store import DocumentStore
from ..embeddings.embedder import Embedder, EmbeddingError
from ..embeddings.models import (
    Chunk,
    ChunkMetadata,
    DocumentType,
    EmbeddedChunk,
    SourceFile,
)
from ..retrieval.chunker import recursive_chunk, section_aware_chunk
from ..retrieval.transcripts import clean_transcript

logger = logging.getLogger("kb.ingest")

ProgressCallback = Callable[[int, int], None]


class IngestReport(BaseModel):
    """
    Outcome of one ingestion run.
    """
    corpus_root: str
    clean: bool
    markdown_files: int = Field(default=0, ge=0)
    transcript_files: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=0, ge=0)
    batches_written: int = Field(default=0, ge=0)
    records_written: int = Field(default=0, ge=0)
    records_deleted: Optional[int] = None


# ---------------------------------------------------------------------
# Discovery & Chunking
# ---------------------------------------------------------------------

def classify_file(
    relative_path: Path,
    transcript_dir_name: Optional[str] = None,
    transcript_suffix: Optional[str] = None,
) -> Optional[DocumentType]:
    """
    Return the document type of a corpus-relative path, or None to skip it.
    """
    transcript_dir_name = transcript_dir_name or settings.transcript_dir_name
    transcript_suffix = transcript_suffix or settings.transcript_suffix

    name = relative_path.name
    if name.endswith(".md"):
        return "markdown"
    if transcript_dir_name in relative_path.parts[:-1] and name.endswith(transcript_suffix):
        return "transcript"
    return None


def discover_source_files(corpus_root: Path) -> List[SourceFile]:
    """
    Recursively list ingestible files, markdown first, then transcripts.
    """
    markdown: List[SourceFile] = []
    transcripts: List[SourceFile] = []

    for path in sorted(corpus_root.rglob("*")):
        if not path.is_file():
            continue

        relative = path.relative_to(corpus_root)
        document_type = classify_file(relative)
        if document_type is None:
            continue

        source = SourceFile(
            path=path,
            relative_path=relative.as_posix(),
            document_type=document_type,
        )
        if document_type == "markdown":
            markdown.append(source)
        else:
            transcripts.append(source)

    return markdown + transcripts


def chunk_source(source: SourceFile) -> List[Chunk]:
    """
    Read and chunk one source file with the strategy for its type.
    """
    raw = source.read_text()

    if source.document_type == "markdown":
        pieces = section_aware_chunk(raw)
    else:
        pieces = recursive_chunk(clean_transcript(raw))

    return [
        Chunk(
            content=content,
            metadata=ChunkMetadata(
                source=source.relative_path,
                chunk_index=index,
                document_type=source.document_type,
            ),
        )
        for index, content in enumerate(pieces)
    ]


def build_chunks(sources: List[SourceFile]) -> List[Chunk]:
    chunks: List[Chunk] = []
    for source in sources:
        source_chunks = chunk_source(source)
        logger.debug("%s -> %d chunks", source.relative_path, len(source_chunks))
        chunks.extend(source_chunks)
    return chunks


# ---------------------------------------------------------------------
# Ingestor
# ---------------------------------------------------------------------

class CorpusIngestor:
    """
    Sequential batch pipeline from corpus files to the document store.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        batch_size: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._batch_size = batch_size or settings.ingest_batch_size
        self._progress = progress

    async def ingest(
        self,
        corpus_root: Union[str, Path],
        clean: bool = True,
    ) -> IngestReport:
        """
        Ingest every supported file under `corpus_root`.

        Parameters
        ----------
        corpus_root : Union[str, Path]
            Directory holding the knowledge base.

        clean : bool
            Replace all existing records (True) or append (False).

        Returns
        -------
        IngestReport
            Counts for the run. An empty corpus is a no-op, not an error.

        Raises
        ------
        InputValidationError
            If `corpus_root` is not a directory.
        IngestionError
            If clearing, embedding or inserting fails.
        """
        root = Path(corpus_root).resolve()
        if not root.is_dir():
            raise InputValidationError(
                f"Knowledge base path does not exist or is not a directory: {root}"
            )

        sources = discover_source_files(root)
        chunks = build_chunks(sources)

        report = IngestReport(
            corpus_root=str(root),
            clean=clean,
            markdown_files=sum(1 for s in sources if s.document_type == "markdown"),
            transcript_files=sum(1 for s in sources if s.document_type == "transcript"),
            total_chunks=len(chunks),
        )

        if not chunks:
            logger.info("No chunks found under %s. Nothing to ingest.", root)
            return report

        logger.info(
            "Prepared %d chunks from %d files",
            len(chunks),
            len(sources),
        )

        for start in range(0, len(chunks), self._batch_size):
            batch = chunks[start : start + self._batch_size]

            try:
                embeddings = await self._embedder.embed_batch([c.content for c in batch])
            except EmbeddingError as exc:
                raise IngestionError(
                    f"Failed embedding batch starting at {start}: {exc}"
                ) from exc

            if clean and start == 0:
                try:
                    report.records_deleted = await self._store.delete_all()
                except DocumentStoreError as exc:
                    raise IngestionError(
                        f"Failed clearing existing documents: {exc}"
                    ) from exc
                logger.info("Cleared %d existing documents", report.records_deleted)

            records = [
                EmbeddedChunk(chunk=chunk, embedding=embedding).to_record()
                for chunk, embedding in zip(batch, embeddings)
            ]

            try:
                written = await self._store.insert_documents(records)
                await self._store.commit()
            except DocumentStoreError as exc:
                raise IngestionError(
                    f"Failed inserting batch starting at {start}: {exc}"
                ) from exc

            report.batches_written += 1
            report.records_written += written

            done = min(start + self._batch_size, len(chunks))
            logger.info("Inserted %d / %d", done, len(chunks))
            if self._progress is not None:
                self._progress(done, len(chunks))

        return report
