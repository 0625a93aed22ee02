"""
Hybrid Retrieval Tests

The document store and embedder are replaced by AsyncMocks; no database or
network access happens here.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from kb_assistant.core.errors import (
    DocumentStoreError,
    InputValidationError,
    QueryTooLongError,
)
from kb_assistant.db.vector_store import DocumentStore
from kb_assistant.embeddings.embedder import Embedder, EmbeddingError
from kb_assistant.embeddings.models import DocumentMetadata, RetrievedDocument
from kb_assistant.retrieval.hybrid import (
    HybridRetriever,
    attach_source_labels,
    format_context,
    merge_results,
    validate_query,
)


def make_doc(doc_id, similarity, source="guides/contracts.md"):
    metadata = {"source": source, "chunkIndex": 0, "documentType": "markdown"} if source else {}
    return RetrievedDocument(
        id=doc_id,
        content=f"content of {doc_id}",
        metadata=DocumentMetadata.from_raw(metadata),
        similarity=similarity,
    )


@pytest.fixture
def mock_store():
    mock = AsyncMock(spec=DocumentStore)
    mock.match_documents.return_value = []
    mock.search_content.return_value = []
    return mock


@pytest.fixture
def mock_embedder():
    mock = AsyncMock(spec=Embedder)
    mock.embed.return_value = [0.1] * 8
    return mock


@pytest.fixture
def retriever(mock_store, mock_embedder):
    return HybridRetriever(
        mock_store,
        mock_embedder,
        match_threshold=0.25,
        match_count=12,
        top_k=12,
        keyword_limit=6,
        max_query_length=10_000,
    )


class TestMergeResults:
    """Tests for the pure merge step."""

    def test_shared_ids_appear_once_with_vector_score(self):
        vector = [make_doc(1, 0.9), make_doc(2, 0.8), make_doc(3, 0.7)]
        keyword = [make_doc(2, 0.5), make_doc(3, 0.5), make_doc(4, 0.5)]

        merged = merge_results(vector, keyword, top_k=12)

        assert [d.id for d in merged] == [1, 2, 3, 4]
        assert merged[1].similarity == 0.8
        assert merged[2].similarity == 0.7
        assert merged[3].similarity == 0.5

    def test_truncates_to_top_k(self):
        vector = [make_doc(i, 0.9 - i * 0.01) for i in range(12)]
        keyword = [make_doc(100, 0.5)]

        merged = merge_results(vector, keyword, top_k=12)

        assert len(merged) == 12
        assert 100 not in {d.id for d in merged}

    def test_keyword_only(self):
        merged = merge_results([], [make_doc(7, 0.45)], top_k=12)
        assert [d.id for d in merged] == [7]


class TestSourceLabels:
    def test_label_from_metadata(self):
        labelled = attach_source_labels([make_doc(1, 0.9, source="a/b.md")])
        assert labelled[0].source == "a/b.md"

    def test_missing_source_uses_position(self):
        docs = [make_doc(1, 0.9), make_doc(2, 0.8, source=None)]
        labelled = attach_source_labels(docs)

        assert labelled[0].source == "guides/contracts.md"
        assert labelled[1].source == "unknown-source-2"

    def test_malformed_metadata_falls_back(self):
        doc = RetrievedDocument(
            id=5,
            content="text",
            metadata=DocumentMetadata.from_raw("not a dict"),
            similarity=0.3,
        )
        assert attach_source_labels([doc])[0].source == "unknown-source-1"

    def test_format_context_cites_sources(self):
        context = format_context(attach_source_labels([make_doc(1, 0.9, source="x.md")]))
        assert context == "[Source: x.md]\ncontent of 1"


class TestValidateQuery:
    def test_accepts_normal_query(self):
        assert validate_query("How are rates loaded?") == "How are rates loaded?"

    def test_rejects_empty(self):
        with pytest.raises(InputValidationError):
            validate_query("   ")

    def test_rejects_oversized(self):
        with pytest.raises(QueryTooLongError):
            validate_query("x" * 10_001, max_length=10_000)

    def test_boundary_length_accepted(self):
        assert len(validate_query("x" * 10_000, max_length=10_000)) == 10_000


class TestHybridRetriever:
    """End-to-end retrieval behavior against mocked collaborators."""

    @pytest.mark.asyncio
    async def test_vector_then_unique_keyword_results(self, retriever, mock_store):
        vector_hits = [make_doc(i, 0.9 - i * 0.1) for i in range(1, 6)]
        keyword_hits = [make_doc(4, 0.5), make_doc(5, 0.5), make_doc(42, 0.5, source="rates.md")]
        mock_store.match_documents.return_value = vector_hits
        mock_store.search_content.return_value = keyword_hits

        results = await retriever.retrieve("special markup contracts")

        assert [d.id for d in results] == [1, 2, 3, 4, 5, 42]
        assert results[3].similarity == pytest.approx(0.5)  # vector score for id 4
        assert results[-1].similarity == 0.5
        assert results[-1].source == "rates.md"
        mock_store.match_documents.assert_awaited_once_with([0.1] * 8, 0.25, 12)
        # Phrase tier matched, so no pairwise attempts
        mock_store.search_content.assert_awaited_once_with(
            "%special%markup%contracts%", 6, 0.5
        )

    @pytest.mark.asyncio
    async def test_pairwise_fallback_stops_at_first_match(self, retriever, mock_store):
        calls = []

        async def fake_search(pattern, limit, similarity):
            calls.append(pattern)
            if pattern == "%special%contracts%":
                return [make_doc(77, similarity)]
            return []

        mock_store.search_content.side_effect = fake_search
        mock_store.match_documents.return_value = [make_doc(1, 0.8)]

        results = await retriever.retrieve("configure special markup contracts")

        assert calls == [
            "%configure%special%markup%contracts%",
            "%configure%special%",
            "%configure%markup%",
            "%configure%contracts%",
            "%special%markup%",
            "%special%contracts%",
        ]
        assert [d.id for d in results] == [1, 77]
        assert results[1].similarity == 0.45

    @pytest.mark.asyncio
    async def test_no_keywords_skips_pattern_search(self, retriever, mock_store):
        mock_store.match_documents.return_value = [make_doc(1, 0.6)]

        results = await retriever.retrieve("what is it?")

        assert [d.id for d in results] == [1]
        mock_store.search_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_oversized_query_rejected_before_any_call(
        self, retriever, mock_store, mock_embedder
    ):
        with pytest.raises(QueryTooLongError):
            await retriever.retrieve("a" * 20_000)

        mock_embedder.embed.assert_not_called()
        mock_store.match_documents.assert_not_called()
        mock_store.search_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_keyword_store_failure_is_isolated(self, retriever, mock_store):
        mock_store.match_documents.return_value = [make_doc(1, 0.7)]
        mock_store.search_content.side_effect = DocumentStoreError("Pattern search failed")

        results = await retriever.retrieve("supplier mapping rules")

        assert [d.id for d in results] == [1]

    @pytest.mark.asyncio
    async def test_vector_store_failure_aborts(self, retriever, mock_store):
        mock_store.match_documents.side_effect = DocumentStoreError("Similarity search failed")

        with pytest.raises(DocumentStoreError):
            await retriever.retrieve("supplier mapping rules")

    @pytest.mark.asyncio
    async def test_embedding_failure_aborts(self, retriever, mock_store, mock_embedder):
        mock_embedder.embed.side_effect = EmbeddingError("boom")

        with pytest.raises(EmbeddingError):
            await retriever.retrieve("supplier mapping rules")

        mock_store.match_documents.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_store_returns_empty(self, retriever):
        assert await retriever.retrieve("supplier mapping rules") == []

    @pytest.mark.asyncio
    async def test_embedding_failure_stops_keyword_leg(
        self, retriever, mock_store, mock_embedder
    ):
        calls = []

        async def slow_search(pattern, limit, similarity):
            calls.append(pattern)
            await asyncio.sleep(0.05)
            return []

        mock_store.search_content.side_effect = slow_search
        mock_embedder.embed.side_effect = EmbeddingError("boom")

        with pytest.raises(EmbeddingError):
            await retriever.retrieve("configure special markup contracts")

        # No pattern search may land on the session after the request failed
        issued = len(calls)
        await asyncio.sleep(0.3)
        assert len(calls) == issued
        assert issued <= 1
