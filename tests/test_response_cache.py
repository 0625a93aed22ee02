"""
Response Cache Tests

Uses an in-memory store implementing the cache store contract so that the
background write semantics can be observed deterministically.
"""

import hashlib

import pytest
from unittest.mock import AsyncMock

from kb_assistant.cache.response_cache import (
    ResponseCache,
    normalize_question,
    question_hash,
)
from kb_assistant.embeddings.models import CacheEntry

LONG_ANSWER = "To create a special markup, open the Markups module and choose New. " * 2


class InMemoryCacheStore:
    def __init__(self):
        self.entries = {}

    async def get(self, question_hash):
        return self.entries.get(question_hash)

    async def upsert(self, question_hash, question, answer, language):
        existing = self.entries.get(question_hash)
        self.entries[question_hash] = CacheEntry(
            question_hash=question_hash,
            question=question,
            answer=answer,
            language=language,
            hit_count=existing.hit_count if existing else 0,
        )

    async def increment_hit_count(self, question_hash):
        entry = self.entries[question_hash]
        self.entries[question_hash] = entry.model_copy(
            update={"hit_count": entry.hit_count + 1}
        )


class TestNormalization:
    """Tests for question normalization and keying."""

    def test_equivalent_questions_share_a_key(self):
        variants = ["What is X?", "what is x", "What is x  ?"]

        assert {normalize_question(v) for v in variants} == {"what is x"}
        assert len({question_hash(v) for v in variants}) == 1

    def test_internal_whitespace_collapsed(self):
        assert normalize_question("  How\tdo   I\nload rates?!  ") == "how do i load rates"

    def test_hash_is_sha256_hex_of_normalized_text(self):
        expected = hashlib.sha256(b"what is x").hexdigest()
        assert question_hash("What is X?") == expected

    def test_different_questions_differ(self):
        assert question_hash("What is X?") != question_hash("What is Y?")


class TestResponseCache:
    """Lookup and record behavior."""

    @pytest.mark.asyncio
    async def test_miss_then_record_then_hit(self):
        store = InMemoryCacheStore()
        cache = ResponseCache(store, min_answer_length=50)

        assert await cache.lookup("How do I create a special markup?") is None

        assert cache.record("How do I create a special markup?", LONG_ANSWER, "en") is True
        await cache.wait_pending()

        entry = await cache.lookup("how do i create a special markup")
        assert entry is not None
        assert entry.answer == LONG_ANSWER
        assert entry.hit_count == 0

        await cache.wait_pending()
        key = question_hash("How do I create a special markup?")
        assert store.entries[key].hit_count == 1

    @pytest.mark.asyncio
    async def test_short_answers_not_recorded(self):
        store = InMemoryCacheStore()
        cache = ResponseCache(store, min_answer_length=50)

        assert cache.record("What is X?", "x" * 50, "en") is False
        await cache.wait_pending()

        assert store.entries == {}

    @pytest.mark.asyncio
    async def test_rerecord_keeps_hit_count(self):
        store = InMemoryCacheStore()
        cache = ResponseCache(store, min_answer_length=50)

        cache.record("What is X?", LONG_ANSWER, "en")
        await cache.wait_pending()
        await cache.lookup("What is X?")
        await cache.wait_pending()
        cache.record("what is x", LONG_ANSWER + " Updated.", "en")
        await cache.wait_pending()

        entry = store.entries[question_hash("What is X?")]
        assert entry.hit_count == 1
        assert entry.answer.endswith("Updated.")

    @pytest.mark.asyncio
    async def test_lookup_failure_is_a_miss(self):
        store = AsyncMock()
        store.get.side_effect = RuntimeError("connection refused")
        cache = ResponseCache(store, min_answer_length=50)

        assert await cache.lookup("What is X?") is None

    @pytest.mark.asyncio
    async def test_increment_failure_does_not_block_hit(self):
        entry = CacheEntry(
            question_hash=question_hash("What is X?"),
            question="What is X?",
            answer=LONG_ANSWER,
            language="en",
            hit_count=3,
        )
        store = AsyncMock()
        store.get.return_value = entry
        store.increment_hit_count.side_effect = RuntimeError("write failed")
        cache = ResponseCache(store, min_answer_length=50)

        assert await cache.lookup("What is X?") == entry
        await cache.wait_pending()

        store.increment_hit_count.assert_awaited_once_with(entry.question_hash)

    @pytest.mark.asyncio
    async def test_record_failure_is_swallowed(self):
        store = AsyncMock()
        store.upsert.side_effect = RuntimeError("write failed")
        cache = ResponseCache(store, min_answer_length=50)

        assert cache.record("What is X?", LONG_ANSWER, "en") is True
        await cache.wait_pending()

        store.upsert.assert_awaited_once()
