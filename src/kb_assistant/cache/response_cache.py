"""
Response Cache

Memoizes answers to first-turn questions. The cache key is a pure function
of the normalized question text (never of conversation history), so callers
must only consult the cache for single-turn conversations.

Side effects are best-effort:
- Hit-count increments and answer writes run as detached asyncio tasks.
  Their effects may be lost (process exit, store failure, concurrent hits
  under-counting) and they never block or fail the answer path.
- Lookup failures are logged and treated as a miss.

`wait_pending()` drains outstanding tasks for tests and graceful shutdown.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from typing import Awaitable, Optional, Protocol, Set

from ..config import settings
from ..embeddings.models import CacheEntry

logger = logging.getLogger("kb.cache")

_TRAILING_PUNCTUATION = re.compile(r"[?!.,;:]+$")
_WHITESPACE_RUN = re.compile(r"\s+")


class CacheStore(Protocol):
    """Persistence contract used by ResponseCache (see db.cache_store)."""

    async def get(self, question_hash: str) -> Optional[CacheEntry]: ...

    async def upsert(
        self,
        question_hash: str,
        question: str,
        answer: str,
        language: str,
    ) -> None: ...

    async def increment_hit_count(self, question_hash: str) -> None: ...


# ---------------------------------------------------------------------
# Key Derivation
# ---------------------------------------------------------------------

def normalize_question(question: str) -> str:
    """
    Lower-case, trim, strip trailing punctuation and collapse whitespace.
    """
    text = question.lower().strip()
    text = _TRAILING_PUNCTUATION.sub("", text)
    text = _WHITESPACE_RUN.sub(" ", text)
    return text.strip()


def question_hash(question: str) -> str:
    """Return the SHA-256 hex digest of the normalized question."""
    return hashlib.sha256(normalize_question(question).encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------

class ResponseCache:
    """
    Best-effort answer cache in front of answer generation.
    """

    def __init__(
        self,
        store: CacheStore,
        min_answer_length: Optional[int] = None,
    ) -> None:
        self._store = store
        self._min_answer_length = (
            min_answer_length
            if min_answer_length is not None
            else settings.cache_min_answer_length
        )
        self._pending: Set[asyncio.Task] = set()

    async def lookup(self, question: str) -> Optional[CacheEntry]:
        """
        Return the cached entry for `question`, or None on a miss.

        On a hit, the hit counter is incremented in the background.
        """
        key = question_hash(question)

        try:
            entry = await self._store.get(key)
        except Exception:
            logger.warning("Cache lookup failed; treating as miss", exc_info=True)
            return None

        if entry is None:
            logger.debug("Cache miss for %s", key[:12])
            return None

        logger.info("Cache hit for %s (hits so far: %d)", key[:12], entry.hit_count)
        self._spawn(self._store.increment_hit_count(key), "increment hit count")
        return entry

    def record(self, question: str, answer: str, language: str) -> bool:
        """
        Schedule an upsert of `answer` for `question`.

        Answers at or below the minimum length are never cached.

        Returns
        -------
        bool
            True if a write was scheduled.
        """
        if len(answer.strip()) <= self._min_answer_length:
            logger.debug("Answer too short to cache (%d chars)", len(answer.strip()))
            return False

        key = question_hash(question)
        self._spawn(
            self._store.upsert(key, question.strip(), answer, language),
            "record answer",
        )
        return True

    async def wait_pending(self) -> None:
        """Wait for all scheduled background writes to finish."""
        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _spawn(self, operation: Awaitable[None], description: str) -> None:
        task = asyncio.ensure_future(self._run_quietly(operation, description))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @staticmethod
    async def _run_quietly(operation: Awaitable[None], description: str) -> None:
        try:
            await operation
        except Exception:
            logger.warning("Cache write failed (%s)", description, exc_info=True)
