"""
Answer Service

Orchestrates one chat turn around the retrieval core:

1. Validate the latest user message.
2. For single-turn conversations, consult the response cache.
3. Retrieve hybrid context and build the system prompt.
4. Call the language model (an opaque completion service).
5. For single-turn conversations, record the answer in the cache.

Multi-turn conversations never touch the cache: cache keys ignore history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from ..api.models import ChatMessage
from ..cache.response_cache import ResponseCache
from ..core.errors import InputValidationError
from ..llm.client import LLMClient
from ..prompts import BASE_SYSTEM_PROMPT, build_system_prompt, detect_language
from ..retrieval.hybrid import HybridRetriever, format_context, validate_query

logger = logging.getLogger("kb.answers")


@dataclass
class AnswerResult:
    answer: str
    language: str
    cached: bool = False
    sources: List[str] = field(default_factory=list)


def is_single_turn(messages: Sequence[ChatMessage]) -> bool:
    """True when the conversation is exactly one user message."""
    return len(messages) == 1 and messages[0].role == "user"


class AnswerService:
    def __init__(
        self,
        retriever: HybridRetriever,
        cache: ResponseCache,
        llm: LLMClient,
        base_prompt: str = BASE_SYSTEM_PROMPT,
    ) -> None:
        self._retriever = retriever
        self._cache = cache
        self._llm = llm
        self._base_prompt = base_prompt

    async def answer(self, messages: Sequence[ChatMessage]) -> AnswerResult:
        if not messages or messages[-1].role != "user":
            raise InputValidationError("The last message must be a user message.")

        question = validate_query(messages[-1].content)
        single_turn = is_single_turn(messages)

        if single_turn:
            cached = await self._cache.lookup(question)
            if cached is not None:
                return AnswerResult(
                    answer=cached.answer,
                    language=cached.language,
                    cached=True,
                )

        language = detect_language(question)
        documents = await self._retriever.retrieve(question)

        system_prompt = build_system_prompt(
            format_context(documents),
            language,
            self._base_prompt,
        )

        reply = await self._llm.chat(
            system_prompt,
            [{"role": m.role, "content": m.content} for m in messages],
        )
        answer = (reply.get("content") or "").strip()

        if single_turn and answer:
            self._cache.record(question, answer, language)

        sources: List[str] = []
        for doc in documents:
            if doc.source and doc.source not in sources:
                sources.append(doc.source)

        logger.info(
            "Answered %s question with %d sources (single_turn=%s)",
            language,
            len(sources),
            single_turn,
        )

        return AnswerResult(answer=answer, language=language, sources=sources)
