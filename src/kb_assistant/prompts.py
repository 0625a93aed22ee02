"""
Prompt construction for answer generation.

The system prompt is assembled per request from explicit values (base
instructions, retrieved context, detected language). Nothing here is
module-level mutable state.
"""

from __future__ import annotations

import re
from typing import Literal

Language = Literal["it", "en"]

BASE_SYSTEM_PROMPT = """You are a Juniper Booking Engine (JBE) expert. You answer from the training materials, API documentation and operational guides provided as context.

RULES:
1. Detect the user's language and respond in the SAME language (Italian or English).
2. Answer confidently and directly from the context below.
3. Structure answers with clear steps, bullet points, and practical guidance.
4. When a question maps to a specific module or workflow, provide the step-by-step procedure.
5. If the context genuinely does not cover a topic, say so briefly. Never recommend "contact support" as your primary answer.
6. Cite the sources you used by their [Source: ...] label.
7. Distinguish between similar concepts (e.g., special offers vs special markup, contracts vs rates)."""

_ITALIAN_SIGNALS = (
    re.compile(r"\b(ciao|buongiorno|grazie|come|dove|perche|quale|impostare|configurare)\b"),
    re.compile(r"\b(il|lo|la|gli|della|delle|degli|nel|nella|dopo)\b"),
    re.compile(r"[àèéìòù]"),
)

LANGUAGE_INSTRUCTIONS = {
    "it": "Rispondi in italiano.",
    "en": "Respond in English.",
}


def detect_language(text: str) -> Language:
    """Guess whether `text` is Italian or English."""
    normalized = text.lower()
    if any(pattern.search(normalized) for pattern in _ITALIAN_SIGNALS):
        return "it"
    return "en"


def build_system_prompt(
    context: str,
    language: Language,
    base_prompt: str = BASE_SYSTEM_PROMPT,
) -> str:
    knowledge = context.strip() or "(no matching documents were found)"
    return (
        f"{base_prompt}\n\n"
        f"KNOWLEDGE BASE CONTEXT:\n{knowledge}\n\n"
        f"{LANGUAGE_INSTRUCTIONS[language]}"
    )
