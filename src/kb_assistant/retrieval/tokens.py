"""
Token estimation shared by ingestion and retrieval.

Budgets everywhere are expressed in these estimated units, so every sizing
decision must go through `estimate_tokens`.
"""

import math

TOKENS_PER_WORD = 1.33


def estimate_tokens(text: str) -> int:
    """Approximate the token count of `text` from its word count."""
    words = len(text.split())
    return math.ceil(words * TOKENS_PER_WORD)
