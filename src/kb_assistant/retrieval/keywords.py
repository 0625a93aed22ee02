"""
Keyword Fallback Planning

Vector search can blur exact terminology such as product or module names.
The keyword leg recovers those literal matches with ILIKE pattern searches,
tried in a fixed order:

1. "all"  : the first (up to 5) keywords must co-occur, similarity 0.5
2. "pair" : pairs of keywords from the first few positions, similarity 0.45

The plan is built as an explicit list of attempts so the priority order can
be inspected and tested without a store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

MAX_PHRASE_KEYWORDS = 5
MIN_KEYWORD_LENGTH = 3

ALL_KEYWORDS_SIMILARITY = 0.5
PAIR_KEYWORDS_SIMILARITY = 0.45

# Pairs (i, j) are drawn from i < PAIR_FIRST_LIMIT and i < j < PAIR_SECOND_LIMIT
PAIR_FIRST_LIMIT = 3
PAIR_SECOND_LIMIT = 4

_EDGE_PUNCTUATION = "\"'`.,;:!?()[]{}<>«»“”‘’"

STOP_WORDS = frozenset({
    # English
    "the", "and", "for", "are", "but", "not", "you", "all", "any", "can",
    "her", "was", "one", "our", "out", "has", "had", "how", "its", "who",
    "why", "what", "when", "where", "which", "with", "this", "that", "these",
    "those", "from", "have", "into", "your", "about", "there", "their",
    "they", "them", "then", "than", "does", "did", "doing", "will", "would",
    "should", "could", "shall", "may", "might", "must", "been", "being",
    "were", "also", "just", "some", "such", "only", "other", "more", "most",
    "very", "please", "tell", "explain", "show",
    # Italian
    "che", "chi", "cosa", "come", "dove", "quando", "quale", "quali",
    "perche", "perché", "della", "delle", "degli", "dello", "dei", "del",
    "nel", "nella", "nelle", "negli", "nei", "sul", "sulla", "sulle",
    "sugli", "una", "uno", "gli", "con", "per", "tra", "fra", "sono",
    "essere", "avere", "questo", "questa", "questi", "queste", "quello",
    "quella", "anche", "non", "più", "molto", "posso", "puoi", "può",
    "fare", "faccio", "mio", "mia", "tuo", "tua", "suo", "sua", "ciao",
})


@dataclass(frozen=True)
class KeywordAttempt:
    """One pattern search to try, in plan order."""

    tier: str
    keywords: tuple
    similarity: float

    @property
    def pattern(self) -> str:
        return build_pattern(self.keywords)


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def extract_keywords(query: str) -> List[str]:
    """
    Extract search keywords from a query, preserving their order.

    Tokens are lower-cased, stripped of surrounding punctuation, and dropped
    when they are stop words or at most two characters long.
    """
    keywords: List[str] = []
    for token in query.lower().split():
        token = token.strip(_EDGE_PUNCTUATION)
        if len(token) < MIN_KEYWORD_LENGTH or token in STOP_WORDS:
            continue
        keywords.append(token)
    return keywords


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so `term` matches literally (escape char `\\`)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_pattern(keywords: Sequence[str]) -> str:
    """Build an ILIKE pattern requiring all keywords, in order."""
    return "%" + "%".join(escape_like(k) for k in keywords) + "%"


def build_keyword_attempts(
    keywords: Sequence[str],
    first_limit: int = PAIR_FIRST_LIMIT,
    second_limit: int = PAIR_SECOND_LIMIT,
) -> List[KeywordAttempt]:
    """
    Return the ordered list of pattern searches for `keywords`.

    The first attempt (when there are keywords at all) is the multi-keyword
    phrase; pair attempts follow when they search something the phrase did
    not, which needs at least three keywords.
    """
    if not keywords:
        return []

    attempts = [
        KeywordAttempt(
            tier="all",
            keywords=tuple(keywords[:MAX_PHRASE_KEYWORDS]),
            similarity=ALL_KEYWORDS_SIMILARITY,
        )
    ]

    first_bound = min(first_limit, len(keywords))
    second_bound = min(second_limit, len(keywords))

    for i in range(first_bound):
        for j in range(i + 1, second_bound):
            # With exactly two keywords the pair repeats the phrase search
            if (keywords[i], keywords[j]) == attempts[0].keywords:
                continue
            attempts.append(
                KeywordAttempt(
                    tier="pair",
                    keywords=(keywords[i], keywords[j]),
                    similarity=PAIR_KEYWORDS_SIMILARITY,
                )
            )

    return attempts
