"""
Transcript noise removal.

Spoken-word transcripts carry greetings, filler words and stutters that only
dilute embeddings. `clean_transcript` runs before transcripts are chunked;
markdown sources never go through it.
"""

from __future__ import annotations

import re

GREETING_WORDS = (
    "hello",
    "hi",
    "hey",
    "ciao",
    "buongiorno",
    "buonasera",
    "grazie",
    "thanks",
)

FILLER_WORDS = ("uh", "um", "ehm", "mmm")

_GREETING_LINE = re.compile(
    r"^(" + "|".join(GREETING_WORDS) + r")[\s,!.-]*$",
    re.IGNORECASE,
)
_REPEATED_WORD = re.compile(r"\b(\w+)(\s+\1\b){2,}", re.IGNORECASE)
_FILLER = re.compile(r"\b(" + "|".join(FILLER_WORDS) + r")\b", re.IGNORECASE)
_INLINE_WHITESPACE = re.compile(r"\s+")
_WHITESPACE_RUN = re.compile(r"\s{2,}")


def clean_transcript(raw_text: str) -> str:
    """
    Normalize a noisy transcript.

    Lines are whitespace-collapsed and trimmed; empty lines and bare
    greeting lines are dropped. Over the rejoined text, any word repeated
    three or more times in a row is reduced to one occurrence, filler
    tokens are removed and whitespace runs are collapsed.
    """
    lines = []
    for line in raw_text.split("\n"):
        line = _INLINE_WHITESPACE.sub(" ", line).strip()
        if not line or _GREETING_LINE.match(line):
            continue
        lines.append(line)

    text = "\n".join(lines)
    text = _REPEATED_WORD.sub(r"\1", text)
    text = _FILLER.sub("", text)
    text = _WHITESPACE_RUN.sub(" ", text)
    return text.strip()
