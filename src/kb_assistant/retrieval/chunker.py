"""
Token-Budgeted Chunking

This module splits raw corpus text into retrievable chunks. Two strategies
share one budget model (all sizes in estimated tokens):

- Recursive: paragraphs are accumulated into a buffer up to the chunk size.
  When the next piece would overflow, the buffer is emitted and the next
  buffer is seeded with the last `overlap_tokens` words of the emitted one.
  Paragraphs that alone exceed the budget are split on sentence boundaries
  and accumulated the same way.

- Section-aware: markdown text is cut at level-2/3 headings so a heading
  stays with its body. Sections are merged up to the chunk size, except
  sections above the hard ceiling, which are flushed separately and reduced
  with the recursive strategy.

Chunks at or below the noise floor are discarded. Both strategies are
deterministic generators: identical input and budgets always yield
identical chunk boundaries.
"""

from __future__ import annotations

import re
from typing import Iterator, List, Optional

from .tokens import estimate_tokens

# ---------------------------------------------------------------------
# Budget Constants
# ---------------------------------------------------------------------

CHUNK_SIZE_TOKENS = 800
CHUNK_OVERLAP_TOKENS = 50
MAX_SECTION_TOKENS = 1500
MIN_CHUNK_TOKENS = 10

PIECE_SEPARATOR = "\n\n"

_PARAGRAPH_BREAK = re.compile(r"\n{2,}")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
_HEADING = re.compile(r"^(#{2,3}[ \t]+.+)$", re.MULTILINE)


# ---------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------

def _normalize(text: str) -> str:
    return text.replace("\r", "").strip()


def _above_noise_floor(chunk: str) -> bool:
    return estimate_tokens(chunk) > MIN_CHUNK_TOKENS


def _split_paragraphs(text: str) -> List[str]:
    return [p.strip() for p in _PARAGRAPH_BREAK.split(text) if p.strip()]


def _split_sentences(paragraph: str) -> List[str]:
    return [s for s in _SENTENCE_BREAK.split(paragraph) if s]


class _ChunkBuffer:
    """
    Accumulates text pieces under a token budget.

    `add` returns the emitted chunk when the incoming piece overflows the
    budget, otherwise None.
    """

    def __init__(self, max_tokens: int, overlap_tokens: int) -> None:
        self._max_tokens = max_tokens
        self._overlap_tokens = overlap_tokens
        self._pieces: List[str] = []
        self._tokens = 0

    def add(self, piece: str) -> Optional[str]:
        piece_tokens = estimate_tokens(piece)

        if self._tokens + piece_tokens > self._max_tokens and self._pieces:
            emitted = PIECE_SEPARATOR.join(self._pieces)
            seed = self._overlap_seed()
            self._pieces = [seed, piece] if seed else [piece]
            self._tokens = estimate_tokens(" ".join(self._pieces))
            return emitted

        self._pieces.append(piece)
        self._tokens += piece_tokens
        return None

    def flush(self) -> Optional[str]:
        if not self._pieces:
            return None
        emitted = PIECE_SEPARATOR.join(self._pieces)
        self._pieces = []
        self._tokens = 0
        return emitted

    def _overlap_seed(self) -> str:
        words = " ".join(self._pieces).split()
        return " ".join(words[-max(1, self._overlap_tokens):])


def _split_sections(text: str) -> List[str]:
    """
    Cut text at heading lines.

    Returns an empty list when the text has no level-2/3 headings. The
    preamble before the first heading is kept only above the noise floor.
    """
    starts = [match.start() for match in _HEADING.finditer(text)]
    if not starts:
        return []

    sections: List[str] = []

    preamble = text[: starts[0]].strip()
    if preamble and _above_noise_floor(preamble):
        sections.append(preamble)

    bounds = starts + [len(text)]
    for start, end in zip(bounds, bounds[1:]):
        sections.append(text[start:end].strip())

    return sections


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def iter_recursive_chunks(
    text: str,
    max_tokens: int = CHUNK_SIZE_TOKENS,
    overlap_tokens: int = CHUNK_OVERLAP_TOKENS,
) -> Iterator[str]:
    """
    Lazily yield paragraph/sentence chunks of `text`.

    Parameters
    ----------
    text : str
        Raw text. Line endings are normalized and the text is trimmed.

    max_tokens : int
        Estimated token budget per chunk.

    overlap_tokens : int
        Number of trailing words carried from one chunk into the next.

    Yields
    ------
    str
        Chunks above the noise floor, in source order.
    """
    cleaned = _normalize(text)
    if not cleaned:
        return

    buffer = _ChunkBuffer(max_tokens, overlap_tokens)

    for paragraph in _split_paragraphs(cleaned):
        if estimate_tokens(paragraph) > max_tokens:
            pieces = _split_sentences(paragraph)
        else:
            pieces = [paragraph]

        for piece in pieces:
            emitted = buffer.add(piece)
            if emitted is not None and _above_noise_floor(emitted):
                yield emitted

    tail = buffer.flush()
    if tail is not None and _above_noise_floor(tail):
        yield tail


def iter_section_chunks(text: str) -> Iterator[str]:
    """
    Lazily yield heading-aware chunks of markdown `text`.

    Falls back to the recursive strategy when the text has no headings.
    """
    cleaned = _normalize(text)
    if not cleaned:
        return

    sections = _split_sections(cleaned)
    if not sections:
        yield from iter_recursive_chunks(cleaned)
        return

    buffer: List[str] = []
    buffer_tokens = 0

    for section in sections:
        section_tokens = estimate_tokens(section)

        # Oversized sections bypass the buffer entirely
        if section_tokens > MAX_SECTION_TOKENS:
            if buffer:
                merged = PIECE_SEPARATOR.join(buffer)
                if _above_noise_floor(merged):
                    yield merged
                buffer = []
                buffer_tokens = 0

            yield from iter_recursive_chunks(section)
            continue

        if buffer_tokens + section_tokens > CHUNK_SIZE_TOKENS and buffer:
            merged = PIECE_SEPARATOR.join(buffer)
            if _above_noise_floor(merged):
                yield merged
            buffer = []
            buffer_tokens = 0

        buffer.append(section)
        buffer_tokens += section_tokens

    if buffer:
        merged = PIECE_SEPARATOR.join(buffer)
        if _above_noise_floor(merged):
            yield merged


def recursive_chunk(
    text: str,
    max_tokens: int = CHUNK_SIZE_TOKENS,
    overlap_tokens: int = CHUNK_OVERLAP_TOKENS,
) -> List[str]:
    """Return all recursive chunks of `text` as a list."""
    return list(iter_recursive_chunks(text, max_tokens, overlap_tokens))


def section_aware_chunk(text: str) -> List[str]:
    """Return all section-aware chunks of `text` as a list."""
    return list(iter_section_chunks(text))
